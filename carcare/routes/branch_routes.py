# -*- coding: utf-8 -*-
"""Branches. Reading is open to any signed-in user; changes are admin only."""

from flask import Blueprint, current_app
from flask_login import current_user, login_required

from carcare.auth import admin_required
from carcare.extensions import db
from carcare.models import Branch, Operation, User
from carcare.utils.http_helpers import api_error, api_ok, get_json_body
from carcare.utils.validation import validate_branch

bp = Blueprint('branches', __name__, url_prefix='/api/branches')

MSG_NOT_FOUND = "الفرع غير موجود"
MSG_DUPLICATE = "اسم الفرع مستخدم بالفعل"


def _name_taken(name: str, exclude_id=None) -> bool:
    query = Branch.query.filter(db.func.lower(Branch.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Branch.id != exclude_id)
    return query.first() is not None


@bp.route('', methods=['GET'])
@login_required
def list_branches():
    branches = Branch.query.order_by(Branch.id.asc()).all()
    return api_ok([b.to_dict() for b in branches])


@bp.route('/<int:branch_id>', methods=['GET'])
@login_required
def get_branch(branch_id):
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        return api_error("not_found", MSG_NOT_FOUND, status=404)
    return api_ok(branch.to_dict())


@bp.route('', methods=['POST'])
@login_required
@admin_required
def create_branch():
    data = validate_branch(get_json_body())
    if _name_taken(data["name"]):
        return api_error("duplicate", MSG_DUPLICATE, status=409, details={"field": "name"})
    branch = Branch(**data)
    db.session.add(branch)
    db.session.commit()
    current_app.logger.info("[ADMIN] branch created id=%s by user=%s", branch.id, current_user.id)
    return api_ok(branch.to_dict(), status=201)


@bp.route('/<int:branch_id>', methods=['PUT'])
@login_required
@admin_required
def update_branch(branch_id):
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        return api_error("not_found", MSG_NOT_FOUND, status=404)
    data = validate_branch(get_json_body())
    if _name_taken(data["name"], exclude_id=branch.id):
        return api_error("duplicate", MSG_DUPLICATE, status=409, details={"field": "name"})
    branch.name = data["name"]
    branch.location = data["location"]
    db.session.commit()
    return api_ok(branch.to_dict())


@bp.route('/<int:branch_id>', methods=['DELETE'])
@login_required
@admin_required
def delete_branch(branch_id):
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        return api_error("not_found", MSG_NOT_FOUND, status=404)
    # users and operations keep their rows, detached from the branch
    User.query.filter_by(branch_id=branch.id).update({"branch_id": None}, synchronize_session=False)
    Operation.query.filter_by(branch_id=branch.id).update({"branch_id": None}, synchronize_session=False)
    db.session.delete(branch)
    db.session.commit()
    current_app.logger.info("[ADMIN] branch deleted id=%s by user=%s", branch_id, current_user.id)
    return api_ok({"deleted": branch_id})
