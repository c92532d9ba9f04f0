# -*- coding: utf-8 -*-
"""User administration (admin only). Password hashes are never returned."""

from flask import Blueprint, current_app
from flask_login import current_user, login_required

from carcare.auth import admin_required
from carcare.extensions import db
from carcare.models import Branch, Operation, User
from carcare.utils.http_helpers import api_error, api_ok, get_json_body
from carcare.utils.validation import validate_user

bp = Blueprint('users', __name__, url_prefix='/api/users')

MSG_NOT_FOUND = "المستخدم غير موجود"
MSG_DUPLICATE = "اسم المستخدم موجود بالفعل"
MSG_BRANCH_NOT_FOUND = "الفرع غير موجود"
MSG_SELF_DELETE = "لا يمكنك حذف حسابك الحالي"


def _check_unique_and_branch(data, exclude_id=None):
    query = User.query.filter(db.func.lower(User.username) == data["username"].lower())
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    if query.first() is not None:
        return api_error("duplicate", MSG_DUPLICATE, status=409, details={"field": "username"})
    if data["branch_id"] is not None and db.session.get(Branch, data["branch_id"]) is None:
        return api_error("validation_error", MSG_BRANCH_NOT_FOUND, status=400, details={"field": "branch_id"})
    return None


@bp.route('', methods=['GET'])
@login_required
@admin_required
def list_users():
    users = User.query.order_by(User.id.asc()).all()
    return api_ok([u.to_dict() for u in users])


@bp.route('/<int:user_id>', methods=['GET'])
@login_required
@admin_required
def get_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        return api_error("not_found", MSG_NOT_FOUND, status=404)
    return api_ok(user.to_dict())


@bp.route('', methods=['POST'])
@login_required
@admin_required
def create_user():
    data = validate_user(get_json_body(), creating=True)
    error = _check_unique_and_branch(data)
    if error is not None:
        return error
    user = User(username=data["username"], name=data["name"], role=data["role"], branch_id=data["branch_id"])
    user.set_password(data["password"])
    db.session.add(user)
    db.session.commit()
    current_app.logger.info("[ADMIN] user created id=%s role=%s by user=%s", user.id, user.role, current_user.id)
    return api_ok(user.to_dict(), status=201)


@bp.route('/<int:user_id>', methods=['PUT'])
@login_required
@admin_required
def update_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        return api_error("not_found", MSG_NOT_FOUND, status=404)
    data = validate_user(get_json_body(), creating=False)
    error = _check_unique_and_branch(data, exclude_id=user.id)
    if error is not None:
        return error
    user.username = data["username"]
    user.name = data["name"]
    user.role = data["role"]
    user.branch_id = data["branch_id"]
    if "password" in data:
        user.set_password(data["password"])
    db.session.commit()
    return api_ok(user.to_dict())


@bp.route('/<int:user_id>', methods=['DELETE'])
@login_required
@admin_required
def delete_user(user_id):
    if user_id == current_user.id:
        return api_error("forbidden", MSG_SELF_DELETE, status=400)
    user = db.session.get(User, user_id)
    if user is None:
        return api_error("not_found", MSG_NOT_FOUND, status=404)
    # operations stay in the audit trail without an actor
    Operation.query.filter_by(user_id=user.id).update({"user_id": None}, synchronize_session=False)
    db.session.delete(user)
    db.session.commit()
    current_app.logger.info("[ADMIN] user deleted id=%s by user=%s", user_id, current_user.id)
    return api_ok({"deleted": user_id})
