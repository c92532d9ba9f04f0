# -*- coding: utf-8 -*-
"""Operations log: intake, listing, single read and admin delete. No update path."""

from flask import Blueprint, current_app, request
from flask_login import current_user, login_required

from carcare.auth import admin_required
from carcare.extensions import db
from carcare.models import Operation
from carcare.rate_limit import log_access_decision, operations_limit
from carcare.services import intake_service, report_service
from carcare.utils.http_helpers import api_error, api_ok, get_json_body
from carcare.utils.validation import validate_listing_query

bp = Blueprint('operations', __name__, url_prefix='/api/operations')

MSG_NOT_FOUND = "العملية غير موجودة"


@bp.route('', methods=['GET'])
@login_required
def list_operations():
    query = validate_listing_query(request.args)
    return api_ok(report_service.list_operations(query))


@bp.route('', methods=['POST'])
@operations_limit
@login_required
def create_operation():
    result = intake_service.process_operation(get_json_body(), current_user)
    if result["state"] == intake_service.STATE_MISMATCH_PENDING:
        log_access_decision('/api/operations', current_user.id, 'pending', 'mismatch reason required')
        return api_error(
            "mismatch_reason_required",
            result["message"],
            status=422,
            details={k: v for k, v in result.items() if k != "message"},
        )
    return api_ok(result, status=201)


@bp.route('/<int:operation_id>', methods=['GET'])
@login_required
def get_operation(operation_id):
    operation = db.session.get(Operation, operation_id)
    if operation is None:
        return api_error("not_found", MSG_NOT_FOUND, status=404)
    return api_ok(operation.to_dict())


@bp.route('/<int:operation_id>', methods=['DELETE'])
@login_required
@admin_required
def delete_operation(operation_id):
    operation = db.session.get(Operation, operation_id)
    if operation is None:
        return api_error("not_found", MSG_NOT_FOUND, status=404)
    db.session.delete(operation)
    db.session.commit()
    current_app.logger.info("[ADMIN] operation deleted id=%s by user=%s", operation_id, current_user.id)
    return api_ok({"deleted": operation_id})
