# -*- coding: utf-8 -*-
"""AI-assisted analyze/compare. Both degrade to the deterministic logic."""

from flask import Blueprint
from flask_login import current_user, login_required

from carcare.rate_limit import ai_limit, log_access_decision
from carcare.services import ai_service
from carcare.utils.http_helpers import api_error, api_ok, get_json_body
from carcare.utils.validation import validate_compare_payload, validate_vehicle

bp = Blueprint('ai', __name__, url_prefix='/api/ai')


@bp.route('/analyze', methods=['POST'])
@ai_limit
@login_required
def analyze():
    vehicle = validate_vehicle(get_json_body())
    log_access_decision('/api/ai/analyze', current_user.id, 'allowed', 'authenticated user')
    result = ai_service.analyze_recommendation(vehicle, use_ai=True)
    if result is None:
        return api_error(
            "car_not_found",
            "⚠️ لا توجد بيانات لهذه السيارة في قاعدة البيانات",
            status=404,
            details={"uses_fallback": True},
        )
    return api_ok(result)


@bp.route('/compare', methods=['POST'])
@ai_limit
@login_required
def compare():
    data = validate_compare_payload(get_json_body())
    log_access_decision('/api/ai/compare', current_user.id, 'allowed', 'authenticated user')
    return api_ok(ai_service.compare_with_fallback(data["service_data"], data["recommended"], use_ai=True))
