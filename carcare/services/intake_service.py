# -*- coding: utf-8 -*-
"""
Operation intake.

    DRAFT -> VALIDATED -> RESOLVED -> MATCHED ---------> RECORDED
                                   \\-> MISMATCH_PENDING -> RECORDED (with a reason)

Inquiries are recorded as matching with the recommended oil facts. A
mismatched service is only recorded once it carries a non-empty reason, or
when the technician accepts the AI narrative as the reason.
"""

from typing import Any, Dict, Mapping, Optional

from flask import current_app

from carcare.exceptions import NotFoundError
from carcare.extensions import db
from carcare.models import Operation, OPERATION_INQUIRY
from carcare.services import ai_service
from carcare.utils.validation import validate_operation_payload

STATE_MISMATCH_PENDING = "MISMATCH_PENDING"
STATE_RECORDED = "RECORDED"

REASON_SOURCE_USER = "user"
REASON_SOURCE_AI = "ai"

MSG_CAR_NOT_FOUND = "⚠️ لا توجد بيانات لهذه السيارة في قاعدة البيانات"
MSG_NEEDS_REASON = "⚠️ البيانات المدخلة تختلف عن المقترح. يرجى توضيح السبب."
MSG_RECORDED = "✅ تم تسجيل العملية بنجاح"


def _record(cleaned: Dict[str, Any], user, *, is_matching: bool, oil: Dict[str, Any],
            filters: Dict[str, bool], reason: Optional[str] = None, reason_source: Optional[str] = None) -> Operation:
    operation = Operation(
        operation_type=cleaned["operation_type"],
        car_brand=cleaned["brand"],
        car_model=cleaned["model"],
        car_year=cleaned["year"],
        engine_size=cleaned["engine_size"],
        oil_used=oil.get("oil_used"),
        oil_viscosity=oil.get("oil_viscosity"),
        oil_quantity=oil.get("oil_quantity"),
        oil_filter=filters.get("oil_filter", False),
        air_filter=filters.get("air_filter", False),
        cooling_filter=filters.get("cooling_filter", False),
        is_matching=is_matching,
        mismatch_reason=reason,
        reason_source=reason_source,
        user_id=user.id,
        branch_id=user.branch_id,
    )
    db.session.add(operation)
    db.session.commit()
    current_app.logger.info(
        "[INTAKE] recorded operation id=%s type=%s matching=%s user=%s branch=%s",
        operation.id,
        operation.operation_type,
        operation.is_matching,
        operation.user_id,
        operation.branch_id,
    )
    return operation


def _recorded(operation: Operation, recommended, comparison=None) -> Dict[str, Any]:
    return {
        "state": STATE_RECORDED,
        "message": MSG_RECORDED,
        "operation": operation.to_dict(),
        "recommended": recommended,
        "comparison": comparison,
    }


def process_operation(payload: Mapping[str, Any], user) -> Dict[str, Any]:
    """
    Run one submission through the intake states.

    Actor and branch always come from ``user``. Raises ValidationError
    (missing/invalid fields) or NotFoundError (inquiry for an unknown car)
    before anything is written.
    """
    # DRAFT -> VALIDATED
    cleaned = validate_operation_payload(payload)
    use_ai = cleaned["use_ai"]

    # VALIDATED -> RESOLVED
    recommended = ai_service.analyze_recommendation(cleaned, use_ai=use_ai)

    if cleaned["operation_type"] == OPERATION_INQUIRY:
        if recommended is None:
            raise NotFoundError(MSG_CAR_NOT_FOUND, code="car_not_found")
        oil = {
            "oil_used": recommended["oil_type"],
            "oil_viscosity": recommended["oil_viscosity"],
            "oil_quantity": recommended["oil_quantity"],
        }
        operation = _record(cleaned, user, is_matching=True, oil=oil, filters={})
        return _recorded(operation, recommended)

    oil = {k: cleaned[k] for k in ("oil_used", "oil_viscosity", "oil_quantity")}
    filters = {k: cleaned[k] for k in ("oil_filter", "air_filter", "cooling_filter")}

    if recommended is None:
        # nothing to compare against
        current_app.logger.info("[INTAKE] no reference row for %s %s %s", cleaned["brand"], cleaned["model"], cleaned["year"])
        operation = _record(cleaned, user, is_matching=True, oil=oil, filters=filters)
        return _recorded(operation, None)

    service_data = dict(oil, brand=cleaned["brand"], model=cleaned["model"], year=cleaned["year"])
    comparison = ai_service.compare_with_fallback(service_data, recommended, use_ai=use_ai)

    # RESOLVED -> MATCHED
    if comparison["is_matching"]:
        operation = _record(cleaned, user, is_matching=True, oil=oil, filters=filters)
        return _recorded(operation, recommended, comparison)

    # RESOLVED -> MISMATCH_PENDING
    reason = cleaned.get("mismatch_reason")
    if reason is not None and reason.strip():
        operation = _record(cleaned, user, is_matching=False, oil=oil, filters=filters,
                            reason=reason, reason_source=REASON_SOURCE_USER)
        return _recorded(operation, recommended, comparison)

    if cleaned["accept_ai_analysis"] and comparison["source"] == ai_service.SOURCE_AI and comparison["analysis"].strip():
        operation = _record(cleaned, user, is_matching=False, oil=oil, filters=filters,
                            reason=comparison["analysis"], reason_source=REASON_SOURCE_AI)
        return _recorded(operation, recommended, comparison)

    current_app.logger.info("[INTAKE] mismatch pending reason user=%s fields=%s",
                            user.id, [m["key"] for m in comparison["mismatches"]])
    return {
        "state": STATE_MISMATCH_PENDING,
        "message": MSG_NEEDS_REASON,
        "mismatches": comparison["mismatches"],
        "recommended": recommended,
        "analysis": comparison["analysis"],
        "recommendation": comparison["recommendation"],
        "ai_analysis_available": comparison["source"] == ai_service.SOURCE_AI,
    }
