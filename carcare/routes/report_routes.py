# -*- coding: utf-8 -*-
"""Aggregate stats, trend series and CSV/XLSX export of the filtered operations."""

from datetime import datetime

from flask import Blueprint, Response, current_app, request
from flask_login import current_user, login_required

from carcare.services import report_service
from carcare.utils.http_helpers import api_error, api_ok
from carcare.utils.validation import validate_report_filters, validate_trends_query

bp = Blueprint('reports', __name__, url_prefix='/api/reports')

EXPORT_FORMATS = {
    "csv": ("text/csv; charset=utf-8", "csv"),
    "xlsx": ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "xlsx"),
}


@bp.route('/stats')
@login_required
def stats():
    return api_ok(report_service.compute_stats(validate_report_filters(request.args)))


@bp.route('/trends')
@login_required
def trends():
    return api_ok(report_service.compute_trends(validate_trends_query(request.args)))


@bp.route('/export')
@login_required
def export():
    fmt = (request.args.get("format") or "csv").strip().lower()
    if fmt not in EXPORT_FORMATS:
        return api_error("validation_error", "صيغة التصدير يجب أن تكون csv أو xlsx", status=400, details={"field": "format"})
    filters = validate_report_filters(request.args)

    frame = report_service.build_export_frame(filters)
    body = report_service.export_csv(frame) if fmt == "csv" else report_service.export_xlsx(frame)
    mimetype, ext = EXPORT_FORMATS[fmt]
    filename = f"operations_{datetime.utcnow().strftime('%Y%m%d_%H%M%S')}.{ext}"
    current_app.logger.info("[EXPORT] format=%s rows=%d user=%s", fmt, len(frame), current_user.id)
    return Response(
        body,
        mimetype=mimetype,
        headers={"Content-Disposition": f'attachment; filename="{filename}"', "Cache-Control": "no-store"},
    )
