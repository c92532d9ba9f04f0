# -*- coding: utf-8 -*-
"""Operation listing, aggregate stats, trends and file export."""

import io
import math
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

import pandas as pd
from sqlalchemy import String, case, cast, func, or_

from carcare.extensions import db
from carcare.models import Branch, Operation

LATEST_MISMATCHED_LIMIT = 20

EXPORT_HEADERS = [
    "معرف العملية",
    "التاريخ",
    "الفرع",
    "السيارة",
    "الموديل",
    "سنة الصنع",
    "نوع الزيت",
    "اللزوجة",
    "الكمية",
    "الحالة",
    "السبب",
]
STATUS_MATCHING = "مطابق"
STATUS_MISMATCHED = "غير مطابق"

_SORT_COLUMNS = {
    "created_at": Operation.created_at,
    "car_brand": Operation.car_brand,
    "car_model": Operation.car_model,
    "car_year": Operation.car_year,
    "oil_used": Operation.oil_used,
    "oil_viscosity": Operation.oil_viscosity,
    "oil_quantity": Operation.oil_quantity,
    "is_matching": Operation.is_matching,
}


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min)


def apply_filters(query, filters: Dict[str, Any]):
    """All values go through bound parameters; date bounds are inclusive days."""
    if filters.get("search"):
        term = filters["search"]
        query = query.filter(or_(
            Operation.car_brand.icontains(term, autoescape=True),
            Operation.car_model.icontains(term, autoescape=True),
            Operation.oil_used.icontains(term, autoescape=True),
            Operation.oil_viscosity.icontains(term, autoescape=True),
            Operation.engine_size.icontains(term, autoescape=True),
            cast(Operation.car_year, String).icontains(term, autoescape=True),
        ))
    if filters.get("branch_id"):
        query = query.filter(Operation.branch_id == filters["branch_id"])
    if filters.get("start_date"):
        query = query.filter(Operation.created_at >= _day_start(filters["start_date"]))
    if filters.get("end_date"):
        query = query.filter(Operation.created_at < _day_start(filters["end_date"] + timedelta(days=1)))
    if filters.get("is_matching") is not None:
        query = query.filter(Operation.is_matching.is_(filters["is_matching"]))
    return query


def _echo_filters(filters: Dict[str, Any]) -> Dict[str, Any]:
    echoed = {}
    for key, value in filters.items():
        echoed[key] = value.isoformat() if isinstance(value, date) else value
    return echoed


def list_operations(query_params: Dict[str, Any]) -> Dict[str, Any]:
    page = query_params["page"]
    limit = query_params["limit"]

    base = apply_filters(Operation.query, query_params)
    total = base.order_by(None).count()

    column = _SORT_COLUMNS[query_params["sort_by"]]
    ordering = column.asc() if query_params["sort_order"] == "asc" else column.desc()
    items = (
        base.order_by(ordering, Operation.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    total_pages = math.ceil(total / limit) if total else 0
    return {
        "items": [op.to_dict() for op in items],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
        "filters": _echo_filters({k: query_params.get(k) for k in ("search", "branch_id", "start_date", "end_date", "is_matching", "sort_by", "sort_order")}),
    }


def _grouped_counts(filters: Dict[str, Any], column) -> Dict[str, int]:
    rows = (
        apply_filters(db.session.query(column, func.count(Operation.id)), filters)
        .filter(column.isnot(None))
        .group_by(column)
        .order_by(func.count(Operation.id).desc())
        .all()
    )
    return {key: count for key, count in rows}


def _filter_usage(filters: Dict[str, Any]) -> Dict[str, int]:
    def _count(column):
        return apply_filters(Operation.query, filters).filter(column.is_(True)).count()

    return {
        "oil": _count(Operation.oil_filter),
        "air": _count(Operation.air_filter),
        "cooling": _count(Operation.cooling_filter),
    }


def _branch_counts(filters: Dict[str, Any]) -> Dict[str, int]:
    counts = {b.name: 0 for b in Branch.query.order_by(Branch.id.asc()).all()}
    rows = (
        apply_filters(
            db.session.query(Branch.name, func.count(Operation.id)).join(Operation, Operation.branch_id == Branch.id),
            filters,
        )
        .group_by(Branch.name)
        .all()
    )
    for name, count in rows:
        counts[name] = count
    return counts


def _totals(filters: Dict[str, Any]) -> Dict[str, Any]:
    total = apply_filters(Operation.query, filters).count()
    matching = apply_filters(Operation.query, filters).filter(Operation.is_matching.is_(True)).count()
    oil_sum = apply_filters(db.session.query(func.coalesce(func.sum(Operation.oil_quantity), 0)), filters).scalar()
    return {
        "total": total,
        "matching": matching,
        "mismatched": total - matching,
        "total_oil_used": round(float(oil_sum or 0), 2),
    }


def compute_stats(filters: Dict[str, Any]) -> Dict[str, Any]:
    stats = _totals(filters)
    mismatched = (
        apply_filters(Operation.query, filters)
        .filter(Operation.is_matching.is_(False))
        .order_by(Operation.created_at.desc(), Operation.id.desc())
        .limit(LATEST_MISMATCHED_LIMIT)
        .all()
    )
    stats.update({
        "oil_types": _grouped_counts(filters, Operation.oil_used),
        "viscosities": _grouped_counts(filters, Operation.oil_viscosity),
        "filters": _filter_usage(filters),
        "branch_counts": _branch_counts(filters),
        "mismatched_operations": [op.to_dict() for op in mismatched],
    })
    return stats


def _day_key(value: Any) -> str:
    # func.date() yields a str on sqlite and a date on postgres
    return value.isoformat() if isinstance(value, date) else str(value)[:10]


def compute_trends(query_params: Dict[str, Any], today: Optional[date] = None) -> Dict[str, Any]:
    """
    Daily counts over a window (zero-filled). An explicit start/end date wins
    over ``days``.
    """
    today = today or datetime.utcnow().date()
    end = query_params.get("end_date") or today
    start = query_params.get("start_date") or (end - timedelta(days=query_params["days"] - 1))
    window = dict(query_params, start_date=start, end_date=end, search=None, is_matching=None)

    day_column = func.date(Operation.created_at)
    rows = (
        apply_filters(
            db.session.query(
                day_column,
                func.count(Operation.id),
                func.sum(case((Operation.is_matching.is_(True), 1), else_=0)),
            ),
            window,
        )
        .group_by(day_column)
        .all()
    )
    by_day = {_day_key(d): (count, int(matching or 0)) for d, count, matching in rows}

    timeline: List[Dict[str, Any]] = []
    cursor = start
    while cursor <= end:
        key = cursor.isoformat()
        count, matching = by_day.get(key, (0, 0))
        timeline.append({"date": key, "count": count, "matching": matching, "mismatched": count - matching})
        cursor += timedelta(days=1)

    totals = _totals(window)
    days_active = sum(1 for point in timeline if point["count"])
    return {
        "timeline": timeline,
        "branch_counts": _branch_counts(window),
        "oil_types": _grouped_counts(window, Operation.oil_used),
        "viscosities": _grouped_counts(window, Operation.oil_viscosity),
        "filters": _filter_usage(window),
        "kpis": {
            "total": totals["total"],
            "matching": totals["matching"],
            "mismatched": totals["mismatched"],
            "total_oil_used": totals["total_oil_used"],
            "avg_operations_per_day": round(totals["total"] / days_active, 2) if days_active else 0,
            "mismatch_rate": round(totals["mismatched"] * 100.0 / totals["total"], 2) if totals["total"] else 0,
            "days_active": days_active,
        },
        "date_range": {"start": start.isoformat(), "end": end.isoformat(), "days": len(timeline)},
    }


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def build_export_frame(filters: Dict[str, Any]) -> pd.DataFrame:
    operations = (
        apply_filters(Operation.query, filters)
        .order_by(Operation.created_at.desc(), Operation.id.desc())
        .all()
    )
    records = [
        [
            op.id,
            op.created_at.strftime("%Y-%m-%d %H:%M") if op.created_at else "",
            op.branch.name if op.branch else "",
            op.car_brand,
            op.car_model,
            op.car_year,
            op.oil_used or "",
            op.oil_viscosity or "",
            float(op.oil_quantity) if op.oil_quantity is not None else None,
            STATUS_MATCHING if op.is_matching else STATUS_MISMATCHED,
            op.mismatch_reason or "",
        ]
        for op in operations
    ]
    return pd.DataFrame(records, columns=EXPORT_HEADERS)


def export_csv(frame: pd.DataFrame) -> bytes:
    # BOM so spreadsheet apps detect UTF-8 Arabic text
    return frame.to_csv(index=False).encode("utf-8-sig")


def export_xlsx(frame: pd.DataFrame, sheet_name: str = "العمليات") -> bytes:
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        frame.to_excel(writer, index=False, sheet_name=sheet_name)
        sheet = writer.sheets[sheet_name]
        sheet.sheet_view.rightToLeft = True
        for column_cells in sheet.columns:
            width = max(len(str(cell.value or "")) for cell in column_cells)
            sheet.column_dimensions[column_cells[0].column_letter].width = min(max(width + 2, 10), 60)
    return buf.getvalue()
