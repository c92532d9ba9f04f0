# -*- coding: utf-8 -*-
"""
Deterministic mismatch checker. This is the only place that decides whether
entered oil facts match the reference oil values; AI output never overrides it.
"""

from typing import Any, Dict, List

QUANTITY_TOLERANCE = 0.5

LABEL_OIL_TYPE = "نوع الزيت"
LABEL_VISCOSITY = "اللزوجة"
LABEL_QUANTITY = "الكمية"

# viscosity is the correctness-bearing field for an engine
SEVERITY = {
    "oil_type": "medium",
    "oil_viscosity": "high",
    "oil_quantity": "medium",
}


def format_quantity(value: Any) -> str:
    return f"{float(value):g} لتر"


def _same_text(a: Any, b: Any) -> bool:
    return str(a or "").strip().lower() == str(b or "").strip().lower()


def quantity_within_tolerance(entered: Any, recommended: Any, tolerance: float = QUANTITY_TOLERANCE) -> bool:
    # rounded to the stored precision so 4.0 vs 4.5 stays inside the tolerance
    return round(abs(float(entered) - float(recommended)), 2) <= tolerance


def check_match(entered: Dict[str, Any], recommended: Dict[str, Any]) -> Dict[str, Any]:
    """
    Compare ``entered`` (oil_used, oil_viscosity, oil_quantity) with
    ``recommended`` (oil_type, oil_viscosity, oil_quantity).

    Returns ``{"is_matching": bool, "mismatches": [...]}`` where each mismatch
    is ``{key, field, expected, actual, severity}``.
    """
    mismatches: List[Dict[str, Any]] = []

    if not _same_text(entered.get("oil_used"), recommended.get("oil_type")):
        mismatches.append({
            "key": "oil_type",
            "field": LABEL_OIL_TYPE,
            "expected": recommended.get("oil_type"),
            "actual": entered.get("oil_used"),
            "severity": SEVERITY["oil_type"],
        })

    if not _same_text(entered.get("oil_viscosity"), recommended.get("oil_viscosity")):
        mismatches.append({
            "key": "oil_viscosity",
            "field": LABEL_VISCOSITY,
            "expected": recommended.get("oil_viscosity"),
            "actual": entered.get("oil_viscosity"),
            "severity": SEVERITY["oil_viscosity"],
        })

    if not quantity_within_tolerance(entered.get("oil_quantity"), recommended.get("oil_quantity")):
        mismatches.append({
            "key": "oil_quantity",
            "field": LABEL_QUANTITY,
            "expected": format_quantity(recommended.get("oil_quantity")),
            "actual": format_quantity(entered.get("oil_quantity")),
            "severity": SEVERITY["oil_quantity"],
        })

    return {"is_matching": not mismatches, "mismatches": mismatches}


def describe_mismatches(result: Dict[str, Any], recommended: Dict[str, Any]) -> Dict[str, str]:
    """Local narrative used whenever the AI narrative is unavailable."""
    if result["is_matching"]:
        return {
            "analysis": "✅ البيانات المدخلة مطابقة للمواصفات الموصى بها",
            "recommendation": "لا يلزم أي إجراء",
        }
    parts = [f"{m['field']}: المتوقع {m['expected']} والمدخل {m['actual']}" for m in result["mismatches"]]
    return {
        "analysis": "⚠️ يوجد اختلاف في: " + "، ".join(parts),
        "recommendation": (
            f"يُنصح باستخدام {recommended.get('oil_type')} بلزوجة {recommended.get('oil_viscosity')} "
            f"وكمية {format_quantity(recommended.get('oil_quantity'))}"
        ),
    }
