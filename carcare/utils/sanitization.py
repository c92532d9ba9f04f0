"""Sanitization utilities for model output.

AI answers are never trusted as-is: free text is HTML-escaped and bounded,
unknown keys are dropped and numbers are coerced. The verdict fields
(``is_matching``/``mismatches``) are never taken from the model.
"""

from __future__ import annotations

from html import escape
from typing import Any, Dict, Optional

DEFAULT_MAX_STR_LEN = 1200
SEVERITIES = ("low", "medium", "high")


def _to_str(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, str):
        return v
    return str(v)


def sanitize_string(v: Any, *, max_len: int = DEFAULT_MAX_STR_LEN, allow_newlines: bool = True) -> str:
    """Escape and bound a string."""
    s = _to_str(v)
    if not allow_newlines:
        s = s.replace("\r", " ").replace("\n", " ")
    s = escape(s, quote=True).strip()
    if len(s) > max_len:
        s = s[:max_len]
    return s


def clean_label(v: Any, *, max_len: int = 100) -> str:
    """Bound a single-line label without escaping; only used for comparison."""
    s = "".join(ch for ch in _to_str(v) if ch.isprintable()).strip()
    return s[:max_len]


def coerce_int(v: Any) -> Optional[int]:
    if isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return int(f) if f.is_integer() else None


def coerce_float(v: Any) -> Optional[float]:
    if isinstance(v, bool):
        return None
    try:
        f = float(str(v).replace("L", "").replace("لتر", "").strip())
    except (TypeError, ValueError):
        return None
    if f != f:
        return None
    return f


def sanitize_analyze_output(raw: Any) -> Optional[Dict[str, Any]]:
    """
    Allowlist the analyze answer: which reference row was chosen and why.
    Returns None when the answer is not an object.
    """
    if not isinstance(raw, dict):
        return None
    return {
        "reference_id": coerce_int(raw.get("reference_id")),
        "oil_type": clean_label(raw.get("oil_type")),
        "oil_viscosity": clean_label(raw.get("oil_viscosity"), max_len=50),
        "oil_quantity": coerce_float(raw.get("oil_quantity")),
        "reasoning": sanitize_string(raw.get("reasoning"), max_len=DEFAULT_MAX_STR_LEN),
    }


def sanitize_compare_output(raw: Any) -> Optional[Dict[str, str]]:
    """Keep only the narrative fields of a compare answer."""
    if not isinstance(raw, dict):
        return None
    analysis = sanitize_string(raw.get("analysis"))
    recommendation = sanitize_string(raw.get("recommendation"))
    if not analysis:
        return None
    return {"analysis": analysis, "recommendation": recommendation}
