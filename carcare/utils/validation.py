"""Utility functions for validating incoming request payloads.

Every validator takes the raw mapping (``request.get_json()`` or
``request.args``) and returns a cleaned dict, or raises
:class:`carcare.exceptions.ValidationError` before any side effect happens.

Notes
-----
Text is NFKC-normalized, control characters (NUL included) are dropped and
whitespace is collapsed. User-facing messages are Arabic; ``field`` always
carries the machine name of the offending field.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional

from carcare.exceptions import ValidationError
from carcare.models import OPERATION_INQUIRY, OPERATION_SERVICE, OPERATION_TYPES, ROLES

YEAR_MIN = 1900
YEAR_MAX = 2100
MAX_OIL_QUANTITY = 100.0
MAX_BULK_CARS = 1000

PAGE_LIMIT_DEFAULT = 25
PAGE_LIMIT_MIN = 10
PAGE_LIMIT_MAX = 100
TRENDS_DAYS_DEFAULT = 30
TRENDS_DAYS_MAX = 365

SORTABLE_COLUMNS = (
    "created_at",
    "car_brand",
    "car_model",
    "car_year",
    "oil_used",
    "oil_viscosity",
    "oil_quantity",
    "is_matching",
)

# Labels shown to technicians when a required field is missing
FIELD_LABELS = {
    "brand": "نوع العربية",
    "model": "الموديل",
    "year": "سنة الصنع",
    "engine_size": "حجم المحرك",
    "oil_used": "نوع الزيت",
    "oil_viscosity": "اللزوجة",
    "oil_quantity": "الكمية",
}

INQUIRY_REQUIRED = ("brand", "model", "year", "engine_size")
SERVICE_REQUIRED = INQUIRY_REQUIRED + ("oil_used", "oil_viscosity", "oil_quantity")

MISSING_FIELDS_PREFIX = "⚠️ بيانات ناقصة! يرجى إدخال: "

_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]')
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def clean_text(value: Any) -> str:
    """Normalize a free-text value: NFKC, no control chars, single spaces."""
    if value is None:
        return ""
    text = unicodedata.normalize("NFKC", str(value))
    text = _CONTROL_CHARS.sub("", text)
    return re.sub(r"\s+", " ", text).strip()


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _text_field(field: str, value: Any, *, max_length: int, min_length: int = 1, label: Optional[str] = None) -> str:
    text = clean_text(value)
    name = label or field
    if len(text) < min_length:
        if not text:
            raise ValidationError(f"الحقل {name} مطلوب", field=field, code="required")
        raise ValidationError(f"الحقل {name} يجب أن يكون {min_length} أحرف على الأقل", field=field, code="too_short")
    if len(text) > max_length:
        raise ValidationError(f"الحقل {name} يتجاوز {max_length} حرفًا", field=field, code="too_long")
    return text


def _int_field(field: str, value: Any, *, min_val: int, max_val: int) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"الحقل {field} يجب أن يكون رقمًا صحيحًا", field=field, code="invalid_int")
    try:
        as_float = float(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"الحقل {field} يجب أن يكون رقمًا صحيحًا", field=field, code="invalid_int")
    if not as_float.is_integer():
        raise ValidationError(f"الحقل {field} يجب أن يكون رقمًا صحيحًا", field=field, code="invalid_int")
    n = int(as_float)
    if n < min_val or n > max_val:
        raise ValidationError(
            f"الحقل {field} يجب أن يكون بين {min_val} و {max_val}",
            field=field,
            code="out_of_range",
        )
    return n


def _quantity_field(field: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError("الكمية يجب أن تكون رقمًا", field=field, code="invalid_number")
    try:
        q = float(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError("الكمية يجب أن تكون رقمًا", field=field, code="invalid_number")
    if q != q or q <= 0 or q > MAX_OIL_QUANTITY:
        raise ValidationError(
            f"الكمية يجب أن تكون أكبر من 0 ولا تتجاوز {MAX_OIL_QUANTITY:g}",
            field=field,
            code="out_of_range",
        )
    return round(q, 2)


def parse_flag(value: Any) -> bool:
    """Lenient boolean parsing for checkbox-like inputs."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_VALUES


def _positive_id(field: str, value: Any) -> int:
    return _int_field(field, value, min_val=1, max_val=2**31 - 1)


def parse_iso_date(field: str, value: Any) -> date:
    text = clean_text(value)
    if not _DATE_PATTERN.match(text):
        raise ValidationError("صيغة التاريخ يجب أن تكون YYYY-MM-DD", field=field, code="invalid_date")
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError("تاريخ غير صالح", field=field, code="invalid_date")


# ---------------------------------------------------------------------------
# Auth / administration
# ---------------------------------------------------------------------------

def validate_login(payload: Mapping[str, Any]) -> Dict[str, str]:
    username = _text_field("username", payload.get("username"), min_length=3, max_length=100, label="اسم المستخدم")
    password = payload.get("password")
    if not isinstance(password, str) or len(password) < 6:
        raise ValidationError("كلمة المرور يجب أن تكون 6 أحرف على الأقل", field="password", code="too_short")
    return {"username": username, "password": password}


def validate_branch(payload: Mapping[str, Any]) -> Dict[str, str]:
    return {
        "name": _text_field("name", payload.get("name"), max_length=255, label="اسم الفرع"),
        "location": _text_field("location", payload.get("location"), max_length=255, label="الموقع"),
    }


def validate_user(payload: Mapping[str, Any], *, creating: bool = True) -> Dict[str, Any]:
    """Validate a user create/update payload.

    The password is mandatory on create and optional on update; when it is
    omitted on update the stored hash is kept.
    """
    cleaned: Dict[str, Any] = {
        "username": _text_field("username", payload.get("username"), min_length=3, max_length=100, label="اسم المستخدم"),
        "name": _text_field("name", payload.get("name"), max_length=255, label="الاسم"),
    }

    password = payload.get("password")
    if creating or not _is_blank(password):
        if not isinstance(password, str) or len(password) < 6:
            raise ValidationError("كلمة المرور يجب أن تكون 6 أحرف على الأقل", field="password", code="too_short")
        cleaned["password"] = password

    role = clean_text(payload.get("role") or "employee").lower()
    if role not in ROLES:
        raise ValidationError("الدور يجب أن يكون admin أو employee", field="role", code="invalid_choice")
    cleaned["role"] = role

    branch_id = payload.get("branch_id")
    cleaned["branch_id"] = None if _is_blank(branch_id) else _positive_id("branch_id", branch_id)
    return cleaned


# ---------------------------------------------------------------------------
# Reference table
# ---------------------------------------------------------------------------

def validate_car(payload: Mapping[str, Any]) -> Dict[str, Any]:
    if not isinstance(payload, Mapping):
        raise ValidationError("بيانات السيارة غير صالحة", field="payload", code="invalid_payload")
    cleaned = {
        "brand": _text_field("brand", payload.get("brand"), max_length=100, label=FIELD_LABELS["brand"]),
        "model": _text_field("model", payload.get("model"), max_length=100, label=FIELD_LABELS["model"]),
        "year_from": _int_field("year_from", payload.get("year_from"), min_val=YEAR_MIN, max_val=YEAR_MAX),
        "year_to": _int_field("year_to", payload.get("year_to"), min_val=YEAR_MIN, max_val=YEAR_MAX),
        "engine_size": _text_field("engine_size", payload.get("engine_size"), max_length=50, label=FIELD_LABELS["engine_size"]),
        "oil_type": _text_field("oil_type", payload.get("oil_type"), max_length=100, label=FIELD_LABELS["oil_used"]),
        "oil_viscosity": _text_field("oil_viscosity", payload.get("oil_viscosity"), max_length=50, label=FIELD_LABELS["oil_viscosity"]),
        "oil_quantity": _quantity_field("oil_quantity", payload.get("oil_quantity")),
    }
    if cleaned["year_from"] > cleaned["year_to"]:
        raise ValidationError("سنة البداية لا يمكن أن تكون بعد سنة النهاية", field="year_from", code="invalid_range")
    return cleaned


def validate_cars_bulk(items: Any) -> List[Dict[str, Any]]:
    """Validate a list of cars; any invalid row rejects the whole batch."""
    if not isinstance(items, list) or not items:
        raise ValidationError("يجب إرسال قائمة سيارات غير فارغة", field="cars", code="invalid_payload")
    if len(items) > MAX_BULK_CARS:
        raise ValidationError(f"الحد الأقصى {MAX_BULK_CARS} سيارة في الطلب الواحد", field="cars", code="too_many")

    cleaned = []
    errors = []
    for index, item in enumerate(items):
        try:
            cleaned.append(validate_car(item))
        except ValidationError as e:
            errors.append({"row": index + 1, **e.to_dict()})
    if errors:
        raise ValidationError(
            "بعض السيارات تحتوي على بيانات غير صالحة",
            field="cars",
            code="invalid_rows",
            details={"errors": errors[:50]},
        )
    return cleaned


# ---------------------------------------------------------------------------
# Intake / AI
# ---------------------------------------------------------------------------

def _missing_fields(payload: Mapping[str, Any], required) -> List[str]:
    return [field for field in required if _is_blank(payload.get(field))]


def raise_missing(missing: List[str]) -> None:
    labels = [FIELD_LABELS[f] for f in missing]
    raise ValidationError(
        MISSING_FIELDS_PREFIX + "، ".join(labels),
        field=missing[0],
        code="missing_fields",
        details={"missing": labels, "fields": list(missing)},
    )


def validate_vehicle(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """brand/model/year/engine, as used by lookups and the analyze endpoint."""
    missing = _missing_fields(payload, INQUIRY_REQUIRED)
    if missing:
        raise_missing(missing)
    return {
        "brand": _text_field("brand", payload.get("brand"), max_length=100, label=FIELD_LABELS["brand"]),
        "model": _text_field("model", payload.get("model"), max_length=100, label=FIELD_LABELS["model"]),
        "year": _int_field("year", payload.get("year"), min_val=YEAR_MIN, max_val=YEAR_MAX),
        "engine_size": _text_field("engine_size", payload.get("engine_size"), max_length=50, label=FIELD_LABELS["engine_size"]),
    }


def validate_operation_payload(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Required-field check per operation type. Missing fields are reported all
    at once, by their display labels.
    """
    operation_type = clean_text(payload.get("operation_type") or OPERATION_SERVICE).lower()
    if operation_type not in OPERATION_TYPES:
        raise ValidationError("نوع العملية غير صالح", field="operation_type", code="invalid_choice")

    required = INQUIRY_REQUIRED if operation_type == OPERATION_INQUIRY else SERVICE_REQUIRED
    missing = _missing_fields(payload, required)
    if missing:
        raise_missing(missing)

    cleaned = validate_vehicle(payload)
    cleaned["operation_type"] = operation_type
    cleaned["use_ai"] = parse_flag(payload.get("use_ai"))
    cleaned["accept_ai_analysis"] = parse_flag(payload.get("accept_ai_analysis"))

    reason = payload.get("mismatch_reason")
    if reason is not None and not isinstance(reason, str):
        raise ValidationError("سبب الاختلاف يجب أن يكون نصًا", field="mismatch_reason", code="invalid_type")
    if reason is not None and len(reason) > 2000:
        raise ValidationError("سبب الاختلاف طويل جدًا", field="mismatch_reason", code="too_long")
    cleaned["mismatch_reason"] = reason

    if operation_type == OPERATION_SERVICE:
        cleaned["oil_used"] = _text_field("oil_used", payload.get("oil_used"), max_length=100, label=FIELD_LABELS["oil_used"])
        cleaned["oil_viscosity"] = _text_field("oil_viscosity", payload.get("oil_viscosity"), max_length=50, label=FIELD_LABELS["oil_viscosity"])
        cleaned["oil_quantity"] = _quantity_field("oil_quantity", payload.get("oil_quantity"))
        cleaned["oil_filter"] = parse_flag(payload.get("oil_filter"))
        cleaned["air_filter"] = parse_flag(payload.get("air_filter"))
        cleaned["cooling_filter"] = parse_flag(payload.get("cooling_filter"))
    return cleaned


def validate_compare_payload(payload: Mapping[str, Any]) -> Dict[str, Any]:
    service = payload.get("service_data")
    recommended = payload.get("recommended")
    if not isinstance(service, Mapping) or not isinstance(recommended, Mapping):
        raise ValidationError("يجب إرسال service_data و recommended", field="payload", code="invalid_payload")

    missing = _missing_fields(service, ("oil_used", "oil_viscosity", "oil_quantity"))
    if missing:
        raise_missing(missing)

    cleaned_service = {
        "oil_used": _text_field("oil_used", service.get("oil_used"), max_length=100),
        "oil_viscosity": _text_field("oil_viscosity", service.get("oil_viscosity"), max_length=50),
        "oil_quantity": _quantity_field("oil_quantity", service.get("oil_quantity")),
        "brand": clean_text(service.get("brand"))[:100],
        "model": clean_text(service.get("model"))[:100],
        "year": clean_text(service.get("year"))[:10],
    }
    cleaned_recommended = {
        "oil_type": _text_field("oil_type", recommended.get("oil_type"), max_length=100),
        "oil_viscosity": _text_field("oil_viscosity", recommended.get("oil_viscosity"), max_length=50),
        "oil_quantity": _quantity_field("oil_quantity", recommended.get("oil_quantity")),
    }
    return {"service_data": cleaned_service, "recommended": cleaned_recommended}


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

def validate_report_filters(args: Mapping[str, Any]) -> Dict[str, Any]:
    """Filters shared by the listing, stats, trends and export endpoints."""
    filters: Dict[str, Any] = {
        "search": None,
        "branch_id": None,
        "start_date": None,
        "end_date": None,
        "is_matching": None,
    }
    search = clean_text(args.get("search"))
    if search:
        filters["search"] = search[:100]
    if not _is_blank(args.get("branch_id")):
        filters["branch_id"] = _positive_id("branch_id", args.get("branch_id"))
    if not _is_blank(args.get("start_date")):
        filters["start_date"] = parse_iso_date("start_date", args.get("start_date"))
    if not _is_blank(args.get("end_date")):
        filters["end_date"] = parse_iso_date("end_date", args.get("end_date"))
    if filters["start_date"] and filters["end_date"] and filters["start_date"] > filters["end_date"]:
        raise ValidationError("تاريخ البداية بعد تاريخ النهاية", field="start_date", code="invalid_range")

    is_matching = args.get("is_matching")
    if not _is_blank(is_matching):
        value = clean_text(is_matching).lower()
        if value in ("1", "true"):
            filters["is_matching"] = True
        elif value in ("0", "false"):
            filters["is_matching"] = False
        else:
            raise ValidationError("قيمة is_matching يجب أن تكون 0 أو 1", field="is_matching", code="invalid_choice")
    return filters


def validate_listing_query(args: Mapping[str, Any]) -> Dict[str, Any]:
    query = validate_report_filters(args)

    page = args.get("page")
    query["page"] = 1 if _is_blank(page) else _int_field("page", page, min_val=1, max_val=10**6)

    limit = args.get("limit")
    if _is_blank(limit):
        query["limit"] = PAGE_LIMIT_DEFAULT
    else:
        n = _int_field("limit", limit, min_val=-(10**6), max_val=10**6)
        query["limit"] = min(PAGE_LIMIT_MAX, max(PAGE_LIMIT_MIN, n))

    sort_by = clean_text(args.get("sort_by")) or "created_at"
    if sort_by not in SORTABLE_COLUMNS:
        raise ValidationError("عمود الترتيب غير مسموح", field="sort_by", code="invalid_choice")
    query["sort_by"] = sort_by

    sort_order = (clean_text(args.get("sort_order")) or "desc").lower()
    if sort_order not in ("asc", "desc"):
        raise ValidationError("اتجاه الترتيب يجب أن يكون asc أو desc", field="sort_order", code="invalid_choice")
    query["sort_order"] = sort_order
    return query


def validate_trends_query(args: Mapping[str, Any], today: Optional[date] = None) -> Dict[str, Any]:
    """
    ``days`` picks a window ending today; an explicit start date (end
    defaulting to today) may span at most ``TRENDS_DAYS_MAX`` days.
    """
    query = validate_report_filters(args)
    days = args.get("days")
    query["days"] = TRENDS_DAYS_DEFAULT if _is_blank(days) else _int_field("days", days, min_val=1, max_val=TRENDS_DAYS_MAX)

    start = query["start_date"]
    if start:
        end = query["end_date"] or today or datetime.utcnow().date()
        if start > end:
            raise ValidationError("تاريخ البداية بعد تاريخ النهاية", field="start_date", code="invalid_range")
        if (end - start).days + 1 > TRENDS_DAYS_MAX:
            raise ValidationError(
                f"نطاق التواريخ لا يمكن أن يتجاوز {TRENDS_DAYS_MAX} يومًا",
                field="start_date",
                code="range_too_large",
                details={"max_days": TRENDS_DAYS_MAX},
            )
    return query
