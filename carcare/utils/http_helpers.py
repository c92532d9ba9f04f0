# -*- coding: utf-8 -*-
"""JSON envelope and request helpers shared by every blueprint."""

from typing import Optional, Mapping, Any, Dict
from flask import jsonify, g, current_app, request
from flask_login import current_user

from carcare.extensions import db


def get_request_id() -> str:
    """Get the current request_id from Flask g object."""
    return getattr(g, 'request_id', 'unknown')


def api_ok(payload: Any = None, status: int = 200, request_id: Optional[str] = None):
    """Standard API success response."""
    rid = request_id or get_request_id()
    resp = jsonify({"ok": True, "data": payload, "request_id": rid})
    resp.status_code = status
    resp.headers["X-Request-ID"] = rid
    return resp


def api_error(code: str, message: str, status: int = 400, details: Optional[Mapping[str, Any]] = None, request_id: Optional[str] = None):
    """Standard API error response."""
    rid = request_id or get_request_id()
    body: Dict[str, Any] = {"ok": False, "error": {"code": code, "message": message}, "request_id": rid}
    if details is not None:
        body["error"]["details"] = details
    resp = jsonify(body)
    resp.status_code = status
    resp.headers["X-Request-ID"] = rid
    return resp


def is_production() -> bool:
    return current_app.config.get("APP_ENV", "development") == "production"


def current_user_id() -> Optional[int]:
    try:
        return current_user.id if current_user.is_authenticated else None
    except Exception:
        return None


def get_json_body() -> dict:
    """
    Parse a JSON object body. Anything that is not a JSON object is treated
    as an empty payload so validators report the missing fields.
    """
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def persistence_error(exc: Exception, message: str = "حدث خطأ في الخادم"):
    """
    Roll back and answer 500. The underlying error is only exposed
    outside production.
    """
    db.session.rollback()
    details = None if is_production() else {"error": f"{type(exc).__name__}: {exc}"}
    return api_error("server_error", message, status=500, details=details)


def log_rejection(reason: str, details: str = "") -> None:
    """
    Safely log rejection reasons without exposing sensitive data.

    Args:
        reason: Short category (unauthenticated, forbidden, validation, rate_limited)
        details: Safe description of the issue (no secrets, tokens or passwords)
    """
    user_id = current_user_id() or "anonymous"
    endpoint = request.endpoint or "unknown"
    request_id = get_request_id()
    current_app.logger.warning(f"[REJECT] request_id={request_id} endpoint={endpoint} user={user_id} reason={reason} details={details}")
