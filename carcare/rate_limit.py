# -*- coding: utf-8 -*-
"""
Per-client rate limiting (Flask-Limiter).

The module-level ``limiter`` is bound to each app in ``create_app``. Storage
comes from ``RATELIMIT_STORAGE_URI``: ``memory://`` unless
LIMITER_STORAGE_URI or REDIS_URL is set, so counters are per process by
default. Route budgets are read from config on every request.
"""

from typing import Callable, Optional

from flask import current_app, request
from flask_limiter import Limiter
from flask_login import current_user


def get_client_ip() -> str:
    """Client IP as resolved by ProxyFix (trusted hops only)."""
    ip = request.remote_addr or ""
    return ip[:64] if ip else "unknown"


def rate_key() -> str:
    """Authenticated requests count per user, anonymous ones per IP."""
    if current_user.is_authenticated:
        return f"user:{current_user.id}"
    return f"ip:{get_client_ip()}"


def login_key() -> str:
    return f"ip:{get_client_ip()}"


def per_window(config_key: str, default: int = 100) -> Callable[[], str]:
    def limit_value() -> str:
        amount = int(current_app.config.get(config_key, default))
        window = int(current_app.config.get("RATE_LIMIT_WINDOW_SEC", 60))
        return f"{amount} per {window} seconds"
    return limit_value


limiter = Limiter(
    key_func=rate_key,
    default_limits=[],
    strategy="fixed-window",
    headers_enabled=True,
)

login_limit = limiter.limit(per_window("LOGIN_RATE_LIMIT_PER_MIN", 10), key_func=login_key)
operations_limit = limiter.limit(per_window("RATE_LIMIT_PER_MIN"))
ai_limit = limiter.shared_limit(per_window("RATE_LIMIT_PER_MIN"), scope="ai")


def init_rate_limiter(app) -> Limiter:
    limiter.init_app(app)
    return limiter


def log_access_decision(route_name: str, user_id: Optional[int], decision: str, reason: str = ""):
    """Log an access decision without exposing tokens or credentials."""
    user_info = f"user_id={user_id}" if user_id else "anonymous"
    log_msg = f"[ACCESS] {route_name} | {user_info} | {decision}"
    if reason:
        log_msg += f" | {reason}"
    current_app.logger.info(log_msg)
