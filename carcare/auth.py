# -*- coding: utf-8 -*-
"""
JWT access/refresh tokens (Authlib JOSE, HS256) and the Flask-Login glue
that turns a bearer header or ``accessToken`` cookie into ``current_user``.
"""

import time as pytime
from functools import wraps
from typing import Optional

from authlib.jose import jwt
from authlib.jose.errors import ExpiredTokenError, JoseError
from flask import current_app, g, request
from flask_login import current_user

from carcare.exceptions import AuthenticationError
from carcare.extensions import db, login_manager
from carcare.models import User
from carcare.utils.http_helpers import api_error, log_rejection

ISSUER = "car-maintenance-system"
ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"
TOKEN_ACCESS = "access"
TOKEN_REFRESH = "refresh"

MSG_AUTH_REQUIRED = "Authentication required"
MSG_ADMIN_REQUIRED = "Admin access required"

_MESSAGES = {
    TOKEN_ACCESS: ("Access token expired", "Invalid access token"),
    TOKEN_REFRESH: ("Refresh token expired", "Invalid refresh token"),
}


def _signing_key(token_type: str) -> str:
    if token_type == TOKEN_REFRESH:
        return current_app.config["REFRESH_SECRET"]
    return current_app.config["JWT_SECRET"]


def _ttl(token_type: str) -> int:
    if token_type == TOKEN_REFRESH:
        return int(current_app.config.get("REFRESH_TOKEN_TTL_SEC", 7 * 24 * 3600))
    return int(current_app.config.get("ACCESS_TOKEN_TTL_SEC", 15 * 60))


def issue_token(user: User, token_type: str = TOKEN_ACCESS, ttl: Optional[int] = None) -> str:
    now = int(pytime.time())
    payload = {
        "iss": ISSUER,
        "sub": str(user.id),
        "typ": token_type,
        "iat": now,
        "exp": now + (_ttl(token_type) if ttl is None else ttl),
    }
    if token_type == TOKEN_ACCESS:
        payload.update({"username": user.username, "role": user.role, "branch_id": user.branch_id})
    token = jwt.encode({"alg": "HS256", "typ": "JWT"}, payload, _signing_key(token_type))
    return token.decode("ascii") if isinstance(token, bytes) else token


def issue_access_token(user: User, ttl: Optional[int] = None) -> str:
    return issue_token(user, TOKEN_ACCESS, ttl)


def issue_refresh_token(user: User, ttl: Optional[int] = None) -> str:
    return issue_token(user, TOKEN_REFRESH, ttl)


def verify_token(token: str, token_type: str = TOKEN_ACCESS) -> dict:
    """
    Decode and validate signature, issuer, expiry and token type.
    Raises AuthenticationError with the expired/invalid message.
    """
    expired_msg, invalid_msg = _MESSAGES[token_type]
    try:
        claims = jwt.decode(
            token,
            _signing_key(token_type),
            claims_options={
                "iss": {"essential": True, "value": ISSUER},
                "sub": {"essential": True},
                "exp": {"essential": True},
            },
        )
        claims.validate()
    except ExpiredTokenError:
        raise AuthenticationError(expired_msg, code="token_expired")
    except (JoseError, ValueError, TypeError):
        raise AuthenticationError(invalid_msg, code="token_invalid")
    if claims.get("typ") != token_type:
        raise AuthenticationError(invalid_msg, code="token_invalid")
    return dict(claims)


def extract_access_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        if token:
            return token
    return request.cookies.get(ACCESS_COOKIE) or None


def set_auth_cookies(response, access_token: Optional[str] = None, refresh_token: Optional[str] = None):
    secure = current_app.config.get("AUTH_COOKIE_SECURE", False)
    if access_token is not None:
        response.set_cookie(
            ACCESS_COOKIE, access_token, max_age=_ttl(TOKEN_ACCESS),
            httponly=True, secure=secure, samesite="Strict", path="/",
        )
    if refresh_token is not None:
        response.set_cookie(
            REFRESH_COOKIE, refresh_token, max_age=_ttl(TOKEN_REFRESH),
            httponly=True, secure=secure, samesite="Strict", path="/",
        )
    return response


def clear_auth_cookies(response):
    secure = current_app.config.get("AUTH_COOKIE_SECURE", False)
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(name, path="/", secure=secure, httponly=True, samesite="Strict")
    return response


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@login_manager.request_loader
def load_user_from_request(req):
    """
    Authenticate every API request from its token. The reason for a failed
    attempt is kept on ``g`` so the unauthorized handler can report it.
    """
    token = extract_access_token()
    if not token:
        return None
    try:
        claims = verify_token(token, TOKEN_ACCESS)
        user = db.session.get(User, int(claims["sub"]))
    except AuthenticationError as e:
        g.auth_error = e.message
        return None
    if user is None:
        g.auth_error = _MESSAGES[TOKEN_ACCESS][1]
    return user


@login_manager.unauthorized_handler
def unauthorized():
    message = getattr(g, "auth_error", None) or MSG_AUTH_REQUIRED
    log_rejection("unauthenticated", message)
    return api_error("unauthenticated", message, status=401)


def admin_required(fn):
    """Use below ``@login_required``; answers 403 for non-admin roles."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            return login_manager.unauthorized()
        if not current_user.is_admin:
            log_rejection("forbidden", f"role={current_user.role}")
            return api_error("forbidden", MSG_ADMIN_REQUIRED, status=403)
        return fn(*args, **kwargs)
    return wrapper
