# -*- coding: utf-8 -*-
"""Login, token refresh, logout and the current session."""

from flask import Blueprint, current_app, request
from flask_login import current_user, login_required

from carcare.auth import (
    REFRESH_COOKIE,
    TOKEN_REFRESH,
    clear_auth_cookies,
    issue_access_token,
    issue_refresh_token,
    set_auth_cookies,
    verify_token,
)
from carcare.exceptions import AuthenticationError
from carcare.extensions import db
from carcare.models import User
from carcare.rate_limit import get_client_ip, log_access_decision, login_limit
from carcare.utils.http_helpers import api_error, api_ok, get_json_body
from carcare.utils.validation import validate_login

bp = Blueprint('auth', __name__, url_prefix='/api/auth')

MSG_UNKNOWN_USER = "اسم المستخدم غير موجود"
MSG_BAD_PASSWORD = "كلمة المرور غير صحيحة"


def _session_view(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "name": user.name,
        "role": user.role,
        "branch_id": user.branch_id,
        "branch_name": user.branch.name if user.branch else None,
    }


@bp.route('/login', methods=['POST'])
@login_limit
def login():
    creds = validate_login(get_json_body())
    user = User.query.filter_by(username=creds["username"]).first()
    if user is None:
        log_access_decision('/api/auth/login', None, 'rejected', f'unknown user ip={get_client_ip()}')
        return api_error("invalid_credentials", MSG_UNKNOWN_USER, status=401)
    if not user.check_password(creds["password"]):
        log_access_decision('/api/auth/login', user.id, 'rejected', 'bad password')
        return api_error("invalid_credentials", MSG_BAD_PASSWORD, status=401)

    access_token = issue_access_token(user)
    refresh_token = issue_refresh_token(user)
    log_access_decision('/api/auth/login', user.id, 'allowed', f'role={user.role}')
    resp = api_ok({
        "access_token": access_token,
        "token_type": "Bearer",
        "expires_in": current_app.config["ACCESS_TOKEN_TTL_SEC"],
        "user": _session_view(user),
    })
    return set_auth_cookies(resp, access_token=access_token, refresh_token=refresh_token)


@bp.route('/refresh', methods=['POST'])
def refresh():
    token = request.cookies.get(REFRESH_COOKIE)
    if not token:
        return clear_auth_cookies(api_error("unauthenticated", "Refresh token required", status=401))
    try:
        claims = verify_token(token, TOKEN_REFRESH)
    except AuthenticationError as e:
        log_access_decision('/api/auth/refresh', None, 'rejected', e.code)
        return clear_auth_cookies(api_error(e.code, e.message, status=401))

    user = db.session.get(User, int(claims["sub"]))
    if user is None:
        log_access_decision('/api/auth/refresh', None, 'rejected', 'user no longer exists')
        return clear_auth_cookies(api_error("token_invalid", "Invalid refresh token", status=401))

    access_token = issue_access_token(user)
    resp = api_ok({
        "access_token": access_token,
        "token_type": "Bearer",
        "expires_in": current_app.config["ACCESS_TOKEN_TTL_SEC"],
    })
    return set_auth_cookies(resp, access_token=access_token)


@bp.route('/logout', methods=['POST'])
def logout():
    return clear_auth_cookies(api_ok({"logged_out": True}))


@bp.route('/me')
@login_required
def me():
    return api_ok(_session_view(current_user))
