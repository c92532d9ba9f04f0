# -*- coding: utf-8 -*-
"""Unauthenticated endpoints."""

from flask import Blueprint
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

import carcare.extensions as extensions
from carcare.extensions import db
from carcare.utils.http_helpers import api_error, api_ok

bp = Blueprint('public', __name__)


@bp.route('/healthz')
def healthz():
    return api_ok({"status": "ok"})


@bp.route('/readyz')
def readyz():
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        db.session.rollback()
        return api_error("db_unavailable", "Database unavailable", status=503)
    return api_ok({"status": "ready", "ai_enabled": extensions.ai_client is not None})
