# -*- coding: utf-8 -*-
# ===================================================================
# Car Maintenance Tracker - multi-branch oil service log
# Entry point (Gunicorn/Flask)
# ===================================================================
#   gunicorn "main:create_app()" --bind 0.0.0.0:$PORT
# The app is never created at import time.

import os

from carcare.factory import create_app
from carcare.extensions import db
from carcare.models import Branch, Car, Operation, User

__all__ = ["create_app", "db", "Branch", "Car", "Operation", "User"]


if __name__ == '__main__':
    app = create_app()
    port = int(os.environ.get('PORT', 5001))
    debug = os.environ.get('FLASK_DEBUG', '').lower() in ('1', 'true', 'yes')
    app.run(host='0.0.0.0', port=port, debug=debug)
