# -*- coding: utf-8 -*-
# ===================================================================
# Car Maintenance Tracker - multi-branch oil service log
# ===================================================================

import os, logging, uuid
import time as pytime
from urllib.parse import urlparse

import click
from flask import Flask, request, g
from flask_limiter.errors import RateLimitExceeded
from google import genai
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.exceptions import RequestEntityTooLarge, HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

import carcare.extensions as extensions
from carcare.extensions import db, login_manager, migrate
from carcare.exceptions import NotFoundError, ValidationError
from carcare.rate_limit import init_rate_limiter
from carcare.utils.db_bootstrap import seed_database, tables_ready
from carcare.utils.http_helpers import api_error, get_request_id, is_production, log_rejection, current_user_id

DEV_SECRET = "dev-secret-key-that-is-not-secret"


def _env_flag(name: str, default: str = "") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes")


def _configure(app: Flask, logger: logging.Logger) -> None:
    app_env = os.environ.get("APP_ENV", "development").strip().lower() or "development"
    is_prod = app_env == "production"

    db_url = os.environ.get("DATABASE_URL", "").strip()
    secret_key = os.environ.get("SECRET_KEY", "").strip()
    jwt_secret = os.environ.get("JWT_SECRET", "").strip()
    refresh_secret = os.environ.get("REFRESH_SECRET", "").strip()

    # Normalize deprecated prefix for SQLAlchemy
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)

    if is_prod:
        missing = [name for name, value in (
            ("DATABASE_URL", db_url),
            ("SECRET_KEY", secret_key),
            ("JWT_SECRET", jwt_secret),
            ("REFRESH_SECRET", refresh_secret),
        ) if not value]
        if missing:
            raise RuntimeError(f"Missing required environment variables in production: {', '.join(missing)}")
        if jwt_secret == refresh_secret:
            raise RuntimeError("JWT_SECRET and REFRESH_SECRET must differ")

    app.config["APP_ENV"] = app_env
    app.config["SQLALCHEMY_DATABASE_URI"] = db_url if db_url else "sqlite:///:memory:"
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["SECRET_KEY"] = secret_key or DEV_SECRET
    app.config["JWT_SECRET"] = jwt_secret or DEV_SECRET + "-access"
    app.config["REFRESH_SECRET"] = refresh_secret or DEV_SECRET + "-refresh"
    app.config["ACCESS_TOKEN_TTL_SEC"] = int(os.environ.get("ACCESS_TOKEN_TTL_SEC", "900"))
    app.config["REFRESH_TOKEN_TTL_SEC"] = int(os.environ.get("REFRESH_TOKEN_TTL_SEC", str(7 * 24 * 3600)))
    app.config["AUTH_COOKIE_SECURE"] = is_prod

    app.config["GEMINI_MODEL_ID"] = os.environ.get("GEMINI_MODEL_ID", extensions.GEMINI_MODEL_ID)
    app.config["AI_CALL_TIMEOUT_SEC"] = float(os.environ.get("AI_CALL_TIMEOUT_SEC", "15"))
    app.config["AI_MAX_ATTEMPTS"] = int(os.environ.get("AI_MAX_ATTEMPTS", "2"))
    app.config["AI_RETRY_BACKOFF_SEC"] = float(os.environ.get("AI_RETRY_BACKOFF_SEC", "2"))

    app.config["RATE_LIMIT_PER_MIN"] = int(os.environ.get("RATE_LIMIT_PER_MIN", "100"))
    app.config["LOGIN_RATE_LIMIT_PER_MIN"] = int(os.environ.get("LOGIN_RATE_LIMIT_PER_MIN", "10"))
    app.config["RATE_LIMIT_WINDOW_SEC"] = int(os.environ.get("RATE_LIMIT_WINDOW_SEC", "60"))
    app.config["RATELIMIT_STORAGE_URI"] = (
        os.environ.get("LIMITER_STORAGE_URI", "").strip() or os.environ.get("REDIS_URL", "").strip() or "memory://"
    )

    # 1 MB: bulk car imports are the largest bodies
    app.config["MAX_CONTENT_LENGTH"] = 1024 * 1024

    # Connection pool for Postgres (stale connections behind managed DBs)
    if db_url and "postgresql" in db_url:
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
            "pool_pre_ping": True,
            "pool_recycle": 240,
            "pool_size": 5,
            "max_overflow": 10,
        }
        print("[BOOT] SQLAlchemy configured with pool_pre_ping=True, pool_recycle=240")

    if not db_url:
        print("[BOOT] ⚠️ DATABASE_URL not set. Using in-memory sqlite (LOCAL DEV ONLY).")
    if not secret_key or not jwt_secret or not refresh_secret:
        print("[BOOT] ⚠️ SECRET_KEY/JWT_SECRET/REFRESH_SECRET not all set. Using dev fallbacks (LOCAL DEV ONLY).")

    if db_url:
        parsed_db_url = urlparse(db_url)
        safe_port = f":{parsed_db_url.port}" if parsed_db_url.port else ""
        logger.info("[DB] DATABASE host=%s%s db=%s", parsed_db_url.hostname or "", safe_port,
                    (parsed_db_url.path or "").lstrip("/") or "(default)")
    else:
        logger.info("[DB] DATABASE_URL not provided; using sqlite fallback")


def _register_request_hooks(app: Flask, logger: logging.Logger) -> None:
    @app.before_request
    def assign_request_id():
        g.request_id = request.headers.get("X-Request-ID", "")[:64] or str(uuid.uuid4())
        g.start_time = pytime.perf_counter()
        logger.info(f"[REQ] request_id={g.request_id} {request.method} {request.path}")

    @app.after_request
    def apply_security_headers(response):
        rid = get_request_id()
        response.headers.setdefault("X-Request-ID", rid)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        response.headers.setdefault("X-Frame-Options", "DENY")
        if request.path.startswith("/api/"):
            response.headers.setdefault("Cache-Control", "no-store")
        if is_production() or request.is_secure:
            response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains")

        duration_ms = (pytime.perf_counter() - g.start_time) * 1000 if hasattr(g, "start_time") else 0.0
        logger.info(
            f"[RESP] request_id={rid} method={request.method} path={request.path} "
            f"status={response.status_code} duration_ms={duration_ms:.2f} user={current_user_id() or 'anonymous'}"
        )
        return response

    @app.teardown_request
    def teardown_request_handler(exc):
        try:
            db.session.rollback()
        except Exception:
            logger.exception("[DB] teardown rollback failed")
        finally:
            db.session.remove()


def _register_error_handlers(app: Flask, logger: logging.Logger) -> None:
    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        db.session.rollback()
        log_rejection("validation", f"field={e.field} code={e.code}")
        details = {"field": e.field}
        if isinstance(e.details, dict):
            details.update(e.details)
        return api_error(e.code or "validation_error", e.message, status=400, details=details)

    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        return api_error(e.code, e.message, status=404)

    @app.errorhandler(RateLimitExceeded)
    def handle_rate_limited(e):
        log_rejection("rate_limited", f"limit={e.description}")
        return api_error(
            "rate_limited",
            "تم تجاوز الحد المسموح من الطلبات. حاول مرة أخرى لاحقًا.",
            status=429,
            details={"limit": e.description},
        )

    @app.errorhandler(RequestEntityTooLarge)
    def handle_request_too_large(e):
        return api_error("payload_too_large", "Payload exceeds limit", status=413, details={"field": "payload"})

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(e):
        db.session.rollback()
        logger.warning("[DB] integrity error request_id=%s: %s", get_request_id(), type(e.orig).__name__)
        details = None if is_production() else {"error": str(e.orig)}
        return api_error("conflict", "تعارض مع بيانات موجودة", status=409, details=details)

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(e):
        db.session.rollback()
        logger.exception("[DB] request failed request_id=%s", get_request_id())
        details = None if is_production() else {"error": f"{type(e).__name__}: {e}"}
        return api_error("server_error", "حدث خطأ في الخادم", status=500, details=details)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        if request.path.startswith("/api/") or request.path in ("/healthz", "/readyz"):
            return api_error(e.name.lower().replace(" ", "_"), e.description or e.name, status=e.code or 500)
        return e


def _init_ai_client() -> None:
    api_key = os.environ.get("GEMINI_API_KEY", "").strip()
    if not api_key:
        print("[AI] ⚠️ GEMINI_API_KEY missing - deterministic fallback only")
        extensions.ai_client = None
        return
    try:
        extensions.ai_client = genai.Client(api_key=api_key)
        print("[AI] ✅ Gemini client initialized")
    except Exception as e:
        extensions.ai_client = None
        print(f"[AI] ❌ Failed to init Gemini client: {type(e).__name__}")


def create_app():
    app = Flask(__name__)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    logger = logging.getLogger(__name__)

    trusted_proxy_count = int(os.environ.get("TRUSTED_PROXY_COUNT", "1"))
    app.wsgi_app = ProxyFix(
        app.wsgi_app,
        x_for=trusted_proxy_count,
        x_proto=trusted_proxy_count,
        x_host=trusted_proxy_count,
        x_prefix=0
    )
    logger.info(f"ProxyFix configured with trusted_proxy_count={trusted_proxy_count}")

    _configure(app, logger)

    db.init_app(app)
    login_manager.init_app(app)
    migrate.init_app(app, db)

    # token loader + unauthorized handler are registered on import
    import carcare.auth  # noqa: F401

    _register_request_hooks(app, logger)
    # after the request id hook so 429 bodies carry the id
    init_rate_limiter(app)
    _register_error_handlers(app, logger)

    with app.app_context():
        if _env_flag("SKIP_CREATE_ALL"):
            print("[DB] ⏭️ SKIP_CREATE_ALL enabled - skipping db.create_all(); run `flask db upgrade`")
        else:
            try:
                db.create_all()
                print("[DB] ✅ create_all executed")
            except SQLAlchemyError as e:
                print(f"[DB] ⚠️ create_all failed: {type(e).__name__}")
        if _env_flag("SEED_ON_BOOT") and tables_ready(db):
            seed_database(db, logger)

    _init_ai_client()

    from carcare.routes.public_routes import bp as public_bp
    from carcare.routes.auth_routes import bp as auth_bp
    from carcare.routes.branch_routes import bp as branch_bp
    from carcare.routes.user_routes import bp as user_bp
    from carcare.routes.car_routes import bp as car_bp
    from carcare.routes.operation_routes import bp as operation_bp
    from carcare.routes.report_routes import bp as report_bp
    from carcare.routes.ai_routes import bp as ai_bp
    for bp in (public_bp, auth_bp, branch_bp, user_bp, car_bp, operation_bp, report_bp, ai_bp):
        app.register_blueprint(bp)

    @app.cli.command("init-db")
    def init_db_command():
        with app.app_context():
            db.create_all()
        print("Initialized the database tables.")

    @app.cli.command("seed-db")
    @click.option("--create/--no-create", default=True, help="Create tables before seeding.")
    def seed_db_command(create):
        with app.app_context():
            if create:
                db.create_all()
            seeded = seed_database(db, logger)
        print("Seeded demo data." if seeded else "Data already present; nothing seeded.")

    return app
