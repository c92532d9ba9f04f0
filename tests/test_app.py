import pytest

from main import db


def test_healthz(client):
    resp = client.get("/healthz")
    data = resp.get_json()
    assert resp.status_code == 200
    assert data["ok"] is True
    assert data["data"]["status"] == "ok"
    assert "request_id" in data


def test_readyz_reports_ai_disabled(client):
    resp = client.get("/readyz")
    data = resp.get_json()
    assert resp.status_code == 200
    assert data["data"]["status"] == "ready"
    assert data["data"]["ai_enabled"] is False


def test_request_id_is_echoed(client):
    resp = client.get("/healthz", headers={"X-Request-ID": "req-123"})
    assert resp.headers["X-Request-ID"] == "req-123"
    assert resp.get_json()["request_id"] == "req-123"


def test_request_id_generated_when_missing(client):
    resp = client.get("/healthz")
    rid = resp.headers.get("X-Request-ID")
    assert rid
    assert resp.get_json()["request_id"] == rid


def test_security_headers(client):
    resp = client.get("/healthz")
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["X-Frame-Options"] == "DENY"
    assert "Strict-Transport-Security" not in resp.headers


def test_api_responses_are_not_cached(admin_client):
    client, _ = admin_client
    resp = client.get("/api/branches")
    assert resp.headers["Cache-Control"] == "no-store"


def test_unknown_api_route_is_json(client):
    resp = client.get("/api/nope")
    data = resp.get_json()
    assert resp.status_code == 404
    assert data["ok"] is False
    assert data["error"]["code"] == "not_found"


def test_payload_too_large(admin_client):
    client, _ = admin_client
    resp = client.post(
        "/api/cars/import",
        data=b"x" * (1024 * 1024 + 10),
        content_type="text/csv",
    )
    assert resp.status_code == 413
    assert resp.get_json()["error"]["code"] == "payload_too_large"


def test_production_requires_secrets(monkeypatch):
    from main import create_app

    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    for name in ("SECRET_KEY", "JWT_SECRET", "REFRESH_SECRET"):
        monkeypatch.delenv(name, raising=False)
    with pytest.raises(RuntimeError, match="JWT_SECRET"):
        create_app()


def test_production_rejects_shared_jwt_secret(monkeypatch):
    from main import create_app

    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("SECRET_KEY", "s" * 40)
    monkeypatch.setenv("JWT_SECRET", "j" * 40)
    monkeypatch.setenv("REFRESH_SECRET", "j" * 40)
    with pytest.raises(RuntimeError, match="must differ"):
        create_app()


def test_seed_is_idempotent(seeded):
    from carcare.models import Branch, Car, User
    from carcare.utils.db_bootstrap import SEED_CARS, seed_database

    with seeded.app_context():
        assert seed_database(db, seeded.logger) is False
        assert Branch.query.count() == 3
        assert User.query.count() == 2
        assert Car.query.count() == len(SEED_CARS)
