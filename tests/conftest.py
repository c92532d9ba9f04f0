import sys
from pathlib import Path
import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from main import create_app, db, User
from carcare.auth import issue_access_token
from carcare.utils.db_bootstrap import seed_database


@pytest.fixture
def app(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("AI_RETRY_BACKOFF_SEC", "0")
    for name in ("SKIP_CREATE_ALL", "SEED_ON_BOOT", "GEMINI_API_KEY", "APP_ENV",
                 "SEED_ADMIN_PASSWORD", "SEED_EMPLOYEE_PASSWORD"):
        monkeypatch.delenv(name, raising=False)
    app = create_app()
    app.config.update(TESTING=True)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def seeded(app):
    with app.app_context():
        seed_database(db, app.logger)
    return app


def _bearer_client(app, username):
    client = app.test_client()
    with app.app_context():
        user = User.query.filter_by(username=username).first()
        token = issue_access_token(user)
        user_id = user.id
    client.environ_base["HTTP_AUTHORIZATION"] = f"Bearer {token}"
    return client, user_id


@pytest.fixture
def admin_client(seeded):
    return _bearer_client(seeded, "admin")


@pytest.fixture
def employee_client(seeded):
    return _bearer_client(seeded, "employee1")
