from main import User
from carcare.auth import issue_access_token, issue_refresh_token


def _login(client, username="admin", password="admin123"):
    return client.post("/api/auth/login", json={"username": username, "password": password})


def _set_cookies(resp):
    return " | ".join(resp.headers.getlist("Set-Cookie"))


def test_login_success_sets_http_only_cookies(seeded):
    client = seeded.test_client()
    resp = _login(client)
    data = resp.get_json()

    assert resp.status_code == 200
    assert data["ok"] is True
    assert data["data"]["token_type"] == "Bearer"
    assert data["data"]["expires_in"] == 900
    assert data["data"]["user"]["username"] == "admin"
    assert data["data"]["user"]["role"] == "admin"
    assert "password_hash" not in data["data"]["user"]

    cookies = _set_cookies(resp)
    assert "accessToken=" in cookies
    assert "refreshToken=" in cookies
    assert "HttpOnly" in cookies
    assert "SameSite=Strict" in cookies


def test_login_unknown_user(seeded):
    resp = _login(seeded.test_client(), username="ghost")
    data = resp.get_json()
    assert resp.status_code == 401
    assert data["error"]["code"] == "invalid_credentials"
    assert data["error"]["message"] == "اسم المستخدم غير موجود"


def test_login_wrong_password(seeded):
    resp = _login(seeded.test_client(), password="wrong-password")
    data = resp.get_json()
    assert resp.status_code == 401
    assert data["error"]["message"] == "كلمة المرور غير صحيحة"


def test_login_validates_input(seeded):
    resp = seeded.test_client().post("/api/auth/login", json={"username": "ad", "password": "x"})
    data = resp.get_json()
    assert resp.status_code == 400
    assert data["error"]["details"]["field"] == "username"


def test_cookie_session_reaches_protected_route(seeded):
    client = seeded.test_client()
    _login(client, "employee1", "123456")
    resp = client.get("/api/auth/me")
    data = resp.get_json()
    assert resp.status_code == 200
    assert data["data"]["username"] == "employee1"
    assert data["data"]["branch_name"] == "الفرع الرئيسي"


def test_me_requires_authentication(client):
    resp = client.get("/api/auth/me")
    data = resp.get_json()
    assert resp.status_code == 401
    assert data["error"]["message"] == "Authentication required"


def test_expired_access_token(seeded):
    with seeded.app_context():
        token = issue_access_token(User.query.filter_by(username="admin").first(), ttl=-10)
    resp = seeded.test_client().get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.get_json()["error"]["message"] == "Access token expired"


def test_invalid_access_token(client):
    resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401
    assert resp.get_json()["error"]["message"] == "Invalid access token"


def test_refresh_token_is_not_an_access_token(seeded):
    with seeded.app_context():
        token = issue_refresh_token(User.query.filter_by(username="admin").first())
    resp = seeded.test_client().get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.get_json()["error"]["message"] == "Invalid access token"


def test_refresh_issues_new_access_token(seeded):
    client = seeded.test_client()
    _login(client)
    resp = client.post("/api/auth/refresh")
    data = resp.get_json()
    assert resp.status_code == 200
    assert data["data"]["access_token"]
    assert "accessToken=" in _set_cookies(resp)

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['data']['access_token']}"})
    assert me.status_code == 200


def test_refresh_without_cookie(client):
    resp = client.post("/api/auth/refresh")
    assert resp.status_code == 401
    assert resp.get_json()["error"]["message"] == "Refresh token required"


def test_refresh_with_expired_token_clears_cookies(seeded):
    client = seeded.test_client()
    with seeded.app_context():
        token = issue_refresh_token(User.query.filter_by(username="admin").first(), ttl=-10)
    client.set_cookie("refreshToken", token)
    resp = client.post("/api/auth/refresh")
    assert resp.status_code == 401
    assert resp.get_json()["error"]["message"] == "Refresh token expired"
    assert "refreshToken=;" in _set_cookies(resp)


def test_logout_clears_cookies(seeded):
    client = seeded.test_client()
    _login(client)
    resp = client.post("/api/auth/logout")
    assert resp.status_code == 200
    cookies = _set_cookies(resp)
    assert "accessToken=;" in cookies
    assert "refreshToken=;" in cookies
    assert client.get("/api/auth/me").status_code == 401


def test_employee_cannot_reach_admin_routes(employee_client):
    client, _ = employee_client
    resp = client.get("/api/users")
    data = resp.get_json()
    assert resp.status_code == 403
    assert data["error"]["message"] == "Admin access required"

    resp = client.post("/api/branches", json={"name": "فرع جديد", "location": "طنطا"})
    assert resp.status_code == 403


def test_deleted_user_token_is_rejected(admin_client, seeded):
    client, _ = admin_client
    with seeded.app_context():
        employee = User.query.filter_by(username="employee1").first()
        token = issue_access_token(employee)
        employee_id = employee.id
    assert client.delete(f"/api/users/{employee_id}").status_code == 200

    resp = seeded.test_client().get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.get_json()["error"]["message"] == "Invalid access token"
