from juniorcars.auth import issue_session_token, verify_session_token
from juniorcars.models import User


def test_login_returns_user_and_session_token(client):
    response = client.post("/api/cms/auth/login", json={"email": "Admin@JuniorCars.com", "password": "admin123"})
    assert response.status_code == 200
    body = response.get_json()
    assert body["message"] == "Login successful"
    assert body["data"]["email"] == "admin@juniorcars.com"
    assert body["data"]["role"] == "admin"
    assert "passwordHash" not in body["data"]

    token = body["data"]["sessionToken"]
    session = client.get("/api/cms/auth/session", headers={"Authorization": f"Bearer {token}"})
    assert session.status_code == 200
    assert session.get_json()["data"]["email"] == "admin@juniorcars.com"


def test_login_rejects_bad_credentials(client):
    response = client.post("/api/cms/auth/login", json={"email": "admin@juniorcars.com", "password": "wrong"})
    assert response.status_code == 401
    assert response.get_json() == {"success": False, "error": "Invalid email or password"}

    response = client.post("/api/cms/auth/login", json={"email": "nobody@juniorcars.com", "password": "admin123"})
    assert response.status_code == 401

    response = client.post("/api/cms/auth/login", json={"email": "admin", "password": "nope"})
    assert response.status_code == 401
    assert response.get_json() == {"success": False, "error": "Invalid email or password"}


def test_login_requires_email_and_password(client):
    response = client.post("/api/cms/auth/login", json={"email": "admin@juniorcars.com"})
    assert response.status_code == 400
    assert response.get_json()["success"] is False

    response = client.post("/api/cms/auth/login", json={"email": "", "password": "admin123"})
    assert response.status_code == 400


def test_session_rejects_missing_and_tampered_tokens(client, api_token):
    assert client.get("/api/cms/auth/session").status_code == 401
    response = client.get("/api/cms/auth/session", headers={"Authorization": f"Bearer {api_token}x"})
    assert response.status_code == 401
    assert response.get_json()["error"] == "Invalid or expired session token"


def test_dev_password_only_when_configured(make_app):
    app = make_app({"CMS_DEV_LOGIN_PASSWORD": "letmein"})
    client = app.test_client()
    response = client.post("/api/cms/auth/login", json={"email": "admin@juniorcars.com", "password": "letmein"})
    assert response.status_code == 200

    response = client.post("/api/cms/auth/login", json={"email": "nobody@juniorcars.com", "password": "letmein"})
    assert response.status_code == 401


def test_tokens_are_bound_to_the_secret_key(app, make_app):
    with app.app_context():
        user = User.query.filter_by(email="admin@juniorcars.com").first()
        token = issue_session_token(user)
        assert verify_session_token(token).id == user.id

    other = make_app({"SECRET_KEY": "a-different-secret"})
    with other.app_context():
        assert verify_session_token(token) is None


def test_mutations_require_token_when_auth_enforced(make_app):
    app = make_app({"CMS_API_REQUIRE_AUTH": True})
    client = app.test_client()

    assert client.get("/api/cms/pages").status_code == 200

    response = client.post("/api/cms/pages", json={"title": "Locked"})
    assert response.status_code == 401
    assert response.get_json() == {"success": False, "error": "Authentication required"}

    token = client.post(
        "/api/cms/auth/login", json={"email": "admin@juniorcars.com", "password": "admin123"}
    ).get_json()["data"]["sessionToken"]
    response = client.post(
        "/api/cms/pages",
        json={"title": "Unlocked"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 201
