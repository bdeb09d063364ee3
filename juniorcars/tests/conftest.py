import re
import uuid

import pytest

from juniorcars import create_app

CSRF_TOKEN_RE = re.compile(r'name="_csrf_token" value="([^"]+)"')
ADMIN_EMAIL = "admin@juniorcars.com"
ADMIN_PASSWORD = "admin123"


def extract_csrf_token(html):
    match = CSRF_TOKEN_RE.search(html or "")
    return match.group(1) if match else None


def build_test_app(tmp_path, monkeypatch, overrides=None):
    db_path = tmp_path / f"juniorcars_test_{uuid.uuid4().hex[:8]}.db"

    monkeypatch.setenv("ADMIN_PASSWORD", ADMIN_PASSWORD)

    config = {
        "TESTING": True,
        "SECRET_KEY": "test-secret-key",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "SQLALCHEMY_ENGINE_OPTIONS": {},
        "ADMIN_EMAIL": ADMIN_EMAIL,
        "APP_BASE_URL": "",
        "CMS_BASE_URL": "",
        "HEADLESS_CMS_URL": "",
        "CONTENT_SOURCE": "cms",
        "CMS_API_REQUIRE_AUTH": False,
        "CMS_DEV_LOGIN_PASSWORD": "",
        "SEED_SAMPLE_CONTENT": False,
        "SENTRY_DSN": "",
        "LOG_JSON": False,
    }
    if overrides:
        config.update(overrides)
    return create_app(config)


@pytest.fixture()
def make_app(tmp_path, monkeypatch):
    def factory(overrides=None):
        return build_test_app(tmp_path, monkeypatch, overrides)

    return factory


@pytest.fixture()
def app(make_app):
    return make_app()


@pytest.fixture()
def seeded_app(make_app):
    return make_app({"SEED_SAMPLE_CONTENT": True})


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def seeded_client(seeded_app):
    return seeded_app.test_client()


def admin_login(client, email=ADMIN_EMAIL, password=ADMIN_PASSWORD):
    login_page = client.get("/admin/login")
    csrf_token = extract_csrf_token(login_page.get_data(as_text=True))
    assert csrf_token

    return client.post(
        "/admin/login",
        data={
            "_csrf_token": csrf_token,
            "email": email,
            "password": password,
        },
        follow_redirects=False,
    )


def api_login(client, email=ADMIN_EMAIL, password=ADMIN_PASSWORD):
    response = client.post("/api/cms/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200
    return response.get_json()["data"]["sessionToken"]


@pytest.fixture()
def admin_client(client):
    response = admin_login(client)
    assert response.status_code in (302, 303)
    return client


@pytest.fixture()
def csrf_for():
    """Return a CSRF token read from the given page of an already signed-in client."""

    def read(client, path="/admin/"):
        token = extract_csrf_token(client.get(path).get_data(as_text=True))
        assert token
        return token

    return read


@pytest.fixture()
def api_token(client):
    return api_login(client)


@pytest.fixture()
def auth_headers(api_token):
    return {"Authorization": f"Bearer {api_token}"}


@pytest.fixture()
def login():
    return admin_login
