"""
Tests for OAuth account linking endpoints.
"""

from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlparse
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from smarthome_bridge.api.dependencies import (
    get_account_links,
    get_audit,
    get_oauth_config,
    get_tokens,
    get_users,
)
from smarthome_bridge.auth.passwords import hash_password
from smarthome_bridge.auth.tokens import TokenService
from smarthome_bridge.config import AuthConfig, OAuthConfig
from smarthome_bridge.main import app
from smarthome_bridge.storage.models import User

CLIENT_ID = "assistant-client"
CLIENT_SECRET = "assistant-secret"
REDIRECT_URI = "https://oauth-redirect.example.com/r/project"

TOKENS = TokenService(AuthConfig(jwt_secret="oauth-api-secret-0123456789abcdefghij"))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _user() -> User:
    return User(
        id=7,
        backend_user_id=uuid4(),
        username="ada",
        password_hash=hash_password("hunter22"),
        email="ada@example.com",
    )


@pytest.fixture
def mocks():
    users = MagicMock()
    users.get_by_username = AsyncMock(side_effect=lambda name: _user() if name == "ada" else None)
    audit = MagicMock(record=AsyncMock())
    links = MagicMock(upsert=AsyncMock())

    app.dependency_overrides[get_oauth_config] = lambda: OAuthConfig(
        client_id=CLIENT_ID, client_secret=CLIENT_SECRET
    )
    app.dependency_overrides[get_tokens] = lambda: TOKENS
    app.dependency_overrides[get_users] = lambda: users
    app.dependency_overrides[get_audit] = lambda: audit
    app.dependency_overrides[get_account_links] = lambda: links

    yield MagicMock(users=users, audit=audit, links=links)
    app.dependency_overrides.clear()


@pytest.fixture
def client(mocks):
    return TestClient(app)


def _token_form(**overrides) -> dict:
    form = {
        "client_id": CLIENT_ID,
        "client_secret": CLIENT_SECRET,
        "grant_type": "authorization_code",
        "code": TOKENS.issue_auth_code(7, CLIENT_ID, REDIRECT_URI),
        "redirect_uri": REDIRECT_URI,
    }
    form.update(overrides)
    return form


# ===================================================================
# /oauth/authorize
# ===================================================================

class TestAuthorize:

    def test_renders_login_form(self, client):
        resp = client.get(
            "/oauth/authorize",
            params={
                "client_id": CLIENT_ID,
                "redirect_uri": REDIRECT_URI,
                "state": "xyz-state",
                "response_type": "code",
            },
        )

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/html")
        assert "Smart Home Authorization" in resp.text
        assert "xyz-state" in resp.text

    def test_missing_parameters(self, client):
        resp = client.get("/oauth/authorize", params={"client_id": CLIENT_ID})

        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_request"

    def test_only_code_flow(self, client):
        resp = client.get(
            "/oauth/authorize",
            params={
                "client_id": CLIENT_ID,
                "redirect_uri": REDIRECT_URI,
                "state": "s",
                "response_type": "token",
            },
        )

        assert resp.status_code == 400
        assert resp.json()["error"] == "unsupported_response_type"

    def test_unknown_client(self, client):
        resp = client.get(
            "/oauth/authorize",
            params={
                "client_id": "someone-else",
                "redirect_uri": REDIRECT_URI,
                "state": "s",
                "response_type": "code",
            },
        )

        assert resp.status_code == 401
        assert resp.json()["error"] == "unauthorized_client"


class TestAuthorizeSubmit:

    def _submit(self, client, **overrides):
        body = {
            "username": "ada",
            "password": "hunter22",
            "client_id": CLIENT_ID,
            "redirect_uri": REDIRECT_URI,
            "state": "xyz-state",
        }
        body.update(overrides)
        return client.post("/oauth/authorize/submit", json=body)

    def test_redirect_carries_code_and_state(self, client, mocks):
        resp = self._submit(client)

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True

        redirect = urlparse(data["redirectUrl"])
        assert f"{redirect.scheme}://{redirect.netloc}{redirect.path}" == REDIRECT_URI
        query = parse_qs(redirect.query)
        assert query["state"] == ["xyz-state"]

        grant = TOKENS.verify_auth_code(query["code"][0])
        assert grant["userId"] == 7
        assert grant["redirectUri"] == REDIRECT_URI
        mocks.audit.record.assert_awaited_once()
        assert mocks.audit.record.await_args.kwargs["action"] == "oauth_authorize"

    def test_wrong_password(self, client):
        resp = self._submit(client, password="nope")

        assert resp.status_code == 401
        assert resp.json()["success"] is False

    def test_unknown_user(self, client):
        assert self._submit(client, username="bob").status_code == 401

    def test_missing_fields(self, client):
        resp = client.post("/oauth/authorize/submit", json={"username": "ada"})

        assert resp.status_code == 400
        assert resp.json() == {"success": False, "message": "Invalid request parameters"}


# ===================================================================
# /oauth/token
# ===================================================================

class TestToken:

    def test_authorization_code_grant(self, client, mocks):
        resp = client.post("/oauth/token", data=_token_form())

        assert resp.status_code == 200
        data = resp.json()
        assert data["token_type"] == "Bearer"
        assert data["expires_in"] == 2592000

        access = TOKENS.verify_access_token(data["access_token"])
        refresh = TOKENS.verify_refresh_token(data["refresh_token"])
        assert access["agentUserId"].startswith("agent_7_")
        assert refresh["agentUserId"] == access["agentUserId"]

        upsert = mocks.links.upsert.await_args.kwargs
        assert upsert["user_id"] == 7
        assert upsert["agent_user_id"] == access["agentUserId"]
        assert upsert["access_token"] == data["access_token"]

    def test_json_body_accepted(self, client):
        resp = client.post("/oauth/token", json=_token_form())
        assert resp.status_code == 200

    def test_invalid_client(self, client, mocks):
        resp = client.post("/oauth/token", data=_token_form(client_secret="wrong"))

        assert resp.status_code == 401
        assert resp.json()["error"] == "invalid_client"
        mocks.links.upsert.assert_not_awaited()

    def test_missing_code(self, client):
        form = _token_form()
        del form["code"]

        resp = client.post("/oauth/token", data=form)

        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_request"

    def test_redirect_uri_mismatch(self, client):
        resp = client.post("/oauth/token", data=_token_form(redirect_uri="https://evil.example.com"))

        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_grant"

    def test_refresh_token_is_not_a_code(self, client):
        resp = client.post(
            "/oauth/token",
            data=_token_form(code=TOKENS.issue_refresh_token(7, "agent_7_1")),
        )

        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_grant"

    def test_refresh_grant(self, client, mocks):
        refresh = TOKENS.issue_refresh_token(7, "agent_7_1")

        resp = client.post(
            "/oauth/token",
            data={
                "client_id": CLIENT_ID,
                "client_secret": CLIENT_SECRET,
                "grant_type": "refresh_token",
                "refresh_token": refresh,
            },
        )

        assert resp.status_code == 200
        data = resp.json()
        assert "refresh_token" not in data
        assert TOKENS.verify_access_token(data["access_token"])["agentUserId"] == "agent_7_1"
        assert mocks.links.upsert.await_args.kwargs["refresh_token"] == refresh

    def test_refresh_grant_rejects_access_token(self, client):
        resp = client.post(
            "/oauth/token",
            data={
                "client_id": CLIENT_ID,
                "client_secret": CLIENT_SECRET,
                "grant_type": "refresh_token",
                "refresh_token": TOKENS.issue_access_token(7, "agent_7_1"),
            },
        )

        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_grant"

    def test_unsupported_grant(self, client):
        resp = client.post("/oauth/token", data=_token_form(grant_type="password"))

        assert resp.status_code == 400
        assert resp.json()["error"] == "unsupported_grant_type"
