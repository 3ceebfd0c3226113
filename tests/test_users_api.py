"""
Tests for backend user registration, login and profile endpoints.
"""

from unittest.mock import AsyncMock, MagicMock
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

from smarthome_bridge.api.dependencies import get_audit, get_gateway_client, get_tokens, get_users
from smarthome_bridge.auth.passwords import hash_password
from smarthome_bridge.auth.tokens import TokenService
from smarthome_bridge.capabilities.backends import GatewayAuthError, GatewayError
from smarthome_bridge.config import AuthConfig
from smarthome_bridge.main import app
from smarthome_bridge.storage.exceptions import DuplicateRecordError
from smarthome_bridge.storage.models import User

TOKENS = TokenService(AuthConfig(jwt_secret="users-api-secret-0123456789abcdefghijk"))
BACKEND_ID = UUID("6f1c2a7e-9d4b-4c1e-8a53-2f0b9e7d1c44")


def _user(**overrides) -> User:
    fields = dict(
        id=3,
        backend_user_id=BACKEND_ID,
        username="grace",
        password_hash=hash_password("correct-horse"),
        email="grace@example.com",
    )
    fields.update(overrides)
    return User(**fields)


@pytest.fixture
def mocks():
    users = MagicMock()
    users.get_by_username = AsyncMock(return_value=None)
    users.get_by_id = AsyncMock(return_value=None)
    users.create = AsyncMock(side_effect=lambda **kw: _user(
        username=kw["username"],
        password_hash=kw["password_hash"],
        email=kw["email"],
        gateway_user_id=kw["gateway_user_id"],
        gateway_customer_id=kw["gateway_customer_id"],
    ))
    gateway = MagicMock()
    gateway.create_user = AsyncMock(
        return_value={"id": {"id": "tb-user-1"}, "customerId": {"id": "tb-customer-1"}}
    )
    users.update_gateway_mapping = AsyncMock()
    gateway.authenticate = AsyncMock(return_value="tb-session")
    gateway.get_user_by_email = AsyncMock(
        return_value={"id": {"id": "tb-user-9"}, "customerId": {"id": "tb-customer-9"}}
    )
    audit = MagicMock(record=AsyncMock())

    app.dependency_overrides[get_users] = lambda: users
    app.dependency_overrides[get_gateway_client] = lambda: gateway
    app.dependency_overrides[get_tokens] = lambda: TOKENS
    app.dependency_overrides[get_audit] = lambda: audit

    yield MagicMock(users=users, gateway=gateway, audit=audit)
    app.dependency_overrides.clear()


@pytest.fixture
def client(mocks):
    return TestClient(app)


REGISTRATION = {
    "username": "grace",
    "email": "grace@example.com",
    "password": "correct-horse",
    "firstName": "Grace",
    "lastName": "Hopper",
}


class TestRegister:

    def test_creates_user_and_session(self, client, mocks):
        resp = client.post("/api/auth/register", json=REGISTRATION)

        assert resp.status_code == 201
        data = resp.json()
        assert data["success"] is True
        assert data["user"] == {
            "backendUserId": str(BACKEND_ID),
            "username": "grace",
            "email": "grace@example.com",
        }

        claims = TOKENS.verify_session_token(data["token"])
        assert claims["userId"] == 3

        mocks.gateway.create_user.assert_awaited_once_with("grace@example.com", "Grace", "Hopper")
        created = mocks.users.create.await_args.kwargs
        assert created["gateway_user_id"] == "tb-user-1"
        assert created["gateway_customer_id"] == "tb-customer-1"
        assert created["password_hash"] != "correct-horse"
        assert mocks.audit.record.await_args.kwargs["action"] == "user_registered"

    def test_duplicate_username(self, client, mocks):
        mocks.users.get_by_username.return_value = _user()

        resp = client.post("/api/auth/register", json=REGISTRATION)

        assert resp.status_code == 409
        mocks.users.create.assert_not_awaited()

    def test_duplicate_detected_on_insert(self, client, mocks):
        mocks.users.create.side_effect = DuplicateRecordError("user", "username", "grace")

        resp = client.post("/api/auth/register", json=REGISTRATION)

        assert resp.status_code == 409

    def test_gateway_failure_is_not_fatal(self, client, mocks):
        mocks.gateway.create_user.side_effect = GatewayError("down")

        resp = client.post("/api/auth/register", json=REGISTRATION)

        assert resp.status_code == 201
        created = mocks.users.create.await_args.kwargs
        assert created["gateway_user_id"] is None
        assert created["gateway_customer_id"] is None

    @pytest.mark.parametrize("field,value", [
        ("username", "ab"),
        ("email", "not-an-email"),
        ("password", "short"),
    ])
    def test_validation(self, client, field, value):
        body = dict(REGISTRATION, **{field: value})

        assert client.post("/api/auth/register", json=body).status_code == 422


class TestLogin:

    def test_valid_credentials(self, client, mocks):
        mocks.users.get_by_username.return_value = _user()

        resp = client.post("/api/auth/login", json={"username": "grace", "password": "correct-horse"})

        assert resp.status_code == 200
        assert TOKENS.verify_session_token(resp.json()["token"])["username"] == "grace"
        assert mocks.audit.record.await_args.kwargs["action"] == "user_login"

    def test_wrong_password(self, client, mocks):
        mocks.users.get_by_username.return_value = _user()

        resp = client.post("/api/auth/login", json={"username": "grace", "password": "nope"})

        assert resp.status_code == 401
        mocks.audit.record.assert_not_awaited()

    def test_unknown_user(self, client):
        resp = client.post("/api/auth/login", json={"username": "nobody", "password": "x"})

        assert resp.status_code == 401


class TestMe:

    def test_profile(self, client, mocks):
        mocks.users.get_by_id.return_value = _user(gateway_user_id="tb-user-1")
        token = TOKENS.issue_session_token(3, str(BACKEND_ID), "grace")

        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert resp.status_code == 200
        user = resp.json()["user"]
        assert user["username"] == "grace"
        assert user["gatewayUserId"] == "tb-user-1"
        mocks.users.get_by_id.assert_awaited_once_with(3)

    def test_missing_token(self, client):
        assert client.get("/api/auth/me").status_code == 401

    def test_access_token_is_not_a_session(self, client, mocks):
        mocks.users.get_by_id.return_value = _user()
        token = TOKENS.issue_access_token(3, "agent_3_1")

        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert resp.status_code == 401

    def test_deleted_user(self, client):
        token = TOKENS.issue_session_token(3, str(BACKEND_ID), "grace")

        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert resp.status_code == 401


class TestThingsBoardLink:

    LINK = {"thingsboardUsername": "grace@tb.example.com", "thingsboardPassword": "tb-pass"}

    def _headers(self, mocks) -> dict:
        mocks.users.get_by_id.return_value = _user()
        token = TOKENS.issue_session_token(3, str(BACKEND_ID), "grace")
        return {"Authorization": f"Bearer {token}"}

    def test_links_account(self, client, mocks):
        resp = client.post("/api/auth/thingsboard/link", json=self.LINK, headers=self._headers(mocks))

        assert resp.status_code == 200
        assert resp.json()["success"] is True
        mocks.gateway.authenticate.assert_awaited_once_with("grace@tb.example.com", "tb-pass")
        mocks.gateway.get_user_by_email.assert_awaited_once_with("grace@tb.example.com")
        mocks.users.update_gateway_mapping.assert_awaited_once_with(3, "tb-user-9", "tb-customer-9")
        assert mocks.audit.record.await_args.kwargs["action"] == "thingsboard_link"

    def test_requires_session(self, client, mocks):
        resp = client.post("/api/auth/thingsboard/link", json=self.LINK)

        assert resp.status_code == 401
        mocks.gateway.authenticate.assert_not_awaited()

    def test_rejected_credentials(self, client, mocks):
        mocks.gateway.authenticate.side_effect = GatewayAuthError("rejected", status_code=401)

        resp = client.post("/api/auth/thingsboard/link", json=self.LINK, headers=self._headers(mocks))

        assert resp.status_code == 401
        mocks.users.update_gateway_mapping.assert_not_awaited()

    def test_platform_unreachable(self, client, mocks):
        mocks.gateway.authenticate.side_effect = GatewayAuthError("connection refused")

        resp = client.post("/api/auth/thingsboard/link", json=self.LINK, headers=self._headers(mocks))

        assert resp.status_code == 502

    def test_user_not_found(self, client, mocks):
        mocks.gateway.get_user_by_email.return_value = None

        resp = client.post("/api/auth/thingsboard/link", json=self.LINK, headers=self._headers(mocks))

        assert resp.status_code == 502
        mocks.users.update_gateway_mapping.assert_not_awaited()

    def test_missing_fields(self, client, mocks):
        resp = client.post(
            "/api/auth/thingsboard/link",
            json={"thingsboardUsername": "grace@tb.example.com"},
            headers=self._headers(mocks),
        )

        assert resp.status_code == 422
