"""
Tests for the ThingsBoard REST gateway against an httpx mock transport.
"""

import json
import time

import httpx
import jwt
import pytest

from smarthome_bridge.capabilities.backends import (
    Gateway,
    GatewayAuthError,
    GatewayError,
    ThingsBoardGateway,
)

UPSTREAM_KEY = "thingsboard-upstream-signing-key-0123456789"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _admin_token() -> str:
    return jwt.encode({"sub": "tenant@thingsboard.org", "exp": int(time.time()) + 3600}, UPSTREAM_KEY, algorithm="HS256")


class FakeThingsBoard:
    """Minimal ThingsBoard REST surface recording every request."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.logins = 0
        self.token = _admin_token()
        self.reject_next = 0
        self.routes: dict[tuple[str, str], httpx.Response] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)

        if key == ("POST", "/api/auth/login"):
            self.logins += 1
            return httpx.Response(200, json={"token": self.token, "refreshToken": "r"})

        if self.reject_next:
            self.reject_next -= 1
            return httpx.Response(401, json={"message": "Token has expired"})

        return self.routes.get(key, httpx.Response(404, json={"message": "Not found"}))

    def last(self) -> httpx.Request:
        return self.requests[-1]


def _gateway(fake: FakeThingsBoard, **kwargs) -> ThingsBoardGateway:
    params = dict(
        base_url="http://tb.test/",
        username="tenant@thingsboard.org",
        password="tenant",
        transport=httpx.MockTransport(fake.handler),
    )
    params.update(kwargs)
    return ThingsBoardGateway(**params)


# ===================================================================
# Tests
# ===================================================================

def test_satisfies_gateway_protocol():
    assert isinstance(_gateway(FakeThingsBoard()), Gateway)


class TestRpc:

    @pytest.mark.asyncio
    async def test_one_way_rpc(self):
        fake = FakeThingsBoard()
        fake.routes[("POST", "/api/rpc/oneway/tb-1")] = httpx.Response(200)
        gateway = _gateway(fake)

        ack = await gateway.send_rpc("tb-1", "setDeviceState", {"device_id": "device1", "state": True}, 5000)

        request = fake.last()
        assert ack == {}
        assert request.headers["X-Authorization"] == f"Bearer {fake.token}"
        assert json.loads(request.content) == {
            "method": "setDeviceState",
            "params": {"device_id": "device1", "state": True},
            "persistent": True,
            "timeout": 5000,
        }
        await gateway.aclose()

    @pytest.mark.asyncio
    async def test_non_json_ack_is_empty(self):
        fake = FakeThingsBoard()
        fake.routes[("POST", "/api/rpc/oneway/tb-1")] = httpx.Response(200, text="OK")
        gateway = _gateway(fake)

        assert await gateway.send_rpc("tb-1", "setFanSpeed", {"speed": 1}) == {}

    @pytest.mark.asyncio
    async def test_login_once_for_many_calls(self):
        fake = FakeThingsBoard()
        fake.routes[("POST", "/api/rpc/oneway/tb-1")] = httpx.Response(200)
        gateway = _gateway(fake)

        for _ in range(3):
            await gateway.send_rpc("tb-1", "setFanSpeed", {"speed": 2})

        assert fake.logins == 1
        assert json.loads(fake.last().content)["timeout"] == 5000

    @pytest.mark.asyncio
    async def test_error_response_raises(self):
        fake = FakeThingsBoard()
        fake.routes[("POST", "/api/rpc/oneway/tb-1")] = httpx.Response(
            504, json={"message": "Device is offline"}
        )
        gateway = _gateway(fake)

        with pytest.raises(GatewayError) as exc_info:
            await gateway.send_rpc("tb-1", "setDeviceState", {"state": True})

        assert exc_info.value.status_code == 504
        assert "Device is offline" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout_raises_gateway_error(self):
        def handler(request):
            if request.url.path == "/api/auth/login":
                return httpx.Response(200, json={"token": _admin_token()})
            raise httpx.ReadTimeout("timed out", request=request)

        gateway = _gateway(FakeThingsBoard(), transport=httpx.MockTransport(handler))

        with pytest.raises(GatewayError, match="timed out"):
            await gateway.send_rpc("tb-1", "setDeviceState", {"state": True})

    @pytest.mark.asyncio
    async def test_expired_session_relogs_once(self):
        fake = FakeThingsBoard()
        fake.routes[("POST", "/api/rpc/oneway/tb-1")] = httpx.Response(200)
        gateway = _gateway(fake)
        await gateway.tokens.get_token()
        fake.reject_next = 1

        await gateway.send_rpc("tb-1", "setDeviceState", {"state": False})

        assert fake.logins == 2

    @pytest.mark.asyncio
    async def test_persistent_unauthorized_raises(self):
        fake = FakeThingsBoard()
        fake.reject_next = 2
        gateway = _gateway(fake)

        with pytest.raises(GatewayError) as exc_info:
            await gateway.send_rpc("tb-1", "setDeviceState", {"state": False})

        assert exc_info.value.status_code == 401


class TestReads:

    @pytest.mark.asyncio
    async def test_latest_telemetry(self):
        fake = FakeThingsBoard()
        telemetry = {"device1_state": [{"ts": 1, "value": "1"}]}
        fake.routes[("GET", "/api/plugins/telemetry/DEVICE/tb-1/values/timeseries")] = httpx.Response(
            200, json=telemetry
        )
        gateway = _gateway(fake)

        result = await gateway.get_latest_telemetry("tb-1", ["device1_state", "fan_speed"])

        assert result == telemetry
        assert fake.last().url.params["keys"] == "device1_state,fan_speed"

    @pytest.mark.asyncio
    async def test_unknown_device_is_absent(self):
        gateway = _gateway(FakeThingsBoard())

        assert await gateway.get_latest_telemetry("missing", ["device1_state"]) is None
        assert await gateway.get_attributes("missing", "SERVER_SCOPE") is None

    @pytest.mark.asyncio
    async def test_attributes_flattened(self):
        fake = FakeThingsBoard()
        fake.routes[("GET", "/api/plugins/telemetry/DEVICE/tb-1/values/attributes/SERVER_SCOPE")] = httpx.Response(
            200,
            json=[
                {"key": "active", "value": True, "lastUpdateTs": 1},
                {"key": "firmware", "value": "1.2.0", "lastUpdateTs": 1},
            ],
        )
        gateway = _gateway(fake)

        assert await gateway.get_attributes("tb-1", "SERVER_SCOPE") == {
            "active": True,
            "firmware": "1.2.0",
        }


class TestProvisioning:

    @pytest.mark.asyncio
    async def test_create_device(self):
        fake = FakeThingsBoard()
        fake.routes[("POST", "/api/device")] = httpx.Response(
            200, json={"id": {"id": "tb-new", "entityType": "DEVICE"}, "name": "Panel"}
        )
        gateway = _gateway(fake)

        result = await gateway.create_device("Panel", "switch_panel", "Kitchen")

        assert result["id"]["id"] == "tb-new"
        assert json.loads(fake.last().content) == {
            "name": "Panel",
            "type": "switch_panel",
            "label": "Kitchen",
        }

    @pytest.mark.asyncio
    async def test_device_credentials(self):
        fake = FakeThingsBoard()
        fake.routes[("GET", "/api/device/tb-new/credentials")] = httpx.Response(
            200, json={"credentialsType": "ACCESS_TOKEN", "credentialsId": "mqtt-abc"}
        )
        gateway = _gateway(fake)

        assert (await gateway.get_device_credentials("tb-new"))["credentialsId"] == "mqtt-abc"

    @pytest.mark.asyncio
    async def test_create_customer_user(self):
        fake = FakeThingsBoard()
        fake.routes[("POST", "/api/user")] = httpx.Response(200, json={"id": {"id": "u-1"}})
        gateway = _gateway(fake)

        await gateway.create_user("a@example.com", "Ada", "User", customer_id="c-1")

        assert json.loads(fake.last().content) == {
            "email": "a@example.com",
            "firstName": "Ada",
            "lastName": "User",
            "authority": "CUSTOMER_USER",
            "customerId": {"id": "c-1", "entityType": "CUSTOMER"},
        }

    @pytest.mark.asyncio
    async def test_assign_to_customer(self):
        fake = FakeThingsBoard()
        fake.routes[("POST", "/api/customer/c-1/device/tb-1")] = httpx.Response(200, json={"id": {"id": "tb-1"}})
        gateway = _gateway(fake)

        await gateway.assign_device_to_customer("tb-1", "c-1")

        assert fake.last().url.path == "/api/customer/c-1/device/tb-1"

    @pytest.mark.asyncio
    async def test_user_by_email(self):
        fake = FakeThingsBoard()
        fake.routes[("GET", "/api/user")] = httpx.Response(
            200, json={"id": {"id": "u-1"}, "customerId": {"id": "c-1"}, "email": "a+b@example.com"}
        )
        gateway = _gateway(fake)

        user = await gateway.get_user_by_email("a+b@example.com")

        assert user["id"]["id"] == "u-1"
        assert fake.last().url.params["email"] == "a+b@example.com"

    @pytest.mark.asyncio
    async def test_user_by_email_unknown(self):
        gateway = _gateway(FakeThingsBoard())

        assert await gateway.get_user_by_email("nobody@example.com") is None


class TestLogin:

    @pytest.mark.asyncio
    async def test_rejected_credentials(self):
        def handler(request):
            return httpx.Response(401, json={"message": "Invalid username or password"})

        gateway = _gateway(FakeThingsBoard(), transport=httpx.MockTransport(handler))

        with pytest.raises(GatewayAuthError):
            await gateway.send_rpc("tb-1", "setDeviceState", {"state": True})

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        gateway = _gateway(FakeThingsBoard(), username=None, password=None)

        with pytest.raises(GatewayAuthError):
            await gateway.get_latest_telemetry("tb-1", ["device1_state"])

    @pytest.mark.asyncio
    async def test_authenticate_other_account(self):
        fake = FakeThingsBoard()
        gateway = _gateway(fake)

        token = await gateway.authenticate("ada@example.com", "secret")

        assert token == fake.token
        assert json.loads(fake.last().content) == {"username": "ada@example.com", "password": "secret"}

    @pytest.mark.asyncio
    async def test_authenticate_rejected(self):
        def handler(request):
            return httpx.Response(401, json={"message": "Invalid username or password"})

        gateway = _gateway(FakeThingsBoard(), transport=httpx.MockTransport(handler))

        with pytest.raises(GatewayAuthError) as exc:
            await gateway.authenticate("ada@example.com", "wrong")
        assert exc.value.status_code == 401
