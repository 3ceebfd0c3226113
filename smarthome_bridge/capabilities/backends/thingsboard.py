"""
ThingsBoard REST API gateway.

Sends one-way RPCs to devices, reads telemetry and attributes, and
provisions devices and users on behalf of the bridge. Every call is made
with the tenant admin session held by an AdminTokenCache.
"""

import logging
from typing import Any, Optional

import httpx

from .base import GatewayAuthError, GatewayError
from .token_cache import AdminTokenCache

logger = logging.getLogger("bridge.backends.thingsboard")


class ThingsBoardGateway:
    """ThingsBoard REST API gateway."""

    def __init__(
        self,
        base_url: str,
        username: Optional[str],
        password: Optional[str],
        request_timeout: float = 5.0,
        rpc_timeout_ms: int = 5000,
        token_ttl_fallback: float = 3600,
        token_refresh_margin: float = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._username = username
        self._password = password
        self._request_timeout = request_timeout
        self._rpc_timeout_ms = rpc_timeout_ms
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.tokens = AdminTokenCache(
            self.login,
            ttl_fallback=token_ttl_fallback,
            refresh_margin=token_refresh_margin,
        )

    @property
    def backend_type(self) -> str:
        return "thingsboard"

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Content-Type": "application/json"},
                timeout=self._request_timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying httpx client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def login(self) -> str:
        """
        Log in as tenant admin.

        Returns:
            The session token

        Raises:
            GatewayAuthError: if credentials are missing or rejected
        """
        if not self._username or not self._password:
            raise GatewayAuthError("ThingsBoard admin credentials not configured")

        token = await self.authenticate(self._username, self._password)
        logger.info("Logged in to ThingsBoard at %s", self.base_url)
        return token

    async def authenticate(self, username: str, password: str) -> str:
        """Check a ThingsBoard account's credentials and return its session token."""
        client = self._ensure_client()
        try:
            resp = await client.post(
                "/api/auth/login",
                json={"username": username, "password": password},
            )
        except httpx.HTTPError as e:
            raise GatewayAuthError(f"ThingsBoard login failed: {e}") from e

        if resp.status_code != 200:
            raise GatewayAuthError(
                f"ThingsBoard login rejected (HTTP {resp.status_code})",
                status_code=resp.status_code,
            )

        token = _json_or_empty(resp).get("token")
        if not token:
            raise GatewayAuthError("ThingsBoard login returned no token")
        return token

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
        allow_missing: bool = False,
        retry_auth: bool = True,
    ) -> Optional[httpx.Response]:
        token = await self.tokens.get_token()
        client = self._ensure_client()

        try:
            resp = await client.request(
                method,
                path,
                json=json,
                params=params,
                headers={"X-Authorization": f"Bearer {token}"},
                timeout=timeout if timeout is not None else self._request_timeout,
            )
        except httpx.TimeoutException as e:
            raise GatewayError(f"ThingsBoard {method} {path} timed out") from e
        except httpx.HTTPError as e:
            raise GatewayError(f"ThingsBoard {method} {path} failed: {e}") from e

        if resp.status_code == 401:
            self.tokens.invalidate()
            if retry_auth:
                return await self._request(
                    method,
                    path,
                    json=json,
                    params=params,
                    timeout=timeout,
                    allow_missing=allow_missing,
                    retry_auth=False,
                )
            raise GatewayError(f"ThingsBoard {method} {path} unauthorized", status_code=401)

        if resp.status_code == 404 and allow_missing:
            return None

        if resp.status_code >= 400:
            raise GatewayError(
                f"ThingsBoard {method} {path} returned HTTP {resp.status_code}: {_error_message(resp)}",
                status_code=resp.status_code,
            )
        return resp

    # ------------------------------------------------------------------
    # Commands and state
    # ------------------------------------------------------------------

    async def send_rpc(
        self,
        device_external_id: str,
        method: str,
        params: dict[str, Any],
        timeout_ms: Optional[int] = None,
    ) -> dict[str, Any]:
        timeout_ms = timeout_ms or self._rpc_timeout_ms
        resp = await self._request(
            "POST",
            f"/api/rpc/oneway/{device_external_id}",
            json={
                "method": method,
                "params": params,
                "persistent": True,
                "timeout": timeout_ms,
            },
            timeout=max(self._request_timeout, timeout_ms / 1000),
        )
        logger.info("RPC %s sent to %s with %s", method, device_external_id, params)
        return _json_or_empty(resp)

    async def get_latest_telemetry(
        self,
        device_external_id: str,
        keys: list[str],
    ) -> Optional[dict[str, Any]]:
        resp = await self._request(
            "GET",
            f"/api/plugins/telemetry/DEVICE/{device_external_id}/values/timeseries",
            params={"keys": ",".join(keys)},
            allow_missing=True,
        )
        if resp is None:
            return None
        return _json_or_empty(resp)

    async def get_attributes(
        self,
        device_external_id: str,
        scope: str = "SERVER_SCOPE",
    ) -> Optional[dict[str, Any]]:
        resp = await self._request(
            "GET",
            f"/api/plugins/telemetry/DEVICE/{device_external_id}/values/attributes/{scope}",
            allow_missing=True,
        )
        if resp is None:
            return None
        data = resp.json() if resp.content else []
        # ThingsBoard answers with [{key, value, lastUpdateTs}, ...]
        if isinstance(data, list):
            return {item["key"]: item.get("value") for item in data if "key" in item}
        return data

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    async def create_device(
        self,
        name: str,
        device_type: str,
        label: Optional[str] = None,
    ) -> dict[str, Any]:
        """Create a device. The platform id is at result['id']['id']."""
        payload: dict[str, Any] = {"name": name, "type": device_type}
        if label:
            payload["label"] = label
        resp = await self._request("POST", "/api/device", json=payload)
        logger.info("Created ThingsBoard device %s (%s)", name, device_type)
        return _json_or_empty(resp)

    async def get_device_credentials(self, device_external_id: str) -> dict[str, Any]:
        """Device credentials. The access token is result['credentialsId']."""
        resp = await self._request("GET", f"/api/device/{device_external_id}/credentials")
        return _json_or_empty(resp)

    async def assign_device_to_customer(
        self,
        device_external_id: str,
        customer_id: str,
    ) -> dict[str, Any]:
        resp = await self._request(
            "POST",
            f"/api/customer/{customer_id}/device/{device_external_id}",
        )
        logger.info("Assigned device %s to customer %s", device_external_id, customer_id)
        return _json_or_empty(resp)

    async def create_user(
        self,
        email: str,
        first_name: str,
        last_name: str,
        customer_id: Optional[str] = None,
    ) -> dict[str, Any]:
        """Create a platform user; a customer user when customer_id is given."""
        payload: dict[str, Any] = {
            "email": email,
            "firstName": first_name,
            "lastName": last_name,
            "authority": "CUSTOMER_USER" if customer_id else "TENANT_ADMIN",
        }
        if customer_id:
            payload["customerId"] = {"id": customer_id, "entityType": "CUSTOMER"}
        resp = await self._request("POST", "/api/user", json=payload)
        logger.info("Created ThingsBoard user %s", email)
        return _json_or_empty(resp)

    async def get_user_by_email(self, email: str) -> Optional[dict[str, Any]]:
        """Platform user with the given email, or None if there is none."""
        resp = await self._request(
            "GET",
            "/api/user",
            params={"email": email},
            allow_missing=True,
        )
        if resp is None:
            return None
        return _json_or_empty(resp) or None


def _json_or_empty(resp: Optional[httpx.Response]) -> dict[str, Any]:
    if resp is None or not resp.content:
        return {}
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {"data": data}


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return resp.text[:200]
