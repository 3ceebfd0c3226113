"""
Gateways to the device-management platform.

A gateway sends RPCs to devices and reads their telemetry and
attributes (ThingsBoard REST API, etc.)
"""

from typing import Optional

from ...config import settings
from .base import Gateway, GatewayAuthError, GatewayError
from .thingsboard import ThingsBoardGateway
from .token_cache import AdminTokenCache

_gateway: Optional[ThingsBoardGateway] = None


def get_gateway() -> ThingsBoardGateway:
    """Get the global gateway, configured from settings."""
    global _gateway
    if _gateway is None:
        tb = settings.thingsboard
        _gateway = ThingsBoardGateway(
            base_url=tb.url,
            username=tb.admin_username,
            password=tb.admin_password,
            request_timeout=tb.request_timeout,
            rpc_timeout_ms=tb.rpc_timeout_ms,
            token_ttl_fallback=tb.token_ttl_fallback,
            token_refresh_margin=tb.token_refresh_margin,
        )
    return _gateway


async def close_gateway() -> None:
    """Close the global gateway's HTTP client."""
    global _gateway
    if _gateway is not None:
        await _gateway.aclose()
        _gateway = None


__all__ = [
    "AdminTokenCache",
    "Gateway",
    "GatewayAuthError",
    "GatewayError",
    "ThingsBoardGateway",
    "close_gateway",
    "get_gateway",
]
