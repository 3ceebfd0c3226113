"""
Base protocol for the remote command gateway.
"""

from typing import Any, Optional, Protocol, runtime_checkable


class GatewayError(Exception):
    """The device-management platform failed, timed out or refused a call."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class GatewayAuthError(GatewayError):
    """The bridge could not authenticate against the platform."""


@runtime_checkable
class Gateway(Protocol):
    """
    Protocol for the device-management platform.

    Gateways address devices by their platform-side identifier, never by
    the identifier the assistant sees.
    """

    @property
    def backend_type(self) -> str:
        """Identifier for this gateway type (e.g., 'thingsboard')."""
        ...

    async def send_rpc(
        self,
        device_external_id: str,
        method: str,
        params: dict[str, Any],
        timeout_ms: Optional[int] = None,
    ) -> dict[str, Any]:
        """
        Send a one-way RPC to a device.

        Returns:
            The platform acknowledgement

        Raises:
            GatewayError: on transport failure, timeout or error response
        """
        ...

    async def get_latest_telemetry(
        self,
        device_external_id: str,
        keys: list[str],
    ) -> Optional[dict[str, Any]]:
        """
        Latest telemetry values for the given keys.

        Returns:
            Mapping of key -> [{ts, value}], or None if the device is unknown
        """
        ...

    async def get_attributes(
        self,
        device_external_id: str,
        scope: str,
    ) -> Optional[dict[str, Any]]:
        """
        Device attributes in the given scope.

        Returns:
            Mapping of attribute key -> value, or None if the device is unknown
        """
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...
