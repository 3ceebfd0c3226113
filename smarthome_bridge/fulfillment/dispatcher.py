"""
Intent dispatcher for the smart home fulfillment endpoint.

Terminates one protocol envelope into one protocol response. Identity is
resolved from the bearer token before anything is read or changed, and
every device (and every device x command pair on EXECUTE) is handled
independently so one failure never sinks the batch.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import ValidationError

from ..auth.tokens import TokenService
from ..capabilities.backends.base import Gateway, GatewayError
from ..capabilities.protocols import ErrorCode, Intent
from ..capabilities.translator import (
    CommandParameterError,
    command_to_rpc,
    device_to_descriptor,
    telemetry_to_state,
)
from ..config import FulfillmentConfig, settings
from ..storage.models import AccountLink, Device
from .envelope import (
    MALFORMED_BODY,
    Envelope,
    ExecutePayload,
    Execution,
    QueryPayload,
    command_error,
    command_success,
    error_response,
    query_error,
    query_success,
    response,
)
from .registry import Registry

logger = logging.getLogger("bridge.fulfillment")


class AuthFailure(Exception):
    """The bearer token does not resolve to an active account link."""


@dataclass
class DispatchResult:
    """HTTP status code and JSON body for one envelope."""
    status_code: int
    body: dict[str, Any]


class IntentDispatcher:
    """
    Routes SYNC, QUERY, EXECUTE and DISCONNECT envelopes.

    Holds no per-request state; registry records are borrowed for the
    duration of one call and never cached.
    """

    def __init__(
        self,
        registry: Registry,
        gateway: Gateway,
        tokens: TokenService,
        config: Optional[FulfillmentConfig] = None,
        rpc_timeout_ms: Optional[int] = None,
        expose_debug: Optional[bool] = None,
    ):
        self.registry = registry
        self.gateway = gateway
        self.tokens = tokens
        self.config = config or settings.fulfillment
        self.rpc_timeout_ms = rpc_timeout_ms or settings.thingsboard.rpc_timeout_ms
        self.expose_debug = (not settings.is_production) if expose_debug is None else expose_debug

    async def handle(self, body: Any, authorization: Optional[str]) -> DispatchResult:
        """
        Process one fulfillment envelope.

        Never raises: malformed envelopes yield 400, auth failures 401,
        unexpected faults 500 with a hardError payload.
        """
        try:
            envelope = Envelope.model_validate(body)
        except ValidationError as e:
            logger.warning("Invalid smart home request: %s", e.errors()[:1])
            return DispatchResult(400, dict(MALFORMED_BODY))

        request_id = envelope.requestId
        first = envelope.inputs[0]
        intent = Intent.parse(first.intent)

        if intent is None:
            logger.warning("Unknown intent %r (request %s)", first.intent, request_id)
            return DispatchResult(400, error_response(request_id, ErrorCode.NOT_SUPPORTED))

        try:
            if intent is Intent.QUERY:
                query = QueryPayload.model_validate(first.payload)
            elif intent is Intent.EXECUTE:
                execute = ExecutePayload.model_validate(first.payload)
        except ValidationError as e:
            logger.warning("Invalid %s payload (request %s): %s", intent.name, request_id, e.errors()[:1])
            return DispatchResult(400, dict(MALFORMED_BODY))

        try:
            if intent is Intent.SYNC:
                payload = await self.handle_sync(authorization)
            elif intent is Intent.QUERY:
                payload = await self.handle_query(authorization, query)
            elif intent is Intent.EXECUTE:
                payload = await self.handle_execute(authorization, execute)
            else:
                payload = await self.handle_disconnect(authorization)
        except AuthFailure as e:
            logger.warning("%s auth failure (request %s): %s", intent.name, request_id, e)
            return DispatchResult(401, error_response(request_id, ErrorCode.AUTH_FAILURE))
        except Exception as e:
            logger.exception("%s failed (request %s)", intent.name, request_id)
            debug = str(e) if self.expose_debug else None
            return DispatchResult(500, error_response(request_id, ErrorCode.HARD_ERROR, debug))

        return DispatchResult(200, response(request_id, payload))

    async def _resolve_link(self, authorization: Optional[str]) -> AccountLink:
        subject = self.tokens.subject_from_bearer(authorization)
        if subject is None:
            raise AuthFailure("missing or invalid bearer token")

        link = await self.registry.find_account_link_by_subject(subject)
        if link is None:
            raise AuthFailure(f"no active account link for {subject}")
        return link

    @staticmethod
    def _owned(device: Optional[Device], link: AccountLink) -> bool:
        return device is not None and device.owner_user_id == link.user_id

    # ------------------------------------------------------------------
    # SYNC
    # ------------------------------------------------------------------

    async def handle_sync(self, authorization: Optional[str]) -> dict[str, Any]:
        """List the caller's devices as assistant descriptors."""
        link = await self._resolve_link(authorization)

        devices = await self.registry.find_devices_by_owner(link.user_id)
        descriptors = [device_to_descriptor(d, self.config).to_dict() for d in devices]

        await self.registry.mark_link_synced(link.agent_user_id)

        logger.info("SYNC for %s: %d devices", link.agent_user_id, len(descriptors))
        return {"agentUserId": link.agent_user_id, "devices": descriptors}

    # ------------------------------------------------------------------
    # QUERY
    # ------------------------------------------------------------------

    async def handle_query(
        self,
        authorization: Optional[str],
        payload: QueryPayload,
    ) -> dict[str, Any]:
        """Report current state for each requested device."""
        link = await self._resolve_link(authorization)

        states: dict[str, Any] = {}
        for ref in payload.devices:
            states[ref.id] = await self._query_device(ref.id, link)

        failed = sum(1 for s in states.values() if s["status"] == "ERROR")
        logger.info(
            "QUERY for %s: %d devices, %d errors",
            link.agent_user_id,
            len(states),
            failed,
        )
        return {"devices": states}

    async def _query_device(self, device_id: str, link: AccountLink) -> dict[str, Any]:
        try:
            device = await self.registry.find_device_by_id(device_id)
            if not self._owned(device, link):
                logger.warning("QUERY: device %s not found for %s", device_id, link.agent_user_id)
                return query_error(ErrorCode.DEVICE_NOT_FOUND)

            keys = [*self.config.state_keys, self.config.fan_speed_key]
            telemetry = await self.gateway.get_latest_telemetry(device.gateway_device_id, keys)
            if telemetry is None:
                logger.warning("QUERY: gateway does not know device %s", device_id)
                return query_error(ErrorCode.DEVICE_NOT_FOUND)

            attributes = await self.gateway.get_attributes(
                device.gateway_device_id,
                self.config.attribute_scope,
            )
        except Exception as e:
            logger.error("QUERY: device %s failed: %s", device_id, e)
            return query_error(ErrorCode.HARD_ERROR)

        return query_success(
            self._online(device, attributes),
            telemetry_to_state(telemetry, self.config),
        )

    @staticmethod
    def _online(device: Device, attributes: Optional[dict[str, Any]]) -> bool:
        active = (attributes or {}).get("active")
        if isinstance(active, bool):
            return active
        return device.is_online

    # ------------------------------------------------------------------
    # EXECUTE
    # ------------------------------------------------------------------

    async def handle_execute(
        self,
        authorization: Optional[str],
        payload: ExecutePayload,
    ) -> dict[str, Any]:
        """Run every command against every targeted device."""
        link = await self._resolve_link(authorization)

        results: list[dict[str, Any]] = []
        for command in payload.commands:
            for ref in command.devices:
                results.extend(
                    await self._execute_on_device(ref.id, command.execution, link)
                )

        return {"commands": results}

    async def _execute_on_device(
        self,
        device_id: str,
        executions: list[Execution],
        link: AccountLink,
    ) -> list[dict[str, Any]]:
        try:
            device = await self.registry.find_device_by_id(device_id)
        except Exception as e:
            logger.error("EXECUTE: lookup of %s failed: %s", device_id, e)
            return [command_error(device_id, ErrorCode.HARD_ERROR) for _ in executions]

        if not self._owned(device, link):
            logger.warning("EXECUTE: device %s not found for %s", device_id, link.agent_user_id)
            return [command_error(device_id, ErrorCode.DEVICE_NOT_FOUND) for _ in executions]

        return [await self._execute_one(device, execution) for execution in executions]

    async def _execute_one(self, device: Device, execution: Execution) -> dict[str, Any]:
        device_id = device.device_uuid

        try:
            instruction = command_to_rpc(execution.command, execution.params, device, self.config)
        except CommandParameterError as e:
            logger.warning("EXECUTE: bad params for %s: %s", device_id, e)
            return command_error(device_id, ErrorCode.HARD_ERROR)
        except Exception:
            logger.exception("EXECUTE: translating %s for %s raised", execution.command, device_id)
            return command_error(device_id, ErrorCode.HARD_ERROR)

        if instruction is None:
            logger.warning(
                "EXECUTE: %s not supported by %s (capabilities: %s)",
                execution.command,
                device_id,
                device.capabilities,
            )
            return command_error(device_id, ErrorCode.FUNCTION_NOT_SUPPORTED)

        try:
            await self.gateway.send_rpc(
                device.gateway_device_id,
                instruction.method.value,
                instruction.params,
                self.rpc_timeout_ms,
            )
        except GatewayError as e:
            logger.error("EXECUTE: RPC %s to %s failed: %s", instruction.method.value, device_id, e)
            return command_error(device_id, ErrorCode.HARD_ERROR)
        except Exception:
            logger.exception("EXECUTE: RPC %s to %s raised", instruction.method.value, device_id)
            return command_error(device_id, ErrorCode.HARD_ERROR)

        logger.info(
            "EXECUTE %s on %s via %s(%s)",
            execution.command,
            device_id,
            instruction.method.value,
            instruction.params,
        )
        return command_success(device_id, instruction.result_state)

    # ------------------------------------------------------------------
    # DISCONNECT
    # ------------------------------------------------------------------

    async def handle_disconnect(self, authorization: Optional[str]) -> dict[str, Any]:
        """Deactivate the caller's link. Always answers with an empty payload."""
        subject = self.tokens.subject_from_bearer(authorization)
        if subject is None:
            logger.info("DISCONNECT without a valid bearer token")
            return {}

        try:
            changed = await self.registry.deactivate_link(subject)
        except Exception:
            logger.exception("DISCONNECT: failed to deactivate %s", subject)
            return {}

        logger.info("DISCONNECT for %s (was active: %s)", subject, changed)
        return {}
