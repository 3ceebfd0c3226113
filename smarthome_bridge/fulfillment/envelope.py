"""
Smart home protocol envelopes.

Request models are validated with pydantic; responses are built as plain
dicts in the exact shape the assistant platform expects.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from ..capabilities.protocols import ErrorCode

MALFORMED_BODY = {"error": "Invalid request format"}


class EnvelopeInput(BaseModel):
    intent: str
    payload: Optional[dict[str, Any]] = Field(default_factory=dict)

    @field_validator("payload", mode="after")
    @classmethod
    def _null_payload_is_empty(cls, value: Optional[dict[str, Any]]) -> dict[str, Any]:
        return {} if value is None else value


class Envelope(BaseModel):
    """Outer request: {requestId, inputs: [{intent, payload?}]}."""
    requestId: str = Field(..., min_length=1)
    inputs: list[EnvelopeInput] = Field(..., min_length=1)


class DeviceRef(BaseModel):
    id: str = Field(..., min_length=1)


class QueryPayload(BaseModel):
    devices: list[DeviceRef] = Field(default_factory=list)


class Execution(BaseModel):
    command: str
    params: dict[str, Any] = Field(default_factory=dict)


class ExecuteCommand(BaseModel):
    devices: list[DeviceRef] = Field(default_factory=list)
    execution: list[Execution] = Field(default_factory=list)


class ExecutePayload(BaseModel):
    commands: list[ExecuteCommand] = Field(default_factory=list)


def response(request_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {"requestId": request_id, "payload": payload}


def error_response(
    request_id: Optional[str],
    code: ErrorCode,
    debug: Optional[str] = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {"errorCode": code.value}
    if debug is not None:
        payload["debugString"] = debug
    return {"requestId": request_id, "payload": payload}


def query_success(online: bool, state: dict[str, Any]) -> dict[str, Any]:
    return {"status": "SUCCESS", "online": online, **state}


def query_error(code: ErrorCode) -> dict[str, Any]:
    return {"status": "ERROR", "errorCode": code.value}


def command_success(device_id: str, states: dict[str, Any]) -> dict[str, Any]:
    return {
        "ids": [device_id],
        "status": "SUCCESS",
        "states": {"online": True, **states},
    }


def command_error(device_id: str, code: ErrorCode) -> dict[str, Any]:
    return {"ids": [device_id], "status": "ERROR", "errorCode": code.value}
