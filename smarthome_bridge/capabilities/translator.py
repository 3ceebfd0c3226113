"""
Capability-to-protocol translation.

Pure functions mapping between the registry's capability vocabulary and
the assistant protocol:

- device_to_descriptor: capabilities -> device type + traits (SYNC)
- command_to_rpc: assistant command -> RPC method + params (EXECUTE)
- telemetry_to_state: gateway telemetry -> assistant state (QUERY)
"""

import logging
import math
from typing import Any, Optional

from ..config import FulfillmentConfig, settings
from ..storage.models import Device
from .protocols import (
    CAP_DIMMER,
    CAP_FAN,
    CAP_LIGHT,
    CAP_OUTLET,
    CAP_SPEED,
    AssistantCommand,
    DeviceDescriptor,
    DeviceInfo,
    DeviceType,
    RpcInstruction,
    RpcMethod,
    Trait,
)

logger = logging.getLogger("bridge.capabilities.translator")

FAN_SPEED_LEVELS: dict[str, int] = {
    "speed_0": 0,
    "speed_1": 1,
    "speed_2": 2,
    "speed_3": 3,
    "speed_4": 4,
    "speed_5": 5,
}

_TRUTHY_STRINGS = {"1", "true", "on"}


class CommandParameterError(ValueError):
    """An assistant command arrived with missing or malformed parameters."""

    def __init__(self, command: str, detail: str):
        self.command = command
        super().__init__(f"{command}: {detail}")


def classify(capabilities: list[str]) -> tuple[DeviceType, list[Trait]]:
    """
    Pick the assistant device type and traits for a capability set.

    First match wins: light/dimmer, then fan/speed, then outlet. Anything
    else degrades to a plain on/off outlet.
    """
    caps = set(capabilities or ())

    if CAP_LIGHT in caps or CAP_DIMMER in caps:
        traits = [Trait.ON_OFF]
        if CAP_DIMMER in caps:
            traits.append(Trait.BRIGHTNESS)
        return DeviceType.LIGHT, traits

    if CAP_FAN in caps or CAP_SPEED in caps:
        return DeviceType.FAN, [Trait.ON_OFF, Trait.FAN_SPEED]

    if CAP_OUTLET in caps:
        return DeviceType.OUTLET, [Trait.ON_OFF]

    return DeviceType.OUTLET, [Trait.ON_OFF]


def device_to_descriptor(
    device: Device,
    config: Optional[FulfillmentConfig] = None,
) -> DeviceDescriptor:
    """Build the SYNC descriptor for a device. Never fails."""
    config = config or settings.fulfillment
    device_type, traits = classify(device.capabilities)
    display = device.display_name

    return DeviceDescriptor(
        id=device.device_uuid,
        type=device_type,
        traits=traits,
        name=display,
        default_names=[device.name],
        nicknames=[display],
        device_info=DeviceInfo(
            manufacturer=config.manufacturer,
            model=device.device_type,
            hw_version=config.hw_version,
            sw_version=config.sw_version,
        ),
    )


def command_to_rpc(
    command: str,
    params: Optional[dict[str, Any]],
    device: Device,
    config: Optional[FulfillmentConfig] = None,
) -> Optional[RpcInstruction]:
    """
    Translate an assistant command into an RPC for the device.

    Returns None when the command is unknown or the device lacks the
    capability the command needs.

    Raises:
        CommandParameterError: if a supported command carries bad params
    """
    params = params or {}
    parsed = AssistantCommand.parse(command)

    if parsed is None:
        return None

    if parsed is AssistantCommand.ON_OFF:
        on = params.get("on")
        if not isinstance(on, bool):
            raise CommandParameterError(command, "'on' must be a boolean")
        config = config or settings.fulfillment
        sub_device = device.config.get("sub_device_id") or config.default_sub_device
        return RpcInstruction(
            method=RpcMethod.SET_DEVICE_STATE,
            params={"device_id": sub_device, "state": on},
            result_state={"on": on},
        )

    if parsed is AssistantCommand.SET_FAN_SPEED:
        if not device.has_any(CAP_FAN, CAP_SPEED):
            return None
        label = params.get("fanSpeed")
        if not isinstance(label, str):
            raise CommandParameterError(command, "'fanSpeed' must be a speed label")
        speed = FAN_SPEED_LEVELS.get(label)
        if speed is None:
            logger.warning(
                "Unrecognized fan speed label %r for device %s, defaulting to 0",
                label,
                device.device_uuid,
            )
            speed = 0
        return RpcInstruction(
            method=RpcMethod.SET_FAN_SPEED,
            params={"speed": speed},
            result_state={"currentFanSpeedSetting": label},
        )

    if parsed is AssistantCommand.BRIGHTNESS_ABSOLUTE:
        if not device.has_any(CAP_DIMMER):
            return None
        brightness = params.get("brightness")
        if isinstance(brightness, bool) or not isinstance(brightness, (int, float)):
            raise CommandParameterError(command, "'brightness' must be a number")
        if isinstance(brightness, float) and not math.isfinite(brightness):
            raise CommandParameterError(command, "'brightness' must be finite")
        brightness = max(0, min(100, int(brightness)))
        return RpcInstruction(
            method=RpcMethod.SET_BRIGHTNESS,
            params={"brightness": brightness},
            result_state={"brightness": brightness},
        )

    return None


def _latest_value(series: Any) -> Any:
    """Latest value of a timeseries in the gateway's [{ts, value}, ...] shape."""
    if isinstance(series, list) and series:
        head = series[0]
        if isinstance(head, dict):
            return head.get("value")
    return None


def _is_on(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY_STRINGS
    return value is True or value == 1


def _speed_setting(value: Any) -> Optional[str]:
    if value is None:
        return None
    try:
        return f"speed_{int(float(value))}"
    except (TypeError, ValueError):
        return f"speed_{value}"


def telemetry_to_state(
    telemetry: Optional[dict[str, Any]],
    config: Optional[FulfillmentConfig] = None,
) -> dict[str, Any]:
    """
    Derive assistant state from latest telemetry.

    The device is on if any sub-device state key reads on. A fan speed
    label is included only when the fan speed key is present.
    """
    config = config or settings.fulfillment
    state: dict[str, Any] = {"on": False}
    if not telemetry:
        return state

    state["on"] = any(
        _is_on(_latest_value(telemetry.get(key)))
        for key in config.state_keys
        if key in telemetry
    )

    speed = _speed_setting(_latest_value(telemetry.get(config.fan_speed_key)))
    if speed is not None:
        state["currentFanSpeedSetting"] = speed

    return state
