"""
Protocol vocabulary shared by the translator and the fulfillment dispatcher.

The assistant side speaks in intents, device types, traits and commands;
the registry side speaks in free-form capability strings. Both closed
vocabularies are enumerated here.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

# Declared capability strings (open vocabulary; these are the ones that matter)
CAP_LIGHT = "light"
CAP_DIMMER = "dimmer"
CAP_FAN = "fan"
CAP_SPEED = "speed"
CAP_OUTLET = "outlet"


class Intent(str, Enum):
    """The four assistant operations."""
    SYNC = "action.devices.SYNC"
    QUERY = "action.devices.QUERY"
    EXECUTE = "action.devices.EXECUTE"
    DISCONNECT = "action.devices.DISCONNECT"

    @classmethod
    def parse(cls, value: Any) -> Optional["Intent"]:
        try:
            return cls(value)
        except ValueError:
            return None


class DeviceType(str, Enum):
    LIGHT = "action.devices.types.LIGHT"
    FAN = "action.devices.types.FAN"
    OUTLET = "action.devices.types.OUTLET"


class Trait(str, Enum):
    ON_OFF = "action.devices.traits.OnOff"
    BRIGHTNESS = "action.devices.traits.Brightness"
    FAN_SPEED = "action.devices.traits.FanSpeed"


class AssistantCommand(str, Enum):
    """Commands the bridge knows how to translate into RPCs."""
    ON_OFF = "action.devices.commands.OnOff"
    SET_FAN_SPEED = "action.devices.commands.SetFanSpeed"
    BRIGHTNESS_ABSOLUTE = "action.devices.commands.BrightnessAbsolute"

    @classmethod
    def parse(cls, value: Any) -> Optional["AssistantCommand"]:
        try:
            return cls(value)
        except ValueError:
            return None


class ErrorCode(str, Enum):
    """Error codes reported back to the assistant platform."""
    AUTH_FAILURE = "authFailure"
    DEVICE_NOT_FOUND = "deviceNotFound"
    FUNCTION_NOT_SUPPORTED = "functionNotSupported"
    HARD_ERROR = "hardError"
    NOT_SUPPORTED = "notSupported"


class RpcMethod(str, Enum):
    SET_DEVICE_STATE = "setDeviceState"
    SET_FAN_SPEED = "setFanSpeed"
    SET_BRIGHTNESS = "setBrightness"


@dataclass
class DeviceInfo:
    manufacturer: str
    model: str
    hw_version: str
    sw_version: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "manufacturer": self.manufacturer,
            "model": self.model,
            "hwVersion": self.hw_version,
            "swVersion": self.sw_version,
        }


@dataclass
class DeviceDescriptor:
    """A device as announced to the assistant in a SYNC response."""
    id: str
    type: DeviceType
    traits: list[Trait]
    name: str
    default_names: list[str] = field(default_factory=list)
    nicknames: list[str] = field(default_factory=list)
    device_info: Optional[DeviceInfo] = None
    will_report_state: bool = True

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "traits": [t.value for t in self.traits],
            "name": {
                "defaultNames": self.default_names,
                "name": self.name,
                "nicknames": self.nicknames,
            },
            "willReportState": self.will_report_state,
        }
        if self.device_info is not None:
            data["deviceInfo"] = self.device_info.to_dict()
        return data


@dataclass
class RpcInstruction:
    """Result of translating one assistant command."""
    method: RpcMethod
    params: dict[str, Any]
    result_state: dict[str, Any] = field(default_factory=dict)
