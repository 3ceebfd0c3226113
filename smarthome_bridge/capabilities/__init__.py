"""
Capability translation for the smart home bridge.

This module provides:
- Protocol vocabulary (intents, device types, traits, commands)
- Translation between declared capabilities and the assistant protocol
- Gateways to the device-management platform
"""

from .protocols import (
    AssistantCommand,
    DeviceDescriptor,
    DeviceType,
    ErrorCode,
    Intent,
    RpcInstruction,
    RpcMethod,
    Trait,
)
from .translator import (
    CommandParameterError,
    command_to_rpc,
    device_to_descriptor,
    telemetry_to_state,
)

__all__ = [
    # Protocols
    "AssistantCommand",
    "DeviceDescriptor",
    "DeviceType",
    "ErrorCode",
    "Intent",
    "RpcInstruction",
    "RpcMethod",
    "Trait",
    # Translator
    "CommandParameterError",
    "command_to_rpc",
    "device_to_descriptor",
    "telemetry_to_state",
]
