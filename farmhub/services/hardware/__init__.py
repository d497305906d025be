from farmhub.services.hardware.command_channels import (
    CommandChannel,
    HttpCommandChannel,
    MqttCommandChannel,
    SimulatedCommandChannel,
    build_command_channel,
)
from farmhub.services.hardware.command_dispatcher import CommandDispatcher, CommandResult
from farmhub.services.hardware.device_registry import DeviceRegistry

__all__ = [
    "CommandChannel",
    "CommandDispatcher",
    "CommandResult",
    "DeviceRegistry",
    "HttpCommandChannel",
    "MqttCommandChannel",
    "SimulatedCommandChannel",
    "build_command_channel",
]
