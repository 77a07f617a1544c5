"""Pydantic models and result messages for device access commands."""

from dataclasses import dataclass
from enum import Enum
from typing import List, Literal, Union

from pydantic import BaseModel, Field, conint
from rich.console import Console
from rich.markup import escape

console = Console()


class MessageLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Message:
    """Result of a device command, shown to the user."""

    level: MessageLevel
    text: str

    @classmethod
    def info(cls, text: str) -> "Message":
        return cls(MessageLevel.INFO, text)

    @classmethod
    def warning(cls, text: str) -> "Message":
        return cls(MessageLevel.WARNING, text)

    @classmethod
    def error(cls, text: str) -> "Message":
        return cls(MessageLevel.ERROR, text)

    def print(self) -> None:
        style = {
            MessageLevel.INFO: "green",
            MessageLevel.WARNING: "yellow",
            MessageLevel.ERROR: "red",
        }[self.level]
        console.print(f"[{style}]{escape(self.text)}[/{style}]")


class EchoCommand(BaseModel):
    """Toggle printing of the notes being sent."""

    type: Literal["echo"]


class InputDeviceCommand(BaseModel):
    """Change the default input device."""

    type: Literal["in"]
    device_id: conint(ge=0) = Field(..., description="MIDI input device id")


class OutputDeviceCommand(BaseModel):
    """Change the default output device."""

    type: Literal["out"]
    device_id: conint(ge=0) = Field(..., description="MIDI output device id")


class ChannelCommand(BaseModel):
    """Change the default output channel."""

    type: Literal["channel"]
    channel: conint(ge=1, le=16) = Field(..., description="MIDI channel (1-16)")


DeviceCommand = Union[
    EchoCommand, InputDeviceCommand, OutputDeviceCommand, ChannelCommand
]


class UnknownCommandError(ValueError):
    pass


class MissingArgumentError(ValueError):
    pass


def parse_device_command(args: List[str]) -> DeviceCommand:
    """Turn command words into a validated command model.

    Raises:
        UnknownCommandError: for an unknown command word
        MissingArgumentError: when the argument count is wrong
        pydantic.ValidationError: when the argument is not valid
    """
    name = args[0]
    if name == "echo":
        return EchoCommand(type="echo")
    if name in ("in", "out"):
        if len(args) != 2:
            raise MissingArgumentError("missing device number")
        model = InputDeviceCommand if name == "in" else OutputDeviceCommand
        return model(type=name, device_id=args[1])
    if name == "channel":
        if len(args) != 2:
            raise MissingArgumentError("missing channel number")
        return ChannelCommand(type="channel", channel=args[1])
    raise UnknownCommandError(f"unknown device access command: {name}")
