"""Exceptions raised by the loopline engine."""

from typing import Optional


class LooplineError(Exception):
    """Base class for all loopline errors."""


class DeviceError(LooplineError):
    """A hardware device could not be opened or accessed.

    Carries the failing operation and device id so callers can report the
    failure as a warning without inspecting the underlying driver error.
    """

    def __init__(self, operation: str, device_id: int, cause: Optional[object] = None):
        self.operation = operation
        self.device_id = device_id
        self.cause = cause
        message = f"{operation} failed for device id={device_id}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class InputUnavailableError(LooplineError):
    """The audio device has no input capability."""
