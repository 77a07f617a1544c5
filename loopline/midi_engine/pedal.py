"""Sustain pedal changes, written through the timeline instead of inline."""

from typing import TYPE_CHECKING

from ..logging_config import get_logger
from .structures import NoteGroup, PedalMarker
from .timeline import Timeline

if TYPE_CHECKING:
    from .output_device import OutputDevice

logger = get_logger(__name__)

CONTROL_CHANGE = 0xB0
SUSTAIN_PEDAL = 64  # MIDI CC 64, damper pedal


class PedalEvent:
    """Timeline event writing a sustain pedal Control-Change."""

    def __init__(self, going_down: bool, channel: int, device: "OutputDevice"):
        self.going_down = going_down
        self.channel = channel
        self.device = device

    @property
    def status(self) -> int:
        return CONTROL_CHANGE | (self.channel - 1)

    @property
    def value(self) -> int:
        # 0 to 63 = off, 64 to 127 = on
        return 127 if self.going_down else 0

    def handle(self, timeline: Timeline, when_ns: int) -> None:
        self.device.write_short(self.status, SUSTAIN_PEDAL, self.value)
        logger.debug(
            f"ch={self.channel} bytes=[{self.status:08b}({self.status}),"
            f"{SUSTAIN_PEDAL:08b}({SUSTAIN_PEDAL}),{self.value:08b}({self.value})] "
            f"sustain={'down' if self.going_down else 'up'}"
        )

    def __repr__(self) -> str:
        return f"PedalEvent({'down' if self.going_down else 'up'}, ch={self.channel})"


def schedule_pedal_change(
    device: "OutputDevice", channel: int, moment_ns: int, group: NoteGroup
) -> bool:
    """Put the pedal action of a single-note group on the device timeline.

    Up-then-down schedules two events at the same moment; the timeline's
    submission order guarantees the release is written before the press.

    Returns:
        True if the group was a pedal change and has been scheduled
    """
    if len(group) != 1:
        return False
    marker = group[0].pedal
    if marker is PedalMarker.UP:
        device.schedule(PedalEvent(False, channel, device), moment_ns)
    elif marker is PedalMarker.DOWN:
        device.schedule(PedalEvent(True, channel, device), moment_ns)
    elif marker is PedalMarker.UP_DOWN:
        device.schedule(PedalEvent(False, channel, device), moment_ns)
        device.schedule(PedalEvent(True, channel, device), moment_ns)
    else:
        return False
    return True
