"""Timeline scheduling, MIDI devices and note rendering."""

from .commands import Message, MessageLevel
from .input_device import InputDevice, InputListener
from .interfaces import (
    AudioDevice,
    Evaluatable,
    LoopController,
    NoteListener,
    Sequenceable,
    TimelineEvent,
)
from .output_device import OutputDevice, group_duration_ns, whole_note_duration_ms
from .pedal import PedalEvent
from .registry import DeviceRegistry
from .streams import DeviceInfo, MidiEvent, MidiStreamRegistry
from .structures import Note, NoteGroup, PedalMarker, Sequence
from .timeline import ActionEvent, Timeline

__all__ = [
    "ActionEvent",
    "AudioDevice",
    "DeviceInfo",
    "DeviceRegistry",
    "Evaluatable",
    "InputDevice",
    "InputListener",
    "LoopController",
    "Message",
    "MessageLevel",
    "MidiEvent",
    "MidiStreamRegistry",
    "Note",
    "NoteGroup",
    "NoteListener",
    "OutputDevice",
    "PedalEvent",
    "PedalMarker",
    "Sequence",
    "Sequenceable",
    "Timeline",
    "TimelineEvent",
    "group_duration_ns",
    "whole_note_duration_ms",
]
