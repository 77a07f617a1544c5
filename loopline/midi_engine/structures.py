"""Data structures for notes, note groups and sequences."""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]


class PedalMarker(Enum):
    """Sustain pedal action carried by a note."""

    NONE = "none"
    DOWN = "down"
    UP = "up"
    UP_DOWN = "updown"  # Release then press again at the same moment


@dataclass(frozen=True)
class Note:
    """Represents a single note, rest or pedal action."""

    pitch: Optional[int] = None  # MIDI note number (0-127), None for a rest
    duration_factor: float = 0.25  # Fraction of a whole note
    velocity: int = 100
    pedal: PedalMarker = PedalMarker.NONE

    def __post_init__(self):
        """Validate note parameters."""
        if self.pitch is not None and not (0 <= self.pitch <= 127):
            raise ValueError(f"Pitch must be 0-127, got {self.pitch}")
        if not (0 <= self.velocity <= 127):
            raise ValueError(f"Velocity must be 0-127, got {self.velocity}")
        if self.duration_factor < 0:
            raise ValueError(
                f"Duration factor must not be negative, got {self.duration_factor}"
            )

    @classmethod
    def rest(cls, duration_factor: float = 0.25) -> "Note":
        return cls(pitch=None, duration_factor=duration_factor)

    @classmethod
    def pedal_down(cls) -> "Note":
        return cls(duration_factor=0, pedal=PedalMarker.DOWN)

    @classmethod
    def pedal_up(cls) -> "Note":
        return cls(duration_factor=0, pedal=PedalMarker.UP)

    @classmethod
    def pedal_up_down(cls) -> "Note":
        return cls(duration_factor=0, pedal=PedalMarker.UP_DOWN)

    @property
    def is_pedal(self) -> bool:
        return self.pedal is not PedalMarker.NONE

    @property
    def is_rest(self) -> bool:
        return self.pitch is None and not self.is_pedal

    @property
    def name(self) -> str:
        """Note name with octave, e.g. C4 for MIDI 60."""
        if self.is_pedal:
            return {
                PedalMarker.DOWN: "_",
                PedalMarker.UP: "^",
                PedalMarker.UP_DOWN: "^_",
            }[self.pedal]
        if self.pitch is None:
            return "="
        return f"{NOTE_NAMES[self.pitch % 12]}{self.pitch // 12 - 1}"

    def __str__(self) -> str:
        if self.is_pedal or self.duration_factor == 0.25:
            return self.name
        return f"{self.name}/{self.duration_factor:g}"

    def to_sequence(self) -> "Sequence":
        return Sequence([[self]])


NoteGroup = Tuple[Note, ...]


def format_group(group: NoteGroup) -> str:
    """Render a group the way echo prints it: single notes bare, chords in parens."""
    if len(group) == 1:
        return str(group[0])
    return "(" + " ".join(str(n) for n in group) + ")"


def is_pedal_group(group: NoteGroup) -> bool:
    """A pedal group holds exactly one note carrying a pedal marker."""
    return len(group) == 1 and group[0].is_pedal


@dataclass(frozen=True)
class Sequence:
    """Ordered note groups, in playback order."""

    groups: Tuple[NoteGroup, ...] = ()

    def __post_init__(self):
        """Normalise nested lists into tuples so the value stays immutable."""
        object.__setattr__(
            self, "groups", tuple(tuple(group) for group in self.groups)
        )

    @classmethod
    def of(cls, *notes: Note) -> "Sequence":
        """Create a sequence with one group per note."""
        return cls([[note] for note in notes])

    def note_length(self) -> float:
        """Total length in whole notes; each group lasts as long as its longest note."""
        total = 0.0
        for group in self.groups:
            if is_pedal_group(group) or not group:
                continue
            total += max(note.duration_factor for note in group)
        return total

    def notes(self) -> List[Note]:
        return [note for group in self.groups for note in group]

    def to_sequence(self) -> "Sequence":
        return self

    def __len__(self) -> int:
        return len(self.groups)

    def __str__(self) -> str:
        return " ".join(format_group(group) for group in self.groups)
