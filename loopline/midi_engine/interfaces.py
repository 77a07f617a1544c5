"""Protocols for the collaborators of the playback and loop engine."""

from typing import TYPE_CHECKING, Any, Callable, List, Optional, Protocol, Tuple

from .structures import Note, Sequence

if TYPE_CHECKING:
    from .commands import Message
    from .timeline import Timeline


class Sequenceable(Protocol):
    """Anything that can be resolved into a playable Sequence."""

    def to_sequence(self) -> Sequence:
        ...


class Evaluatable(Protocol):
    """A value that can be evaluated in a context, e.g. a deferred play."""

    def evaluate(self, ctx: Any) -> None:
        ...


class TimelineEvent(Protocol):
    """An event that a Timeline fires once its moment has arrived."""

    def handle(self, timeline: "Timeline", when_ns: int) -> None:
        """Handle the event.

        Args:
            timeline: The timeline firing the event
            when_ns: Actual firing time (clock.now_ns() based)
        """
        ...


class NoteListener(Protocol):
    """Receives notes captured from an input device."""

    def note_on(self, note: Note) -> None:
        ...

    def note_off(self, note: Note) -> None:
        ...


class AudioDevice(Protocol):
    """Device-level operations used by the loop controller and producers."""

    def command(self, args: List[str]) -> Optional["Message"]:
        """Run a device specific command."""
        ...

    def play(self, seq: Sequenceable, bpm: float, begin_at_ns: int) -> int:
        """Render all notes of seq starting at begin_at_ns.

        Returns:
            The moment the last group ends
        """
        ...

    def schedule(self, event: TimelineEvent, begin_at_ns: int) -> None:
        """Put an event on the timeline."""
        ...

    def has_input_capability(self) -> bool:
        ...

    def listen(self, device_id: int, who: NoteListener, start: bool) -> None:
        ...

    def set_echo_notes(self, on: bool) -> None:
        ...

    def reset(self) -> None:
        ...

    def close(self) -> None:
        ...


class LoopController(Protocol):
    """Beat and bar clock coordinating running loops."""

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...

    def reset(self) -> None:
        ...

    def set_bpm(self, bpm: float) -> None:
        ...

    def bpm(self) -> float:
        ...

    def set_biab(self, biab: int) -> None:
        ...

    def biab(self) -> int:
        ...

    def start_loop(self, loop: Any) -> None:
        ...

    def end_loop(self, loop: Any) -> None:
        ...

    def beats_and_bars(self) -> Tuple[int, int]:
        ...

    def plan(self, bars: int, seq: Sequenceable) -> None:
        ...

    def setting_notifier(self, handler: Callable[["LoopController"], None]) -> None:
        ...
