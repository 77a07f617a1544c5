"""Output device rendering sequences into timed MIDI writes."""

import math
import threading
from typing import Optional, Set

from rich.console import Console

from ..config import get_config
from ..logging_config import get_logger
from . import clock
from .interfaces import Sequenceable, TimelineEvent
from .pedal import schedule_pedal_change
from .streams import MidiOutputStream
from .structures import NoteGroup, Note, Sequence, format_group, is_pedal_group
from .timeline import Timeline

console = Console()

logger = get_logger(__name__)

NOTE_ON = 0x90
NOTE_OFF = 0x80


def whole_note_duration_ms(bpm: float) -> int:
    """Length of a whole note (four beats) in milliseconds, rounded half up."""
    return int(math.floor(4 * 60 * 1000 / bpm + 0.5))


def group_duration_ns(group: NoteGroup, whole_note_ns: int) -> int:
    """A group lasts as long as its longest note; pedal groups take no time."""
    if not group or is_pedal_group(group):
        return 0
    return int(round(max(note.duration_factor for note in group) * whole_note_ns))


class OutputDevice:
    """One hardware output stream plus the timeline feeding it.

    Every write to the stream goes through a per-device lock so that on/off
    byte triples of concurrently sounding notes never interleave.
    """

    def __init__(
        self,
        device_id: int,
        stream: Optional[MidiOutputStream],
        default_channel: int = 1,
        timeline: Optional[Timeline] = None,
    ):
        """Initialize the output device.

        Args:
            device_id: Registry id of the device
            stream: Open output stream, or None for a disabled device
            default_channel: MIDI channel (1-16) used for notes and pedal
            timeline: Timeline for pedal and producer events
        """
        self.id = device_id
        self.stream = stream
        self.default_channel = default_channel
        self.echo = False
        self.velocity = get_config().midi.note_velocity
        self.timeline = timeline or Timeline(name=f"output-{device_id}")

        self._write_lock = threading.Lock()
        self._renders: Set[threading.Thread] = set()
        self._renders_lock = threading.Lock()
        self._closing = threading.Event()
        logger.debug(
            f"OutputDevice {device_id} created (enabled={stream is not None}, "
            f"channel={default_channel})"
        )

    @property
    def enabled(self) -> bool:
        return self.stream is not None and not self._closing.is_set()

    def start(self) -> None:
        """Start accepting timeline events for this device."""
        self.timeline.start()

    def write_short(self, status: int, data1: int, data2: int) -> None:
        """Write one short message while holding the device lock."""
        with self._write_lock:
            if self.stream is None:
                return
            self.stream.write_short(status, data1, data2)

    def schedule(self, event: TimelineEvent, at_ns: int) -> None:
        if not self.enabled:
            return
        self.timeline.schedule(event, at_ns)

    def play(self, seq: Sequenceable, bpm: float, begin_at_ns: int) -> int:
        """Render all groups of seq starting at begin_at_ns.

        Rendering happens on a background thread; the ending moment is
        computed up front so callers can chain plays back to back.

        Returns:
            begin_at_ns plus the sum of all group durations
        """
        if not self.enabled:
            return begin_at_ns

        sequence = seq.to_sequence()
        whole_note_ns = whole_note_duration_ms(bpm) * clock.NS_PER_MS

        moment_ns = begin_at_ns
        for group in sequence.groups:
            if is_pedal_group(group):
                schedule_pedal_change(self, self.default_channel, moment_ns, group)
            moment_ns += group_duration_ns(group, whole_note_ns)

        render = threading.Thread(
            target=self._render_tracked,
            args=(sequence, whole_note_ns, begin_at_ns),
            name=f"output-{self.id}-render",
            daemon=True,
        )
        with self._renders_lock:
            self._renders.add(render)
        render.start()
        logger.debug(
            f"Device {self.id} playing {len(sequence)} groups at {bpm} BPM, "
            f"ending in {(moment_ns - clock.now_ns()) / clock.NS_PER_MS:.1f}ms"
        )
        return moment_ns

    def _render_tracked(
        self, sequence: Sequence, whole_note_ns: int, begin_at_ns: int
    ) -> None:
        try:
            self._render(sequence, whole_note_ns, begin_at_ns)
        except Exception as e:
            logger.exception(f"Rendering on device {self.id} failed: {e}")
        finally:
            with self._renders_lock:
                self._renders.discard(threading.current_thread())

    def _render(self, sequence: Sequence, whole_note_ns: int, begin_at_ns: int) -> None:
        group_start_ns = begin_at_ns
        for group in sequence.groups:
            if is_pedal_group(group) or not group:
                continue
            if not clock.wait_until(group_start_ns, self._closing):
                return
            if self.echo:
                console.print(f"[dim blue]{format_group(group)}[/dim blue]", end=" ")

            # one thread per note; the next group starts after all have finished
            notes = [
                threading.Thread(
                    target=self.play_note,
                    args=(note, whole_note_ns),
                    name=f"output-{self.id}-note",
                    daemon=True,
                )
                for note in group
            ]
            for each in notes:
                each.start()
            for each in notes:
                each.join()
            group_start_ns += group_duration_ns(group, whole_note_ns)
        if self.echo:
            console.print()

    def play_note(self, note: Note, whole_note_ns: int) -> None:
        """Sound one note for its duration; a rest only takes up the time."""
        duration_ns = int(round(note.duration_factor * whole_note_ns))
        if note.pitch is None:
            clock.sleep_ns(duration_ns, self._closing)
            return
        channel_bits = self.default_channel - 1
        self.write_short(NOTE_ON | channel_bits, note.pitch, self.velocity)
        clock.sleep_ns(duration_ns, self._closing)
        # always release, also when interrupted by close()
        self.write_short(NOTE_OFF | channel_bits, note.pitch, self.velocity)

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait for all running renders to finish.

        Returns:
            True if no render is active anymore
        """
        deadline = None if timeout is None else clock.now_ns() + int(
            timeout * clock.NS_PER_SECOND
        )
        while True:
            with self._renders_lock:
                active = list(self._renders)
            if not active:
                return True
            remaining = None
            if deadline is not None:
                remaining = (deadline - clock.now_ns()) / clock.NS_PER_SECOND
                if remaining <= 0:
                    return False
            active[0].join(remaining)

    def all_notes_off(self) -> None:
        """Send note off for every note on the default channel."""
        if self.stream is None:
            logger.warning(f"Cannot send all notes off: device {self.id} is disabled")
            return
        status = NOTE_OFF | (self.default_channel - 1)
        for pitch in range(128):
            self.write_short(status, pitch, 0)
        logger.debug(f"Sent 128 note_off messages on channel {self.default_channel}")

    def reset(self) -> None:
        """Drop pending timeline events and silence the channel."""
        logger.debug(f"Resetting output device {self.id}")
        self.timeline.reset()
        self.all_notes_off()

    def close(self) -> None:
        """Stop rendering, stop the timeline and release the stream."""
        if self._closing.is_set():
            return
        logger.debug(f"Closing output device {self.id}")
        self._closing.set()
        if not self.wait_until_idle(timeout=1.0):
            logger.warning(f"Device {self.id} closed with renders still active")
        self.timeline.stop()
        with self._write_lock:
            stream, self.stream = self.stream, None
        if stream is not None:
            stream.close()
        logger.info(f"Output device {self.id} closed")
