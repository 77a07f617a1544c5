"""Beat and bar clock that plans running loops ahead of playback."""

import math
import threading
from typing import Callable, List, Optional, Tuple

from ..config import get_config
from ..logging_config import get_logger
from ..midi_engine import clock
from ..midi_engine.interfaces import AudioDevice, Sequenceable
from ..midi_engine.structures import Sequence
from ..midi_engine.timeline import Timeline
from .loop import Loop

logger = get_logger(__name__)

# Play endings this close to a bar boundary count as being on it
BAR_TOLERANCE_NS = 1_000_000


class PlanEvent:
    """Fires shortly before a bar boundary to render seq at that boundary."""

    def __init__(
        self,
        controller: "BeatLoopController",
        seq: Sequenceable,
        at_ns: int,
        generation: Optional[int] = None,
    ):
        self.controller = controller
        self.seq = seq
        self.at_ns = at_ns
        self.generation = generation

    def handle(self, timeline: Timeline, when_ns: int) -> None:
        self.controller.render_planned(self)

    def __repr__(self) -> str:
        return f"PlanEvent({self.seq!r})"


class BeatLoopController:
    """Keeps BPM, beats-in-a-bar and the set of running loops.

    The playhead is derived from the wall clock since the anchor. A tempo or
    meter change re-anchors the playhead so it only affects how fast the
    position advances from then on; already planned bars are not moved.
    """

    def __init__(
        self,
        device: AudioDevice,
        bpm: Optional[float] = None,
        biab: Optional[int] = None,
        lookahead_ms: Optional[float] = None,
    ):
        """Initialize the controller.

        Args:
            device: Device that renders planned sequences
            bpm: Initial tempo; defaults to configuration
            biab: Initial beats in a bar; defaults to configuration
            lookahead_ms: How long before a bar its content is rendered
        """
        midi_config = get_config().midi
        self.device = device
        self._bpm = bpm if bpm is not None else midi_config.default_bpm
        self._biab = biab if biab is not None else midi_config.default_biab
        self.lookahead_ns = clock.ms_to_ns(
            lookahead_ms if lookahead_ms is not None else midi_config.loop_lookahead_ms
        )

        self._lock = threading.RLock()
        self._running = False
        self._anchor_ns = 0
        self._beats_at_anchor = 0.0
        self._bars_at_anchor = 0.0
        self._loops: List[Loop] = []
        self._notifier: Optional[Callable[["BeatLoopController"], None]] = None
        self.timeline = Timeline(name="loop-control")
        logger.debug(f"BeatLoopController initialized at {self._bpm} BPM, {self._biab} BIAB")

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            self._anchor_ns = clock.now_ns()
            self._beats_at_anchor = 0.0
            self._bars_at_anchor = 0.0
            self.timeline.start()
        logger.info(f"Beat clock started at {self._bpm} BPM")

    def stop(self) -> None:
        """End all loops and stop planning."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            loops, self._loops = self._loops, []
        for each in loops:
            each.mark_stopped()
        # outside the lock: the dispatch thread may be waiting for it
        self.timeline.stop()
        logger.info(f"Beat clock stopped, ended {len(loops)} loops")

    def reset(self) -> None:
        self.stop()
        midi_config = get_config().midi
        with self._lock:
            self._bpm = midi_config.default_bpm
            self._biab = midi_config.default_biab
            self._beats_at_anchor = 0.0
            self._bars_at_anchor = 0.0

    def set_bpm(self, bpm: float) -> None:
        if bpm <= 0:
            logger.debug(f"Ignoring non-positive BPM {bpm}")
            return
        with self._lock:
            self._reanchor()
            self._bpm = bpm
        logger.info(f"BPM set to {bpm}")
        self._notify()

    def bpm(self) -> float:
        with self._lock:
            return self._bpm

    def set_biab(self, biab: int) -> None:
        # range checks belong to the caller; zero would make bars undefined
        if biab <= 0:
            logger.debug(f"Ignoring non-positive beats-in-a-bar {biab}")
            return
        with self._lock:
            self._reanchor()
            self._biab = biab
        logger.info(f"Beats in a bar set to {biab}")
        self._notify()

    def biab(self) -> int:
        with self._lock:
            return self._biab

    def setting_notifier(self, handler: Callable[["BeatLoopController"], None]) -> None:
        self._notifier = handler

    def _notify(self) -> None:
        handler = self._notifier
        if handler is None:
            return
        threading.Thread(
            target=self._call_notifier, args=(handler,), name="setting-notifier", daemon=True
        ).start()

    def _call_notifier(self, handler: Callable[["BeatLoopController"], None]) -> None:
        try:
            handler(self)
        except Exception as e:
            logger.exception(f"Setting notifier failed: {e}")

    def _beat_ns(self) -> float:
        return 60 * clock.NS_PER_SECOND / self._bpm

    def _position(self, at_ns: int) -> Tuple[float, float]:
        """Fractional (beats, bars) at a moment; caller holds the lock."""
        if not self._running:
            return self._beats_at_anchor, self._bars_at_anchor
        delta_beats = (at_ns - self._anchor_ns) / self._beat_ns()
        return (
            self._beats_at_anchor + delta_beats,
            self._bars_at_anchor + delta_beats / self._biab,
        )

    def _reanchor(self) -> None:
        if not self._running:
            return
        now_ns = clock.now_ns()
        self._beats_at_anchor, self._bars_at_anchor = self._position(now_ns)
        self._anchor_ns = now_ns

    def _bar_start_ns(self, bar: float) -> int:
        beats_from_anchor = (bar - self._bars_at_anchor) * self._biab
        return self._anchor_ns + int(round(beats_from_anchor * self._beat_ns()))

    def beats_and_bars(self) -> Tuple[int, int]:
        with self._lock:
            beats, bars = self._position(clock.now_ns())
        return int(beats), int(bars)

    def next_bar_ns(self, bars: int = 0) -> int:
        """Moment at which the next bar, plus `bars` further bars, begins."""
        with self._lock:
            _, current = self._position(clock.now_ns())
            return self._bar_start_ns(math.floor(current) + 1 + bars)

    def align_to_bar(self, at_ns: int) -> int:
        """Round a moment up to the closest bar boundary."""
        with self._lock:
            _, bar = self._position(at_ns)
            nearest = round(bar)
            if abs(self._bar_start_ns(nearest) - at_ns) <= BAR_TOLERANCE_NS:
                return self._bar_start_ns(nearest)
            return self._bar_start_ns(math.ceil(bar))

    def bar_duration_ns(self) -> int:
        with self._lock:
            return int(round(self._biab * self._beat_ns()))

    def loops(self) -> List[Loop]:
        with self._lock:
            return list(self._loops)

    def start_loop(self, loop: Loop) -> None:
        """Begin a loop at the next bar; ignored when it already runs."""
        self.start()
        if not loop.mark_started():
            return
        with self._lock:
            self._loops.append(loop)
        logger.info(f"Loop started: {loop!r}")
        self.plan(0, loop)

    def end_loop(self, loop: Loop) -> None:
        """Stop planning a loop; a bar already rendered still plays out."""
        if not loop.mark_stopped():
            return
        with self._lock:
            if loop in self._loops:
                self._loops.remove(loop)
        logger.info(f"Loop ended: {loop!r}")

    def plan(self, bars: int, seq: Sequenceable) -> None:
        """Render seq at the start of the bar `bars` bars after the next one."""
        self.start()
        self._plan_at(seq, self.next_bar_ns(bars))

    def _plan_at(
        self, seq: Sequenceable, at_ns: int, generation: Optional[int] = None
    ) -> None:
        if isinstance(seq, Loop):
            seq.next_play_at_ns = at_ns
            if generation is None:
                generation = seq.generation
        self.timeline.schedule(
            PlanEvent(self, seq, at_ns, generation), at_ns - self.lookahead_ns
        )

    def render_planned(self, event: PlanEvent) -> None:
        """Play a planned span and, for a running loop, plan the next one."""
        seq = event.seq
        loop = seq if isinstance(seq, Loop) else None
        if loop is not None and not loop.is_current(event.generation):
            # ended, or restarted with a plan of its own
            return

        # resolve now so a replaced variable is heard from this bar on
        try:
            sequence: Sequence = seq.to_sequence()
        except Exception as e:
            logger.warning(f"Cannot evaluate {seq!r} for the next bar: {e}")
            sequence = Sequence()

        ending_ns = event.at_ns
        if len(sequence) > 0:
            ending_ns = self.device.play(sequence, self.bpm(), event.at_ns)

        if loop is None:
            return
        loop.iterations += 1
        if not loop.is_current(event.generation):
            return
        next_ns = self.align_to_bar(ending_ns)
        if next_ns <= event.at_ns:
            # nothing to play; try again one bar later
            next_ns = self.align_to_bar(event.at_ns + self.bar_duration_ns())
        logger.debug(
            f"{loop!r} iteration {loop.iterations} planned, next in "
            f"{(next_ns - clock.now_ns()) / clock.NS_PER_MS:.1f}ms"
        )
        self._plan_at(loop, next_ns, event.generation)
