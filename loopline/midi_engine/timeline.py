"""Timeline module firing time-stamped events from a background thread."""

import heapq
import itertools
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ..config import TimingConfig, get_config
from ..logging_config import get_logger
from . import clock
from .interfaces import TimelineEvent

logger = get_logger(__name__)


@dataclass(order=True)
class PendingEvent:
    """An event waiting on the timeline; equal times fire in submission order."""

    when_ns: int
    submission_no: int
    event: TimelineEvent = field(compare=False)


class ActionEvent:
    """Timeline event that calls a function with the firing time."""

    def __init__(self, action: Callable[[int], None], label: str = "action"):
        self.action = action
        self.label = label

    def handle(self, timeline: "Timeline", when_ns: int) -> None:
        self.action(when_ns)

    def __repr__(self) -> str:
        return f"ActionEvent({self.label})"


class Timeline:
    """Orders pending events by time and fires each exactly once.

    Events fire on the dispatch thread one at a time, so two events scheduled
    for the same moment are handled in the order they were submitted.
    Handlers are expected to return quickly; anything long running should be
    handed off to its own thread.
    """

    # Below this distance the dispatcher stops blocking on the condition and
    # switches to a precise wait.
    PRECISE_WAIT_NS = 2_000_000

    def __init__(self, name: str = "timeline", timing: Optional[TimingConfig] = None):
        """Initialize the timeline.

        Args:
            name: Used for the dispatch thread name and log messages
            timing: Jitter thresholds; defaults to the global configuration
        """
        self.name = name
        timing = timing or get_config().timing
        self.GOOD_JITTER_NS = timing.good_jitter_us * 1_000
        self.WARNING_JITTER_NS = timing.warning_jitter_us * 1_000
        self.CRITICAL_JITTER_NS = timing.critical_jitter_us * 1_000

        self._events: List[PendingEvent] = []  # heap queue of events
        self._submissions = itertools.count()
        self._lock = threading.Lock()
        self._wakeup = threading.Condition(self._lock)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._jitter_stats = {"count": 0, "total_abs_jitter": 0, "max_jitter": 0}
        logger.debug(f"Timeline {name} initialized")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def schedule(self, event: TimelineEvent, at_ns: int) -> None:
        """Enqueue an event for firing at or after at_ns; never blocks on timing."""
        with self._wakeup:
            pending = PendingEvent(at_ns, next(self._submissions), event)
            heapq.heappush(self._events, pending)
            self._wakeup.notify()
        logger.debug(
            f"[{self.name}] scheduled {event!r} #{pending.submission_no} "
            f"in {(at_ns - clock.now_ns()) / clock.NS_PER_MS:.3f}ms"
        )

    def pending_count(self) -> int:
        with self._lock:
            return len(self._events)

    def start(self) -> None:
        """Start the dispatch thread."""
        if self.is_running:
            logger.debug(f"[{self.name}] start() called but already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._process_events, name=f"{self.name}-dispatch", daemon=True
        )
        self._thread.start()
        logger.info(f"Timeline {self.name} started")

    def stop(self) -> None:
        """Stop dispatching and drop every pending event."""
        if self._thread is None:
            return
        self._stop_event.set()
        with self._wakeup:
            self._wakeup.notify_all()
        if threading.current_thread() is not self._thread:
            self._thread.join()
        self._thread = None

        with self._lock:
            events_cleared = len(self._events)
            self._events = []
        logger.info(
            f"Timeline {self.name} stopped, cleared {events_cleared} pending events"
        )

    def reset(self) -> None:
        """Tear down and restart; pending events are discarded."""
        was_running = self.is_running
        self.stop()
        if was_running:
            self.start()

    def _process_events(self) -> None:
        logger.debug(f"[{self.name}] dispatch thread running")
        events_processed = 0
        while not self._stop_event.is_set():
            pending = self._next_ready()
            if pending is None:
                break
            self._fire(pending)
            events_processed += 1
        logger.debug(
            f"[{self.name}] dispatch thread stopped after {events_processed} events"
        )

    def _next_ready(self) -> Optional[PendingEvent]:
        """Block until the earliest event is due, then pop it."""
        while not self._stop_event.is_set():
            with self._wakeup:
                if not self._events:
                    self._wakeup.wait()
                    continue
                head = self._events[0]
                remaining_ns = head.when_ns - clock.now_ns()
                if remaining_ns <= 0:
                    return heapq.heappop(self._events)
                if remaining_ns > self.PRECISE_WAIT_NS:
                    # A new, earlier event wakes us through notify()
                    self._wakeup.wait(
                        timeout=(remaining_ns - self.PRECISE_WAIT_NS // 2)
                        / clock.NS_PER_SECOND
                    )
                    continue
                target_ns = head.when_ns
            clock.wait_until(target_ns, self._stop_event)
        return None

    def _fire(self, pending: PendingEvent) -> None:
        now_ns = clock.now_ns()
        jitter = now_ns - pending.when_ns
        self._update_jitter_stats(abs(jitter))
        self._log_jitter(pending, jitter)
        try:
            pending.event.handle(self, now_ns)
        except Exception as e:
            logger.exception(
                f"[{self.name}] error handling event #{pending.submission_no} "
                f"{pending.event!r}: {e}"
            )

    def _update_jitter_stats(self, abs_jitter: int) -> None:
        self._jitter_stats["count"] += 1
        self._jitter_stats["total_abs_jitter"] += abs_jitter
        if abs_jitter > self._jitter_stats["max_jitter"]:
            self._jitter_stats["max_jitter"] = abs_jitter

    def _log_jitter(self, pending: PendingEvent, jitter: int) -> None:
        """Log jitter information based on severity."""
        abs_jitter = abs(jitter)
        if abs_jitter > self.CRITICAL_JITTER_NS:
            logger.error(
                f"[{self.name}] CRITICAL timing jitter of "
                f"{jitter / 1_000_000:.3f}ms for event #{pending.submission_no}"
            )
        elif abs_jitter > self.WARNING_JITTER_NS:
            logger.warning(
                f"[{self.name}] noticeable timing jitter of "
                f"{jitter / 1_000_000:.3f}ms for event #{pending.submission_no}"
            )
        elif abs_jitter > self.GOOD_JITTER_NS:
            logger.info(
                f"[{self.name}] acceptable timing jitter of "
                f"{jitter / 1_000_000:.3f}ms for event #{pending.submission_no}"
            )
        else:
            logger.debug(
                f"[{self.name}] event #{pending.submission_no} fired with "
                f"jitter {jitter / 1_000:.1f}us"
            )

    def get_jitter_stats(self) -> Dict:
        """Get timing jitter statistics.

        Returns:
            Dictionary containing jitter statistics
        """
        if self._jitter_stats["count"] == 0:
            return {"count": 0, "avg_jitter_us": 0, "max_jitter_us": 0}

        avg_jitter = (
            self._jitter_stats["total_abs_jitter"] / self._jitter_stats["count"]
        )
        return {
            "count": self._jitter_stats["count"],
            "avg_jitter_us": avg_jitter / 1_000,
            "max_jitter_us": self._jitter_stats["max_jitter"] / 1_000,
        }
