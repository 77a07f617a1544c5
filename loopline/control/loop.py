"""Loop wrapping a sequenceable that is re-rendered every bar while running."""

import threading
from typing import Any, Dict, Optional

from ..midi_engine import clock
from ..midi_engine.interfaces import Sequenceable
from ..midi_engine.structures import Sequence


class Loop:
    """A musical object replayed bar after bar by the loop controller.

    The target is resolved again before every iteration, so a loop over a
    Variable picks up a reassigned value at the next bar boundary.
    """

    def __init__(self, target: Sequenceable, name: Optional[str] = None):
        self.target = target
        self.name = name
        self.started_at_ns: Optional[int] = None
        self.next_play_at_ns: Optional[int] = None
        self.iterations = 0
        # bumped on every start; plans made for an earlier run are stale
        self.generation = 0
        self._running = False
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def mark_started(self) -> bool:
        """Move to running; returns False if it already was."""
        with self._lock:
            if self._running:
                return False
            self._running = True
            self.generation += 1
            self.started_at_ns = clock.now_ns()
            self.iterations = 0
            return True

    def is_current(self, generation: int) -> bool:
        """True while running in the run that has this generation."""
        with self._lock:
            return self._running and self.generation == generation

    def mark_stopped(self) -> bool:
        """Move to stopped; returns False if it already was."""
        with self._lock:
            if not self._running:
                return False
            self._running = False
            self.next_play_at_ns = None
            return True

    def to_sequence(self) -> Sequence:
        return self.target.to_sequence()

    def set_target(self, target: Sequenceable) -> None:
        self.target = target

    def inspect(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "iterations": self.iterations,
            "target": getattr(self.target, "name", repr(self.target)),
        }

    def storex(self) -> str:
        storex = getattr(self.target, "storex", None)
        return f"loop({storex() if storex else self.target})"

    def __repr__(self) -> str:
        return f"Loop({self.name or self.target!r}, running={self._running})"
