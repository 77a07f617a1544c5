"""Listen to an input device and evaluate a target for every note played."""

import threading
from typing import Any, Dict, Optional

from ..errors import InputUnavailableError
from ..logging_config import get_logger
from ..midi_engine import clock
from ..midi_engine.interfaces import Sequenceable
from ..midi_engine.structures import Note
from .variables import Context, value_of

logger = get_logger(__name__)


class PlayTrigger:
    """Evaluatable that plays its target now, if the context condition holds."""

    def __init__(self, target: Sequenceable):
        self.target = target

    def evaluate(self, ctx: Context) -> None:
        if not ctx.condition_holds():
            return
        ctx.device.play(self.target, ctx.control.bpm(), clock.now_ns())

    def storex(self) -> str:
        storex = getattr(self.target, "storex", None)
        return f"play({storex() if storex else self.target})"


class Listen:
    """Publishes incoming notes into a variable and triggers a target.

    Each note on gets a fresh change count. The condition handed to the
    target is true only while that same note on is still held, which lets a
    deferred evaluation notice that the key was released or struck again.
    This is an approximation: a release followed by a new strike of the same
    key is only recognised by its different count.
    """

    def __init__(self, ctx: Context, device_id: int, variable_name: str, target: Any):
        """Initialize the listener.

        Args:
            ctx: Context providing variables and the audio device
            device_id: Input device to listen to
            variable_name: Variable receiving the most recent note
            target: Value (or Variable) evaluated on each note on
        """
        self.ctx = ctx
        self.device_id = device_id
        self.variable_name = variable_name
        self.callback = target
        self.is_running = False
        self.notes_on: Dict[int, int] = {}
        self.note_change_count = 0
        self._lock = threading.RLock()

    def inspect(self) -> Dict[str, Any]:
        return {"running": self.is_running}

    def target(self) -> Any:
        return self.callback

    def set_target(self, target: Any) -> None:
        self.callback = target

    def play(self, ctx: Optional[Context] = None, at_ns: Optional[int] = None) -> None:
        """Start listening; a no-op when already listening.

        Raises:
            InputUnavailableError: if the device cannot receive input
        """
        ctx = ctx or self.ctx
        with self._lock:
            if self.is_running:
                return
            if not ctx.device.has_input_capability():
                raise InputUnavailableError("Input is not available for this device")
            self.is_running = True
        ctx.device.listen(self.device_id, self, True)

    def stop(self, ctx: Optional[Context] = None) -> None:
        ctx = ctx or self.ctx
        with self._lock:
            if not self.is_running:
                return
            self.is_running = False
        ctx.device.listen(self.device_id, self, False)

    def note_on(self, note: Note) -> None:
        with self._lock:
            logger.debug(f"listen ON {note}")
            self.note_change_count += 1
            count_check = self.note_change_count
            pitch = note.pitch
            self.notes_on[pitch] = count_check
            self.ctx.variables.put(self.variable_name, note)

        # outside the lock so the condition can be evaluated by the target
        target = value_of(self.callback)
        evaluate = getattr(target, "evaluate", None)
        if evaluate is None:
            return

        def still_held() -> bool:
            return self.is_note_on_count(pitch, count_check)

        evaluate(self.ctx.with_condition(still_held))

    def is_note_on_count(self, pitch: int, count_check: int) -> bool:
        """True if pitch is still on from the note on numbered count_check."""
        with self._lock:
            return self.notes_on.get(pitch) == count_check

    def note_off(self, note: Note) -> None:
        with self._lock:
            logger.debug(f"listen OFF {note}")
            self.notes_on.pop(note.pitch, None)

    def storex(self) -> str:
        storex = getattr(self.callback, "storex", None)
        target = storex() if storex else repr(self.callback)
        return f"listen({self.device_id},{self.variable_name},{target})"
