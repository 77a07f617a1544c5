"""Loop control, note listening and variable state."""

from .listen import Listen, PlayTrigger
from .loop import Loop
from .loop_controller import BeatLoopController, PlanEvent
from .variables import Context, Variable, VariableStore, value_of

__all__ = [
    "BeatLoopController",
    "Context",
    "Listen",
    "Loop",
    "PlanEvent",
    "PlayTrigger",
    "Variable",
    "VariableStore",
    "value_of",
]
