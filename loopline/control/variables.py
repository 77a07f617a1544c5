"""Named variable storage and the evaluation context handed to producers."""

import dataclasses
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from ..midi_engine.interfaces import AudioDevice, LoopController
from ..midi_engine.structures import Sequence


class VariableStore:
    """Thread-safe map of variable names to values."""

    def __init__(self):
        self._values: Dict[str, Any] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> Tuple[Any, bool]:
        with self._lock:
            if key in self._values:
                return self._values[key], True
            return None, False

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    def variables(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._values)

    def name_for(self, value: Any) -> str:
        """Name of the variable holding exactly this value, or empty."""
        with self._lock:
            for key, each in self._values.items():
                if each is value:
                    return key
        return ""


class Variable:
    """A reference to a named value, resolved each time it is used.

    Looping a Variable instead of its current value is what allows the loop
    content to be replaced while it plays.
    """

    def __init__(self, store: VariableStore, name: str):
        self.store = store
        self.name = name

    def value(self) -> Any:
        value, _ = self.store.get(self.name)
        return value

    def to_sequence(self) -> Sequence:
        value = self.value()
        if value is None:
            return Sequence()
        if not hasattr(value, "to_sequence"):
            raise TypeError(f"variable {self.name} holds a {type(value).__name__}, not a sequence")
        return value.to_sequence()

    def storex(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"Variable({self.name})"


def value_of(target: Any) -> Any:
    """Unwrap anything with a value() method, e.g. a Variable."""
    if hasattr(target, "value") and callable(target.value):
        return target.value()
    return target


@dataclass(frozen=True)
class Context:
    """Everything a producer needs to evaluate and play."""

    control: Optional[LoopController] = None
    device: Optional[AudioDevice] = None
    variables: VariableStore = field(default_factory=VariableStore)
    environment: Dict[str, str] = field(default_factory=dict)
    condition: Optional[Callable[[], bool]] = None

    def with_condition(self, condition: Callable[[], bool]) -> "Context":
        return dataclasses.replace(self, condition=condition)

    def condition_holds(self) -> bool:
        return self.condition is None or self.condition()
