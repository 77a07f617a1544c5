"""Shared fakes for device, stream and clock dependent tests."""

import threading
import time
from typing import List, Optional, Tuple

import pytest

from loopline.config import get_config
from loopline.errors import DeviceError
from loopline.midi_engine import clock
from loopline.midi_engine.streams import DeviceInfo, MidiEvent


class FakeOutputStream:
    """Records every short message together with the moment it was written."""

    def __init__(self):
        self.messages: List[Tuple[int, int, int, int]] = []
        self.closed = False
        self._lock = threading.Lock()

    def write_short(self, status: int, data1: int, data2: int) -> None:
        with self._lock:
            self.messages.append((status, data1, data2, clock.now_ns()))

    def bytes_written(self) -> List[Tuple[int, int, int]]:
        with self._lock:
            return [(s, d1, d2) for s, d1, d2, _ in self.messages]

    def close(self) -> None:
        self.closed = True


class OverlapDetectingStream:
    """Output stream without a lock of its own that notes overlapping writes."""

    def __init__(self, write_delay: float = 0.002):
        self.write_delay = write_delay
        self.in_flight = 0
        self.max_in_flight = 0
        self.writes = 0
        self.closed = False

    def write_short(self, status: int, data1: int, data2: int) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        # stay inside long enough for a concurrent writer to collide
        time.sleep(self.write_delay)
        self.writes += 1
        self.in_flight -= 1

    def close(self) -> None:
        self.closed = True


class FakeInputStream:
    """Input stream returning injected events on the next read."""

    def __init__(self):
        self.pending: List[MidiEvent] = []
        self.closed = False
        self._lock = threading.Lock()

    def inject(self, status: int, data1: int, data2: int) -> None:
        with self._lock:
            self.pending.append(MidiEvent(status, data1, data2, clock.now_ns()))

    def read(self) -> List[MidiEvent]:
        with self._lock:
            events, self.pending = self.pending, []
        return events

    def close(self) -> None:
        self.closed = True


class FakeStreamRegistry:
    """Stream opener with one input (id 0) and one output (id 1)."""

    def __init__(self, with_input: bool = True, with_output: bool = True, open_delay: float = 0.0):
        self.with_input = with_input
        self.with_output = with_output
        self.open_delay = open_delay
        self.output_opens = 0
        self.input_opens = 0
        self.outputs = {}
        self.inputs = {}
        self.closed = False

    def devices(self) -> List[DeviceInfo]:
        devices = []
        if self.with_input:
            devices.append(DeviceInfo(0, "Fake In", "fake", True, 0 in self.inputs))
        if self.with_output:
            devices.append(DeviceInfo(1, "Fake Out", "fake", False, 1 in self.outputs))
        return devices

    def info(self, device_id: int) -> Optional[DeviceInfo]:
        for each in self.devices():
            if each.id == device_id:
                return each
        return None

    def default_output_id(self) -> int:
        return 1 if self.with_output else -1

    def default_input_id(self) -> int:
        return 0 if self.with_input else -1

    def output(self, device_id: int) -> FakeOutputStream:
        self.output_opens += 1
        # widen the window in which concurrent opens could race
        time.sleep(self.open_delay)
        if device_id != 1 or not self.with_output:
            raise DeviceError("open output", device_id, "no such output device")
        stream = FakeOutputStream()
        self.outputs[device_id] = stream
        return stream

    def input(self, device_id: int) -> FakeInputStream:
        self.input_opens += 1
        if device_id != 0 or not self.with_input:
            raise DeviceError("open input", device_id, "no such input device")
        stream = FakeInputStream()
        self.inputs[device_id] = stream
        return stream

    def close(self) -> None:
        self.closed = True


class RecordingDevice:
    """AudioDevice double that records plays instead of sounding them."""

    def __init__(self, input_capable: bool = True):
        self.input_capable = input_capable
        self.plays: List[Tuple[object, float, int]] = []
        self.listens: List[Tuple[int, object, bool]] = []
        self._lock = threading.Lock()
        self.played = threading.Event()

    def command(self, args):
        return None

    def play(self, seq, bpm: float, begin_at_ns: int) -> int:
        sequence = seq.to_sequence()
        with self._lock:
            self.plays.append((sequence, bpm, begin_at_ns))
        self.played.set()
        whole_note_ns = int(4 * 60 * clock.NS_PER_SECOND / bpm)
        return begin_at_ns + int(sequence.note_length() * whole_note_ns)

    def played_sequences(self):
        with self._lock:
            return list(self.plays)

    def schedule(self, event, begin_at_ns: int) -> None:
        pass

    def has_input_capability(self) -> bool:
        return self.input_capable

    def listen(self, device_id: int, who, start: bool) -> None:
        self.listens.append((device_id, who, start))

    def set_echo_notes(self, on: bool) -> None:
        pass

    def reset(self) -> None:
        pass

    def close(self) -> None:
        pass


def wait_for(predicate, timeout: float = 2.0) -> bool:
    """Poll predicate until it holds or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


@pytest.fixture
def fast_listen(monkeypatch):
    """Skip the drain period before listeners are attached."""
    monkeypatch.setattr(get_config().midi, "listen_grace_ms", 0)
