"""Tests for input listening and note dispatch."""

from conftest import FakeInputStream, wait_for

from loopline.midi_engine import clock
from loopline.midi_engine.input_device import InputDevice, InputListener
from loopline.midi_engine.streams import MidiEvent


class MockNoteListener:
    """Mock implementation of NoteListener for testing."""

    def __init__(self, fail=False):
        self.events = []
        self.fail = fail

    def note_on(self, note):
        self.events.append(("on", note.pitch, note.velocity))
        if self.fail:
            raise RuntimeError("listener failed")

    def note_off(self, note):
        self.events.append(("off", note.pitch, note.velocity))


def event(status, data1, data2):
    return MidiEvent(status, data1, data2, clock.now_ns())


class TestInputListenerDispatch:
    """Test translating raw events into note callbacks."""

    def setup_method(self):
        """Set up test fixtures."""
        self.listener = InputListener(0, FakeInputStream())
        self.subscriber = MockNoteListener()
        self.listener.add(self.subscriber)

    def test_note_on(self):
        self.listener.dispatch(event(0x90, 60, 64))
        assert self.subscriber.events == [("on", 60, 64)]

    def test_note_on_any_channel(self):
        self.listener.dispatch(event(0x9F, 61, 10))
        assert self.subscriber.events == [("on", 61, 10)]

    def test_note_off(self):
        self.listener.dispatch(event(0x80, 60, 40))
        assert self.subscriber.events == [("off", 60, 40)]

    def test_note_on_with_zero_velocity_is_note_off(self):
        self.listener.dispatch(event(0x90, 60, 0))
        assert self.subscriber.events == [("off", 60, 0)]

    def test_other_messages_are_ignored(self):
        self.listener.dispatch(event(0xB0, 64, 127))
        self.listener.dispatch(event(0xE0, 0, 64))
        assert self.subscriber.events == []

    def test_failing_subscriber_does_not_block_others(self):
        failing = MockNoteListener(fail=True)
        listener = InputListener(0, FakeInputStream())
        listener.add(failing)
        listener.add(self.subscriber)

        listener.dispatch(event(0x90, 65, 100))

        assert failing.events == [("on", 65, 100)]
        assert self.subscriber.events == [("on", 65, 100)]

    def test_add_is_idempotent_and_remove(self):
        self.listener.add(self.subscriber)
        assert self.listener.subscribers() == [self.subscriber]

        self.listener.remove(self.subscriber)
        self.listener.remove(self.subscriber)
        assert self.listener.subscribers() == []


class TestInputDevice:
    """Test the read loop of an input device."""

    def setup_method(self):
        """Set up test fixtures."""
        self.stream = FakeInputStream()
        self.device = InputDevice(0, self.stream)
        self.subscriber = MockNoteListener()

    def teardown_method(self):
        self.device.close()

    def test_read_loop_dispatches_in_order(self):
        self.device.listener.add(self.subscriber)
        self.device.listener.start()
        self.stream.inject(0x90, 60, 100)
        self.stream.inject(0x90, 64, 100)
        self.stream.inject(0x80, 60, 0)

        assert wait_for(lambda: len(self.subscriber.events) == 3)
        assert self.subscriber.events == [
            ("on", 60, 100),
            ("on", 64, 100),
            ("off", 60, 0),
        ]

    def test_start_and_stop(self):
        listener = self.device.listener
        listener.start()
        listener.start()
        assert listener.is_running

        self.device.stop_listener()
        assert not listener.is_running

    def test_close_closes_stream(self):
        self.device.listener.start()
        self.device.close()
        assert self.stream.closed
        assert not self.device.listener.is_running
