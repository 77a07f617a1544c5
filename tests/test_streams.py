"""Tests for the mido backed MIDI streams."""

import mido
import pytest

from loopline.errors import DeviceError
from loopline.midi_engine import streams
from loopline.midi_engine.streams import (
    MidiInputStream,
    MidiOutputStream,
    MidiStreamRegistry,
)


class FakePort:
    """Stand-in for a mido port."""

    def __init__(self, name="Fake", pending=None):
        self.name = name
        self.sent = []
        self.pending = list(pending or [])
        self.closed = False

    def send(self, message):
        self.sent.append(message)

    def iter_pending(self):
        while self.pending:
            yield self.pending.pop(0)

    def close(self):
        self.closed = True


class TestMidiOutputStream:
    """Test writing short messages."""

    def test_write_short_sends_note_on(self):
        port = FakePort()
        stream = MidiOutputStream(port)

        stream.write_short(0x91, 60, 100)

        message = port.sent[0]
        assert message.type == "note_on"
        assert message.channel == 1
        assert message.note == 60
        assert message.velocity == 100

    def test_write_short_sends_sustain_control_change(self):
        port = FakePort()
        MidiOutputStream(port).write_short(0xB0, 64, 127)

        message = port.sent[0]
        assert message.type == "control_change"
        assert message.control == 64
        assert message.value == 127

    def test_close(self):
        port = FakePort()
        stream = MidiOutputStream(port)
        stream.close()
        stream.close()
        assert port.closed


class TestMidiInputStream:
    """Test reading pending messages."""

    def test_read_returns_short_messages_only(self):
        port = FakePort(
            pending=[
                mido.Message("note_on", note=60, velocity=90),
                mido.Message("clock"),
                mido.Message("note_off", channel=2, note=62, velocity=0),
            ]
        )
        events = MidiInputStream(port).read()

        assert [(e.status, e.data1, e.data2) for e in events] == [
            (0x90, 60, 90),
            (0x82, 62, 0),
        ]

    def test_read_without_pending_is_empty(self):
        assert MidiInputStream(FakePort()).read() == []


class TestMidiStreamRegistry:
    """Test device enumeration and opening."""

    @pytest.fixture(autouse=True)
    def fake_ports(self, monkeypatch):
        self.opened = []

        def open_output(name):
            port = FakePort(name)
            self.opened.append(port)
            return port

        def open_input(name):
            port = FakePort(name)
            self.opened.append(port)
            return port

        monkeypatch.setattr(streams.mido, "get_input_names", lambda: ["Keys"])
        monkeypatch.setattr(streams.mido, "get_output_names", lambda: ["Synth A", "Synth B"])
        monkeypatch.setattr(streams.mido, "open_output", open_output)
        monkeypatch.setattr(streams.mido, "open_input", open_input)
        self.registry = MidiStreamRegistry()

    def test_inputs_are_numbered_before_outputs(self):
        devices = self.registry.devices()
        assert [(d.id, d.name, d.input_capable) for d in devices] == [
            (0, "Keys", True),
            (1, "Synth A", False),
            (2, "Synth B", False),
        ]

    def test_defaults(self):
        assert self.registry.default_input_id() == 0
        assert self.registry.default_output_id() == 1

    def test_output_is_opened_once(self):
        first = self.registry.output(2)
        second = self.registry.output(2)
        assert first is second
        assert len(self.opened) == 1
        assert self.opened[0].name == "Synth B"
        assert self.registry.info(2).opened

    def test_opening_input_as_output_fails(self):
        with pytest.raises(DeviceError, match="open output failed for device id=0"):
            self.registry.output(0)

    def test_unknown_input_fails(self):
        with pytest.raises(DeviceError, match="open input failed for device id=7"):
            self.registry.input(7)

    def test_backend_error_becomes_device_error(self, monkeypatch):
        def broken(name):
            raise OSError("port busy")

        monkeypatch.setattr(streams.mido, "open_output", broken)
        with pytest.raises(DeviceError, match="port busy"):
            self.registry.output(1)

    def test_close_closes_all_streams(self):
        self.registry.input(0)
        self.registry.output(1)
        self.registry.close()
        assert all(port.closed for port in self.opened)
        assert not self.registry.info(1).opened

    def test_no_ports_means_no_defaults(self, monkeypatch):
        monkeypatch.setattr(streams.mido, "get_input_names", lambda: [])
        monkeypatch.setattr(streams.mido, "get_output_names", lambda: [])
        assert self.registry.default_input_id() == -1
        assert self.registry.default_output_id() == -1
