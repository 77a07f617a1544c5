"""Tests for sequence parsing and session commands of the CLI."""

import logging

import pytest
from conftest import RecordingDevice

from loopline.control import BeatLoopController, Loop
from loopline import loop_cli
from loopline.loop_cli import ENGINE_LOGGERS, LiveSession, configure_logging, parse_note, parse_sequence
from loopline.midi_engine.structures import Note, PedalMarker


class TestParseSequence:
    """Test parse_sequence functionality."""

    def test_single_notes(self):
        seq = parse_sequence("60 62/0.5")
        assert seq.notes() == [Note(pitch=60), Note(pitch=62, duration_factor=0.5)]
        assert len(seq) == 2

    def test_chord_group(self):
        seq = parse_sequence("60+64+67/1 62/0.5")
        assert [n.pitch for n in seq.groups[0]] == [60, 64, 67]
        assert seq.groups[0][2].duration_factor == 1
        assert seq.note_length() == pytest.approx(1.5)

    def test_rest_and_pedal(self):
        seq = parse_sequence("pedal-down r/0.5 pedal-updown pedal-up")
        assert seq.groups[0][0].pedal is PedalMarker.DOWN
        assert seq.groups[1][0].is_rest
        assert seq.groups[1][0].duration_factor == 0.5
        assert seq.groups[2][0].pedal is PedalMarker.UP_DOWN
        assert seq.groups[3][0].pedal is PedalMarker.UP

    def test_empty_sequence_rejected(self):
        with pytest.raises(ValueError, match="at least one group"):
            parse_sequence("   ")

    def test_invalid_pitch_rejected(self):
        with pytest.raises(ValueError):
            parse_sequence("200")
        with pytest.raises(ValueError):
            parse_note("C4")


class TestLiveSession:
    """Test command handling against a recording device."""

    def setup_method(self):
        """Set up test fixtures."""
        self.device = RecordingDevice()
        self.controller = BeatLoopController(self.device, bpm=120, biab=4)
        self.session = LiveSession(self.device, self.controller)

    def teardown_method(self):
        self.controller.stop()

    def run(self, line):
        parts = line.split()
        return self.session.handle_command(parts[0], parts)

    def test_exit(self):
        assert self.run("exit") is True

    def test_set_and_play_chains_sequences(self):
        self.run("set a 60/0.5")
        self.run("play a 62")
        plays = self.device.played_sequences()
        assert len(plays) == 2
        (_, _, first_begin), (_, _, second_begin) = plays
        # a half note at 120 BPM lasts one second
        assert second_begin - first_begin == 1_000_000_000

    def test_go_plays_together(self):
        self.run("go 60 64")
        (_, _, first_begin), (_, _, second_begin) = self.device.played_sequences()
        assert first_begin == second_begin

    def test_bpm_and_biab_validation(self, capsys):
        self.run("bpm 90")
        self.run("bpm 400")
        self.run("biab 3")
        self.run("biab 0")
        assert self.controller.bpm() == 90
        assert self.controller.biab() == 3
        assert "invalid beats-per-minute" in capsys.readouterr().out

    def test_loop_begin_end(self):
        self.run("set a 60")
        self.run("loop l a")
        loop, found = self.session.variables.get("l")
        assert found and isinstance(loop, Loop)

        self.run("begin l")
        assert loop.is_running
        self.run("end l")
        assert not loop.is_running

    def test_end_without_names_stops_all(self):
        self.run("set a 60")
        self.run("loop l1 a")
        self.run("loop l2 a")
        self.run("begin l1 l2")
        self.run("end")
        assert self.controller.loops() == []

    def test_listen_and_unlisten(self, capsys):
        self.run("set answer 72")
        self.run("listen 0 key answer")
        assert "key" in self.session.listens
        assert self.device.listens[-1][2] is True

        self.run("unlisten key")
        assert "key" not in self.session.listens
        assert self.device.listens[-1][2] is False

    def test_listen_without_input(self, capsys):
        session = LiveSession(RecordingDevice(input_capable=False), self.controller)
        session.handle_command("listen", ["listen", "0", "key"])
        assert session.listens == {}
        assert "Input is not available" in capsys.readouterr().out

    def test_unknown_command(self, capsys):
        assert self.run("dance") is None
        assert "Unknown command: dance" in capsys.readouterr().out


class TestConfigureLogging:
    """Test the log level override of the CLI."""

    @pytest.fixture(autouse=True)
    def keep_levels(self, monkeypatch):
        monkeypatch.setattr(loop_cli, "setup_logging", lambda: None)
        saved = {name: logging.getLogger(name).level for name in ENGINE_LOGGERS}
        yield
        for name, level in saved.items():
            logging.getLogger(name).setLevel(level)

    def test_explicit_level_applies_to_engine_loggers(self, monkeypatch):
        monkeypatch.setattr(loop_cli, "is_debug_mode", lambda: False)
        configure_logging("warning")
        for name in ENGINE_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_debug_mode_selects_debug(self, monkeypatch):
        monkeypatch.setattr(loop_cli, "is_debug_mode", lambda: True)
        configure_logging()
        assert logging.getLogger("loopline.midi_engine.timeline").level == logging.DEBUG

    def test_no_override_keeps_levels(self, monkeypatch):
        monkeypatch.setattr(loop_cli, "is_debug_mode", lambda: False)
        logging.getLogger("loopline.control").setLevel(logging.ERROR)
        configure_logging()
        assert logging.getLogger("loopline.control").level == logging.ERROR
