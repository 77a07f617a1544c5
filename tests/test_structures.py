"""Tests for notes, note groups and sequences."""

import pytest

from loopline.midi_engine.structures import (
    Note,
    PedalMarker,
    Sequence,
    format_group,
    is_pedal_group,
)


class TestNote:
    """Test Note construction and naming."""

    def test_note_defaults(self):
        """Test default note values."""
        note = Note(pitch=60)
        assert note.duration_factor == 0.25
        assert note.velocity == 100
        assert note.pedal is PedalMarker.NONE
        assert not note.is_rest
        assert not note.is_pedal

    def test_invalid_pitch_rejected(self):
        with pytest.raises(ValueError, match="Pitch must be 0-127"):
            Note(pitch=128)

    def test_invalid_velocity_rejected(self):
        with pytest.raises(ValueError, match="Velocity must be 0-127"):
            Note(pitch=60, velocity=-1)

    def test_negative_duration_rejected(self):
        with pytest.raises(ValueError, match="must not be negative"):
            Note(pitch=60, duration_factor=-0.5)

    def test_names(self):
        """Test note names for pitches, rests and pedal actions."""
        assert Note(pitch=60).name == "C4"
        assert Note(pitch=61).name == "C#4"
        assert Note(pitch=21).name == "A0"
        assert Note.rest().name == "="
        assert Note.pedal_down().name == "_"
        assert Note.pedal_up().name == "^"
        assert Note.pedal_up_down().name == "^_"

    def test_str_shows_non_default_duration(self):
        assert str(Note(pitch=60)) == "C4"
        assert str(Note(pitch=62, duration_factor=0.5)) == "D4/0.5"

    def test_rest_and_pedal_flags(self):
        rest = Note.rest(0.5)
        assert rest.is_rest
        assert rest.duration_factor == 0.5

        pedal = Note.pedal_down()
        assert pedal.is_pedal
        assert not pedal.is_rest
        assert pedal.duration_factor == 0

    def test_note_is_sequenceable(self):
        seq = Note(pitch=64).to_sequence()
        assert len(seq) == 1
        assert seq.groups[0][0].pitch == 64


class TestSequence:
    """Test Sequence behaviour."""

    def test_groups_are_normalised_to_tuples(self):
        seq = Sequence([[Note(pitch=60), Note(pitch=64)], [Note(pitch=62)]])
        assert isinstance(seq.groups, tuple)
        assert all(isinstance(group, tuple) for group in seq.groups)

    def test_of_creates_one_group_per_note(self):
        seq = Sequence.of(Note(pitch=60), Note(pitch=62))
        assert len(seq) == 2
        assert [n.pitch for n in seq.notes()] == [60, 62]

    def test_note_length_uses_longest_note_per_group(self):
        """A chord lasts as long as its longest note, not the sum."""
        seq = Sequence(
            [
                [Note(pitch=60, duration_factor=1), Note(pitch=64, duration_factor=0.5)],
                [Note.pedal_down()],
                [Note(pitch=62, duration_factor=0.5)],
            ]
        )
        assert seq.note_length() == pytest.approx(1.5)

    def test_empty_sequence(self):
        seq = Sequence()
        assert len(seq) == 0
        assert seq.note_length() == 0
        assert str(seq) == ""

    def test_str_formats_chords_in_parentheses(self):
        seq = Sequence([[Note(pitch=60), Note(pitch=64)], [Note(pitch=62, duration_factor=0.5)]])
        assert str(seq) == "(C4 E4) D4/0.5"
        assert format_group((Note(pitch=60),)) == "C4"


class TestPedalGroup:
    """Test recognising single-note pedal groups."""

    def test_single_pedal_note_is_pedal_group(self):
        assert is_pedal_group((Note.pedal_up(),))

    def test_pitched_note_is_not_pedal_group(self):
        assert not is_pedal_group((Note(pitch=60),))

    def test_pedal_inside_chord_is_not_pedal_group(self):
        assert not is_pedal_group((Note.pedal_up(), Note(pitch=60)))
