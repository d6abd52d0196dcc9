"""Tests for the trigger grid geometry."""

import pytest

from chromakeys.core.grid import (
    DRUM_KINDS,
    GRID_COLS,
    GRID_ROWS,
    cell_to_midi,
    cell_to_position,
    drum_kind,
    drum_to_cell,
    is_sustain_note,
    midi_to_cell,
    midi_to_freq,
    note_name,
    snap_to_natural,
    validate_cell,
)


class TestCellPosition:
    def test_corners(self):
        x, y, z = cell_to_position(0, 0)
        assert x == pytest.approx(-1.375)
        assert y == pytest.approx(0.4)
        assert z == 0.0

        x, y, z = cell_to_position(GRID_COLS - 1, GRID_ROWS - 1)
        assert x == pytest.approx(1.375)
        assert y == pytest.approx(-0.4)

    def test_middle_row_is_centred(self):
        assert cell_to_position(5, 1)[1] == pytest.approx(0.0)

    def test_columns_increase_left_to_right(self):
        xs = [cell_to_position(c, 1)[0] for c in range(GRID_COLS)]
        assert xs == sorted(xs)
        assert len(set(xs)) == GRID_COLS


class TestValidateCell:
    @pytest.mark.parametrize("col,row", [(-1, 0), (12, 0), (0, 3), (0, -1)])
    def test_out_of_range_raises(self, col, row):
        with pytest.raises(ValueError):
            validate_cell(col, row)

    def test_in_range_passes(self):
        validate_cell(0, 0)
        validate_cell(11, 2)


class TestMidi:
    def test_bottom_row_starts_at_c3(self):
        assert cell_to_midi(0, 2) == 48
        assert note_name(cell_to_midi(0, 2)) == "C3"

    def test_top_row_is_two_octaves_up(self):
        assert cell_to_midi(0, 0) == 72

    @pytest.mark.parametrize("midi", [48, 50, 52, 53, 55, 57, 59, 60, 67, 71, 72, 83])
    def test_naturals_round_trip(self, midi):
        assert cell_to_midi(*midi_to_cell(midi)) == midi

    def test_sharps_round_up(self):
        assert snap_to_natural(61) == 62   # C# -> D
        assert snap_to_natural(66) == 67   # F# -> G
        assert snap_to_natural(60) == 60

    def test_out_of_range_notes_clamp_to_grid(self):
        _, row = midi_to_cell(24)
        assert row == GRID_ROWS - 1
        _, row = midi_to_cell(108)
        assert row == 0

    def test_sustain_classes(self):
        assert is_sustain_note(60)      # C
        assert is_sustain_note(65)      # F
        assert not is_sustain_note(67)  # G
        assert not is_sustain_note(71)  # B

    def test_a4_frequency(self):
        assert midi_to_freq(69) == pytest.approx(440.0)
        assert midi_to_freq(81) == pytest.approx(880.0)


class TestDrums:
    def test_drums_light_middle_row(self):
        for i in range(len(DRUM_KINDS)):
            col, row = drum_to_cell(i)
            assert row == 1
            assert col == i

    def test_kind_wraps(self):
        assert drum_kind(0) == "kick"
        assert drum_kind(len(DRUM_KINDS)) == "kick"
