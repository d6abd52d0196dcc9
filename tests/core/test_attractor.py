"""Tests for the single point attractor."""

import pytest

from chromakeys.config import AttractorConfig
from chromakeys.core.attractor import AttractorModel, TriggerKind, TriggerOptions
from chromakeys.core.grid import cell_to_position


class TestTrigger:
    def test_starts_inactive(self):
        attractor = AttractorModel()
        assert attractor.strength == 0.0
        assert not attractor.is_active()

    def test_cell_trigger_places_attractor(self):
        attractor = AttractorModel()
        attractor.trigger_cell(3, 1)
        assert attractor.position == pytest.approx(cell_to_position(3, 1))
        assert attractor.strength == pytest.approx(AttractorConfig().cell_strength)
        assert (attractor.col, attractor.row) == (3, 1)
        assert attractor.is_active()

    def test_latest_trigger_wins(self):
        attractor = AttractorModel()
        attractor.trigger_cell(0, 0)
        attractor.trigger_cell(11, 2, TriggerOptions(kind=TriggerKind.BURST, strength=2.5))
        assert attractor.position == pytest.approx(cell_to_position(11, 2))
        assert attractor.strength == 2.5
        assert (attractor.col, attractor.row) == (11, 2)

    def test_drum_uses_middle_row(self):
        attractor = AttractorModel()
        attractor.trigger_drum(4)
        assert (attractor.col, attractor.row) == (4, 1)
        assert attractor.strength == pytest.approx(AttractorConfig().drum_strength)

    def test_out_of_range_cell_raises(self):
        with pytest.raises(ValueError):
            AttractorModel().trigger_cell(12, 0)

    def test_negative_strength_clamped(self):
        attractor = AttractorModel()
        attractor.trigger((0.0, 0.0, 0.0), -1.0, (0, 0))
        assert attractor.strength == 0.0


class TestDecay:
    def test_one_reference_frame(self):
        attractor = AttractorModel()
        attractor.trigger_cell(3, 1)
        attractor.decay(1.0 / 60.0)
        assert attractor.strength == pytest.approx(1.2 * 0.92)

    def test_frame_rate_independent(self):
        a, b = AttractorModel(), AttractorModel()
        a.trigger_cell(3, 1)
        b.trigger_cell(3, 1)
        for _ in range(60):
            a.decay(1.0 / 60.0)
        for _ in range(30):
            b.decay(1.0 / 30.0)
        assert a.strength == pytest.approx(b.strength, rel=1e-9)

    def test_decays_to_inactive(self):
        attractor = AttractorModel()
        attractor.trigger_cell(3, 1)
        strengths = []
        for _ in range(120):
            attractor.decay(1.0 / 60.0)
            strengths.append(attractor.strength)
        assert all(b <= a for a, b in zip(strengths, strengths[1:]))
        assert not attractor.is_active()

    def test_frozen_holds_strength(self):
        attractor = AttractorModel()
        attractor.trigger_cell(3, 1)
        attractor.frozen = True
        attractor.decay(1.0)
        assert attractor.strength == pytest.approx(1.2)

    def test_extra_strength_not_stored(self):
        attractor = AttractorModel()
        attractor.trigger_cell(3, 1)
        uniforms = attractor.uniforms(extra_strength=0.5)
        assert uniforms.strength == pytest.approx(1.7)
        assert attractor.strength == pytest.approx(1.2)
        assert attractor.uniforms(extra_strength=-3.0).strength == pytest.approx(1.2)
