"""Tests for the arpeggiator and ambient player."""

import numpy as np
import pytest

from chromakeys.config import SequencerConfig
from chromakeys.sequencer import (
    AMBIENT_SCALES,
    ARP_PATTERNS,
    MAX_ARP_ROOT,
    AmbientPlayer,
    Arpeggiator,
)


class TestArpeggiator:
    def test_disabled_is_silent(self):
        arp = Arpeggiator(rng=np.random.default_rng(0))
        assert arp.tick(1.0, [60]) == []

    def test_sixteenths_at_tempo(self):
        arp = Arpeggiator(SequencerConfig(arp_bpm=120), np.random.default_rng(0))
        assert arp.step_interval == pytest.approx(0.25)
        arp.start()
        events = arp.tick(1.0, [60])
        assert len(events) == 4

    def test_follows_pattern_over_lowest_note(self):
        arp = Arpeggiator(rng=np.random.default_rng(1))
        arp.start()
        events = []
        for _ in range(len(arp.pattern)):
            events += arp.tick(arp.step_interval, [64, 60, 67])
        assert [e.pitch for e in events] == [60 + i for i in arp.pattern]
        assert arp.pattern in ARP_PATTERNS

    def test_velocity_range(self):
        cfg = SequencerConfig()
        arp = Arpeggiator(cfg, np.random.default_rng(2))
        arp.start()
        for event in arp.tick(3.0, [60]):
            assert cfg.arp_velocity <= event.velocity <= cfg.arp_velocity + cfg.arp_velocity_spread

    def test_nothing_held_skips_steps(self):
        arp = Arpeggiator(rng=np.random.default_rng(0))
        arp.start()
        assert arp.tick(1.0, []) == []
        assert arp.index == 0

    def test_high_root_skipped(self):
        arp = Arpeggiator(rng=np.random.default_rng(0))
        arp.start()
        assert arp.tick(1.0, [MAX_ARP_ROOT + 1]) == []

    def test_toggle(self):
        arp = Arpeggiator(rng=np.random.default_rng(0))
        assert arp.toggle()
        assert not arp.toggle()


class TestAmbientPlayer:
    def test_auto_start_after_delay(self):
        cfg = SequencerConfig(ambient_delay=2.0)
        player = AmbientPlayer(cfg, np.random.default_rng(0))
        assert player.tick(1.0) == []
        assert not player.active
        events = player.tick(1.5)
        assert player.active
        assert events

    def test_no_auto_start_when_disabled(self):
        cfg = SequencerConfig(ambient_delay=1.0, ambient_auto_start=False)
        player = AmbientPlayer(cfg, np.random.default_rng(0))
        assert player.tick(10.0) == []
        assert not player.active

    def test_user_action_stops_and_resets(self):
        player = AmbientPlayer(SequencerConfig(ambient_delay=1.0), np.random.default_rng(0))
        player.tick(2.0)
        player.mark_user_action()
        assert not player.active
        assert player.idle_time == 0.0

    def test_notes_come_from_scale(self):
        player = AmbientPlayer(rng=np.random.default_rng(3))
        player.start()
        assert player.scale in AMBIENT_SCALES
        events = []
        for _ in range(200):
            events += player.tick(0.1)
        assert events
        for event in events:
            degree = (event.pitch - player.root) % 12
            assert degree in player.scale

    def test_fade_in(self):
        cfg = SequencerConfig(ambient_min_gap=0.5, ambient_max_gap=0.5)
        player = AmbientPlayer(cfg, np.random.default_rng(4))
        player.start()
        first = player.tick(0.01)[0]
        assert first.velocity <= (0.055 + 0.06) / cfg.ambient_fade_notes

    def test_gaps_respected(self):
        cfg = SequencerConfig(ambient_min_gap=1.0, ambient_max_gap=1.0)
        player = AmbientPlayer(cfg, np.random.default_rng(5))
        player.start()
        player.tick(0.01)
        assert player.tick(0.5) == []
        assert player.tick(0.6)

    def test_harmony_notes_are_not_visual(self):
        player = AmbientPlayer(rng=np.random.default_rng(6))
        player.start()
        events = []
        for _ in range(2000):
            events += player.tick(0.1)
        extras = [e for e in events if not e.visual]
        assert extras
        assert all(e.velocity < 0.12 for e in extras)
