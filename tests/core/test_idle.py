"""Tests for the ambient idle state machine."""

import pytest

from chromakeys.config import IdleConfig
from chromakeys.core.idle import IdleEngine, IdlePhase


def _run_until(idle, phase, dt=0.5, limit=500):
    for ticks in range(1, limit + 1):
        idle.update(dt, True)
        if idle.phase is phase:
            return ticks
    raise AssertionError(f"never reached {phase}")


class TestIdleEngine:
    def test_starts_at_rest(self):
        idle = IdleEngine()
        assert idle.phase is IdlePhase.REST
        assert idle.intensity == 0.0

    def test_rest_waits_before_building(self):
        idle = IdleEngine()
        assert _run_until(idle, IdlePhase.BUILD, dt=0.5) == 5
        assert idle.intensity == 0.0

    def test_full_cycle(self):
        cfg = IdleConfig()
        idle = IdleEngine(cfg)
        _run_until(idle, IdlePhase.BUILD)

        build_ticks = _run_until(idle, IdlePhase.HOLD)
        assert idle.intensity == pytest.approx(cfg.cap)
        assert build_ticks == 22

        hold_ticks = _run_until(idle, IdlePhase.DECAY, dt=0.5)
        assert hold_ticks == 10
        assert idle.intensity == pytest.approx(cfg.cap)

        _run_until(idle, IdlePhase.REST)
        assert idle.intensity == 0.0

    def test_intensity_never_exceeds_cap(self):
        cfg = IdleConfig(cap=0.2)
        idle = IdleEngine(cfg)
        for _ in range(400):
            assert 0.0 <= idle.update(0.1, True) <= cfg.cap

    def test_activity_returns_to_rest_and_fades(self):
        idle = IdleEngine()
        _run_until(idle, IdlePhase.HOLD)
        level = idle.intensity

        idle.update(0.5, False)
        assert idle.phase is IdlePhase.REST
        assert idle.intensity == pytest.approx(level * 0.92)

    def test_activity_resets_rest_timer(self):
        idle = IdleEngine()
        for _ in range(4):
            idle.update(0.5, True)
        idle.update(0.5, False)
        for _ in range(4):
            idle.update(0.5, True)
        assert idle.phase is IdlePhase.REST

    def test_interrupt(self):
        idle = IdleEngine()
        _run_until(idle, IdlePhase.BUILD)
        idle.update(0.5, True)
        idle.interrupt()
        assert idle.phase is IdlePhase.REST
        assert idle.timer == 0.0
        assert idle.intensity > 0.0
