"""
Ambient idle state machine.

When nobody plays for a while the visuals swell on their own: after a
rest period an intensity builds up to a cap, holds, then decays back.
Any activity drops the machine back to REST and lets intensity fade.
"""

import enum
import logging
from typing import Optional

from chromakeys.config import IdleConfig

logger = logging.getLogger(__name__)


class IdlePhase(enum.Enum):
    REST = "rest"
    BUILD = "build"
    HOLD = "hold"
    DECAY = "decay"


class IdleEngine:
    """Per-tick REST -> BUILD -> HOLD -> DECAY -> REST cycle."""

    def __init__(self, config: Optional[IdleConfig] = None):
        self.cfg = config or IdleConfig()
        self.phase = IdlePhase.REST
        self.intensity = 0.0
        self.timer = 0.0

    def _enter(self, phase: IdlePhase) -> None:
        if phase is not self.phase:
            logger.debug("Idle %s -> %s (intensity %.3f)", self.phase.value, phase.value, self.intensity)
        self.phase = phase
        self.timer = 0.0

    def update(self, dt: float, idle: bool) -> float:
        """
        Advance one tick.

        Args:
            dt: Seconds since the previous tick (drives the phase timers).
            idle: True when nothing is held and the attractor is inactive.

        Returns:
            Current idle intensity in [0, cap].
        """
        cfg = self.cfg
        if not idle:
            if self.phase is not IdlePhase.REST:
                self._enter(IdlePhase.REST)
            self.timer = 0.0
            self.intensity *= cfg.interrupt_decay
            return self.intensity

        if self.phase is IdlePhase.REST:
            self.timer += dt
            if self.timer >= cfg.rest_sec:
                self._enter(IdlePhase.BUILD)
        elif self.phase is IdlePhase.BUILD:
            self.intensity = min(cfg.cap, self.intensity + cfg.build_rate)
            if self.intensity >= cfg.cap:
                self._enter(IdlePhase.HOLD)
        elif self.phase is IdlePhase.HOLD:
            self.timer += dt
            if self.timer >= cfg.hold_sec:
                self._enter(IdlePhase.DECAY)
        elif self.phase is IdlePhase.DECAY:
            self.intensity = max(0.0, self.intensity - cfg.decay_rate)
            if self.intensity <= 0.0:
                self._enter(IdlePhase.REST)

        return self.intensity

    def interrupt(self) -> None:
        """Force REST immediately; intensity fades on the following ticks."""
        self._enter(IdlePhase.REST)
