"""
The single point attractor.

Any trigger replaces the attractor outright: there is no queue and no
blending, the most recent event always wins. Strength then decays
exponentially every frame until the next trigger.
"""

import enum
from dataclasses import dataclass
from typing import Optional, Tuple

from chromakeys.config import AttractorConfig
from chromakeys.core.grid import cell_to_position, drum_to_cell, validate_cell


class TriggerKind(enum.Enum):
    CELL = "cell"
    DRUM = "drum"
    NOTE = "note"
    BURST = "burst"


@dataclass(frozen=True)
class TriggerOptions:
    """Fully enumerated per-trigger settings."""

    kind: TriggerKind
    strength: float
    sustained: bool = False
    velocity: float = 0.8
    mix_target: float = 0.88


@dataclass(frozen=True)
class AttractorUniforms:
    """Snapshot handed to the field step."""

    position: Tuple[float, float, float]
    strength: float
    col: int
    row: int


class AttractorModel:
    """Mutable single point-force descriptor."""

    def __init__(self, config: Optional[AttractorConfig] = None):
        self.cfg = config or AttractorConfig()
        self.position: Tuple[float, float, float] = (0.0, 0.0, 0.0)
        self.strength = 0.0
        self.col = 0
        self.row = 1
        self.frozen = False

    def trigger(
        self,
        position: Tuple[float, float, float],
        strength: float,
        tag: Tuple[int, int],
    ) -> None:
        """Replace the attractor unconditionally."""
        self.position = (float(position[0]), float(position[1]), float(position[2]))
        self.strength = max(0.0, float(strength))
        self.col, self.row = int(tag[0]), int(tag[1])

    def trigger_cell(self, col: int, row: int, options: Optional[TriggerOptions] = None) -> None:
        validate_cell(col, row)
        strength = options.strength if options else self.cfg.cell_strength
        self.trigger(cell_to_position(col, row), strength, (col, row))

    def trigger_drum(self, index: int, options: Optional[TriggerOptions] = None) -> None:
        col, row = drum_to_cell(index)
        strength = options.strength if options else self.cfg.drum_strength
        self.trigger(cell_to_position(col, row), strength, (col, row))

    def decay(self, dt: float) -> None:
        """Apply one frame of exponential decay, scaled to the frame length."""
        if self.frozen or self.strength <= 0.0:
            return
        self.strength *= self.cfg.retention ** (dt * self.cfg.reference_fps)
        if self.strength < 1e-9:
            self.strength = 0.0

    def is_active(self) -> bool:
        return self.strength > self.cfg.active_epsilon

    def uniforms(self, extra_strength: float = 0.0) -> AttractorUniforms:
        """Snapshot for the field step; audio pressure is added on top, never stored."""
        return AttractorUniforms(
            position=self.position,
            strength=self.strength + max(0.0, extra_strength),
            col=self.col,
            row=self.row,
        )
