"""
Configuration for the chromakeys engine.

Every tunable constant lives in a dataclass carrying the value the
instrument ships with. Callers override single fields, or load nested
JSON overrides with ``load_config``.
"""

import json
from dataclasses import dataclass, fields, is_dataclass
from dataclasses import field as dc_field
from pathlib import Path
from typing import Any, Union


@dataclass
class FieldConfig:
    """Particle field simulation."""

    grid_size: int = 128          # N, the field holds N*N particles
    box_half: float = 1.22        # B, cubic position bound
    max_velocity: float = 0.07    # Vmax, per component
    damping: float = 0.97
    step_scale: float = 0.02      # position += velocity * step_scale
    force_scale: float = 0.14
    softening: float = 0.15       # added to dist^2 in the inverse-square falloff
    distance_bias: float = 0.02
    curl_scale: float = 1.0       # 0 disables ambient drift
    flow_speed: float = 0.5       # flow_time multiplier inside the curl basis

    # Initial distribution
    init_spread: float = 0.9      # fraction of box_half
    init_velocity: float = 0.01

    # Degraded mode
    fallback_points: int = 4000
    fallback_jitter: float = 0.0


@dataclass
class AttractorConfig:
    """Single point attractor driven by triggers."""

    retention: float = 0.92       # strength multiplier per reference frame
    reference_fps: float = 60.0
    active_epsilon: float = 0.05
    cell_strength: float = 1.2
    drum_strength: float = 1.1
    burst_strength: float = 2.5


@dataclass
class MotionConfig:
    """Column-energy head and hand tracking."""

    num_cols: int = 16
    stride: int = 2
    min_interval: float = 0.033   # at most ~30 analyses per second
    mirror: bool = True           # camera frames are mirrored for the player

    head_rows: tuple[float, float] = (0.05, 0.85)
    hand_rows: tuple[float, float] = (0.5, 1.0)
    head_motion_weight: float = 3.0
    hand_motion_weight: float = 2.0
    head_kernel: tuple[float, ...] = (0.5, 1.0, 2.0, 1.0, 0.5)
    hand_kernel: tuple[float, ...] = (1.0, 2.0, 1.0)
    centroid_window: int = 3

    # Head confidence
    energy_floor_per_col: float = 100.0
    confidence_span: float = 5.0
    low_confidence: float = 0.1
    head_rate_base: float = 0.35
    head_rate_gain: float = 0.4

    # Hand knobs
    hand_rate: float = 0.25
    hand_motion_rate: float = 0.2
    hand_motion_norm_per_col: float = 50.0

    # Fast swipe
    swipe_velocity: float = 0.22  # normalized units per second
    swipe_duration: float = 0.45


@dataclass
class SmoothingRates:
    """Per-parameter exponential smoothing rates (fraction of the gap per tick)."""

    folds: float = 0.095
    mix: float = 0.08
    hue: float = 0.10
    bloom: float = 0.07
    chromatic_aberration: float = 0.07
    spiral: float = 0.11
    flow: float = 0.11
    pulse: float = 0.11
    shear: float = 0.11
    wave: float = 0.11
    glitch: float = 0.12
    mirror_x: float = 0.13
    mirror_y: float = 0.13
    warp: float = 0.11
    contrast: float = 0.11
    rotation: float = 0.13
    yaw: float = 0.10

    def rate_for(self, name: str) -> float:
        return float(getattr(self, name))


@dataclass
class FusionConfig:
    """Trigger targets, chord blending and relaxation."""

    cell_mix: float = 0.88
    drum_mix: float = 0.75
    burst_mix: float = 1.0
    chord_mix_step: float = 0.04
    chord_boost: float = 0.15     # k in 1 + (held - 1) * k
    max_chord_boost: float = 2.0
    contrast_cap: float = 2.5

    relax_factor: float = 0.995
    mix_relax: float = 0.998
    mix_floor: float = 0.1

    yaw_gain: float = 0.85


@dataclass
class IdleConfig:
    """Ambient idle state machine."""

    rest_sec: float = 2.5
    build_rate: float = 0.018     # intensity per tick
    cap: float = 0.38
    hold_sec: float = 5.0
    decay_rate: float = 0.022     # intensity per tick
    interrupt_decay: float = 0.92


@dataclass
class InputConfig:
    """Mouse/touch, flashes, and caller-side audio shaping."""

    touch_decay: float = 0.9
    touch_norm: float = 50.0
    double_tap_flash_sec: float = 0.4
    sparkle_sec: float = 0.55
    sparkle_min_keys: int = 3
    pad_decay: float = 0.96
    pad_min_keys: int = 5
    pad_hold_level: float = 0.55
    zoom_min: float = 0.4
    zoom_max: float = 2.5
    zoom_step: float = 0.05

    bass_hit_threshold: float = 0.4
    mic_gate: float = 0.012
    mic_smoothing: float = 0.11
    mic_visual_scale: float = 0.65


@dataclass
class SequencerConfig:
    """Arpeggiator and ambient auto-play."""

    arp_bpm: float = 140.0
    arp_velocity: float = 0.35
    arp_velocity_spread: float = 0.15
    ambient_delay: float = 22.0
    ambient_min_gap: float = 0.6
    ambient_max_gap: float = 1.8
    ambient_fade_notes: int = 6
    ambient_auto_start: bool = True


@dataclass
class PreviewConfig:
    """Reference numpy preview renderer."""

    width: int = 640
    height: int = 360
    fps: int = 60
    max_particles: int = 6000     # sub-sampled from the field for splatting
    particle_brightness: float = 0.6
    camera_distance: float = 3.4
    fov_degrees: float = 52.0
    trail_decay: float = 0.82

    glow_enabled: bool = True
    glow_intensity: float = 0.35
    glow_radius: int = 6
    aberration_enabled: bool = True
    aberration_offset: int = 3
    vignette_strength: float = 0.3


@dataclass
class EngineConfig:
    """Everything the InstrumentEngine needs, grouped per component."""

    field: FieldConfig = dc_field(default_factory=FieldConfig)
    attractor: AttractorConfig = dc_field(default_factory=AttractorConfig)
    motion: MotionConfig = dc_field(default_factory=MotionConfig)
    smoothing: SmoothingRates = dc_field(default_factory=SmoothingRates)
    fusion: FusionConfig = dc_field(default_factory=FusionConfig)
    idle: IdleConfig = dc_field(default_factory=IdleConfig)
    inputs: InputConfig = dc_field(default_factory=InputConfig)
    sequencer: SequencerConfig = dc_field(default_factory=SequencerConfig)
    preview: PreviewConfig = dc_field(default_factory=PreviewConfig)
    seed: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EngineConfig":
        """Build a config from nested overrides, e.g. ``{"field": {"grid_size": 64}}``."""
        config = cls()
        _apply_overrides(config, data, "")
        return config


def _apply_overrides(target: Any, data: dict[str, Any], prefix: str) -> None:
    known = {f.name: f for f in fields(target)}
    for key, value in data.items():
        if key not in known:
            raise ValueError(f"Unknown config key: {prefix}{key}")
        current = getattr(target, key)
        if is_dataclass(current):
            if not isinstance(value, dict):
                raise ValueError(f"Config section {prefix}{key} must be a mapping")
            _apply_overrides(current, value, f"{prefix}{key}.")
        elif isinstance(current, tuple):
            setattr(target, key, tuple(value))
        else:
            setattr(target, key, value)


def load_config(path: Union[str, Path]) -> EngineConfig:
    """Load an EngineConfig from a JSON file of overrides."""
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    return EngineConfig.from_dict(data)
