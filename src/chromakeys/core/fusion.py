"""
Multi-source parameter fusion.

Discrete triggers set targets, every target is chased by its own
exponential smoother, held chords are blended into one look, and the
whole vector relaxes when nobody plays. Continuous signals (audio,
microphone, gestures, touch) are never smoothed here: ``compose`` adds
them on top of the smoothed values when a frame is consumed.
"""

import math
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, Optional, Tuple

from chromakeys.config import FusionConfig, IdleConfig, SmoothingRates
from chromakeys.core.idle import IdleEngine
from chromakeys.core.levels import SILENCE, AudioLevels
from chromakeys.core.motion import NEUTRAL_GESTURE, GestureState
from chromakeys.core.profiles import (
    BASELINE_PROFILE,
    MOTION_FIELDS,
    PROFILE_FIELDS,
    KeyProfile,
    apply_chord_boost,
    blend_profiles,
)

EXTRA_PARAMETERS = ("mix", "rotation", "yaw")
PARAMETER_NAMES = PROFILE_FIELDS + EXTRA_PARAMETERS

RESTING_MIX = 0.15


class SmoothedParameter:
    """One target/current pair with its own convergence rate."""

    __slots__ = ("name", "rate", "target", "current")

    def __init__(self, name: str, value: float, rate: float):
        if not 0.0 < rate <= 1.0:
            raise ValueError(f"Smoothing rate for {name} must be in (0, 1], got {rate}")
        self.name = name
        self.rate = rate
        self.target = value
        self.current = value

    def step(self) -> float:
        self.current += (self.target - self.current) * self.rate
        return self.current

    def __repr__(self):
        return f"SmoothedParameter({self.name}, current={self.current:.4f}, target={self.target:.4f})"


class ParameterBank:
    """Every fused scalar, keyed by name."""

    def __init__(self, rates: SmoothingRates, initial: Dict[str, float]):
        self._params = {
            name: SmoothedParameter(name, float(initial.get(name, 0.0)), rates.rate_for(name))
            for name in PARAMETER_NAMES
        }

    def __getitem__(self, name: str) -> SmoothedParameter:
        return self._params[name]

    def __iter__(self):
        return iter(self._params.values())

    def set_target(self, name: str, value: float) -> None:
        self._params[name].target = float(value)

    def target(self, name: str) -> float:
        return self._params[name].target

    def current(self, name: str) -> float:
        return self._params[name].current

    def step(self) -> None:
        for param in self._params.values():
            param.step()

    def targets(self) -> Dict[str, float]:
        return {name: p.target for name, p in self._params.items()}

    def currents(self) -> Dict[str, float]:
        return {name: p.current for name, p in self._params.items()}


@dataclass(frozen=True)
class ParameterSnapshot:
    """Frozen copy of the smoothed values; safe to hand to any reader."""

    folds: float
    hue: float
    bloom: float
    chromatic_aberration: float
    spiral: float
    flow: float
    pulse: float
    shear: float
    wave: float
    glitch: float
    mirror_x: float
    mirror_y: float
    warp: float
    contrast: float
    mix: float
    rotation: float
    yaw: float


@dataclass(frozen=True)
class FusionContext:
    """State owned by other components that the update step needs to read."""

    attractor_strength: float = 0.0
    attractor_active: bool = False
    frozen: bool = False
    gesture: GestureState = NEUTRAL_GESTURE


@dataclass(frozen=True)
class FusionInputs:
    """Continuous signals, already smoothed by whoever produced them."""

    levels: AudioLevels = SILENCE
    bass_hit: float = 0.0
    mic_visual: float = 0.0
    touch_intensity: float = 0.0
    double_tap_flash: float = 0.0
    sparkle_flash: float = 0.0
    pad_level: float = 0.0
    zoom: float = 1.0
    gesture: GestureState = NEUTRAL_GESTURE


@dataclass(frozen=True)
class FrameParameters:
    """Everything the renderer consumes for one frame."""

    time: float
    folds: float
    mix: float
    rotation: float
    yaw: float
    hue: float
    bloom: float
    chromatic_offset: float
    spiral: float
    flow: float
    pulse: float
    shear: float
    wave: float
    glitch: float
    mirror_x: float
    mirror_y: float
    warp: float
    contrast: float
    texture_mix: float
    sparkle_flash: float = 0.0
    pad_level: float = 0.0
    zoom: float = 1.0
    head_offset: float = 0.0
    idle_phase: str = "rest"

    def to_dict(self) -> dict:
        return asdict(self)


class ParameterFusion:
    """
    Owns the parameter bank, the idle engine and the held chord.

    Call ``update`` once per tick, then ``compose`` to read the frame.
    """

    def __init__(
        self,
        config: Optional[FusionConfig] = None,
        rates: Optional[SmoothingRates] = None,
        idle_config: Optional[IdleConfig] = None,
        baseline: KeyProfile = BASELINE_PROFILE,
    ):
        self.cfg = config or FusionConfig()
        self.rates = rates or SmoothingRates()
        self.idle = IdleEngine(idle_config)

        initial = {name: getattr(baseline, name) for name in PROFILE_FIELDS}
        initial["mix"] = RESTING_MIX
        self.bank = ParameterBank(self.rates, initial)

        self.held: Tuple[KeyProfile, ...] = ()
        self._chord_dirty = False

    def _set_profile_targets(self, profile: KeyProfile) -> None:
        for name in PROFILE_FIELDS:
            self.bank.set_target(name, getattr(profile, name))

    def apply_profile(self, profile: KeyProfile, mix_target: Optional[float] = None) -> None:
        """Point every profile target at ``profile`` (single trigger)."""
        self._set_profile_targets(profile)
        self.bank.set_target("mix", self.cfg.cell_mix if mix_target is None else mix_target)

    def set_held(self, profiles: Iterable[KeyProfile]) -> None:
        """Record the currently held chord; blended on the next update."""
        self.held = tuple(profiles)
        self._chord_dirty = len(self.held) >= 2

    def interrupt_idle(self) -> None:
        self.idle.interrupt()

    def update(self, dt: float, now: float, context: FusionContext = FusionContext()) -> ParameterSnapshot:
        """
        Advance one tick in a fixed order.

        1. idle phase transitions
        2. per-parameter exponential smoothing
        3. chord blending of the held profiles
        4. relaxation toward rest when nothing is held
        """
        cfg = self.cfg
        idle_now = not self.held and not context.attractor_active
        intensity = self.idle.update(dt, idle_now)

        self.bank.set_target("rotation", self._rotation_target(now, context, intensity))
        self.bank.set_target("yaw", context.gesture.head_offset * cfg.yaw_gain)
        self.bank.step()

        if self._chord_dirty and len(self.held) >= 2:
            self._apply_chord()
        self._chord_dirty = False

        if not self.held and not context.attractor_active and not context.frozen:
            self._relax()

        return self.snapshot()

    def _rotation_target(self, now: float, context: FusionContext, idle_intensity: float) -> float:
        breathe = 0.015 * math.sin(now * 0.15)
        key_push = 0.0
        if context.attractor_active:
            key_push = 0.04 * math.sin(now * 1.8) * context.attractor_strength
        gesture_bias = (context.gesture.hand_knob1 - 0.5) * 0.06
        idle_sway = idle_intensity * 0.025 * math.sin(now * 0.2)
        return breathe + key_push + gesture_bias + idle_sway

    def _apply_chord(self) -> None:
        cfg = self.cfg
        n = len(self.held)
        chord = apply_chord_boost(
            blend_profiles(self.held),
            n,
            k=cfg.chord_boost,
            ceiling=cfg.max_chord_boost,
            contrast_cap=cfg.contrast_cap,
        )
        self._set_profile_targets(chord)
        self.bank.set_target("mix", min(1.0, cfg.cell_mix + (n - 1) * cfg.chord_mix_step))

    def _relax(self) -> None:
        cfg = self.cfg
        self.bank.set_target("mix", max(cfg.mix_floor, self.bank.target("mix") * cfg.mix_relax))
        for name in MOTION_FIELDS:
            self.bank.set_target(name, self.bank.target(name) * cfg.relax_factor)

    def snapshot(self) -> ParameterSnapshot:
        return ParameterSnapshot(**self.bank.currents())

    def compose(self, inputs: FusionInputs = FusionInputs(), now: float = 0.0) -> FrameParameters:
        """Smoothed base values plus additive external offsets."""
        cur = self.bank.currents()
        levels = inputs.levels
        touch = inputs.touch_intensity
        flash = inputs.double_tap_flash
        bass_hit = inputs.bass_hit
        mic = inputs.mic_visual
        gesture = inputs.gesture
        idle = self.idle.intensity

        audio_boost = levels.energy * 0.6 + mic * 0.9
        gesture_warp = gesture.hand_knob1 * 0.4
        gesture_bloom = gesture.hand_knob2 * 0.5
        gesture_spiral = gesture.hand_knob2 * 0.25
        gesture_glitch = 0.7 if gesture.fast_swipe.active_at(now) else 0.0

        focus_breath = 0.04 * math.sin(now * 0.1) if not self.held else 0.0
        idle_breath = idle * (0.06 * math.sin(now * 0.15) + 0.04)

        return FrameParameters(
            time=now,
            folds=cur["folds"],
            mix=cur["mix"],
            rotation=cur["rotation"],
            yaw=cur["yaw"],
            hue=cur["hue"] % 1.0,
            bloom=(
                cur["bloom"] + flash * 1.5 + touch * 0.5 + audio_boost
                + mic * 0.85 + focus_breath + idle_breath + gesture_bloom
            ),
            chromatic_offset=(
                cur["chromatic_aberration"] + touch * 0.005 + flash * 0.008
                + bass_hit * 0.006 + mic * 0.006
            ),
            spiral=cur["spiral"] + touch * 0.2 + levels.treble * 0.3 + gesture_spiral,
            flow=cur["flow"] + touch * 0.12,
            pulse=cur["pulse"] + levels.mid * 0.15,
            shear=cur["shear"] + touch * 0.1,
            wave=cur["wave"] + levels.treble * 0.2,
            glitch=cur["glitch"] + flash * 0.5 + bass_hit * 0.4 + gesture_glitch,
            mirror_x=cur["mirror_x"],
            mirror_y=cur["mirror_y"],
            warp=cur["warp"] + touch * 0.15 + levels.mid * 0.2 + mic * 0.28 + gesture_warp,
            contrast=cur["contrast"] + flash * 0.4 + bass_hit * 0.3,
            texture_mix=idle,
            sparkle_flash=inputs.sparkle_flash,
            pad_level=inputs.pad_level,
            zoom=inputs.zoom,
            head_offset=gesture.head_offset,
            idle_phase=self.idle.phase.value,
        )
