"""
Key profiles and chord blending.

Each grid column owns a visual archetype: a fixed combination of fold
count, hue, bloom and distortion amounts. Holding several keys blends
their archetypes into one.
"""

import math
from dataclasses import dataclass, fields, replace
from typing import Iterable



@dataclass(frozen=True)
class KeyProfile:
    """Visual archetype for one column. Read-only lookup data."""

    folds: float
    hue: float
    bloom: float
    chromatic_aberration: float
    spiral: float = 0.0
    flow: float = 0.0
    pulse: float = 0.0
    shear: float = 0.0
    wave: float = 0.0
    glitch: float = 0.0
    mirror_x: float = 0.0
    mirror_y: float = 0.0
    warp: float = 0.0
    contrast: float = 1.0


PROFILE_FIELDS = tuple(f.name for f in fields(KeyProfile))

# Boolean-like fields: any held key requesting mirroring enables it
MAX_FIELDS = ("mirror_x", "mirror_y")

# Distortion amounts scaled up by the number of held keys
MOTION_FIELDS = ("spiral", "flow", "pulse", "shear", "wave", "glitch", "warp")

KEY_PROFILES: tuple[KeyProfile, ...] = (
    # 0: red, drift flow
    KeyProfile(folds=8, hue=0.0, bloom=2.8, chromatic_aberration=0.012,
               flow=0.9, contrast=1.85),
    # 1: cyan, shear + glitch
    KeyProfile(folds=0, hue=0.52, bloom=0.9, chromatic_aberration=0.002,
               shear=0.8, glitch=2.2, warp=0.2, contrast=2.1),
    # 2: green, spiral
    KeyProfile(folds=4, hue=0.32, bloom=2.2, chromatic_aberration=0.007,
               spiral=1.6, contrast=1.15),
    # 3: white, pulse breathe
    KeyProfile(folds=24, hue=0.04, bloom=3.2, chromatic_aberration=0.016,
               pulse=0.7, contrast=1.9),
    # 4: magenta, wave + mirror + warp
    KeyProfile(folds=0, hue=0.86, bloom=0.7, chromatic_aberration=0.003,
               wave=0.6, mirror_x=1, mirror_y=1, warp=1.6, contrast=2.25),
    # 5: teal, spiral + flow + wave
    KeyProfile(folds=12, hue=0.48, bloom=2.4, chromatic_aberration=0.01,
               spiral=0.5, flow=0.4, wave=0.3, contrast=1.35),
    # 6: orange, flow + pulse + shear + glitch
    KeyProfile(folds=0, hue=0.1, bloom=1.2, chromatic_aberration=0.004,
               flow=0.6, pulse=0.4, shear=0.2, glitch=2.0, warp=0.8, contrast=2.0),
    # 7: purple, pulse + shear + mirror
    KeyProfile(folds=6, hue=0.7, bloom=2.6, chromatic_aberration=0.009,
               pulse=0.5, shear=0.6, mirror_x=1, contrast=1.25),
    # 8: pink, mixed motion
    KeyProfile(folds=28, hue=0.92, bloom=3.4, chromatic_aberration=0.018,
               spiral=0.3, flow=0.3, pulse=0.2, wave=0.5, contrast=1.65),
    # 9: lime, flow + shear
    KeyProfile(folds=0, hue=0.4, bloom=0.6, chromatic_aberration=0.002,
               flow=0.8, shear=0.4, glitch=1.0, mirror_x=1, mirror_y=1, contrast=2.4),
    # 10: blue, pulse + wave + warp
    KeyProfile(folds=10, hue=0.58, bloom=2.5, chromatic_aberration=0.011,
               pulse=0.9, wave=0.4, warp=1.8, contrast=1.5),
    # 11: gold, spiral + wave + shear
    KeyProfile(folds=0, hue=0.18, bloom=1.8, chromatic_aberration=0.006,
               spiral=1.5, flow=0.2, shear=0.3, wave=0.6, glitch=0.7, mirror_x=1,
               contrast=1.95),
)

# Resting look before any key has been played
BASELINE_PROFILE = KeyProfile(folds=6, hue=0.55, bloom=1.6, chromatic_aberration=0.005)


def profile_for_column(col: int) -> KeyProfile:
    return KEY_PROFILES[col % len(KEY_PROFILES)]


def blend_profiles(profiles: Iterable[KeyProfile]) -> KeyProfile:
    """
    Blend held profiles into one.

    Every field is the unweighted arithmetic mean across the held profiles,
    except the mirror flags which take the maximum. A field shared by every
    profile passes through unchanged.

    Raises:
        ValueError: if no profiles are given.
    """
    profiles = list(profiles)
    if not profiles:
        raise ValueError("blend_profiles() needs at least one profile")

    n = len(profiles)
    values = {}
    for name in PROFILE_FIELDS:
        column = [getattr(p, name) for p in profiles]
        if name in MAX_FIELDS:
            values[name] = max(column)
        elif all(v == column[0] for v in column):
            values[name] = column[0]
        else:
            values[name] = math.fsum(column) / n
    return KeyProfile(**values)


def chord_boost(held_count: int, k: float, ceiling: float) -> float:
    """Monotonic intensity multiplier for a chord of ``held_count`` keys."""
    if held_count <= 1:
        return 1.0
    return min(1.0 + (held_count - 1) * k, ceiling)


def apply_chord_boost(
    profile: KeyProfile,
    held_count: int,
    k: float = 0.15,
    ceiling: float = 2.0,
    contrast_cap: float = 2.5,
) -> KeyProfile:
    """
    Scale the motion fields (and bloom / aberration) by the chord boost.

    Contrast is boosted too but never exceeds ``contrast_cap``.
    """
    boost = chord_boost(held_count, k, ceiling)
    scaled = {name: getattr(profile, name) * boost for name in MOTION_FIELDS}
    return replace(
        profile,
        bloom=profile.bloom * boost,
        chromatic_aberration=profile.chromatic_aberration * boost,
        contrast=min(contrast_cap, profile.contrast * boost),
        **scaled,
    )
