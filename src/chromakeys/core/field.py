"""
Double-buffered particle field simulation.

N x N particles live in a cubic box. Each tick their velocity is advected
by a cheap trigonometric curl-noise flow and pulled toward the current
attractor with a softened inverse-square force; positions integrate the
previous tick's velocity and are hard-clamped to the box, so particles
pile up on the walls instead of bouncing.

Both buffers are ping-ponged: every new value is computed from the
current read buffers only, exactly like a pair of GPU render targets.
"""

import logging
from typing import Optional, Union

import numpy as np

from chromakeys.config import FieldConfig
from chromakeys.core.attractor import AttractorUniforms
from chromakeys.core.backend import ComputeBackend, NumpyBackend
from chromakeys.errors import CapabilityUnavailable

logger = logging.getLogger(__name__)


def curl_noise(
    pos: np.ndarray,
    flow_time: float,
    col: int = 0,
    row: int = 1,
    scale: float = 1.0,
) -> np.ndarray:
    """
    Deterministic pseudo-random drift built from smooth sin/cos terms.

    Periodic and cheap rather than true Perlin noise. The attractor's
    column shifts the phase and its row adds a slight vertical bias, so
    every key gets its own ambient current.

    Args:
        pos: (M, 3) positions.
        flow_time: Already scaled flow clock.
        col, row: Attractor tag.
        scale: Global drift multiplier (0 disables drift).

    Returns:
        (M, 3) drift vectors, same dtype as ``pos``.
    """
    x, y, z = pos[:, 0], pos[:, 1], pos[:, 2]
    t = flow_time
    key_phase = col * 0.5
    row_bias = (row - 1.0) * 0.01

    curl = np.empty_like(pos)
    curl[:, 0] = np.sin(y * 1.6 + t) * 0.006 + np.cos(z * 2.0 + t * 0.8) * 0.004
    curl[:, 1] = (
        np.sin(z * 1.6 + t * 1.1 + key_phase) * 0.006
        + np.cos(x * 2.0 + t * 0.7) * 0.004
        + row_bias
    )
    curl[:, 2] = (
        np.sin(x * 1.6 + t * 0.9 - key_phase * 0.3) * 0.006
        + np.cos(y * 2.0 + t * 0.6) * 0.004
    )
    if scale != 1.0:
        curl *= scale
    return curl


def attractor_force(
    pos: np.ndarray,
    attractor: AttractorUniforms,
    force_scale: float,
    softening: float,
    distance_bias: float,
) -> np.ndarray:
    """Softened inverse-square pull toward the attractor, (M, 3)."""
    to_attractor = np.asarray(attractor.position, dtype=pos.dtype) - pos
    length = np.linalg.norm(to_attractor, axis=1, keepdims=True)
    dist = length + distance_bias
    falloff = 1.0 / (dist * dist + softening)
    # normalize() of a zero vector contributes no force
    direction = np.divide(
        to_attractor, length, out=np.zeros_like(to_attractor), where=length > 0
    )
    return direction * (attractor.strength * force_scale) * falloff


class FieldSimulation:
    """
    Owns the position/velocity ping-pong buffers for the N x N grid.

    Deterministic given the seed and the sequence of step() inputs.
    """

    simulated = True

    def __init__(
        self,
        config: Optional[FieldConfig] = None,
        backend: Optional[ComputeBackend] = None,
        seed: Optional[int] = None,
    ):
        self.cfg = config or FieldConfig()
        self.backend = backend or NumpyBackend()
        self.n_particles = self.cfg.grid_size * self.cfg.grid_size

        if not self.backend.supports(self.n_particles):
            raise CapabilityUnavailable(
                f"{self.backend.name} backend cannot run a "
                f"{self.cfg.grid_size}x{self.cfg.grid_size} float field"
            )

        self.rng = np.random.default_rng(seed)
        self.dtype = self.backend.dtype
        self.time = 0.0
        self.steps = 0

        # [read/write, particle, xyz]
        self._pos = np.zeros((2, self.n_particles, 3), dtype=self.dtype)
        self._vel = np.zeros((2, self.n_particles, 3), dtype=self.dtype)
        self._current = 0

        self._seed_buffers()

    def _seed_buffers(self) -> None:
        """Random positions inside the box, small random velocities."""
        cfg = self.cfg
        half = cfg.box_half * cfg.init_spread
        self._pos[self._current] = self.rng.uniform(-half, half, (self.n_particles, 3))
        self._vel[self._current] = self.rng.uniform(
            -cfg.init_velocity, cfg.init_velocity, (self.n_particles, 3)
        )

    def _fix_nans(self, pts: np.ndarray, vel: np.ndarray) -> None:
        """Reseed any non-finite rows inside the box at rest."""
        bad = ~(np.isfinite(pts).all(axis=1) & np.isfinite(vel).all(axis=1))
        n_bad = int(bad.sum())
        if n_bad:
            half = self.cfg.box_half * self.cfg.init_spread
            pts[bad] = self.rng.uniform(-half, half, (n_bad, 3))
            vel[bad] = 0.0
            logger.debug("Reseeded %d non-finite particles", n_bad)

    def step(
        self,
        dt: float,
        attractor: AttractorUniforms,
        flow_time: Optional[float] = None,
    ) -> None:
        """
        Advance both buffers by exactly one tick.

        Args:
            dt: Frame duration; advances the internal flow clock.
            attractor: Attractor snapshot for this tick.
            flow_time: Explicit flow clock (defaults to the internal one).
        """
        cfg = self.cfg
        self.time += dt
        t = (self.time if flow_time is None else flow_time) * cfg.flow_speed

        read, write = self._current, 1 - self._current
        pos = self._pos[read]
        vel = self._vel[read]

        curl = curl_noise(pos, t, attractor.col, attractor.row, cfg.curl_scale)
        force = attractor_force(
            pos, attractor, cfg.force_scale, cfg.softening, cfg.distance_bias
        )

        new_vel = self._vel[write]
        np.multiply(vel, cfg.damping, out=new_vel)
        new_vel += curl
        new_vel += force
        np.clip(new_vel, -cfg.max_velocity, cfg.max_velocity, out=new_vel)

        new_pos = self._pos[write]
        np.multiply(vel, cfg.step_scale, out=new_pos)
        new_pos += pos
        np.clip(new_pos, -cfg.box_half, cfg.box_half, out=new_pos)

        self._fix_nans(new_pos, new_vel)
        self._current = write
        self.steps += 1

    def positions(self) -> np.ndarray:
        """Copy of the current position buffer, (N*N, 3)."""
        return self._pos[self._current].copy()

    def velocities(self) -> np.ndarray:
        """Copy of the current velocity buffer, (N*N, 3)."""
        return self._vel[self._current].copy()

    def as_texture(self) -> np.ndarray:
        """Current positions laid out as an (N, N, 3) float texture."""
        n = self.cfg.grid_size
        return self.positions().reshape(n, n, 3)


class StaticPointCloud:
    """
    Degraded stand-in when the field cannot be simulated.

    A fixed random cloud, optionally jittered each tick. It exposes the same
    read-back API as FieldSimulation so the renderer does not care.
    """

    simulated = False

    def __init__(self, config: Optional[FieldConfig] = None, seed: Optional[int] = None):
        self.cfg = config or FieldConfig()
        self.rng = np.random.default_rng(seed)
        self.n_particles = self.cfg.fallback_points
        self.time = 0.0
        half = self.cfg.box_half * self.cfg.init_spread
        self._pos = self.rng.uniform(-half, half, (self.n_particles, 3)).astype(np.float32)

    def step(
        self,
        dt: float,
        attractor: AttractorUniforms,
        flow_time: Optional[float] = None,
    ) -> None:
        self.time += dt
        if self.cfg.fallback_jitter > 0:
            self._pos += self.rng.normal(
                0.0, self.cfg.fallback_jitter, self._pos.shape
            ).astype(np.float32)
            np.clip(self._pos, -self.cfg.box_half, self.cfg.box_half, out=self._pos)

    def positions(self) -> np.ndarray:
        return self._pos.copy()

    def velocities(self) -> np.ndarray:
        return np.zeros_like(self._pos)


ParticleField = Union[FieldSimulation, StaticPointCloud]


def create_field(
    config: Optional[FieldConfig] = None,
    backend: Optional[ComputeBackend] = None,
    seed: Optional[int] = None,
) -> ParticleField:
    """Full simulation when the backend can run it, static cloud otherwise."""
    config = config or FieldConfig()
    try:
        field = FieldSimulation(config, backend, seed)
    except CapabilityUnavailable as exc:
        logger.warning("Field simulation unavailable, using static point cloud: %s", exc)
        return StaticPointCloud(config, seed)
    logger.debug(
        "Field simulation: %d particles on %s (%d bytes)",
        field.n_particles,
        field.backend.name,
        field.backend.buffer_bytes(field.n_particles),
    )
    return field
