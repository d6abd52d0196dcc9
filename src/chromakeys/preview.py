"""
Reference preview renderer.

Turns a RenderFrame into an RGB image on the CPU: particles are projected
through a yawing perspective camera, splatted into a fading HDR buffer,
bloomed, tone-mapped, folded into a kaleidoscope and finished with
chromatic aberration and a vignette. Everything is driven by the fused
FrameParameters; nothing here feeds back into the engine.
"""

import math
from typing import Optional, Tuple

import numpy as np
from PIL import Image, ImageFilter
from scipy.ndimage import gaussian_filter

from chromakeys.config import PreviewConfig
from chromakeys.engine import RenderFrame
from chromakeys.errors import TransientRenderFailure


def hsv_to_rgb(h: np.ndarray, s, v) -> np.ndarray:
    """
    HSV -> RGB for a batch of hues, (N,) -> (N, 3) float32 in [0, 1].

    Saturation and value broadcast, so scalars are fine. Hue wraps mod 1.
    """
    h6 = np.asarray(h, dtype=np.float32) * 6.0
    s = np.asarray(s, dtype=np.float32)
    v = np.asarray(v, dtype=np.float32)
    channels = []
    for offset in (5.0, 3.0, 1.0):
        k = (offset + h6) % 6.0
        ramp = np.clip(np.minimum(k, 4.0 - k), 0.0, 1.0)
        channels.append(v * (1.0 - s * ramp))
    return np.stack(np.broadcast_arrays(*channels), axis=-1).astype(np.float32)


def splat(x: np.ndarray, y: np.ndarray, rgb: np.ndarray, weights: np.ndarray, accum: np.ndarray) -> None:
    """
    Bilinear scatter of weighted colours onto an (H, W, 3) buffer.

    All four corner taps go through one bincount per channel; taps that land
    off screen are dropped.
    """
    h, w = accum.shape[:2]
    x0 = np.floor(x)
    y0 = np.floor(y)
    fx = x - x0
    fy = y - y0

    xs = np.concatenate([x0, x0 + 1, x0, x0 + 1]).astype(np.int64)
    ys = np.concatenate([y0, y0, y0 + 1, y0 + 1]).astype(np.int64)
    share = np.concatenate([(1 - fx) * (1 - fy), fx * (1 - fy), (1 - fx) * fy, fx * fy]) * np.tile(weights, 4)
    inside = (xs >= 0) & (xs < w) & (ys >= 0) & (ys < h)
    if not inside.any():
        return

    pixel = ys[inside] * w + xs[inside]
    colour = np.tile(rgb, (4, 1))[inside] * share[inside, np.newaxis]
    for c in range(3):
        accum[:, :, c] += np.bincount(pixel, weights=colour[:, c], minlength=h * w).reshape(h, w)


def kaleidoscope_fold(image: np.ndarray, folds: int, rotation: float = 0.0) -> np.ndarray:
    """N-way radial mirror: fold every angle into one reflected segment."""
    if folds < 2:
        return image
    h, w = image.shape[:2]
    cx, cy = w / 2.0, h / 2.0
    xg, yg = np.meshgrid(np.arange(w, dtype=np.float32) - cx, np.arange(h, dtype=np.float32) - cy)

    r = np.sqrt(xg ** 2 + yg ** 2)
    theta = np.arctan2(yg, xg) - rotation
    segment = 2 * np.pi / folds
    folded = np.mod(theta, segment)
    past_half = folded > segment / 2.0
    folded[past_half] = segment - folded[past_half]

    src_x = np.clip(r * np.cos(folded) + cx, 0, w - 1).astype(np.intp)
    src_y = np.clip(r * np.sin(folded) + cy, 0, h - 1).astype(np.intp)
    return image[src_y, src_x]


def radial_warp(image: np.ndarray, amplitude: float, time: float, frequency: float = 3.0) -> np.ndarray:
    """Sinusoidal radial displacement, ``amplitude`` as a fraction of the frame size."""
    if amplitude <= 0:
        return image
    h, w = image.shape[:2]
    cx, cy = w / 2.0, h / 2.0
    xg, yg = np.meshgrid(np.arange(w, dtype=np.float32) - cx, np.arange(h, dtype=np.float32) - cy)
    r = np.sqrt(xg ** 2 + yg ** 2)
    max_dim = max(w, h)

    displacement = np.sin(r / max_dim * frequency * 2 * np.pi + time) * amplitude * max_dim
    theta = np.arctan2(yg, xg)
    src_x = np.clip(xg + displacement * np.cos(theta) + cx, 0, w - 1).astype(np.intp)
    src_y = np.clip(yg + displacement * np.sin(theta) + cy, 0, h - 1).astype(np.intp)
    return image[src_y, src_x]


def mirror(image: np.ndarray, mirror_x: float, mirror_y: float) -> np.ndarray:
    """Blend each mirror axis in by its amount (0 off, 1 full)."""
    out = image.astype(np.float32)
    if mirror_x > 0.01:
        out = out * (1 - 0.5 * mirror_x) + out[:, ::-1] * 0.5 * mirror_x
    if mirror_y > 0.01:
        out = out * (1 - 0.5 * mirror_y) + out[::-1] * 0.5 * mirror_y
    return out.astype(image.dtype)


def add_glow(frame: np.ndarray, intensity: float = 0.3, radius: int = 6) -> np.ndarray:
    """Screen-blend a gaussian-blurred copy for bloom."""
    if intensity <= 0:
        return frame
    blurred = Image.fromarray(frame).filter(ImageFilter.GaussianBlur(radius=radius))
    a = frame.astype(np.float32) / 255.0
    b = np.asarray(blurred, dtype=np.float32) / 255.0 * intensity
    screen = 1.0 - (1.0 - a) * (1.0 - b)
    return (screen * 255).astype(np.uint8)


def chromatic_aberration(frame: np.ndarray, offset: int = 3) -> np.ndarray:
    """Shift red right and blue left for a fringe."""
    if offset <= 0:
        return frame
    w = frame.shape[1]
    offset = min(offset, w - 1)
    result = frame.copy()
    result[:, offset:, 0] = frame[:, :w - offset, 0]
    result[:, :w - offset, 2] = frame[:, offset:, 2]
    return result


def vignette(frame: np.ndarray, strength: float = 0.3) -> np.ndarray:
    if strength <= 0:
        return frame
    h, w = frame.shape[:2]
    cy, cx = h / 2, w / 2
    max_r = np.sqrt(cx ** 2 + cy ** 2)
    xg, yg = np.meshgrid(np.arange(w, dtype=np.float32) - cx, np.arange(h, dtype=np.float32) - cy)
    r = np.sqrt(xg ** 2 + yg ** 2) / max_r
    vign = (1.0 - np.clip(r * strength, 0, 1) ** 2)[:, :, np.newaxis]
    return (frame.astype(np.float32) * vign).astype(np.uint8)


def _view_matrix(yaw: float, roll: float) -> np.ndarray:
    """Rotation around Y (head yaw) then Z (kaleidoscope roll)."""
    cy, sy = math.cos(yaw), math.sin(yaw)
    cr, sr = math.cos(roll), math.sin(roll)
    ry = np.array([[cy, 0.0, sy], [0.0, 1.0, 0.0], [-sy, 0.0, cy]])
    rz = np.array([[cr, -sr, 0.0], [sr, cr, 0.0], [0.0, 0.0, 1.0]])
    return rz @ ry


class PreviewRenderer:
    """
    CPU preview of the particle field and post effects.

    Holds a persistent float accumulation buffer, so consecutive frames
    leave fading trails.
    """

    def __init__(self, config: Optional[PreviewConfig] = None, seed: Optional[int] = None):
        self.cfg = config or PreviewConfig()
        self.rng = np.random.default_rng(seed)
        self._accum = np.zeros((self.cfg.height, self.cfg.width, 3), dtype=np.float32)
        self._sample: Optional[np.ndarray] = None
        self.last_image: Optional[np.ndarray] = None

    def _subsample(self, positions: np.ndarray) -> np.ndarray:
        n = len(positions)
        if n <= self.cfg.max_particles:
            return positions
        if self._sample is None or self._sample.max() >= n:
            self._sample = np.sort(self.rng.choice(n, self.cfg.max_particles, replace=False))
        return positions[self._sample]

    def project(
        self,
        positions: np.ndarray,
        yaw: float,
        roll: float = 0.0,
        zoom: float = 1.0,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Perspective projection to pixel coordinates.

        Returns:
            x_px, y_px, depth in [0, 1] (1 nearest the camera).
        """
        cfg = self.cfg
        pts = positions.astype(np.float64) @ _view_matrix(yaw, roll).T
        z = cfg.camera_distance - pts[:, 2]
        z = np.maximum(z, 1e-3)

        fov = math.radians(cfg.fov_degrees / max(zoom, 1e-3))
        focal = (cfg.height / 2.0) / math.tan(fov / 2.0)
        x_px = cfg.width / 2.0 + pts[:, 0] * focal / z
        y_px = cfg.height / 2.0 - pts[:, 1] * focal / z
        depth = np.clip((pts[:, 2] + 1.5) / 3.0, 0.0, 1.0).astype(np.float32)
        return x_px, y_px, depth

    def render(self, frame: RenderFrame) -> np.ndarray:
        """Draw one frame; returns (H, W, 3) uint8."""
        try:
            image = self._draw(frame)
        except (ValueError, FloatingPointError, MemoryError) as exc:
            raise TransientRenderFailure(f"preview frame {frame.index}: {exc}") from exc
        self.last_image = image
        return image

    __call__ = render

    def _draw(self, frame: RenderFrame) -> np.ndarray:
        cfg = self.cfg
        params = frame.parameters

        self._accum *= cfg.trail_decay

        pts = self._subsample(frame.positions)
        x_px, y_px, depth = self.project(pts, params.yaw, params.rotation, params.zoom)
        hue = params.hue + depth * 0.12
        weights = (
            cfg.particle_brightness
            * (0.3 + 0.7 * depth)
            * (1.0 + params.sparkle_flash * 0.6 + params.pad_level * 0.3)
        ).astype(np.float32)
        splat(x_px, y_px, hsv_to_rgb(hue, 0.85, 1.0), weights, self._accum)

        # Attractor core glow
        ax, ay, _ = self.project(np.asarray([frame.attractor.position]), params.yaw, params.rotation, params.zoom)
        core = hsv_to_rgb(np.asarray([params.hue]), 0.5, 1.0)
        splat(ax, ay, core, np.asarray([min(frame.attractor.strength, 3.0) * 4.0], dtype=np.float32), self._accum)

        # Bloom scales with the fused bloom strength
        bloom = max(0.0, params.bloom)
        sigma = float(cfg.glow_radius)
        composite = self._accum + 0.25 * bloom * gaussian_filter(self._accum, sigma=[sigma, sigma, 0])

        # ACES filmic tone map, then contrast as a gamma curve
        x = composite
        mapped = np.clip((x * (2.51 * x + 0.03)) / (x * (2.43 * x + 0.59) + 0.14), 0.0, 1.0)
        mapped = mapped ** (1.0 / max(params.contrast, 0.1))
        out = (mapped * 255.0).astype(np.uint8)

        if params.warp > 0:
            out = radial_warp(out, amplitude=min(params.warp, 3.0) * 0.01, time=params.time)
        folds = int(round(params.folds))
        if folds >= 2 and params.mix > 0.01:
            folded = kaleidoscope_fold(out, folds, params.rotation * 2 * np.pi)
            mix = min(1.0, params.mix)
            out = (out.astype(np.float32) * (1 - mix) + folded.astype(np.float32) * mix).astype(np.uint8)
        out = mirror(out, params.mirror_x, params.mirror_y)

        if cfg.glow_enabled:
            out = add_glow(out, intensity=cfg.glow_intensity * min(1.0, bloom / 3.0), radius=cfg.glow_radius)
        if cfg.aberration_enabled:
            out = chromatic_aberration(out, offset=int(cfg.aberration_offset + params.chromatic_offset * 200))
        if cfg.vignette_strength > 0:
            out = vignette(out, strength=cfg.vignette_strength)
        return out

    def save_png(self, image: np.ndarray, path) -> None:
        Image.fromarray(image).save(path)
