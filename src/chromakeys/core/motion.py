"""
Heuristic head and hand tracking from raw camera frames.

No detector model: the frame is cut into vertical columns and each column
scores its spatial contrast plus its frame-to-frame motion. The densest
cluster of columns is taken as the subject. The upper band of the frame
drives the head estimate, the lower half drives two virtual hand knobs
and a fast-swipe trigger.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np
from scipy.ndimage import convolve1d

from chromakeys.config import MotionConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FastSwipe:
    """One-shot swipe event; ``direction`` is -1, 0 or +1."""

    active: bool = False
    direction: int = 0
    timestamp: float = -1.0
    duration: float = 0.45

    def active_at(self, now: float) -> bool:
        return self.timestamp >= 0 and 0.0 <= now - self.timestamp < self.duration


@dataclass(frozen=True)
class GestureState:
    """Frozen tracking snapshot, every value in [0, 1]."""

    head_x: float = 0.5
    head_confidence: float = 0.0
    hand_knob1: float = 0.5
    hand_knob2: float = 0.0
    fast_swipe: FastSwipe = field(default_factory=FastSwipe)

    @property
    def head_offset(self) -> float:
        """Head position relative to frame centre, in [-0.5, 0.5]."""
        return self.head_x - 0.5


NEUTRAL_GESTURE = GestureState()


def _rgb(frame: np.ndarray) -> np.ndarray:
    frame = np.asarray(frame)
    if frame.ndim != 3 or frame.shape[2] < 3:
        raise ValueError(f"Expected an (H, W, 3|4) frame, got shape {frame.shape}")
    return frame[:, :, :3].astype(np.int32)


def _column_terms(
    rgb: np.ndarray,
    previous: Optional[np.ndarray],
    y_range: Tuple[float, float],
    num_cols: int,
    stride: int,
) -> Tuple[np.ndarray, np.ndarray]:
    """Per-column (contrast, unweighted motion) on the sub-sampled grid."""
    h, w = rgb.shape[:2]
    contrast = np.zeros(num_cols)
    motion = np.zeros(num_cols)

    col_w = w // num_cols
    y_start, y_end = int(h * y_range[0]), int(h * y_range[1])
    if col_w < 1 or y_end <= y_start:
        return contrast, motion

    ys = np.arange(y_start, y_end, stride)
    offsets = np.arange(0, col_w, stride)
    xs = np.arange(num_cols)[:, None] * col_w + offsets[None, :]   # (cols, K)

    samples = rgb[ys][:, xs]                                       # (Y, cols, K, 3)

    # Neighbours only count while they stay inside the column and the band
    valid_x = (offsets + stride) < col_w
    valid_y = (ys + stride) < y_end
    right = rgb[ys][:, np.minimum(xs + stride, w - 1)]
    down = rgb[np.minimum(ys + stride, h - 1)][:, xs]
    diff = np.abs(samples - right).sum(axis=-1) + np.abs(samples - down).sum(axis=-1)
    diff = diff * valid_y[:, None, None] * valid_x[None, None, :]
    contrast = diff.sum(axis=(0, 2)).astype(np.float64)

    if previous is not None:
        prev = previous[ys][:, xs]
        motion = np.abs(samples - prev).sum(axis=-1).sum(axis=(0, 2)).astype(np.float64)

    return contrast, motion


def column_energy(
    frame: np.ndarray,
    previous: Optional[np.ndarray],
    y_range: Tuple[float, float],
    num_cols: int = 16,
    stride: int = 2,
    motion_weight: float = 1.0,
) -> np.ndarray:
    """
    Score every vertical column of a horizontal band.

    Args:
        frame: (H, W, 3|4) uint8 frame.
        previous: Previous frame of the same shape, or None.
        y_range: Band as (start, end) fractions of the frame height.
        num_cols: Number of columns.
        stride: Pixel sub-sampling step in both axes.
        motion_weight: Multiplier on the temporal difference.

    Returns:
        (num_cols,) energy: right/down neighbour contrast plus weighted motion.
    """
    rgb = _rgb(frame)
    prev = None
    if previous is not None and np.shape(previous)[:2] == rgb.shape[:2]:
        prev = _rgb(previous)
    contrast, motion = _column_terms(rgb, prev, y_range, num_cols, stride)
    return contrast + motion * motion_weight


def smooth_columns(energy: np.ndarray, kernel: Sequence[float]) -> np.ndarray:
    """Symmetric kernel smoothing with zero-padded edges."""
    return convolve1d(
        np.asarray(energy, dtype=np.float64),
        np.asarray(kernel, dtype=np.float64),
        mode="constant",
        cval=0.0,
    )


def peak_centroid(smoothed: np.ndarray, window: int = 3) -> float:
    """
    Weighted centroid around the strongest column, normalized to [0, 1].

    Returns 0.5 when the window carries no energy at all.
    """
    n = len(smoothed)
    peak, peak_val = n // 2, 0.0
    for c in range(n):
        if smoothed[c] > peak_val:
            peak_val, peak = smoothed[c], c

    lo, hi = max(0, peak - window), min(n - 1, peak + window)
    weights = np.asarray(smoothed[lo:hi + 1], dtype=np.float64)
    total = float(weights.sum())
    if total <= 0:
        return 0.5
    centres = np.arange(lo, hi + 1) + 0.5
    return float((weights * centres).sum() / total / n)


def _lerp(current: float, target: float, factor: float) -> float:
    return current + (target - current) * factor


class MotionTracker:
    """
    Rate-limited camera analysis producing GestureState snapshots.

    Between analyses ``process`` hands back the cached snapshot without
    looking at the frame, so callers can feed every camera frame.
    """

    def __init__(self, config: Optional[MotionConfig] = None):
        self.cfg = config or MotionConfig()
        self.reset()

    def reset(self) -> None:
        """Forget the previous frame and all estimates."""
        self._prev_frame: Optional[np.ndarray] = None
        self._last_analysis: Optional[float] = None
        self._prev_raw_hand: Optional[float] = None
        self._prev_raw_time: Optional[float] = None

        self._head_x = 0.5
        self._head_confidence = 0.0
        self._hand_x = 0.5
        self._hand_motion = 0.0
        self._swipe = FastSwipe(duration=self.cfg.swipe_duration)
        self.state = NEUTRAL_GESTURE
        self.analyses = 0

    def _raw(self, centroid: float) -> float:
        return 1.0 - centroid if self.cfg.mirror else centroid

    def process(self, frame: np.ndarray, now: float) -> GestureState:
        cfg = self.cfg
        if self._last_analysis is not None and now - self._last_analysis < cfg.min_interval:
            return self.state
        self._last_analysis = now

        rgb = _rgb(frame)
        previous = self._prev_frame
        if previous is not None and previous.shape != rgb.shape:
            logger.debug("Frame size changed %s -> %s", previous.shape, rgb.shape)
            previous = None

        self._update_head(rgb, previous)
        self._update_hand(rgb, previous, now)
        self._prev_frame = rgb
        self.analyses += 1

        self.state = GestureState(
            head_x=float(np.clip(self._head_x, 0.0, 1.0)),
            head_confidence=self._head_confidence,
            hand_knob1=float(np.clip(self._hand_x, 0.0, 1.0)),
            hand_knob2=float(np.clip(self._hand_motion, 0.0, 1.0)),
            fast_swipe=FastSwipe(
                active=self._swipe.active_at(now),
                direction=self._swipe.direction,
                timestamp=self._swipe.timestamp,
                duration=cfg.swipe_duration,
            ),
        )
        return self.state

    def _update_head(self, rgb: np.ndarray, previous: Optional[np.ndarray]) -> None:
        cfg = self.cfg
        contrast, motion = _column_terms(rgb, previous, cfg.head_rows, cfg.num_cols, cfg.stride)
        energy = contrast + motion * cfg.head_motion_weight
        total = float(energy.sum())

        if total <= 0:
            # Nothing to see: hold the estimate
            self._head_confidence = 0.0
            return

        raw = self._raw(peak_centroid(smooth_columns(energy, cfg.head_kernel), cfg.centroid_window))
        floor = cfg.num_cols * cfg.energy_floor_per_col
        if total > floor:
            conf = min(1.0, total / (floor * cfg.confidence_span))
        else:
            conf = cfg.low_confidence

        self._head_x = _lerp(self._head_x, raw, cfg.head_rate_base + conf * cfg.head_rate_gain)
        self._head_confidence = conf

    def _update_hand(self, rgb: np.ndarray, previous: Optional[np.ndarray], now: float) -> None:
        cfg = self.cfg
        contrast, motion = _column_terms(rgb, previous, cfg.hand_rows, cfg.num_cols, cfg.stride)
        weighted_motion = motion * cfg.hand_motion_weight
        energy = contrast + weighted_motion

        motion_norm = min(1.0, float(weighted_motion.sum()) / (cfg.num_cols * cfg.hand_motion_norm_per_col))
        self._hand_motion = _lerp(self._hand_motion, motion_norm, cfg.hand_motion_rate)

        if float(energy.sum()) <= 0:
            return

        raw = self._raw(peak_centroid(smooth_columns(energy, cfg.hand_kernel), cfg.centroid_window))

        if self._prev_raw_hand is not None:
            elapsed = now - self._prev_raw_time
            if elapsed > 0:
                velocity = (raw - self._prev_raw_hand) / elapsed
                if abs(velocity) >= cfg.swipe_velocity:
                    direction = 1 if velocity > 0 else -1
                    self._swipe = FastSwipe(True, direction, now, cfg.swipe_duration)
                    logger.debug("Fast swipe %+d at %.3f (v=%.2f)", direction, now, velocity)

        self._prev_raw_hand = raw
        self._prev_raw_time = now
        self._hand_x = _lerp(self._hand_x, raw, cfg.hand_rate)
