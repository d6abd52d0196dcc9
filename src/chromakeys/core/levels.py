"""
Caller-side shaping of audio inputs.

Fusion adds audio and microphone signals unfiltered, so whoever feeds
them is responsible for the band split, gating and smoothing done here.
"""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class AudioLevels:
    """Output spectrum summary, every band in [0, 1]."""

    bass: float = 0.0
    mid: float = 0.0
    treble: float = 0.0
    energy: float = 0.0

    @classmethod
    def from_spectrum(
        cls,
        spectrum: np.ndarray,
        full_scale: float = 255.0,
        bass_split: float = 0.15,
        mid_split: float = 0.5,
    ) -> "AudioLevels":
        """
        Split a magnitude spectrum into bass / mid / treble averages.

        Args:
            spectrum: 1-D magnitudes, lowest bin first.
            full_scale: Magnitude mapped to 1.0 (255 for byte spectra).
            bass_split: End of the bass band as a fraction of the bins.
            mid_split: End of the mid band as a fraction of the bins.
        """
        spectrum = np.asarray(spectrum, dtype=np.float64).ravel()
        n = len(spectrum)
        bass_end = int(n * bass_split)
        mid_end = int(n * mid_split)
        if bass_end < 1 or mid_end <= bass_end or n <= mid_end:
            return cls()

        def band(lo: int, hi: int) -> float:
            return float(np.clip(spectrum[lo:hi].mean() / full_scale, 0.0, 1.0))

        bass = band(0, bass_end)
        mid = band(bass_end, mid_end)
        treble = band(mid_end, n)
        return cls(
            bass=bass,
            mid=mid,
            treble=treble,
            energy=bass * 0.5 + mid * 0.3 + treble * 0.2,
        )

    def bass_hit(self, threshold: float = 0.4) -> float:
        """Kick pressure: how far bass pokes above the threshold, scaled."""
        if self.bass <= threshold:
            return 0.0
        return (self.bass - threshold) * 2.5


SILENCE = AudioLevels()


class MicrophoneMeter:
    """
    RMS loudness with a noise gate and exponential smoothing.

    Quiet rooms read as silence; speaking gives a gentle rise.
    """

    def __init__(self, gate: float = 0.012, smoothing: float = 0.11, visual_scale: float = 0.65):
        self.gate = gate
        self.smoothing = smoothing
        self.visual_scale = visual_scale
        self.level = 0.0
        self.smoothed = 0.0

    def update(self, samples: np.ndarray) -> float:
        """
        Feed one block of time-domain samples.

        Accepts unsigned bytes centred on 128 or floats in [-1, 1].

        Returns:
            The smoothed, gated level.
        """
        samples = np.asarray(samples)
        if samples.size == 0:
            raw = 0.0
        else:
            if samples.dtype == np.uint8:
                values = (samples.astype(np.float64) - 128.0) / 128.0
            else:
                values = samples.astype(np.float64)
            raw = float(np.sqrt(np.mean(values * values)))

        self.level = 0.0 if raw < self.gate else raw
        self.smoothed += (self.level - self.smoothed) * self.smoothing
        return self.smoothed

    @property
    def visual(self) -> float:
        """Smoothed level scaled into the visual range."""
        return self.smoothed * self.visual_scale
