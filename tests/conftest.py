"""Pytest configuration and shared fixtures."""

from typing import List, Tuple

import numpy as np
import pytest

from chromakeys.config import EngineConfig
from chromakeys.core.levels import SILENCE, AudioLevels
from chromakeys.engine import InstrumentEngine

# Analysis frame size for synthetic camera frames
FRAME_W, FRAME_H = 160, 120


class RecordingAudioEngine:
    """AudioEngine double that remembers every call."""

    def __init__(self, levels: AudioLevels = SILENCE, mic: float = 0.0):
        self._levels = levels
        self._mic = mic
        self.notes: List[Tuple[int, float, bool]] = []
        self.released: List[int] = []
        self.drums: List[str] = []

    def levels(self) -> AudioLevels:
        return self._levels

    def trigger_note(self, pitch: int, velocity: float, sustained: bool) -> None:
        self.notes.append((pitch, velocity, sustained))

    def release_note(self, pitch: int) -> None:
        self.released.append(pitch)

    def trigger_drum(self, kind: str) -> None:
        self.drums.append(kind)

    def microphone_level(self) -> float:
        return self._mic


@pytest.fixture
def small_config() -> EngineConfig:
    """Engine config with a 16x16 field and a tiny preview."""
    config = EngineConfig(seed=7)
    config.field.grid_size = 16
    config.preview.width = 96
    config.preview.height = 64
    config.preview.max_particles = 200
    config.sequencer.ambient_auto_start = False
    return config


@pytest.fixture
def audio() -> RecordingAudioEngine:
    return RecordingAudioEngine()


@pytest.fixture
def engine(small_config, audio) -> InstrumentEngine:
    return InstrumentEngine(small_config, audio=audio)


def uniform_frame(value: int = 90) -> np.ndarray:
    """Flat RGBA frame: no contrast anywhere."""
    frame = np.full((FRAME_H, FRAME_W, 4), value, dtype=np.uint8)
    frame[:, :, 3] = 255
    return frame


def bright_column_frame(x: float, width: int = 6) -> np.ndarray:
    """Black RGBA frame with a full-height white strip centred at fraction ``x``."""
    frame = np.zeros((FRAME_H, FRAME_W, 4), dtype=np.uint8)
    frame[:, :, 3] = 255
    centre = int(x * FRAME_W)
    lo = max(0, centre - width // 2)
    frame[:, lo:lo + width, :3] = 255
    return frame


@pytest.fixture
def flat_frame() -> np.ndarray:
    return uniform_frame()


@pytest.fixture
def column_frame():
    """Factory for bright-strip frames: ``column_frame(0.9)``."""
    return bright_column_frame


@pytest.fixture
def make_audio():
    """Factory for RecordingAudioEngine with custom levels."""
    return RecordingAudioEngine
