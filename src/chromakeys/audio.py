"""
Audio engine boundary.

Synthesis lives outside the core. The engine only needs fire-and-forget
note and drum calls plus cheap, non-blocking level reads once per tick.
"""

from typing import Protocol, runtime_checkable

from chromakeys.core.levels import SILENCE, AudioLevels


@runtime_checkable
class AudioEngine(Protocol):
    def levels(self) -> AudioLevels:
        """Current output spectrum summary."""
        ...

    def trigger_note(self, pitch: int, velocity: float, sustained: bool) -> None:
        ...

    def release_note(self, pitch: int) -> None:
        ...

    def trigger_drum(self, kind: str) -> None:
        ...

    def microphone_level(self) -> float:
        """Gated and smoothed microphone level in [0, 1]."""
        ...


class SilentAudioEngine:
    """No sound, flat levels. Used headless and when audio is unavailable."""

    def levels(self) -> AudioLevels:
        return SILENCE

    def trigger_note(self, pitch: int, velocity: float, sustained: bool) -> None:
        pass

    def release_note(self, pitch: int) -> None:
        pass

    def trigger_drum(self, kind: str) -> None:
        pass

    def microphone_level(self) -> float:
        return 0.0
