"""
Generative note sources advanced by the caller's tick.

Both the arpeggiator and the ambient player are small state machines:
``tick(dt)`` accumulates time and returns the notes that fell due.
Neither owns a timer or a thread.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

import numpy as np

from chromakeys.config import SequencerConfig

logger = logging.getLogger(__name__)

ARP_PATTERNS = (
    (0, 4, 7, 12, 7, 4),                  # major up-down
    (0, 3, 7, 12, 7, 3),                  # minor up-down
    (0, 4, 7, 11, 12, 11, 7, 4),          # maj7 cascade
    (0, 7, 12, 0, 5, 12),                 # power fifths
    (0, 3, 7, 10, 14, 10, 7, 3),          # min7 wave
    (0, 2, 4, 7, 9, 12, 9, 7, 4, 2),      # pentatonic run
)

AMBIENT_SCALES = (
    (0, 2, 4, 7, 9),                      # major pentatonic
    (0, 3, 5, 7, 10),                     # minor pentatonic
    (0, 2, 3, 5, 7, 8, 10),               # dorian
    (0, 2, 4, 5, 7, 9, 11),               # ionian
)

MAX_ARP_ROOT = 120


@dataclass(frozen=True)
class NoteEvent:
    """A note to play; ``visual`` notes also move the attractor."""

    pitch: int
    velocity: float
    sustained: bool = False
    visual: bool = True


class Arpeggiator:
    """Sixteenth-note arpeggio over the lowest held note."""

    def __init__(self, config: Optional[SequencerConfig] = None, rng: Optional[np.random.Generator] = None):
        self.cfg = config or SequencerConfig()
        self.rng = rng or np.random.default_rng()
        self.enabled = False
        self.pattern = ARP_PATTERNS[0]
        self.index = 0
        self._elapsed = 0.0

    @property
    def step_interval(self) -> float:
        return 60.0 / self.cfg.arp_bpm / 2.0

    def start(self) -> None:
        self.enabled = True
        self.pattern = ARP_PATTERNS[int(self.rng.integers(len(ARP_PATTERNS)))]
        self.index = 0
        self._elapsed = 0.0
        logger.info("Arpeggiator on: pattern %s", self.pattern)

    def stop(self) -> None:
        self.enabled = False
        logger.info("Arpeggiator off")

    def toggle(self) -> bool:
        if self.enabled:
            self.stop()
        else:
            self.start()
        return self.enabled

    def tick(self, dt: float, held_pitches: Iterable[int]) -> List[NoteEvent]:
        if not self.enabled:
            return []

        held = list(held_pitches)
        events = []
        self._elapsed += dt
        while self._elapsed >= self.step_interval:
            self._elapsed -= self.step_interval
            if not held:
                continue
            root = min(held)
            if root > MAX_ARP_ROOT:
                continue
            pitch = root + self.pattern[self.index % len(self.pattern)]
            self.index += 1
            velocity = self.cfg.arp_velocity + self.rng.random() * self.cfg.arp_velocity_spread
            events.append(NoteEvent(pitch=pitch, velocity=velocity))
        return events


class AmbientPlayer:
    """
    Soft generative notes that fade in after a long idle stretch.

    Any user action stops playback and restarts the idle clock.
    """

    def __init__(self, config: Optional[SequencerConfig] = None, rng: Optional[np.random.Generator] = None):
        self.cfg = config or SequencerConfig()
        self.rng = rng or np.random.default_rng()
        self.active = False
        self.idle_time = 0.0
        self.scale = AMBIENT_SCALES[0]
        self.root = 60
        self.note_count = 0
        self._next_in = 0.0

    def start(self) -> None:
        if self.active:
            return
        self.active = True
        self.note_count = 0
        self.scale = AMBIENT_SCALES[int(self.rng.integers(len(AMBIENT_SCALES)))]
        self.root = 48 + int(self.rng.integers(24))
        self._next_in = 0.0
        logger.info("Ambient on: root %d, scale %s", self.root, self.scale)

    def stop(self) -> None:
        if self.active:
            logger.info("Ambient off")
        self.active = False

    def toggle(self) -> bool:
        if self.active:
            self.stop()
        else:
            self.start()
        return self.active

    def mark_user_action(self) -> None:
        self.idle_time = 0.0
        self.stop()

    def tick(self, dt: float) -> List[NoteEvent]:
        self.idle_time += dt
        if not self.active and self.cfg.ambient_auto_start and self.idle_time > self.cfg.ambient_delay:
            self.start()
        if not self.active:
            return []

        events = []
        self._next_in -= dt
        while self._next_in <= 0.0:
            events.extend(self._step())
            gap = self.cfg.ambient_min_gap + self.rng.random() * (
                self.cfg.ambient_max_gap - self.cfg.ambient_min_gap
            )
            self._next_in += gap
        return events

    def _step(self) -> List[NoteEvent]:
        rng = self.rng
        self.note_count += 1
        fade_in = min(1.0, self.note_count / self.cfg.ambient_fade_notes)
        velocity = (0.055 + rng.random() * 0.06) * fade_in

        degree_index = int(rng.integers(len(self.scale)))
        degree = self.scale[degree_index]
        octave = int(rng.integers(2)) * 12
        events = [
            NoteEvent(
                pitch=self.root + degree + octave,
                velocity=velocity,
                sustained=bool(rng.random() > 0.55),
            )
        ]
        if rng.random() > 0.82:
            third = self.scale[(degree_index + 2) % len(self.scale)]
            events.append(
                NoteEvent(pitch=self.root + third + octave, velocity=velocity * 0.7, visual=False)
            )
        return events
