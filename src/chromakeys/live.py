"""
Interactive pygame window.

Usage:
    chromakeys-live [--camera] [--profile low|medium|high]

Keys:
    Z..M, Q..P, [ ]   notes (hold for chords, Shift = octave up)
    A..L ; '          drum pads
    Space             sustain pedal
    2 / 4             arpeggiator / ambient
    5                 freeze visuals for 2 s
    Esc               stop sustained notes, reset zoom
Mouse: click or drag over the 12x3 grid, double-click for a burst,
wheel to zoom.
"""

import argparse
import logging
import time
from pathlib import Path
from typing import Dict, Optional, Tuple

import numpy as np
import pygame

from chromakeys.capture import CameraSource
from chromakeys.cli import PROFILES
from chromakeys.config import EngineConfig, load_config
from chromakeys.core.grid import GRID_COLS, GRID_ROWS, midi_to_cell
from chromakeys.engine import InstrumentEngine
from chromakeys.errors import DeviceUnavailable
from chromakeys.preview import PreviewRenderer

logger = logging.getLogger(__name__)

KEY_TO_NOTE = {
    pygame.K_z: 48, pygame.K_x: 50, pygame.K_c: 52, pygame.K_v: 53,
    pygame.K_b: 55, pygame.K_n: 57, pygame.K_m: 59,
    pygame.K_q: 60, pygame.K_w: 62, pygame.K_e: 64, pygame.K_r: 65, pygame.K_t: 67,
    pygame.K_y: 69, pygame.K_u: 71, pygame.K_i: 72, pygame.K_o: 74, pygame.K_p: 76,
    pygame.K_LEFTBRACKET: 77, pygame.K_RIGHTBRACKET: 79,
}

DRUM_KEYS = (
    pygame.K_a, pygame.K_s, pygame.K_d, pygame.K_f, pygame.K_g, pygame.K_h,
    pygame.K_j, pygame.K_k, pygame.K_l, pygame.K_SEMICOLON, pygame.K_QUOTE,
)

DOUBLE_CLICK_SEC = 0.3


def surface_from_array(image: np.ndarray) -> pygame.Surface:
    """(H, W, 3) uint8 -> pygame Surface (pygame wants (W, H, 3))."""
    return pygame.surfarray.make_surface(np.transpose(image, (1, 0, 2)))


class LiveSession:
    """Maps pygame events onto the engine's trigger surface."""

    def __init__(self, engine: InstrumentEngine, preview: PreviewRenderer, window_size: Tuple[int, int]):
        self.engine = engine
        self.preview = preview
        self.window_size = window_size
        self.running = True
        self._key_cells: Dict[int, Tuple[int, int]] = {}
        self._key_notes: Dict[int, int] = {}
        self._mouse_cell: Optional[Tuple[int, int]] = None
        self._last_click = -1.0

    def cell_at(self, pos: Tuple[int, int]) -> Tuple[int, int]:
        w, h = self.window_size
        col = min(GRID_COLS - 1, max(0, int(pos[0] / w * GRID_COLS)))
        row = min(GRID_ROWS - 1, max(0, int(pos[1] / h * GRID_ROWS)))
        return col, row

    def handle(self, event: pygame.event.Event) -> None:
        engine = self.engine
        if event.type == pygame.QUIT:
            self.running = False

        elif event.type == pygame.KEYDOWN:
            self._key_down(event)

        elif event.type == pygame.KEYUP:
            if event.key == pygame.K_SPACE:
                engine.set_sustain_pedal(False)
            cell = self._key_cells.pop(event.key, None)
            if cell is not None:
                engine.release_cell(*cell)
            pitch = self._key_notes.pop(event.key, None)
            if pitch is not None:
                engine.release_note(pitch)

        elif event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
            now = time.perf_counter()
            if now - self._last_click < DOUBLE_CLICK_SEC:
                engine.burst()
            else:
                self._press_mouse_cell(self.cell_at(event.pos))
            self._last_click = now

        elif event.type == pygame.MOUSEBUTTONUP and event.button == 1:
            self._release_mouse_cell()

        elif event.type == pygame.MOUSEMOTION:
            engine.mouse_move(*event.rel)
            if event.buttons[0]:
                cell = self.cell_at(event.pos)
                if cell != self._mouse_cell:
                    self._release_mouse_cell()
                    self._press_mouse_cell(cell)

        elif event.type == pygame.MOUSEWHEEL:
            engine.zoom_by(-event.y)

    def _press_mouse_cell(self, cell: Tuple[int, int]) -> None:
        self.engine.trigger_cell(*cell)
        self._mouse_cell = cell

    def _release_mouse_cell(self) -> None:
        if self._mouse_cell is not None:
            self.engine.release_cell(*self._mouse_cell)
            self._mouse_cell = None

    def _key_down(self, event: pygame.event.Event) -> None:
        engine = self.engine
        key = event.key
        if key == pygame.K_ESCAPE:
            engine.stop_all_sustained()
            engine.reset_zoom()
        elif key == pygame.K_SPACE:
            engine.set_sustain_pedal(True)
        elif key == pygame.K_5:
            engine.freeze_visuals(2.0)
        elif key == pygame.K_2:
            print(f"Arp {'ON' if engine.toggle_arpeggiator() else 'off'}")
        elif key == pygame.K_4:
            print(f"Ambient {'ON' if engine.toggle_ambient() else 'off'}")
        elif key in DRUM_KEYS:
            engine.trigger_drum(DRUM_KEYS.index(key))
        elif key in KEY_TO_NOTE and key not in self._key_cells and key not in self._key_notes:
            midi = KEY_TO_NOTE[key]
            if event.mod & pygame.KMOD_SHIFT:
                engine.trigger_note(midi + 12, hold=True)
                self._key_notes[key] = midi + 12
            else:
                cell = midi_to_cell(midi)
                engine.trigger_cell(*cell)
                self._key_cells[key] = cell


def main(argv=None):
    parser = argparse.ArgumentParser(prog="chromakeys-live", description="Play chromakeys in a window")
    parser.add_argument("-p", "--profile", type=str, default="low", choices=list(PROFILES),
                        help="Field size and preview resolution (default: low)")
    parser.add_argument("--camera", action="store_true", help="Enable webcam head/hand tracking")
    parser.add_argument("--camera-index", type=int, default=0, help="OpenCV camera index")
    parser.add_argument("--scale", type=int, default=2, help="Window scale over the preview resolution")
    parser.add_argument("--config", type=Path, default=None, help="JSON config overrides")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config) if args.config else EngineConfig()
    p_cfg = PROFILES[args.profile]
    config.field.grid_size = p_cfg["grid_size"]
    config.preview.width = p_cfg["width"]
    config.preview.height = p_cfg["height"]
    config.preview.fps = p_cfg["fps"]
    if args.seed is not None:
        config.seed = args.seed

    camera = None
    if args.camera:
        try:
            camera = CameraSource(args.camera_index).open()
        except DeviceUnavailable as exc:
            logger.warning("%s; running without tracking", exc)

    preview = PreviewRenderer(config.preview, seed=config.seed)
    engine = InstrumentEngine(config, camera=camera, renderer=preview)

    pygame.init()
    window_size = (config.preview.width * args.scale, config.preview.height * args.scale)
    screen = pygame.display.set_mode(window_size)
    pygame.display.set_caption("chromakeys")
    clock = pygame.time.Clock()
    session = LiveSession(engine, preview, window_size)

    start = time.perf_counter()
    try:
        while session.running:
            dt = clock.tick(config.preview.fps) / 1000.0
            for event in pygame.event.get():
                session.handle(event)

            engine.tick(time.perf_counter() - start, dt)
            if preview.last_image is not None:
                frame = surface_from_array(preview.last_image)
                screen.blit(pygame.transform.smoothscale(frame, window_size), (0, 0))
            pygame.display.flip()
            pygame.display.set_caption(
                f"chromakeys  {clock.get_fps():4.1f} fps  idle:{engine.fusion.idle.phase.value}"
            )
    finally:
        if camera is not None:
            camera.close()
        pygame.quit()


if __name__ == "__main__":
    main()
