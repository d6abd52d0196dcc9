"""
CLI entry point for headless sessions.

Usage:
    chromakeys-session [score.json] [options]
    python -m chromakeys [score.json] [options]

Plays a scripted (or random) trigger score through the engine at a fixed
frame rate, exports the per-frame parameters as JSON and optionally
writes preview PNGs.
"""

import argparse
import json
import logging
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from chromakeys.config import EngineConfig, load_config
from chromakeys.core.grid import DRUM_KINDS, GRID_COLS, GRID_ROWS
from chromakeys.engine import InstrumentEngine
from chromakeys.io.exporter import SessionExporter
from chromakeys.preview import PreviewRenderer

logger = logging.getLogger(__name__)

PROFILES = {
    "low": {"grid_size": 64, "width": 320, "height": 180, "fps": 30},
    "medium": {"grid_size": 128, "width": 640, "height": 360, "fps": 60},
    "high": {"grid_size": 256, "width": 1280, "height": 720, "fps": 60},
}

EVENT_TYPES = ("cell", "release", "drum", "note", "burst", "pedal", "zoom", "freeze", "arp", "ambient")


@dataclass(order=True)
class ScoreEvent:
    time: float
    type: str = field(compare=False)
    args: Dict[str, Any] = field(default_factory=dict, compare=False)


def parse_score(data: Dict[str, Any]) -> List[ScoreEvent]:
    """
    Parse ``{"events": [{"time": 0.5, "type": "cell", "col": 3, "row": 1, "hold": 0.4}, ...]}``.

    A ``hold`` on a cell event schedules the matching release.
    """
    events = []
    for raw in data.get("events", []):
        raw = dict(raw)
        kind = raw.pop("type", None)
        if kind not in EVENT_TYPES:
            raise ValueError(f"Unknown score event type: {kind!r}")
        t = float(raw.pop("time", 0.0))
        hold = raw.pop("hold", None)
        events.append(ScoreEvent(t, kind, raw))
        if kind == "cell" and hold is not None:
            events.append(ScoreEvent(t + float(hold), "release", {"col": raw["col"], "row": raw["row"]}))
    return sorted(events)


def load_score(path: Path) -> List[ScoreEvent]:
    with open(path, encoding="utf-8") as f:
        return parse_score(json.load(f))


def random_score(duration: float, rate: float, seed: Optional[int] = None) -> List[ScoreEvent]:
    """Poisson-ish stream of cell presses, drum hits and the odd burst."""
    rng = np.random.default_rng(seed)
    events = []
    t = 0.0
    while True:
        t += float(rng.exponential(1.0 / max(rate, 1e-6)))
        if t >= duration:
            break
        roll = rng.random()
        if roll < 0.6:
            col, row = int(rng.integers(GRID_COLS)), int(rng.integers(GRID_ROWS))
            events.append(ScoreEvent(t, "cell", {"col": col, "row": row}))
            events.append(ScoreEvent(t + float(rng.uniform(0.1, 0.8)), "release", {"col": col, "row": row}))
        elif roll < 0.95:
            events.append(ScoreEvent(t, "drum", {"index": int(rng.integers(len(DRUM_KINDS)))}))
        else:
            events.append(ScoreEvent(t, "burst", {}))
    return sorted(events)


def apply_event(engine: InstrumentEngine, event: ScoreEvent) -> None:
    a = event.args
    if event.type == "cell":
        engine.trigger_cell(int(a["col"]), int(a["row"]))
    elif event.type == "release":
        engine.release_cell(int(a["col"]), int(a["row"]))
    elif event.type == "drum":
        engine.trigger_drum(int(a["index"]))
    elif event.type == "note":
        engine.trigger_note(int(a["midi"]), float(a.get("velocity", 0.8)))
    elif event.type == "burst":
        engine.burst(a.get("col"), a.get("row"))
    elif event.type == "pedal":
        engine.set_sustain_pedal(bool(a.get("down", True)))
    elif event.type == "zoom":
        engine.zoom_by(float(a.get("steps", 1)))
    elif event.type == "freeze":
        engine.freeze_visuals(float(a.get("seconds", 2.0)))
    elif event.type == "arp":
        engine.toggle_arpeggiator()
    elif event.type == "ambient":
        engine.toggle_ambient()


def _progress_bar(current: int, total: int, width: int = 35):
    """Print a progress bar to stdout."""
    pct = current / max(total, 1) * 100
    filled = int(width * current / max(total, 1))
    bar = "#" * filled + "-" * (width - filled)
    if sys.stdout.isatty():
        sys.stdout.write(f"\r[{bar}] {pct:5.1f}%  frame {current}/{total}")
        sys.stdout.flush()
        if current >= total:
            sys.stdout.write("\n")
    else:
        if current % max(1, total // 20) == 0 or current >= total:
            print(f"{pct:5.1f}%  frame {current}/{total}", flush=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chromakeys-session",
        description="Run a trigger score through the chromakeys engine and export the session",
    )
    parser.add_argument("score", type=Path, nargs="?", default=None,
                        help="Score JSON (default: random triggers)")
    parser.add_argument("-o", "--output", type=Path, default=Path("session.json"),
                        help="Output session JSON (default: session.json)")
    parser.add_argument("-d", "--duration", type=float, default=10.0, help="Seconds to run (default: 10)")
    parser.add_argument(
        "-p", "--profile", type=str, default="medium", choices=list(PROFILES),
        help="Target profile (low: 64^2 field 30fps, medium: 128^2 60fps, high: 256^2 60fps)",
    )
    parser.add_argument("-f", "--fps", type=int, default=None, help="Ticks per second (overrides profile)")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--config", type=Path, default=None, help="JSON config overrides")
    parser.add_argument("--rate", type=float, default=2.0, help="Random score events per second")
    parser.add_argument("--precision", type=int, default=4, help="Decimal places in the export")
    parser.add_argument("--npz", action="store_true", help="Also write a .npz next to the JSON")

    parser.add_argument("--frames-dir", type=Path, default=None, help="Write preview PNGs here")
    parser.add_argument("--png-every", type=int, default=10, help="Write every Nth preview frame")
    parser.add_argument("--no-glow", action="store_true", help="Disable glow")
    parser.add_argument("--no-aberration", action="store_true", help="Disable chromatic aberration")
    parser.add_argument("--no-vignette", action="store_true", help="Disable vignette")

    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def make_config(args: argparse.Namespace) -> EngineConfig:
    config = load_config(args.config) if args.config else EngineConfig()
    p_cfg = PROFILES[args.profile]
    config.field.grid_size = p_cfg["grid_size"]
    config.preview.width = p_cfg["width"]
    config.preview.height = p_cfg["height"]
    config.preview.fps = args.fps or p_cfg["fps"]
    config.preview.glow_enabled = not args.no_glow
    config.preview.aberration_enabled = not args.no_aberration
    if args.no_vignette:
        config.preview.vignette_strength = 0.0
    if args.seed is not None:
        config.seed = args.seed
    return config


def main(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.score is not None and not args.score.exists():
        print(f"Error: Score file not found: {args.score}", file=sys.stderr)
        sys.exit(1)

    try:
        config = make_config(args)
        events = load_score(args.score) if args.score else random_score(args.duration, args.rate, config.seed)
    except (ValueError, KeyError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    fps = config.preview.fps
    dt = 1.0 / fps
    total_frames = int(args.duration * fps)

    print(f"Score: {args.score or 'random'} ({len(events)} events)")
    print(f"  Profile: {args.profile}, field {config.field.grid_size}x{config.field.grid_size}, {fps}fps")

    engine = InstrumentEngine(config)
    exporter = SessionExporter(precision=args.precision)
    preview = None
    if args.frames_dir is not None:
        args.frames_dir.mkdir(parents=True, exist_ok=True)
        preview = PreviewRenderer(config.preview, seed=config.seed)
    if not engine.field.simulated:
        print("  Field simulation unavailable, using static point cloud")

    t0 = time.time()
    pending = list(events)
    for i in range(total_frames):
        now = (i + 1) * dt
        while pending and pending[0].time <= now:
            event = pending.pop(0)
            logger.debug("t=%.3f %s %s", now, event.type, event.args)
            apply_event(engine, event)
        frame = engine.tick(now, dt)
        exporter.record(frame)
        if preview is not None and i % max(1, args.png_every) == 0:
            preview.save_png(preview.render(frame), args.frames_dir / f"frame_{i:05d}.png")
        _progress_bar(i + 1, total_frames)

    elapsed = time.time() - t0
    output = exporter.export_json(args.output, fps=fps, grid_size=config.field.grid_size, seed=config.seed)
    if args.npz:
        exporter.export_numpy(output.with_suffix(".npz"))

    print(f"\nDone! {total_frames} frames in {elapsed:.1f}s ({total_frames / max(elapsed, 0.01):.1f} fps)")
    if engine.render_failures:
        print(f"  Render failures: {engine.render_failures}")
    print(f"  Output: {output}")


if __name__ == "__main__":
    main()
