"""
Session serialization.

Records the fused parameters of every tick and writes them as a JSON
session (or a compact .npz) that offline renderers can replay.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np

from chromakeys.core.grid import cell_to_midi, note_name
from chromakeys.engine import RenderFrame


@dataclass
class SessionMetadata:
    """Header for an exported session."""

    fps: float
    duration: float
    n_frames: int
    grid_size: int
    simulated: bool
    seed: Optional[int] = None
    schema_version: str = "1.0"


class SessionExporter:
    """
    Collects RenderFrames and exports them.

    Positions are not stored; a session is the parameter stream only.
    """

    def __init__(self, precision: int = 4):
        """
        Args:
            precision: Decimal places for floating point values.
        """
        self.precision = precision
        self.frames: List[Dict[str, Any]] = []
        self._simulated = True

    def _round(self, value: float) -> float:
        return round(float(value), self.precision)

    def record(self, frame: RenderFrame) -> Dict[str, Any]:
        """Append one frame and return its serialized form."""
        entry = self._build_frame(frame)
        self.frames.append(entry)
        self._simulated = self._simulated and frame.simulated
        return entry

    __call__ = record

    def _build_frame(self, frame: RenderFrame) -> Dict[str, Any]:
        params = {
            key: (self._round(value) if isinstance(value, float) else value)
            for key, value in frame.parameters.to_dict().items()
        }
        attractor = frame.attractor
        gesture = frame.gesture
        return {
            "frame_index": frame.index,
            "time": self._round(frame.time),
            "parameters": params,
            "attractor": {
                "position": [self._round(v) for v in attractor.position],
                "strength": self._round(attractor.strength),
                "col": attractor.col,
                "row": attractor.row,
                "note": note_name(cell_to_midi(attractor.col, attractor.row)),
            },
            "gesture": {
                "head_x": self._round(gesture.head_x),
                "head_confidence": self._round(gesture.head_confidence),
                "hand_knob1": self._round(gesture.hand_knob1),
                "hand_knob2": self._round(gesture.hand_knob2),
                "swipe_direction": gesture.fast_swipe.direction,
                "swipe_active": gesture.fast_swipe.active_at(frame.time),
            },
        }

    def build_session(self, fps: float, grid_size: int, seed: Optional[int] = None) -> Dict[str, Any]:
        duration = self.frames[-1]["time"] - self.frames[0]["time"] if self.frames else 0.0
        metadata = SessionMetadata(
            fps=fps,
            duration=self._round(duration),
            n_frames=len(self.frames),
            grid_size=grid_size,
            simulated=self._simulated,
            seed=seed,
        )
        return {
            "metadata": {
                "fps": metadata.fps,
                "duration": metadata.duration,
                "n_frames": metadata.n_frames,
                "grid_size": metadata.grid_size,
                "simulated": metadata.simulated,
                "seed": metadata.seed,
                "schema_version": metadata.schema_version,
            },
            "frames": self.frames,
        }

    def export_json(
        self,
        output_path: Union[str, Path],
        fps: float,
        grid_size: int,
        seed: Optional[int] = None,
        indent: int = 2,
    ) -> Path:
        """Write the session to a JSON file and return its path."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(self.build_session(fps, grid_size, seed), f, indent=indent)
        return output_path

    def export_numpy(self, output_path: Union[str, Path]) -> Path:
        """Write every numeric parameter as one array per name (.npz)."""
        output_path = Path(output_path)
        columns: Dict[str, List[float]] = {}
        for entry in self.frames:
            for key, value in entry["parameters"].items():
                if isinstance(value, (int, float)):
                    columns.setdefault(key, []).append(value)
        np.savez_compressed(
            output_path,
            frame_times=np.asarray([f["time"] for f in self.frames], dtype=np.float64),
            attractor_strength=np.asarray([f["attractor"]["strength"] for f in self.frames]),
            **{key: np.asarray(values, dtype=np.float64) for key, values in columns.items()},
        )
        return output_path
