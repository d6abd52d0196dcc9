"""Core simulation and signal modules."""

from chromakeys.core.attractor import AttractorModel
from chromakeys.core.field import FieldSimulation, StaticPointCloud, create_field
from chromakeys.core.fusion import ParameterFusion
from chromakeys.core.idle import IdleEngine
from chromakeys.core.motion import MotionTracker

__all__ = [
    "AttractorModel",
    "FieldSimulation",
    "StaticPointCloud",
    "create_field",
    "ParameterFusion",
    "IdleEngine",
    "MotionTracker",
]
