"""Reactive core for a keyboard, drum and gesture driven audio-visual instrument."""

from chromakeys.config import EngineConfig, load_config
from chromakeys.engine import InstrumentEngine, RenderFrame
from chromakeys.errors import (
    CapabilityUnavailable,
    ChromakeysError,
    DeviceUnavailable,
    TransientRenderFailure,
)
from chromakeys.io.exporter import SessionExporter

__version__ = "0.1.0"
__all__ = [
    "EngineConfig",
    "load_config",
    "InstrumentEngine",
    "RenderFrame",
    "ChromakeysError",
    "CapabilityUnavailable",
    "DeviceUnavailable",
    "TransientRenderFailure",
    "SessionExporter",
]
