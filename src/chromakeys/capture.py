"""
Camera capture via OpenCV.

Frames come out as small RGBA arrays, the format the motion tracker
expects. Opening the device is one-time setup; a missing camera raises
DeviceUnavailable so the caller can run without tracking.
"""

import logging
from typing import Optional, Protocol

import numpy as np

from chromakeys.errors import DeviceUnavailable

logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    def next_frame(self) -> Optional[np.ndarray]:
        """Latest (H, W, 4) uint8 frame, or None when nothing new is ready."""
        ...


class CameraSource:
    """
    Webcam frames resized for analysis.

    Args:
        index: OpenCV device index.
        width, height: Analysis resolution.
    """

    def __init__(self, index: int = 0, width: int = 240, height: int = 180):
        self.index = index
        self.width = width
        self.height = height
        self._cap = None

    def open(self) -> "CameraSource":
        try:
            import cv2
        except ImportError as exc:
            raise DeviceUnavailable("camera", "opencv-python is not installed") from exc

        cap = cv2.VideoCapture(self.index)
        if not cap.isOpened():
            cap.release()
            raise DeviceUnavailable("camera", f"cannot open device {self.index}")
        self._cv2 = cv2
        self._cap = cap
        logger.info("Camera %d opened (%dx%d analysis)", self.index, self.width, self.height)
        return self

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    def next_frame(self) -> Optional[np.ndarray]:
        if self._cap is None:
            raise DeviceUnavailable("camera", "not open")
        ok, img = self._cap.read()
        if not ok or img is None:
            return None
        cv2 = self._cv2
        img = cv2.resize(img, (self.width, self.height), interpolation=cv2.INTER_AREA)
        return cv2.cvtColor(img, cv2.COLOR_BGR2RGBA)

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()
