"""OpenCV-backed camera device."""

import logging
import os
import sys
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path

import cv2
import numpy as np

from biometric_punch.domain.capture import CaptureConstraints
from biometric_punch.domain.errors import (
    DeviceBusy,
    DeviceUnavailable,
    PermissionDenied,
    Unsupported,
)
from biometric_punch.services.camera import VideoBackend, VideoSource

_logger = logging.getLogger(__name__)

_PROBE_READS = 6
_PROBE_DELAY_SECONDS = 0.03
_SUPPORTED_FACING_MODES = {None, "user"}


@dataclass
class OpenCVVideoSource(VideoSource):
    """An opened cv2.VideoCapture guarded against release during a read."""

    capture: cv2.VideoCapture
    width: int
    height: int
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _released: bool = field(default=False, repr=False)

    def read_frame(self) -> np.ndarray | None:
        """Read one frame; None if the device has nothing yet or is released."""
        with self._lock:
            if self._released:
                return None
            ok, frame = self.capture.read()
        if not ok or frame is None:
            return None
        return frame

    def release(self) -> None:
        """Release the capture device once."""
        with self._lock:
            if self._released:
                return
            self._released = True
            self.capture.release()


@dataclass
class OpenCVVideoBackend(VideoBackend):
    """Opens a local camera by index."""

    camera_index: int = 0
    api_preference: int = cv2.CAP_ANY

    def acquire(self, constraints: CaptureConstraints) -> OpenCVVideoSource:
        """Open the camera and make sure it actually delivers frames."""
        if constraints.facing_mode not in _SUPPORTED_FACING_MODES:
            raise Unsupported(
                detail=f"facing mode {constraints.facing_mode!r} cannot be selected"
            )
        _check_device_node(self.camera_index)
        try:
            capture = cv2.VideoCapture(self.camera_index, self.api_preference)
        except cv2.error as exc:
            raise Unsupported(detail=str(exc)) from exc
        if not capture.isOpened():
            capture.release()
            raise DeviceUnavailable(
                detail=f"camera index {self.camera_index} could not be opened"
            )

        if constraints.width:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
        if constraints.height:
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)

        # Some backends report opened=True but never deliver frames.
        if not _probe(capture):
            capture.release()
            raise DeviceBusy(detail="camera opened but delivered no frames")

        width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        _logger.info(
            "OpenCV camera %s acquired at %sx%s", self.camera_index, width, height
        )
        return OpenCVVideoSource(capture=capture, width=width, height=height)


def _probe(capture: cv2.VideoCapture) -> bool:
    for _ in range(_PROBE_READS):
        ok, frame = capture.read()
        if ok and frame is not None:
            return True
        time.sleep(_PROBE_DELAY_SECONDS)
    return False


def _check_device_node(camera_index: int) -> None:
    """Tell a missing camera from a forbidden one where the OS exposes nodes."""
    if not sys.platform.startswith("linux"):
        return
    node = Path(f"/dev/video{camera_index}")
    if not node.exists():
        raise DeviceUnavailable(detail=f"{node} does not exist")
    if not os.access(node, os.R_OK | os.W_OK):
        raise PermissionDenied(detail=f"no read/write access to {node}")
