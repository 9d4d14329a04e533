"""Domain models for camera capture."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from biometric_punch.services.camera import VideoSource

DEFAULT_WIDTH = 640
DEFAULT_HEIGHT = 480


@dataclass(frozen=True)
class CaptureConstraints:
    """Preferred properties for the requested video input."""

    width: int | None = DEFAULT_WIDTH
    height: int | None = DEFAULT_HEIGHT
    facing_mode: str | None = "user"

    @property
    def is_minimal(self) -> bool:
        """Return True if nothing beyond "any camera" is requested."""
        return self.width is None and self.height is None and self.facing_mode is None

    def minimal(self) -> CaptureConstraints:
        """Return the fallback constraint set."""
        return CaptureConstraints(width=None, height=None, facing_mode=None)


@dataclass(frozen=True)
class CaptureSession:
    """An acquired camera and the properties it actually delivers."""

    handle: VideoSource
    width: int
    height: int
    facing_mode: str | None
    opened_at: datetime


@dataclass(frozen=True)
class CapturedImage:
    """Encoded still image taken from a live session."""

    data: bytes
    mime_type: str
    width: int
    height: int
    captured_at: datetime


@dataclass(frozen=True)
class FaceDetection:
    """A face found in a frame, as (x1, y1, x2, y2) pixels."""

    bbox: tuple[int, int, int, int]
    score: float
