"""Still frame capture and JPEG encoding."""

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime

import cv2
import numpy as np

from biometric_punch.domain.capture import CapturedImage
from biometric_punch.domain.errors import NoFrameAvailable
from biometric_punch.services.camera import CameraSession
from biometric_punch.services.face_detection import (
    MIN_FACE_CONFIDENCE,
    FaceDetector,
    require_single_face,
)

JPEG_MIME_TYPE = "image/jpeg"


@dataclass
class FrameCapturer:
    """Turns the current frame of a live session into a JPEG still.

    With a detector set, a still is only produced when exactly one face is
    in view with at least ``min_face_confidence``.
    """

    jpeg_quality: int = 85
    mirror: bool = True
    detector: FaceDetector | None = None
    min_face_confidence: float = MIN_FACE_CONFIDENCE

    def __post_init__(self) -> None:
        if not 1 <= self.jpeg_quality <= 100:
            raise ValueError("jpeg_quality must be between 1 and 100")

    async def snapshot(self, camera: CameraSession) -> CapturedImage:
        """Encode the current frame, mirrored to match the self-view if enabled."""
        frame = await camera.read_frame() if camera.is_open else None
        if frame is None:
            frame = camera.latest_frame
        if frame is None or frame.size == 0:
            raise NoFrameAvailable(detail="no frame has been produced yet")
        if self.detector is not None:
            detections = await asyncio.to_thread(self.detector.detect, frame)
            require_single_face(detections, self.min_face_confidence)
        data, width, height = await asyncio.to_thread(self.encode, frame)
        return CapturedImage(
            data=data,
            mime_type=JPEG_MIME_TYPE,
            width=width,
            height=height,
            captured_at=datetime.now(tz=UTC),
        )

    def encode(self, frame: np.ndarray) -> tuple[bytes, int, int]:
        """Encode a BGR frame at its native resolution."""
        try:
            if self.mirror:
                frame = cv2.flip(frame, 1)
            ok, buffer = cv2.imencode(
                ".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), self.jpeg_quality]
            )
        except cv2.error as exc:
            raise NoFrameAvailable(detail=f"frame could not be encoded: {exc}") from exc
        if not ok:
            raise NoFrameAvailable(detail="frame could not be encoded")
        height, width = frame.shape[:2]
        return buffer.tobytes(), width, height
