"""Face presence check run before a still is accepted."""

from typing import Protocol

import numpy as np

from biometric_punch.domain.capture import FaceDetection
from biometric_punch.domain.errors import (
    FaceNotClear,
    MultipleFacesDetected,
    NoFaceDetected,
)

MIN_FACE_CONFIDENCE = 0.7


class FaceDetector(Protocol):
    """Blocking face detector over BGR frames."""

    def detect(self, frame: np.ndarray) -> list[FaceDetection]:
        """Return the faces found in the frame."""


def require_single_face(
    detections: list[FaceDetection], min_confidence: float = MIN_FACE_CONFIDENCE
) -> FaceDetection:
    """Return the only face in view or raise a face check error."""
    if not detections:
        raise NoFaceDetected()
    if len(detections) > 1:
        raise MultipleFacesDetected(detail=f"{len(detections)} faces in view")
    (face,) = detections
    if face.score < min_confidence:
        raise FaceNotClear(
            detail=f"confidence {face.score:.2f} below {min_confidence:.2f}"
        )
    return face
