"""OpenCV Haar cascade face detector."""

from dataclasses import dataclass, field

import cv2
import numpy as np

from biometric_punch.domain.capture import FaceDetection
from biometric_punch.services.face_detection import FaceDetector

_CASCADE = "haarcascade_frontalface_default.xml"


@dataclass
class HaarFaceDetector(FaceDetector):
    """Frontal face detector; Haar detections carry no score, so report 1.0."""

    scale_factor: float = 1.1
    min_neighbors: int = 6
    min_size: int = 60
    _classifier: cv2.CascadeClassifier = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._classifier = cv2.CascadeClassifier(cv2.data.haarcascades + _CASCADE)
        if self._classifier.empty():
            raise RuntimeError("Failed to load the OpenCV face cascade")

    def detect(self, frame: np.ndarray) -> list[FaceDetection]:
        """Return faces, largest first."""
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        found = self._classifier.detectMultiScale(
            gray,
            scaleFactor=self.scale_factor,
            minNeighbors=self.min_neighbors,
            minSize=(self.min_size, self.min_size),
        )
        height, width = frame.shape[:2]
        detections = [
            FaceDetection(
                bbox=(
                    int(max(0, x)),
                    int(max(0, y)),
                    int(min(width, x + w)),
                    int(min(height, y + h)),
                ),
                score=1.0,
            )
            for (x, y, w, h) in found
        ]
        detections.sort(
            key=lambda d: (d.bbox[2] - d.bbox[0]) * (d.bbox[3] - d.bbox[1]),
            reverse=True,
        )
        return detections
