"""Image blob storage interface."""

import logging
from datetime import datetime
from enum import StrEnum
from typing import Protocol
from uuid import UUID

from biometric_punch.domain.capture import CapturedImage
from biometric_punch.domain.errors import UploadFailed

_logger = logging.getLogger(__name__)


class ImagePurpose(StrEnum):
    """Top-level folder an image is stored under."""

    REFERENCE = "reference"
    ATTEMPTS = "attempts"


class ImageStore(Protocol):
    """Interface for uploading image blobs."""

    def upload(self, data: bytes, path: str, content_type: str) -> str:
        """Upload bytes to the path and return their public URL."""


def image_path(purpose: ImagePurpose, user_id: UUID, taken_at: datetime) -> str:
    """Build the storage path for an image."""
    timestamp_ms = int(taken_at.timestamp() * 1000)
    return f"{purpose}/{user_id}_{timestamp_ms}.jpg"


def store_image(
    store: ImageStore, purpose: ImagePurpose, user_id: UUID, image: CapturedImage
) -> str:
    """Upload a captured image and return its URL."""
    path = image_path(purpose, user_id, image.captured_at)
    try:
        return store.upload(image.data, path, image.mime_type)
    except Exception as exc:
        _logger.warning("Image upload failed: path=%s error=%s", path, exc)
        raise UploadFailed(detail=str(exc)) from exc
