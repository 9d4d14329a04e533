"""Face enrollment (reference image) management."""

import logging
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from biometric_punch.domain.capture import CapturedImage
from biometric_punch.domain.enrollment import EnrollmentReference
from biometric_punch.domain.errors import StorageError
from biometric_punch.services.storage import ImagePurpose, ImageStore, store_image

_logger = logging.getLogger(__name__)


class ReferenceRepository(Protocol):
    """Persistence interface for enrollment references."""

    def get_active_reference(self, user_id: UUID) -> EnrollmentReference | None:
        """Return the active reference for a user, if present."""

    def deactivate_references(self, user_id: UUID) -> int:
        """Deactivate the user's active references and return how many changed."""

    def create_reference(
        self, user_id: UUID, reference_url: str
    ) -> EnrollmentReference:
        """Create a new active reference and return it."""


@dataclass
class EnrollmentService:
    """Stores reference images and keeps one active per user."""

    repository: ReferenceRepository
    image_store: ImageStore

    def get_active_reference(self, user_id: UUID) -> EnrollmentReference | None:
        """Return the reference a verification should be compared against."""
        try:
            return self.repository.get_active_reference(user_id)
        except Exception as exc:
            raise StorageError(detail=str(exc)) from exc

    def has_active_reference(self, user_id: UUID) -> bool:
        """Return True if the user has an enrolled reference."""
        return self.get_active_reference(user_id) is not None

    def register(self, user_id: UUID, image: CapturedImage) -> EnrollmentReference:
        """Upload a new reference and make it the only active one.

        Earlier references are deactivated, never deleted, so past
        verification attempts keep pointing at the image they used.
        """
        reference_url = store_image(
            self.image_store, ImagePurpose.REFERENCE, user_id, image
        )
        try:
            deactivated = self.repository.deactivate_references(user_id)
            reference = self.repository.create_reference(user_id, reference_url)
        except Exception as exc:
            raise StorageError(detail=str(exc)) from exc
        _logger.info(
            "Reference registered: user_id=%s reference_id=%s deactivated=%s",
            user_id,
            reference.id,
            deactivated,
        )
        return reference
