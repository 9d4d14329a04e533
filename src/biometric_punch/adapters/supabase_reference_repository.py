"""Supabase repository for enrollment references."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from biometric_punch.domain.enrollment import EnrollmentReference
from biometric_punch.services.enrollment import ReferenceRepository

_COLUMNS = "id, user_id, reference_photo_url, is_active, created_at"


@dataclass
class SupabaseReferenceRepository(ReferenceRepository):
    """Supabase-backed reference repository."""

    client: Client

    def get_active_reference(self, user_id: UUID) -> EnrollmentReference | None:
        """Return the active reference for a user, if present."""
        response = (
            self.client.table("user_biometric_photos")
            .select(_COLUMNS)
            .eq("user_id", str(user_id))
            .eq("is_active", True)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_row(response.data[0])

    def deactivate_references(self, user_id: UUID) -> int:
        """Deactivate active references; rows are kept for the audit trail."""
        response = (
            self.client.table("user_biometric_photos")
            .update({"is_active": False})
            .eq("user_id", str(user_id))
            .eq("is_active", True)
            .execute()
        )
        return len(response.data or [])

    def create_reference(
        self, user_id: UUID, reference_url: str
    ) -> EnrollmentReference:
        """Insert a new active reference row and return it."""
        response = (
            self.client.table("user_biometric_photos")
            .insert(
                {
                    "user_id": str(user_id),
                    "reference_photo_url": reference_url,
                    "is_active": True,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create reference photo")
        return _parse_row(response.data[0])


def _parse_row(row: dict[str, object]) -> EnrollmentReference:
    created_raw = row.get("created_at")
    created_at = (
        datetime.fromisoformat(created_raw)
        if isinstance(created_raw, str) and created_raw
        else datetime.min
    )
    return EnrollmentReference(
        id=UUID(str(row["id"])),
        user_id=UUID(str(row["user_id"])),
        reference_url=str(row["reference_photo_url"]),
        is_active=bool(row.get("is_active", False)),
        created_at=created_at,
    )
