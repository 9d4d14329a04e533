"""Supabase repository for verification attempts."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from biometric_punch.domain.verification import AttemptOutcome, VerificationAttempt
from biometric_punch.services.verification_log import VerificationLogRepository

_COLUMNS = (
    "id, user_id, attempt_photo_url, reference_photo_url, similarity_score, "
    "verification_result, device_info, error_message, created_at"
)


@dataclass
class SupabaseVerificationLogRepository(VerificationLogRepository):
    """Append-only Supabase log of verification attempts."""

    client: Client

    def create_attempt(  # noqa: PLR0913
        self,
        user_id: UUID,
        probe_url: str | None,
        reference_url: str | None,
        similarity: float | None,
        outcome: AttemptOutcome,
        device_info: dict[str, object],
        error_message: str | None,
    ) -> VerificationAttempt:
        """Insert an attempt row and return it."""
        response = (
            self.client.table("biometric_verification_logs")
            .insert(
                {
                    "user_id": str(user_id),
                    "attempt_photo_url": probe_url,
                    "reference_photo_url": reference_url,
                    "similarity_score": similarity,
                    "verification_result": outcome.value,
                    "device_info": device_info,
                    "error_message": error_message,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create verification log")
        return _parse_row(response.data[0])

    def list_attempts(
        self, limit: int, user_id: UUID | None = None
    ) -> list[VerificationAttempt]:
        """Return recent attempts, newest first."""
        query = self.client.table("biometric_verification_logs").select(_COLUMNS)
        if user_id is not None:
            query = query.eq("user_id", str(user_id))
        response = query.order("created_at", desc=True).limit(limit).execute()
        return [_parse_row(row) for row in response.data or []]


def _parse_row(row: dict[str, object]) -> VerificationAttempt:
    created_raw = row.get("created_at")
    created_at = (
        datetime.fromisoformat(created_raw)
        if isinstance(created_raw, str) and created_raw
        else datetime.min
    )
    similarity = row.get("similarity_score")
    device_info = row.get("device_info")
    return VerificationAttempt(
        id=UUID(str(row["id"])),
        user_id=UUID(str(row["user_id"])),
        probe_url=row.get("attempt_photo_url"),
        reference_url=row.get("reference_photo_url"),
        similarity=float(similarity) if similarity is not None else None,
        outcome=AttemptOutcome(row["verification_result"]),
        created_at=created_at,
        device_info=device_info if isinstance(device_info, dict) else {},
        error_message=row.get("error_message"),
    )
