"""Append-only verification attempt log."""

import logging
import platform
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

from biometric_punch.domain.errors import StorageError
from biometric_punch.domain.verification import AttemptOutcome, VerificationAttempt

_logger = logging.getLogger(__name__)


class VerificationLogRepository(Protocol):
    """Persistence interface for verification attempts."""

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

    def list_attempts(
        self, limit: int, user_id: UUID | None = None
    ) -> list[VerificationAttempt]:
        """Return the most recent attempts, newest first."""


@dataclass
class VerificationLogService:
    """Records every verification attempt, whatever its outcome."""

    repository: VerificationLogRepository

    def record(  # noqa: PLR0913
        self,
        user_id: UUID,
        probe_url: str | None,
        reference_url: str | None,
        similarity: float | None,
        outcome: AttemptOutcome,
        device_info: dict[str, object],
        error_message: str | None = None,
    ) -> VerificationAttempt:
        """Append an attempt to the log."""
        try:
            attempt = self.repository.create_attempt(
                user_id=user_id,
                probe_url=probe_url,
                reference_url=reference_url,
                similarity=similarity,
                outcome=outcome,
                device_info=device_info,
                error_message=error_message,
            )
        except Exception as exc:
            _logger.exception("Failed to record verification attempt")
            raise StorageError(detail=str(exc)) from exc
        _logger.info(
            "Verification attempt recorded: user_id=%s outcome=%s similarity=%s",
            user_id,
            outcome,
            similarity,
        )
        return attempt

    def recent(
        self, limit: int = 50, user_id: UUID | None = None
    ) -> list[VerificationAttempt]:
        """Return recent attempts for reporting."""
        try:
            return self.repository.list_attempts(limit, user_id=user_id)
        except Exception as exc:
            _logger.exception("Failed to list verification attempts")
            raise StorageError(detail=str(exc)) from exc


def client_metadata() -> dict[str, object]:
    """Describe the capturing device for the attempt log."""
    return {
        "client": "biometric-punch",
        "hostname": platform.node(),
        "platform": platform.platform(),
        "python": platform.python_version(),
        "timestamp": datetime.now(tz=UTC).isoformat(),
    }
