"""Response models for the kiosk API."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from biometric_punch.domain.verification import VerificationAttempt
from biometric_punch.services.orchestrator import (
    CaptureMode,
    CaptureResult,
    Resolution,
)


class ErrorResponse(BaseModel):
    """Stable error kind plus a message fit for the user."""

    kind: str
    message: str


class CaptureResponse(BaseModel):
    """Outcome of one register or verify cycle."""

    resolution: str
    mode: str
    user_id: UUID
    verified: bool
    similarity: float | None = None
    attempt_id: UUID | None = None
    reference_id: UUID | None = None
    message: str
    error_kind: str | None = None

    @classmethod
    def from_result(cls, result: CaptureResult) -> "CaptureResponse":
        return cls(
            resolution=result.resolution.value,
            mode=result.mode.value,
            user_id=result.user_id,
            verified=(
                result.mode is CaptureMode.VERIFY
                and result.resolution is Resolution.SUCCESS
            ),
            similarity=result.similarity,
            attempt_id=result.attempt.id if result.attempt else None,
            reference_id=result.reference.id if result.reference else None,
            message=result.message,
            error_kind=result.error.kind if result.error else None,
        )


class ReferenceStatus(BaseModel):
    """Whether a user has an active enrollment reference."""

    user_id: UUID
    enrolled: bool


class AttemptView(BaseModel):
    """Verification attempt as shown in the history report."""

    id: UUID
    user_id: UUID
    outcome: str
    similarity: float | None
    probe_url: str | None
    reference_url: str | None
    error_message: str | None
    device_info: dict[str, object]
    created_at: datetime

    @classmethod
    def from_attempt(cls, attempt: VerificationAttempt) -> "AttemptView":
        return cls(
            id=attempt.id,
            user_id=attempt.user_id,
            outcome=attempt.outcome.value,
            similarity=attempt.similarity,
            probe_url=attempt.probe_url,
            reference_url=attempt.reference_url,
            error_message=attempt.error_message,
            device_info=attempt.device_info,
            created_at=attempt.created_at,
        )
