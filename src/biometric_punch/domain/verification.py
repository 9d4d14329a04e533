"""Models for verification attempts and match results."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, Field


class AttemptOutcome(StrEnum):
    """Logged outcome of a verification attempt."""

    SUCCESS = "success"
    FAILED = "failed"
    ERROR = "error"


class MatchResult(BaseModel):
    """Score returned by a face matcher."""

    similarity: float = Field(ge=0.0, le=1.0)


@dataclass(frozen=True)
class VerificationAttempt:
    """Append-only record of one verification attempt."""

    id: UUID
    user_id: UUID
    probe_url: str | None
    reference_url: str | None
    similarity: float | None
    outcome: AttemptOutcome
    created_at: datetime
    device_info: dict[str, object] = field(default_factory=dict)
    error_message: str | None = None
