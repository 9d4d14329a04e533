"""Domain models for face enrollment."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True)
class EnrollmentReference:
    """Stored reference image a user is verified against."""

    id: UUID
    user_id: UUID
    reference_url: str
    is_active: bool
    created_at: datetime
