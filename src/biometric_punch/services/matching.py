"""Face matcher interface and the match decision rule."""

from typing import Protocol

from biometric_punch.domain.capture import CapturedImage
from biometric_punch.domain.enrollment import EnrollmentReference
from biometric_punch.domain.verification import AttemptOutcome, MatchResult

MATCH_THRESHOLD = 0.75


class FaceMatcher(Protocol):
    """Interface for an external face matching service."""

    async def match(
        self, probe: CapturedImage, reference: EnrollmentReference
    ) -> MatchResult:
        """Return the similarity between the probe and the reference image."""


def decide_outcome(
    similarity: float, threshold: float = MATCH_THRESHOLD
) -> AttemptOutcome:
    """Map a similarity score to a logged outcome."""
    if similarity >= threshold:
        return AttemptOutcome.SUCCESS
    return AttemptOutcome.FAILED
