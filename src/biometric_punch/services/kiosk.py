"""Punch kiosk: runs capture cycles on the kiosk camera under an attempt policy."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import UUID

from biometric_punch.domain.errors import AttemptsExhausted, OperationInProgress
from biometric_punch.services.enrollment import EnrollmentService
from biometric_punch.services.orchestrator import (
    CaptureMode,
    CaptureResult,
    Resolution,
    VerificationOrchestrator,
)

_logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[CaptureMode, UUID], VerificationOrchestrator]


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True)
class AttemptPolicy:
    """Maximum failed verifications before a lockout, and its length."""

    max_attempts: int
    lockout_seconds: int

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.lockout_seconds < 0:
            raise ValueError("lockout_seconds must not be negative")


@dataclass
class AttemptTracker:
    """In-memory failed-attempt counter per user."""

    policy: AttemptPolicy
    clock: Callable[[], datetime] = _utcnow
    _failures: dict[UUID, int] = field(default_factory=dict, init=False)
    _locked_until: dict[UUID, datetime] = field(default_factory=dict, init=False)

    def ensure_allowed(self, user_id: UUID) -> None:
        """Raise AttemptsExhausted while the user is locked out."""
        locked_until = self._locked_until.get(user_id)
        if locked_until is None:
            return
        now = self.clock()
        if now >= locked_until:
            self._locked_until.pop(user_id, None)
            self._failures.pop(user_id, None)
            return
        remaining = int((locked_until - now).total_seconds()) + 1
        raise AttemptsExhausted(
            detail=f"locked until {locked_until.isoformat()}",
            retry_after_seconds=remaining,
        )

    def record_failure(self, user_id: UUID) -> int:
        """Count a failed verification and return the attempts left."""
        failures = self._failures.get(user_id, 0) + 1
        self._failures[user_id] = failures
        if failures >= self.policy.max_attempts:
            self._locked_until[user_id] = self.clock() + timedelta(
                seconds=self.policy.lockout_seconds
            )
            _logger.warning(
                "Verification locked out: user_id=%s failures=%s", user_id, failures
            )
            return 0
        return self.policy.max_attempts - failures

    def record_success(self, user_id: UUID) -> None:
        """Reset the counter after a successful verification."""
        self._failures.pop(user_id, None)
        self._locked_until.pop(user_id, None)

    def failures(self, user_id: UUID) -> int:
        return self._failures.get(user_id, 0)


@dataclass
class KioskService:
    """Owns the kiosk camera and runs one capture cycle at a time."""

    orchestrator_factory: OrchestratorFactory
    enrollment_service: EnrollmentService
    tracker: AttemptTracker
    _current: VerificationOrchestrator | None = field(default=None, init=False)

    @property
    def busy(self) -> bool:
        return self._current is not None

    def has_active_reference(self, user_id: UUID) -> bool:
        """Return True if the user can be verified."""
        return self.enrollment_service.has_active_reference(user_id)

    async def run_cycle(
        self, mode: CaptureMode, user_id: UUID
    ) -> CaptureResult | None:
        """Start, count down, capture and submit for one user.

        Returns None if the cycle was cancelled before it resolved.
        """
        if self._current is not None:
            raise OperationInProgress(detail="kiosk camera is in use")
        if mode is CaptureMode.VERIFY:
            self.tracker.ensure_allowed(user_id)

        orchestrator = self.orchestrator_factory(mode, user_id)
        self._current = orchestrator
        try:
            async with orchestrator:
                if not await orchestrator.start():
                    return orchestrator.result
                if await orchestrator.capture() is None:
                    return orchestrator.result
                result = await orchestrator.confirm()
        finally:
            self._current = None

        if result is not None and mode is CaptureMode.VERIFY:
            self._apply_policy(user_id, result)
        return result

    def cancel(self) -> bool:
        """Cancel the running cycle.

        Returns False if no cycle is running or it is already submitting.
        """
        orchestrator = self._current
        if orchestrator is None:
            return False
        return orchestrator.cancel()

    def _apply_policy(self, user_id: UUID, result: CaptureResult) -> None:
        if result.resolution is Resolution.SUCCESS:
            self.tracker.record_success(user_id)
        elif result.resolution is Resolution.RETRY and result.attempt is not None:
            remaining = self.tracker.record_failure(user_id)
            _logger.info(
                "Verification failed: user_id=%s attempts_left=%s", user_id, remaining
            )
