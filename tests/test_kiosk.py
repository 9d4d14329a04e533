"""Tests for the punch kiosk calling layer."""

import asyncio
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from biometric_punch.domain.errors import AttemptsExhausted, OperationInProgress
from biometric_punch.domain.verification import MatchResult
from biometric_punch.services.capture import FrameCapturer
from biometric_punch.services.kiosk import AttemptPolicy, AttemptTracker, KioskService
from biometric_punch.services.orchestrator import CaptureMode, Resolution
from tests.conftest import FakeFaceDetector, FixedScoreMatcher, Harness, make_image


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now


@pytest.mark.parametrize(("max_attempts", "lockout"), [(0, 60), (3, -1)])
def test_attempt_policy_validation(max_attempts: int, lockout: int) -> None:
    with pytest.raises(ValueError):
        AttemptPolicy(max_attempts=max_attempts, lockout_seconds=lockout)


def test_tracker_locks_out_and_expires() -> None:
    clock = _Clock()
    tracker = AttemptTracker(AttemptPolicy(max_attempts=3, lockout_seconds=300), clock)
    user_id = uuid4()

    remaining = [tracker.record_failure(user_id) for _ in range(3)]

    assert remaining == [2, 1, 0]
    with pytest.raises(AttemptsExhausted) as excinfo:
        tracker.ensure_allowed(user_id)
    assert 0 < excinfo.value.retry_after_seconds <= 301

    clock.now += timedelta(seconds=300)
    tracker.ensure_allowed(user_id)
    assert tracker.failures(user_id) == 0


def test_tracker_success_resets_counter() -> None:
    tracker = AttemptTracker(AttemptPolicy(max_attempts=3, lockout_seconds=300))
    user_id = uuid4()
    tracker.record_failure(user_id)
    tracker.record_failure(user_id)

    tracker.record_success(user_id)

    assert tracker.failures(user_id) == 0
    tracker.ensure_allowed(user_id)


def test_locked_out_user_never_opens_camera() -> None:
    harness = Harness(matcher=FixedScoreMatcher(similarity=0.1))
    kiosk = harness.kiosk(AttemptPolicy(max_attempts=2, lockout_seconds=600))
    user_id = uuid4()
    harness.enrollment_service.register(user_id, make_image())

    first = asyncio.run(kiosk.run_cycle(CaptureMode.VERIFY, user_id))
    second = asyncio.run(kiosk.run_cycle(CaptureMode.VERIFY, user_id))
    with pytest.raises(AttemptsExhausted):
        asyncio.run(kiosk.run_cycle(CaptureMode.VERIFY, user_id))

    assert first is not None and first.resolution is Resolution.RETRY
    assert second is not None and second.resolution is Resolution.RETRY
    assert len(harness.backend.calls) == 2
    assert len(harness.log.attempts) == 2


def test_successful_verification_resets_attempts() -> None:
    matcher = FixedScoreMatcher(similarity=0.2)
    harness = Harness(matcher=matcher)
    kiosk = harness.kiosk(AttemptPolicy(max_attempts=3, lockout_seconds=600))
    user_id = uuid4()
    harness.enrollment_service.register(user_id, make_image())

    asyncio.run(kiosk.run_cycle(CaptureMode.VERIFY, user_id))
    assert kiosk.tracker.failures(user_id) == 1
    matcher.similarity = 0.8
    result = asyncio.run(kiosk.run_cycle(CaptureMode.VERIFY, user_id))

    assert result is not None
    assert result.resolution is Resolution.SUCCESS
    assert kiosk.tracker.failures(user_id) == 0


def test_fatal_results_do_not_count(harness: Harness) -> None:
    kiosk = harness.kiosk(AttemptPolicy(max_attempts=1, lockout_seconds=600))
    user_id = uuid4()

    result = asyncio.run(kiosk.run_cycle(CaptureMode.VERIFY, user_id))

    assert result is not None
    assert result.resolution is Resolution.FATAL
    assert kiosk.tracker.failures(user_id) == 0


def test_register_cycle_and_reference_check(harness: Harness) -> None:
    kiosk = harness.kiosk(AttemptPolicy(max_attempts=3, lockout_seconds=60))
    user_id = uuid4()

    assert not kiosk.has_active_reference(user_id)
    result = asyncio.run(kiosk.run_cycle(CaptureMode.REGISTER, user_id))

    assert result is not None
    assert result.resolution is Resolution.SUCCESS
    assert kiosk.has_active_reference(user_id)
    assert not kiosk.busy
    assert not harness.backend.open_sources


def test_kiosk_runs_one_cycle_at_a_time(harness: Harness) -> None:
    async def scenario():  # type: ignore[no-untyped-def]
        counting = asyncio.Event()
        kiosk = KioskService(
            orchestrator_factory=lambda mode, user_id: harness.orchestrator(
                mode,
                user_id,
                countdown_ticks=1,
                tick_seconds=10.0,
                on_countdown=lambda _remaining: counting.set(),
            ),
            enrollment_service=harness.enrollment_service,
            tracker=AttemptTracker(AttemptPolicy(max_attempts=3, lockout_seconds=60)),
        )
        cycle = asyncio.create_task(kiosk.run_cycle(CaptureMode.REGISTER, uuid4()))
        await counting.wait()
        assert kiosk.busy
        with pytest.raises(OperationInProgress):
            await kiosk.run_cycle(CaptureMode.REGISTER, uuid4())
        assert kiosk.cancel()
        result = await cycle
        return kiosk, result

    kiosk, result = asyncio.run(scenario())

    assert result is None
    assert not kiosk.busy
    assert not kiosk.cancel()
    assert not harness.backend.open_sources
    assert harness.references.references == []


def test_cancel_during_submission_is_refused(harness: Harness) -> None:
    user_id = uuid4()
    harness.enrollment_service.register(user_id, make_image())

    async def scenario():  # type: ignore[no-untyped-def]
        entered = asyncio.Event()
        release = asyncio.Event()

        class _SlowMatcher:
            async def match(self, probe, reference):  # type: ignore[no-untyped-def]
                entered.set()
                await release.wait()
                return MatchResult(similarity=0.9)

        harness.matcher = _SlowMatcher()
        kiosk = harness.kiosk(AttemptPolicy(max_attempts=3, lockout_seconds=60))
        cycle = asyncio.create_task(kiosk.run_cycle(CaptureMode.VERIFY, user_id))
        await entered.wait()
        cancelled = kiosk.cancel()
        release.set()
        return cancelled, await cycle

    cancelled, result = asyncio.run(scenario())

    assert cancelled is False
    assert result is not None
    assert result.resolution is Resolution.SUCCESS
    assert len(harness.log.attempts) == 1


def test_face_check_retries_do_not_count() -> None:
    harness = Harness(capturer=FrameCapturer(detector=FakeFaceDetector(detections=[])))
    kiosk = harness.kiosk(AttemptPolicy(max_attempts=1, lockout_seconds=600))
    user_id = uuid4()
    harness.enrollment_service.register(user_id, make_image())

    result = asyncio.run(kiosk.run_cycle(CaptureMode.VERIFY, user_id))

    assert result is not None
    assert result.resolution is Resolution.RETRY
    assert result.error is not None and result.error.kind == "NoFaceDetected"
    assert kiosk.tracker.failures(user_id) == 0
    kiosk.tracker.ensure_allowed(user_id)
