"""Capture and verification state machine.

One orchestrator drives one register or verify cycle for one user:

    IDLE -> INITIALIZING -> LIVE -> COUNTDOWN -> CAPTURED -> SUBMITTING -> RESOLVED

A failed match or a still without exactly one clear face resolves as RETRY
and returns the orchestrator to IDLE. The camera is released as soon as the
still is taken, on every error path, on cancel() and when the orchestrator is
used as an async context manager and the block exits. Presentation is left
to the caller's callbacks.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TypeVar
from uuid import UUID

from biometric_punch.domain.capture import CaptureConstraints, CapturedImage
from biometric_punch.domain.enrollment import EnrollmentReference
from biometric_punch.domain.errors import (
    BiometricError,
    FaceCheckFailed,
    InvalidTransition,
    MatchServiceError,
    NoReferenceEnrolled,
    OperationInProgress,
)
from biometric_punch.domain.verification import AttemptOutcome, VerificationAttempt
from biometric_punch.services.camera import CameraSession
from biometric_punch.services.capture import FrameCapturer
from biometric_punch.services.enrollment import EnrollmentService
from biometric_punch.services.matching import (
    MATCH_THRESHOLD,
    FaceMatcher,
    decide_outcome,
)
from biometric_punch.services.storage import ImagePurpose, ImageStore, store_image
from biometric_punch.services.verification_log import (
    VerificationLogService,
    client_metadata,
)

_logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class CaptureMode(StrEnum):
    """What a confirmed capture is used for."""

    REGISTER = "register"
    VERIFY = "verify"


class CaptureState(StrEnum):
    """Orchestrator states."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    LIVE = "live"
    COUNTDOWN = "countdown"
    CAPTURED = "captured"
    SUBMITTING = "submitting"
    RESOLVED = "resolved"


class Resolution(StrEnum):
    """How a cycle ended."""

    SUCCESS = "success"
    RETRY = "retry"
    FATAL = "fatal"


@dataclass(frozen=True)
class CaptureResult:
    """Payload handed to the caller when a cycle resolves."""

    resolution: Resolution
    mode: CaptureMode
    user_id: UUID
    similarity: float | None = None
    attempt: VerificationAttempt | None = None
    reference: EnrollmentReference | None = None
    error: BiometricError | None = None

    @property
    def message(self) -> str:
        """Human-readable summary for the user."""
        if self.error is not None:
            return self.error.user_message
        if self.mode is CaptureMode.REGISTER:
            return "Your face has been registered."
        if self.resolution is Resolution.SUCCESS:
            return "Identity verified."
        return "Your face was not recognized. Please try again."


ResolvedCallback = Callable[[Resolution, CaptureResult], None]

_START_STATES = frozenset({CaptureState.IDLE, CaptureState.RESOLVED})


@dataclass
class VerificationOrchestrator:
    """Sequences camera, capture, matching and logging for one user."""

    mode: CaptureMode
    user_id: UUID
    camera: CameraSession
    capturer: FrameCapturer
    enrollment_service: EnrollmentService
    image_store: ImageStore
    matcher: FaceMatcher
    log_service: VerificationLogService
    on_resolved: ResolvedCallback | None = None
    on_cancelled: Callable[[], None] | None = None
    on_state_change: Callable[[CaptureState], None] | None = None
    on_countdown: Callable[[int], None] | None = None
    constraints: CaptureConstraints = field(default_factory=CaptureConstraints)
    countdown_ticks: int = 3
    tick_seconds: float = 1.0
    ready_timeout_seconds: float = 3.0
    threshold: float = MATCH_THRESHOLD
    device_info: dict[str, object] = field(default_factory=dict)
    state: CaptureState = field(default=CaptureState.IDLE, init=False)
    captured_image: CapturedImage | None = field(default=None, init=False)
    result: CaptureResult | None = field(default=None, init=False)
    _task: asyncio.Task | None = field(default=None, init=False, repr=False)

    async def __aenter__(self) -> "VerificationOrchestrator":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        self.teardown()

    async def start(self) -> bool:
        """Open the camera and wait for the live preview.

        Returns True once live. Returns False if the camera could not be
        started (the cycle resolved FATAL) or the start was cancelled.
        """
        live = await self._run("start", _START_STATES, self._start)
        return bool(live)

    async def capture(
        self, countdown_ticks: int | None = None
    ) -> CapturedImage | None:
        """Count down, take the still and release the camera.

        Returns None if cancelled during the countdown, if no single clear
        face was in view (the cycle resolved RETRY) or if no frame could be
        captured (the cycle resolved FATAL).
        """
        ticks = self.countdown_ticks if countdown_ticks is None else countdown_ticks
        return await self._run(
            "capture", {CaptureState.LIVE}, lambda: self._capture(ticks)
        )

    async def retake(self) -> bool:
        """Discard the captured still and reopen the camera."""
        live = await self._run("retake", {CaptureState.CAPTURED}, self._start)
        return bool(live)

    async def confirm(self) -> CaptureResult | None:
        """Submit the captured still and resolve the cycle.

        If the caller is cancelled mid-submission the submission still runs to
        completion so the attempt is logged; the cancellation is re-raised.
        """
        return await self._run(
            "confirm", {CaptureState.CAPTURED}, self._submit, shielded=True
        )

    def cancel(self) -> bool:
        """Abort the cycle and release the camera immediately.

        A submission already in flight is left to finish so its attempt is
        still logged; only the camera is released and False is returned.
        """
        self.camera.close()
        if self.state is CaptureState.SUBMITTING:
            _logger.info("Cancel during submission ignored: user_id=%s", self.user_id)
            return False
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
        self.captured_image = None
        _logger.info(
            "Capture cancelled: user_id=%s state=%s", self.user_id, self.state
        )
        self._transition(CaptureState.IDLE)
        if self.on_cancelled:
            self.on_cancelled()
        return True

    def teardown(self) -> None:
        """Release everything the orchestrator holds; safe in any state."""
        if self.state in _START_STATES and self._task is None:
            self.camera.close()
            return
        self.cancel()

    async def _run(
        self,
        action: str,
        allowed: "set[CaptureState] | frozenset[CaptureState]",
        body: Callable[[], Awaitable[_T]],
        shielded: bool = False,
    ) -> _T | None:
        if self._task is not None:
            raise OperationInProgress(detail=f"{action} while {self.state}")
        if self.state not in allowed:
            raise InvalidTransition(detail=f"cannot {action} while {self.state}")
        task = asyncio.ensure_future(body())
        self._task = task
        try:
            return await (asyncio.shield(task) if shielded else task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                if shielded and not task.done():
                    _logger.info(
                        "Caller cancelled during %s; finishing it: user_id=%s",
                        action,
                        self.user_id,
                    )
                    task.add_done_callback(self._finish_detached)
                    raise
                self.teardown()
                raise
            return None
        finally:
            if task.done() and self._task is task:
                self._task = None

    def _finish_detached(self, task: "asyncio.Future[object]") -> None:
        if self._task is task:
            self._task = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error(
                "Detached submission failed: user_id=%s", self.user_id, exc_info=exc
            )

    async def _start(self) -> bool:
        self.captured_image = None
        self.result = None
        self._transition(CaptureState.INITIALIZING)
        try:
            await self.camera.open(self.constraints)
            await self.camera.wait_until_ready(self.ready_timeout_seconds)
        except BiometricError as exc:
            self.camera.close()
            self._resolve(self._result(Resolution.FATAL, error=exc))
            return False
        except BaseException:
            self.camera.close()
            raise
        self._transition(CaptureState.LIVE)
        return True

    async def _capture(self, ticks: int) -> CapturedImage | None:
        if ticks > 0:
            self._transition(CaptureState.COUNTDOWN)
            for remaining in range(ticks, 0, -1):
                if self.on_countdown:
                    self.on_countdown(remaining)
                await asyncio.sleep(self.tick_seconds)
        try:
            image = await self.capturer.snapshot(self.camera)
        except FaceCheckFailed as exc:
            self._resolve(self._result(Resolution.RETRY, error=exc))
            return None
        except BiometricError as exc:
            self._resolve(self._result(Resolution.FATAL, error=exc))
            return None
        finally:
            self.camera.close()
        self.captured_image = image
        self._transition(CaptureState.CAPTURED)
        return image

    async def _submit(self) -> CaptureResult:
        image = self.captured_image
        if image is None:
            raise InvalidTransition(detail="no captured image to submit")
        self._transition(CaptureState.SUBMITTING)
        if self.mode is CaptureMode.REGISTER:
            result = await self._register(image)
        else:
            result = await self._verify(image)
        self.captured_image = None
        self._resolve(result)
        return result

    async def _register(self, image: CapturedImage) -> CaptureResult:
        try:
            reference = await asyncio.to_thread(
                self.enrollment_service.register, self.user_id, image
            )
        except BiometricError as exc:
            return self._result(Resolution.FATAL, error=exc)
        return self._result(Resolution.SUCCESS, reference=reference)

    async def _verify(self, image: CapturedImage) -> CaptureResult:
        try:
            reference = await asyncio.to_thread(
                self.enrollment_service.get_active_reference, self.user_id
            )
        except BiometricError as exc:
            return self._result(Resolution.FATAL, error=exc)
        if reference is None:
            return self._result(Resolution.FATAL, error=NoReferenceEnrolled())

        try:
            probe_url = await asyncio.to_thread(
                store_image,
                self.image_store,
                ImagePurpose.ATTEMPTS,
                self.user_id,
                image,
            )
        except BiometricError as exc:
            return await self._record_error(reference, None, exc)

        try:
            match = await self.matcher.match(image, reference)
        except MatchServiceError as exc:
            return await self._record_error(reference, probe_url, exc)
        except Exception as exc:
            _logger.exception("Face matcher failed: user_id=%s", self.user_id)
            return await self._record_error(
                reference, probe_url, MatchServiceError(detail=str(exc))
            )

        outcome = decide_outcome(match.similarity, self.threshold)
        try:
            attempt = await self._record(
                probe_url, reference, match.similarity, outcome, None
            )
        except BiometricError as exc:
            return self._result(
                Resolution.FATAL,
                similarity=match.similarity,
                reference=reference,
                error=exc,
            )
        resolution = Resolution.RETRY
        if outcome is AttemptOutcome.SUCCESS:
            resolution = Resolution.SUCCESS
        return self._result(
            resolution,
            similarity=match.similarity,
            attempt=attempt,
            reference=reference,
        )

    async def _record_error(
        self,
        reference: EnrollmentReference,
        probe_url: str | None,
        error: BiometricError,
    ) -> CaptureResult:
        message = f"{error.kind}: {error.detail or error.user_message}"
        try:
            attempt = await self._record(
                probe_url, reference, None, AttemptOutcome.ERROR, message
            )
        except BiometricError as exc:
            return self._result(Resolution.FATAL, reference=reference, error=exc)
        return self._result(
            Resolution.FATAL, attempt=attempt, reference=reference, error=error
        )

    async def _record(  # noqa: PLR0913
        self,
        probe_url: str | None,
        reference: EnrollmentReference,
        similarity: float | None,
        outcome: AttemptOutcome,
        error_message: str | None,
    ) -> VerificationAttempt:
        device_info = {**client_metadata(), **self.device_info}
        return await asyncio.to_thread(
            self.log_service.record,
            user_id=self.user_id,
            probe_url=probe_url,
            reference_url=reference.reference_url,
            similarity=similarity,
            outcome=outcome,
            device_info=device_info,
            error_message=error_message,
        )

    def _result(self, resolution: Resolution, **kwargs: object) -> CaptureResult:
        return CaptureResult(
            resolution=resolution, mode=self.mode, user_id=self.user_id, **kwargs
        )

    def _resolve(self, result: CaptureResult) -> None:
        self.result = result
        if result.error is not None:
            _logger.warning(
                "Capture resolved %s: user_id=%s kind=%s detail=%s",
                result.resolution,
                self.user_id,
                result.error.kind,
                result.error.detail,
            )
        else:
            _logger.info(
                "Capture resolved %s: user_id=%s mode=%s similarity=%s",
                result.resolution,
                self.user_id,
                self.mode,
                result.similarity,
            )
        if result.resolution is Resolution.RETRY:
            self._transition(CaptureState.IDLE)
        else:
            self._transition(CaptureState.RESOLVED)
        if self.on_resolved:
            self.on_resolved(result.resolution, result)

    def _transition(self, state: CaptureState) -> None:
        if state is self.state:
            return
        _logger.debug("Capture state %s -> %s", self.state, state)
        self.state = state
        if self.on_state_change:
            self.on_state_change(state)
