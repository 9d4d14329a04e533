"""Shared test fixtures."""

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID, uuid4

import numpy as np
import pytest

from biometric_punch.config import Settings
from biometric_punch.containers import AppContainer
from biometric_punch.domain.capture import (
    CaptureConstraints,
    CapturedImage,
    FaceDetection,
)
from biometric_punch.domain.enrollment import EnrollmentReference
from biometric_punch.domain.errors import MatchServiceError
from biometric_punch.domain.verification import (
    AttemptOutcome,
    MatchResult,
    VerificationAttempt,
)
from biometric_punch.services.camera import CameraSession, VideoBackend, VideoSource
from biometric_punch.services.capture import FrameCapturer
from biometric_punch.services.enrollment import EnrollmentService, ReferenceRepository
from biometric_punch.services.face_detection import FaceDetector
from biometric_punch.services.kiosk import AttemptPolicy, AttemptTracker, KioskService
from biometric_punch.services.matching import FaceMatcher
from biometric_punch.services.orchestrator import (
    CaptureMode,
    VerificationOrchestrator,
)
from biometric_punch.services.storage import ImageStore
from biometric_punch.services.verification_log import (
    VerificationLogRepository,
    VerificationLogService,
)

TEST_SERVICE_KEY = (
    "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9."
    "eyJyb2xlIjoic2VydmljZV9yb2xlIn0."
    "c2lnbmF0dXJl"
)


def make_frame(width: int = 64, height: int = 48) -> np.ndarray:
    """Return a BGR frame with a bright left half and a dark right half."""
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    frame[:, : width // 2] = 255
    return frame


def make_image(captured_at: datetime | None = None) -> CapturedImage:
    return CapturedImage(
        data=b"\xff\xd8\xff-fake-jpeg",
        mime_type="image/jpeg",
        width=64,
        height=48,
        captured_at=captured_at or datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC),
    )


@dataclass
class FakeVideoSource(VideoSource):
    """Video source serving a fixed frame after an optional warm-up."""

    width: int = 64
    height: int = 48
    warmup_reads: int = 0
    frame: np.ndarray | None = field(default_factory=make_frame)
    reads: int = 0
    release_count: int = 0

    @property
    def released(self) -> bool:
        return self.release_count > 0

    def read_frame(self) -> np.ndarray | None:
        self.reads += 1
        if self.released or self.reads <= self.warmup_reads:
            return None
        return self.frame

    def release(self) -> None:
        self.release_count += 1


@dataclass
class FakeVideoBackend(VideoBackend):
    """Backend that hands out fake sources and can fail on demand."""

    errors: list[Exception] = field(default_factory=list)
    gate: threading.Event | None = None
    source_factory: Callable[[], FakeVideoSource] = FakeVideoSource
    calls: list[CaptureConstraints] = field(default_factory=list)
    sources: list[FakeVideoSource] = field(default_factory=list)

    def acquire(self, constraints: CaptureConstraints) -> FakeVideoSource:
        self.calls.append(constraints)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.errors:
            raise self.errors.pop(0)
        source = self.source_factory()
        self.sources.append(source)
        return source

    @property
    def open_sources(self) -> list[FakeVideoSource]:
        return [source for source in self.sources if not source.released]


@dataclass
class InMemoryImageStore(ImageStore):
    """Image store keeping uploads in memory."""

    uploads: dict[str, bytes] = field(default_factory=dict)
    fail: bool = False

    def upload(self, data: bytes, path: str, content_type: str) -> str:
        if self.fail:
            raise RuntimeError("storage unavailable")
        self.uploads[path] = data
        return f"https://storage.test/biometric-photos/{path}"


@dataclass
class InMemoryReferenceRepository(ReferenceRepository):
    """In-memory reference repository for tests."""

    references: list[EnrollmentReference] = field(default_factory=list)

    def get_active_reference(self, user_id: UUID) -> EnrollmentReference | None:
        for reference in reversed(self.references):
            if reference.user_id == user_id and reference.is_active:
                return reference
        return None

    def deactivate_references(self, user_id: UUID) -> int:
        changed = 0
        for index, reference in enumerate(self.references):
            if reference.user_id == user_id and reference.is_active:
                self.references[index] = EnrollmentReference(
                    id=reference.id,
                    user_id=reference.user_id,
                    reference_url=reference.reference_url,
                    is_active=False,
                    created_at=reference.created_at,
                )
                changed += 1
        return changed

    def create_reference(
        self, user_id: UUID, reference_url: str
    ) -> EnrollmentReference:
        reference = EnrollmentReference(
            id=uuid4(),
            user_id=user_id,
            reference_url=reference_url,
            is_active=True,
            created_at=datetime.now(tz=UTC),
        )
        self.references.append(reference)
        return reference

    def active_for(self, user_id: UUID) -> list[EnrollmentReference]:
        return [
            reference
            for reference in self.references
            if reference.user_id == user_id and reference.is_active
        ]


@dataclass
class InMemoryVerificationLogRepository(VerificationLogRepository):
    """In-memory verification log for tests."""

    attempts: list[VerificationAttempt] = field(default_factory=list)
    fail: bool = False

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
        if self.fail:
            raise RuntimeError("insert failed")
        attempt = VerificationAttempt(
            id=uuid4(),
            user_id=user_id,
            probe_url=probe_url,
            reference_url=reference_url,
            similarity=similarity,
            outcome=outcome,
            created_at=datetime.now(tz=UTC),
            device_info=device_info,
            error_message=error_message,
        )
        self.attempts.append(attempt)
        return attempt

    def list_attempts(
        self, limit: int, user_id: UUID | None = None
    ) -> list[VerificationAttempt]:
        if self.fail:
            raise RuntimeError("select failed")
        attempts = [
            attempt
            for attempt in reversed(self.attempts)
            if user_id is None or attempt.user_id == user_id
        ]
        return attempts[:limit]


@dataclass
class FixedScoreMatcher(FaceMatcher):
    """Deterministic matcher returning a fixed similarity."""

    similarity: float = 0.9
    calls: list[tuple[CapturedImage, EnrollmentReference]] = field(
        default_factory=list
    )

    async def match(
        self, probe: CapturedImage, reference: EnrollmentReference
    ) -> MatchResult:
        self.calls.append((probe, reference))
        return MatchResult(similarity=self.similarity)


@dataclass
class FailingMatcher(FaceMatcher):
    """Matcher whose service is down."""

    error: Exception = field(
        default_factory=lambda: MatchServiceError(detail="503 from matcher")
    )

    async def match(
        self, probe: CapturedImage, reference: EnrollmentReference
    ) -> MatchResult:
        raise self.error


@dataclass
class FakeFaceDetector(FaceDetector):
    """Detector returning a fixed set of faces."""

    detections: list[FaceDetection] = field(
        default_factory=lambda: [FaceDetection(bbox=(8, 4, 40, 44), score=0.95)]
    )
    calls: int = 0

    def detect(self, frame: np.ndarray) -> list[FaceDetection]:
        self.calls += 1
        return list(self.detections)


@dataclass
class Harness:
    """Collaborators shared by orchestrators under test."""

    backend: FakeVideoBackend = field(default_factory=FakeVideoBackend)
    image_store: InMemoryImageStore = field(default_factory=InMemoryImageStore)
    references: InMemoryReferenceRepository = field(
        default_factory=InMemoryReferenceRepository
    )
    log: InMemoryVerificationLogRepository = field(
        default_factory=InMemoryVerificationLogRepository
    )
    matcher: FaceMatcher = field(default_factory=FixedScoreMatcher)
    capturer: FrameCapturer = field(default_factory=FrameCapturer)
    camera: CameraSession = field(init=False)

    def __post_init__(self) -> None:
        self.camera = CameraSession(self.backend, ready_poll_seconds=0.001)

    @property
    def enrollment_service(self) -> EnrollmentService:
        return EnrollmentService(self.references, self.image_store)

    @property
    def log_service(self) -> VerificationLogService:
        return VerificationLogService(self.log)

    def orchestrator(
        self, mode: CaptureMode, user_id: UUID, **overrides: object
    ) -> VerificationOrchestrator:
        options: dict[str, object] = {
            "countdown_ticks": 0,
            "tick_seconds": 0.0,
            "ready_timeout_seconds": 0.5,
        }
        options.update(overrides)
        return VerificationOrchestrator(
            mode=mode,
            user_id=user_id,
            camera=self.camera,
            capturer=self.capturer,
            enrollment_service=self.enrollment_service,
            image_store=self.image_store,
            matcher=self.matcher,
            log_service=self.log_service,
            **options,
        )

    def kiosk(self, policy: AttemptPolicy, **tracker_options: object) -> KioskService:
        return KioskService(
            orchestrator_factory=self.orchestrator,
            enrollment_service=self.enrollment_service,
            tracker=AttemptTracker(policy, **tracker_options),
        )


@pytest.fixture
def harness() -> Harness:
    return Harness()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key=TEST_SERVICE_KEY,
        admin_token="admin-token",
        face_matcher_url="https://matcher.test/v1/match",
        max_verification_attempts=3,
        lockout_seconds=300,
    )


@pytest.fixture
def container(settings: Settings, harness: Harness) -> AppContainer:
    kiosk_service = harness.kiosk(
        AttemptPolicy(
            max_attempts=settings.max_verification_attempts,
            lockout_seconds=settings.lockout_seconds,
        )
    )

    async def close_resources() -> None:
        harness.camera.close()

    return AppContainer(
        settings=settings,
        enrollment_service=harness.enrollment_service,
        verification_log_service=harness.log_service,
        kiosk_service=kiosk_service,
        close_resources=close_resources,
    )
