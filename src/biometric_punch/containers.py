"""Dependency container wiring for the kiosk."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from uuid import UUID

from supabase import create_client

from biometric_punch.adapters.http_face_matcher import HttpxFaceMatcher
from biometric_punch.adapters.opencv_camera import OpenCVVideoBackend
from biometric_punch.adapters.opencv_face_detector import HaarFaceDetector
from biometric_punch.adapters.supabase_image_store import SupabaseImageStore
from biometric_punch.adapters.supabase_reference_repository import (
    SupabaseReferenceRepository,
)
from biometric_punch.adapters.supabase_verification_log_repository import (
    SupabaseVerificationLogRepository,
)
from biometric_punch.config import Settings
from biometric_punch.services.camera import CameraSession
from biometric_punch.services.capture import FrameCapturer
from biometric_punch.services.enrollment import EnrollmentService
from biometric_punch.services.kiosk import AttemptPolicy, AttemptTracker, KioskService
from biometric_punch.services.matching import FaceMatcher
from biometric_punch.services.orchestrator import (
    CaptureMode,
    VerificationOrchestrator,
)
from biometric_punch.services.storage import ImageStore
from biometric_punch.services.verification_log import VerificationLogService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    enrollment_service: EnrollmentService
    verification_log_service: VerificationLogService
    kiosk_service: KioskService
    close_resources: Callable[[], Awaitable[None]]


def orchestrator_factory(  # noqa: PLR0913
    settings: Settings,
    camera: CameraSession,
    enrollment_service: EnrollmentService,
    image_store: ImageStore,
    matcher: FaceMatcher,
    log_service: VerificationLogService,
) -> Callable[[CaptureMode, UUID], VerificationOrchestrator]:
    """Return a factory building orchestrators that share the kiosk camera."""
    capturer = FrameCapturer(
        jpeg_quality=settings.jpeg_quality,
        mirror=settings.camera_mirror,
        detector=HaarFaceDetector() if settings.face_detection_enabled else None,
        min_face_confidence=settings.min_face_confidence,
    )

    def build(mode: CaptureMode, user_id: UUID) -> VerificationOrchestrator:
        return VerificationOrchestrator(
            mode=mode,
            user_id=user_id,
            camera=camera,
            capturer=capturer,
            enrollment_service=enrollment_service,
            image_store=image_store,
            matcher=matcher,
            log_service=log_service,
            constraints=settings.capture_constraints(),
            countdown_ticks=settings.countdown_ticks,
            tick_seconds=settings.countdown_tick_seconds,
            ready_timeout_seconds=settings.camera_ready_timeout_seconds,
            device_info={"camera_index": settings.camera_index},
        )

    return build


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    image_store = SupabaseImageStore(
        supabase_client, bucket=resolved_settings.biometric_bucket
    )
    enrollment_service = EnrollmentService(
        repository=SupabaseReferenceRepository(supabase_client),
        image_store=image_store,
    )
    log_service = VerificationLogService(
        SupabaseVerificationLogRepository(supabase_client)
    )
    matcher = HttpxFaceMatcher.create(
        resolved_settings.face_matcher_url, resolved_settings.face_matcher_api_key
    )
    camera = CameraSession(OpenCVVideoBackend(resolved_settings.camera_index))
    tracker = AttemptTracker(
        AttemptPolicy(
            max_attempts=resolved_settings.max_verification_attempts,
            lockout_seconds=resolved_settings.lockout_seconds,
        )
    )
    kiosk_service = KioskService(
        orchestrator_factory=orchestrator_factory(
            resolved_settings,
            camera,
            enrollment_service,
            image_store,
            matcher,
            log_service,
        ),
        enrollment_service=enrollment_service,
        tracker=tracker,
    )

    async def close_resources() -> None:
        kiosk_service.cancel()
        camera.close()
        await matcher.close()

    return AppContainer(
        settings=resolved_settings,
        enrollment_service=enrollment_service,
        verification_log_service=log_service,
        kiosk_service=kiosk_service,
        close_resources=close_resources,
    )
