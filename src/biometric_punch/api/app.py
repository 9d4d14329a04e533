"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from biometric_punch.api.admin import router as admin_router
from biometric_punch.api.models import CaptureResponse, ErrorResponse, ReferenceStatus
from biometric_punch.app_logging import configure_logging
from biometric_punch.containers import AppContainer
from biometric_punch.domain.errors import AttemptsExhausted, BiometricError
from biometric_punch.services.orchestrator import CaptureMode, CaptureResult, Resolution

_STATUS_BY_KIND = {
    "PermissionDenied": status.HTTP_403_FORBIDDEN,
    "DeviceUnavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    "DeviceBusy": status.HTTP_409_CONFLICT,
    "Unsupported": status.HTTP_501_NOT_IMPLEMENTED,
    "NoFrameAvailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    "NoReferenceEnrolled": status.HTTP_404_NOT_FOUND,
    "UploadFailed": status.HTTP_502_BAD_GATEWAY,
    "MatchServiceError": status.HTTP_502_BAD_GATEWAY,
    "StorageError": status.HTTP_503_SERVICE_UNAVAILABLE,
    "OperationInProgress": status.HTTP_409_CONFLICT,
    "InvalidTransition": status.HTTP_409_CONFLICT,
    "AttemptsExhausted": status.HTTP_429_TOO_MANY_REQUESTS,
}


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.exception_handler(BiometricError)
    async def biometric_error_handler(
        request: Request, exc: BiometricError
    ) -> JSONResponse:
        logger.warning(
            "Request failed: path=%s kind=%s detail=%s",
            request.url.path,
            exc.kind,
            exc.detail,
        )
        return _error_response(exc)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/identities/{user_id}/reference")
    async def reference_status(user_id: UUID, request: Request) -> ReferenceStatus:
        """Report whether the user has registered a face."""
        state_container: AppContainer = request.app.state.container
        enrolled = state_container.kiosk_service.has_active_reference(user_id)
        return ReferenceStatus(user_id=user_id, enrolled=enrolled)

    @app.post("/identities/{user_id}/register")
    async def register(user_id: UUID, request: Request) -> JSONResponse:
        """Capture and store a new reference image for the user."""
        state_container: AppContainer = request.app.state.container
        result = await state_container.kiosk_service.run_cycle(
            CaptureMode.REGISTER, user_id
        )
        return _capture_response(result)

    @app.post("/identities/{user_id}/verify")
    async def verify(user_id: UUID, request: Request) -> JSONResponse:
        """Capture a probe image and verify it against the user's reference."""
        state_container: AppContainer = request.app.state.container
        result = await state_container.kiosk_service.run_cycle(
            CaptureMode.VERIFY, user_id
        )
        return _capture_response(result)

    @app.post("/kiosk/cancel")
    async def cancel(request: Request) -> dict[str, bool]:
        """Cancel the capture currently running on the kiosk camera."""
        state_container: AppContainer = request.app.state.container
        return {"cancelled": state_container.kiosk_service.cancel()}

    return app


def _capture_response(result: CaptureResult | None) -> JSONResponse:
    """Map a cycle result to a response."""
    if result is None:
        body = ErrorResponse(kind="Cancelled", message="The capture was cancelled.")
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT, content=body.model_dump()
        )
    if result.resolution is Resolution.FATAL and result.error is not None:
        return _error_response(result.error)
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=CaptureResponse.from_result(result).model_dump(mode="json"),
    )


def _error_response(exc: BiometricError) -> JSONResponse:
    headers = None
    if isinstance(exc, AttemptsExhausted):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return JSONResponse(
        status_code=_STATUS_BY_KIND.get(
            exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR
        ),
        content=exc.to_payload(),
        headers=headers,
    )
