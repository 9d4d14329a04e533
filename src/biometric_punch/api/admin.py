"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from biometric_punch.api.models import AttemptView

if TYPE_CHECKING:
    from biometric_punch.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health() -> dict[str, str]:
    """Admin health check endpoint."""
    return {"status": "ok"}


@router.get("/verification-logs", dependencies=[Depends(require_admin)])
async def verification_logs(
    request: Request,
    limit: int = Query(default=50, ge=1, le=500),
    user_id: UUID | None = None,
) -> dict[str, object]:
    """Return recent verification attempts, newest first."""
    container: AppContainer = request.app.state.container
    attempts = container.verification_log_service.recent(limit, user_id=user_id)
    return {
        "attempts": [
            AttemptView.from_attempt(attempt).model_dump(mode="json")
            for attempt in attempts
        ]
    }


@router.get("/kiosk", dependencies=[Depends(require_admin)])
async def kiosk_status(request: Request) -> dict[str, object]:
    """Return whether the kiosk camera is currently in use."""
    container: AppContainer = request.app.state.container
    return {"busy": container.kiosk_service.busy}
