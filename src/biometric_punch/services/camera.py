"""Camera session ownership and live frame access."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

import numpy as np

from biometric_punch.domain.capture import (
    DEFAULT_HEIGHT,
    DEFAULT_WIDTH,
    CaptureConstraints,
    CaptureSession,
)
from biometric_punch.domain.errors import (
    BiometricError,
    NoFrameAvailable,
    PermissionDenied,
)

_logger = logging.getLogger(__name__)


class VideoSource(Protocol):
    """An acquired video input device."""

    width: int
    height: int

    def read_frame(self) -> np.ndarray | None:
        """Return the next frame, or None if the device has none yet."""

    def release(self) -> None:
        """Release the device. Must be safe to call more than once."""


class VideoBackend(Protocol):
    """Blocking device acquisition."""

    def acquire(self, constraints: CaptureConstraints) -> VideoSource:
        """Acquire a device matching the constraints or raise a camera error."""


@dataclass
class CameraSession:
    """Owns at most one acquired camera at a time."""

    backend: VideoBackend
    ready_poll_seconds: float = 0.03
    _session: CaptureSession | None = field(default=None, init=False, repr=False)
    _latest_frame: np.ndarray | None = field(default=None, init=False, repr=False)

    @property
    def session(self) -> CaptureSession | None:
        return self._session

    @property
    def is_open(self) -> bool:
        return self._session is not None

    @property
    def latest_frame(self) -> np.ndarray | None:
        return self._latest_frame

    async def open(self, constraints: CaptureConstraints) -> CaptureSession:
        """Acquire a camera, relaxing the constraints once if they cannot be met."""
        self.close()
        try:
            source = await self._acquire(constraints)
        except PermissionDenied:
            raise
        except BiometricError as exc:
            if constraints.is_minimal:
                raise
            _logger.warning(
                "Camera rejected constraints %s (%s); retrying with minimal set",
                constraints,
                exc.kind,
            )
            constraints = constraints.minimal()
            source = await self._acquire(constraints)

        self._session = CaptureSession(
            handle=source,
            width=source.width or DEFAULT_WIDTH,
            height=source.height or DEFAULT_HEIGHT,
            facing_mode=constraints.facing_mode,
            opened_at=datetime.now(tz=UTC),
        )
        _logger.info(
            "Camera opened: %sx%s facing=%s",
            self._session.width,
            self._session.height,
            self._session.facing_mode,
        )
        return self._session

    async def wait_until_ready(self, timeout_seconds: float) -> None:
        """Wait for the first frame of the open session."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_seconds
        while True:
            frame = await self.read_frame()
            if frame is not None:
                return
            if loop.time() >= deadline:
                raise NoFrameAvailable(
                    detail=f"no frame within {timeout_seconds:.1f}s"
                )
            await asyncio.sleep(self.ready_poll_seconds)

    async def read_frame(self) -> np.ndarray | None:
        """Read the current frame from the device."""
        session = self._session
        if session is None:
            raise NoFrameAvailable(detail="camera is not open")
        frame = await asyncio.to_thread(session.handle.read_frame)
        if frame is not None and self._session is session:
            self._latest_frame = frame
        return frame

    def close(self) -> None:
        """Release the device if one is held."""
        session = self._session
        self._session = None
        self._latest_frame = None
        if session is None:
            return
        session.handle.release()
        _logger.info("Camera released")

    @asynccontextmanager
    async def opened(
        self, constraints: CaptureConstraints
    ) -> AsyncIterator[CaptureSession]:
        """Open the camera for the duration of the block."""
        try:
            yield await self.open(constraints)
        finally:
            self.close()

    async def _acquire(self, constraints: CaptureConstraints) -> VideoSource:
        task = asyncio.ensure_future(
            asyncio.to_thread(self.backend.acquire, constraints)
        )
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # The worker thread cannot be interrupted; release whatever it returns.
            task.add_done_callback(_release_orphan)
            raise


def _release_orphan(task: "asyncio.Future[VideoSource]") -> None:
    if task.cancelled() or task.exception() is not None:
        return
    task.result().release()
    _logger.info("Released camera acquired after cancellation")
