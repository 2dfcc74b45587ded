"""Camera session lifecycle: acquire, capture, release.

State machine::

    IDLE -> ACQUIRING -> ACTIVE -> IDLE        (release)
            ACQUIRING -> FAILED -> IDLE        (error)

At most one session exists at a time. Acquiring while a session is active
or an acquisition is in progress raises AlreadyActiveError. Releasing during
ACQUIRING aborts the acquisition once the device open or readiness wait
returns; the stream is stopped and the pending acquire raises
AcquisitionAbortedError.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from sortkiosk.camera.devices import fallback_chain
from sortkiosk.camera.environment import check_camera_support
from sortkiosk.errors import (
    AcquisitionAbortedError,
    AcquisitionTimeoutError,
    AlreadyActiveError,
    CameraError,
    CameraFailureReason,
    NotActiveError,
    UnsupportedEnvironmentError,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    import numpy as np
    from numpy.typing import NDArray

    from sortkiosk.camera.devices import CameraConstraints, CameraDevice, VideoStream
    from sortkiosk.camera.environment import Environment
    from sortkiosk.camera.surface import DisplaySurface

logger = logging.getLogger(__name__)

DEFAULT_READY_TIMEOUT: float = 10.0


class MediaState(StrEnum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    ACTIVE = "active"
    FAILED = "failed"


@dataclass(frozen=True)
class CameraSession:
    """The active stream, the surface it is bound to and how it was opened."""

    stream: VideoStream
    surface: DisplaySurface
    constraints: CameraConstraints


class MediaAcquisition:
    """Sole owner of the kiosk camera."""

    def __init__(
        self,
        device: CameraDevice,
        environment: Environment,
        candidates: Sequence[CameraConstraints] | None = None,
        ready_timeout: float = DEFAULT_READY_TIMEOUT,
    ) -> None:
        self._device = device
        self._environment = environment
        self._candidates = tuple(candidates) if candidates is not None else fallback_chain()
        self._ready_timeout = ready_timeout
        self._state = MediaState.IDLE
        self._session: CameraSession | None = None
        self._release_requested = False

    @property
    def state(self) -> MediaState:
        return self._state

    @property
    def session(self) -> CameraSession | None:
        return self._session

    @property
    def is_active(self) -> bool:
        return self._state is MediaState.ACTIVE

    async def acquire(self, surface: DisplaySurface) -> CameraSession:
        """Open a camera, bind it to ``surface`` and wait until it plays.

        Raises:
            UnsupportedEnvironmentError: If the capability checks fail.
            AlreadyActiveError: If a session is active or being acquired.
            CameraError: If every candidate configuration failed.
            AcquisitionTimeoutError: If the surface is not ready in time.
            AcquisitionAbortedError: If release() was called meanwhile.
        """
        support = check_camera_support(self._environment)
        if not support.supported:
            raise UnsupportedEnvironmentError(support.reason)
        if self._state is not MediaState.IDLE:
            raise AlreadyActiveError()

        self._state = MediaState.ACQUIRING
        self._release_requested = False
        logger.info("Starting camera initialization")
        stream: VideoStream | None = None
        try:
            stream, constraints = await self._open_first_available()
            surface.bind(stream)
            self._check_not_released()
            try:
                await asyncio.wait_for(surface.wait_until_ready(), timeout=self._ready_timeout)
            except TimeoutError:
                raise AcquisitionTimeoutError() from None
            self._check_not_released()
        except BaseException as exc:
            self._state = MediaState.FAILED
            logger.warning("Camera initialization failed: %s", exc)
            if stream is not None:
                surface.unbind()
                stream.stop()
            self._state = MediaState.IDLE
            self._release_requested = False
            raise

        self._session = CameraSession(stream=stream, surface=surface, constraints=constraints)
        self._state = MediaState.ACTIVE
        logger.info("Camera initialization successful (%s)", constraints.describe())
        return self._session

    def capture_frame(self) -> NDArray[np.uint8]:
        """Grab a still frame at the stream's native resolution.

        Raises:
            NotActiveError: If no session is active.
            CameraError: If the stream yields no frame.
        """
        if self._session is None:
            raise NotActiveError()
        frame = self._session.stream.read()
        if frame is None:
            raise CameraError(CameraFailureReason.DEVICE_BUSY, "Unable to capture image")
        return frame

    def release(self) -> None:
        """Stop the stream and clear the surface. No-op when idle.

        During ACQUIRING this only flags the pending acquire, which stops
        whatever it opened and returns to IDLE itself.
        """
        if self._state is MediaState.ACQUIRING:
            logger.info("Camera release requested during initialization")
            self._release_requested = True
            return
        session = self._session
        self._session = None
        if session is not None:
            session.surface.unbind()
            session.stream.stop()
            logger.info("Camera stopped")
        if self._state is MediaState.ACTIVE:
            self._state = MediaState.IDLE

    @asynccontextmanager
    async def open_session(self, surface: DisplaySurface) -> AsyncIterator[CameraSession]:
        """Acquire for the duration of a block, releasing on every exit path."""
        session = await self.acquire(surface)
        try:
            yield session
        finally:
            self.release()

    def _check_not_released(self) -> None:
        if self._release_requested:
            raise AcquisitionAbortedError()

    async def _open_first_available(self) -> tuple[VideoStream, CameraConstraints]:
        failures: list[tuple[CameraConstraints, CameraError]] = []
        for constraints in self._candidates:
            try:
                stream = await asyncio.to_thread(self._device.open, constraints)
            except CameraError as exc:
                logger.info("Camera %s unavailable: %s", constraints.describe(), exc.message)
                failures.append((constraints, exc))
                continue
            logger.info("Successfully obtained camera (%s)", constraints.describe())
            return stream, constraints

        last = failures[-1][1] if failures else CameraError(CameraFailureReason.DEVICE_NOT_FOUND)
        raise CameraError(last.reason, attempts=failures)
