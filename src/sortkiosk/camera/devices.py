"""Camera device access.

``CameraDevice`` is the platform media API the acquisition layer talks to.
``OpenCVCameraDevice`` is the production implementation; it maps facing
modes to configured video device indices.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

import cv2

from sortkiosk.errors import CameraError, CameraFailureReason

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from sortkiosk.config import Settings

logger = logging.getLogger(__name__)


class FacingMode(StrEnum):
    REAR = "environment"
    FRONT = "user"


@dataclass(frozen=True)
class CameraConstraints:
    """Requested camera configuration. ``facing=None`` accepts any camera."""

    facing: FacingMode | None = None
    width: int = 640
    height: int = 480

    def describe(self) -> str:
        return f"{self.facing or 'default'} {self.width}x{self.height}"


def fallback_chain(width: int = 640, height: int = 480) -> tuple[CameraConstraints, ...]:
    """Candidate configurations in the order they are tried: rear, front, any."""
    return (
        CameraConstraints(FacingMode.REAR, width, height),
        CameraConstraints(FacingMode.FRONT, width, height),
        CameraConstraints(None, width, height),
    )


class VideoStream(Protocol):
    """A live stream from an opened camera."""

    @property
    def resolution(self) -> tuple[int, int]:
        """Native (width, height) of the stream."""
        ...

    def read(self) -> NDArray[np.uint8] | None:
        """Return the current frame as HxWx3 RGB, or None if none is available."""
        ...

    def stop(self) -> None:
        """Stop the stream and release the hardware."""
        ...


class CameraDevice(Protocol):
    """Protocol for the platform camera API."""

    def open(self, constraints: CameraConstraints) -> VideoStream:
        """Open a camera matching the constraints.

        Raises:
            CameraError: If no camera satisfies the constraints.
        """
        ...


# ---------------------------------------------------------------------------
# OpenCV implementation
# ---------------------------------------------------------------------------


class OpenCVStream:
    """VideoStream backed by ``cv2.VideoCapture``."""

    def __init__(self, capture: cv2.VideoCapture) -> None:
        self._capture = capture
        self._lock = threading.Lock()

    @property
    def resolution(self) -> tuple[int, int]:
        width = int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        return width, height

    def read(self) -> NDArray[np.uint8] | None:
        with self._lock:
            if not self._capture.isOpened():
                return None
            ok, frame = self._capture.read()
        if not ok or frame is None:
            return None
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def stop(self) -> None:
        with self._lock:
            if self._capture.isOpened():
                self._capture.release()


class OpenCVCameraDevice:
    """Opens local video devices by index."""

    def __init__(self, settings: Settings) -> None:
        self._indices: dict[FacingMode | None, int | None] = {
            FacingMode.REAR: settings.rear_camera_index,
            FacingMode.FRONT: settings.front_camera_index,
            None: settings.default_camera_index,
        }

    def open(self, constraints: CameraConstraints) -> VideoStream:
        index = self._indices.get(constraints.facing)
        if index is None:
            raise CameraError(
                CameraFailureReason.UNSATISFIABLE_CONSTRAINTS,
                f"No camera configured for facing mode {constraints.facing}",
            )

        capture = cv2.VideoCapture(index)
        if not capture.isOpened():
            capture.release()
            raise CameraError(CameraFailureReason.DEVICE_NOT_FOUND)

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)
        logger.info("Opened video device %d (%s)", index, constraints.describe())
        return OpenCVStream(capture)


def encode_jpeg(frame: NDArray[np.uint8], quality: int = 85) -> bytes:
    """Encode an RGB frame as JPEG bytes."""
    bgr = cv2.cvtColor(frame, cv2.COLOR_RGB2BGR)
    ok, buf = cv2.imencode(".jpg", bgr, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ok:
        raise CameraError(CameraFailureReason.UNKNOWN, "Unable to encode camera frame")
    return bytes(buf)
