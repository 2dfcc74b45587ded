"""Typed failures raised by the kiosk core.

Every error carries the HTTP status and the user-facing message the API
returns for it. Nothing here is fatal: each failure is recovered by the user
retrying the action that triggered it.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sortkiosk.camera.devices import CameraConstraints


class KioskError(Exception):
    """Base class for all kiosk failures."""

    status_code: int = 500
    default_message: str = "Unexpected kiosk error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ModelLoadError(KioskError):
    status_code = 503
    default_message = "Model loading failed, please refresh the page and try again"


class NotLoadedError(KioskError):
    status_code = 503
    default_message = "Model not loaded yet"


class DecodeError(KioskError):
    status_code = 400
    default_message = "Unable to load image file"


class InferenceError(KioskError):
    status_code = 500
    default_message = "Recognition failed, please try again"


class UnsupportedEnvironmentError(KioskError):
    status_code = 503
    default_message = "Camera is not supported in this environment"


class CameraFailureReason(StrEnum):
    PERMISSION_DENIED = "permission_denied"
    DEVICE_NOT_FOUND = "device_not_found"
    DEVICE_BUSY = "device_busy"
    UNSATISFIABLE_CONSTRAINTS = "unsatisfiable_constraints"
    UNKNOWN = "unknown"


_CAMERA_MESSAGES: dict[CameraFailureReason, str] = {
    CameraFailureReason.PERMISSION_DENIED: "Camera permission denied, please allow camera access for the kiosk",
    CameraFailureReason.DEVICE_NOT_FOUND: "Camera device not found",
    CameraFailureReason.DEVICE_BUSY: "Camera is occupied by another application",
    CameraFailureReason.UNSATISFIABLE_CONSTRAINTS: "Camera does not support the requested configuration",
    CameraFailureReason.UNKNOWN: "Unable to access camera",
}


class CameraError(KioskError):
    """A camera could not be opened or read.

    ``attempts`` holds every failed candidate of a fallback chain, in the
    order they were tried. It is only populated when the whole chain failed.
    """

    status_code = 503

    def __init__(
        self,
        reason: CameraFailureReason,
        message: str | None = None,
        attempts: Sequence[tuple[CameraConstraints, CameraError]] = (),
    ) -> None:
        self.reason = reason
        self.attempts = tuple(attempts)
        super().__init__(message or _CAMERA_MESSAGES[reason])


class AcquisitionTimeoutError(KioskError, TimeoutError):
    status_code = 504
    default_message = "Video loading timeout"


class AcquisitionAbortedError(KioskError):
    status_code = 409
    default_message = "Camera was stopped before it became ready"


class ClassifierBusyError(KioskError):
    status_code = 503
    default_message = "Kiosk is busy, please try again"


class NotActiveError(KioskError):
    status_code = 409
    default_message = "Camera not initialized"


class AlreadyActiveError(KioskError):
    status_code = 409
    default_message = "Camera is already active"
