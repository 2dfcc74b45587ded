"""Environment capability checks for camera use."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import cv2


class Environment(Protocol):
    """Protocol for querying the host before touching the camera."""

    def is_secure_context(self) -> bool:
        ...

    def has_camera_api(self) -> bool:
        ...


@dataclass(frozen=True)
class CameraSupport:
    supported: bool
    reason: str | None = None


class HostEnvironment:
    """Answers capability queries for the machine running the kiosk."""

    def __init__(self, secure_context: bool) -> None:
        self._secure_context = secure_context

    def is_secure_context(self) -> bool:
        return self._secure_context

    def has_camera_api(self) -> bool:
        return len(cv2.videoio_registry.getCameraBackends()) > 0


def check_camera_support(environment: Environment) -> CameraSupport:
    """Report whether the camera can be used, and why not if it can't."""
    if not environment.has_camera_api():
        return CameraSupport(supported=False, reason="No camera capture backend is available")
    if not environment.is_secure_context():
        return CameraSupport(supported=False, reason="Camera needs to be used in a secure context")
    return CameraSupport(supported=True)
