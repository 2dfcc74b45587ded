"""Fakes for the camera, environment and ONNX session, shared by all tests."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from types import SimpleNamespace
from typing import TYPE_CHECKING

import numpy as np
import pytest

from sortkiosk.catalog import LabelCatalog
from sortkiosk.errors import CameraError, CameraFailureReason, ModelLoadError
from sortkiosk.ml.classifier import TrashClassifier
from sortkiosk.ml.model_manager import ModelArtifacts

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from numpy.typing import NDArray

    from sortkiosk.camera.devices import CameraConstraints, FacingMode


# ---------------------------------------------------------------------------
# Model fakes
# ---------------------------------------------------------------------------


class FakeSession:
    """Stands in for onnxruntime.InferenceSession."""

    def __init__(self, scores: Sequence[float], input_shape: Sequence[int | None] = (None, 224, 224, 3)) -> None:
        self.scores = np.asarray([scores], dtype=np.float32)
        self.input_shape = list(input_shape)
        self.feeds: list[dict[str, NDArray[np.float32]]] = []
        self.error: Exception | None = None
        self.on_run: Callable[[], object] | None = None

    def get_inputs(self) -> list[SimpleNamespace]:
        return [SimpleNamespace(name="input_1", shape=self.input_shape)]

    def run(self, output_names: object, feed: dict[str, NDArray[np.float32]]) -> list[NDArray[np.float32]]:
        self.feeds.append(feed)
        if self.on_run is not None:
            self.on_run()
        if self.error is not None:
            raise self.error
        return [self.scores]


class FakeModelManager:
    """Writes metadata to a temp dir and hands out a FakeSession."""

    def __init__(self, root: Path, metadata: object, session: FakeSession) -> None:
        self.root = root
        self.session = session
        self.create_calls = 0
        self.failures: list[Exception] = []
        self.metadata_path = root / "metadata.json"
        self.model_path = root / "model.onnx"
        self.model_path.write_bytes(b"onnx")
        text = metadata if isinstance(metadata, str) else json.dumps(metadata)
        self.metadata_path.write_text(text, encoding="utf-8")

    def ensure_downloaded(self) -> ModelArtifacts:
        if self.failures:
            raise self.failures.pop(0)
        return ModelArtifacts(model_path=self.model_path, metadata_path=self.metadata_path)

    def create_session(self, model_path: Path) -> FakeSession:
        self.create_calls += 1
        return self.session

    def shutdown(self) -> None:
        pass


@pytest.fixture()
def make_classifier(tmp_path: Path) -> Callable[..., tuple[TrashClassifier, FakeModelManager]]:
    """Factory: build a classifier over fake artifacts with the given labels and scores."""

    def _make(
        labels: Sequence[str],
        scores: Sequence[float],
        *,
        metadata: object | None = None,
        input_shape: Sequence[int | None] = (None, 224, 224, 3),
        max_image_pixels: int = 16_777_216,
    ) -> tuple[TrashClassifier, FakeModelManager]:
        session = FakeSession(scores, input_shape)
        manager = FakeModelManager(
            tmp_path,
            metadata if metadata is not None else {"labels": list(labels), "imageSize": 224},
            session,
        )
        classifier = TrashClassifier(manager, LabelCatalog(), max_image_pixels=max_image_pixels)
        return classifier, manager

    return _make


def failing_manager(manager: FakeModelManager, times: int = 1) -> FakeModelManager:
    manager.failures.extend(ModelLoadError("network down") for _ in range(times))
    return manager


# ---------------------------------------------------------------------------
# Camera fakes
# ---------------------------------------------------------------------------


def make_frame(width: int = 640, height: int = 480, value: int = 128) -> NDArray[np.uint8]:
    return np.full((height, width, 3), value, dtype=np.uint8)


class FakeStream:
    def __init__(self, frame: NDArray[np.uint8] | None = None, name: str = "stream") -> None:
        self.frame = make_frame() if frame is None else frame
        self.name = name
        self.stop_calls = 0

    @property
    def resolution(self) -> tuple[int, int]:
        height, width = self.frame.shape[:2]
        return width, height

    def read(self) -> NDArray[np.uint8] | None:
        if self.stop_calls:
            return None
        return self.frame

    def stop(self) -> None:
        self.stop_calls += 1


class FakeCameraDevice:
    """Opens a preconfigured outcome per facing mode (None = default camera)."""

    def __init__(self, outcomes: dict[FacingMode | None, FakeStream | CameraError]) -> None:
        self.outcomes = outcomes
        self.opened: list[CameraConstraints] = []

    def open(self, constraints: CameraConstraints) -> FakeStream:
        self.opened.append(constraints)
        outcome = self.outcomes.get(constraints.facing)
        if outcome is None:
            raise CameraError(CameraFailureReason.DEVICE_NOT_FOUND)
        if isinstance(outcome, CameraError):
            raise outcome
        return outcome


class FakeSurface:
    def __init__(self, ready_delay: float = 0.0) -> None:
        self.ready_delay = ready_delay
        self.stream: FakeStream | None = None
        self.ready = False
        self.unbind_calls = 0

    def bind(self, stream: FakeStream) -> None:
        self.stream = stream

    async def wait_until_ready(self) -> None:
        if self.ready_delay:
            await asyncio.sleep(self.ready_delay)
        self.ready = True

    def unbind(self) -> None:
        self.stream = None
        self.ready = False
        self.unbind_calls += 1


class FakeEnvironment:
    def __init__(self, secure: bool = True, camera_api: bool = True) -> None:
        self.secure = secure
        self.camera_api = camera_api

    def is_secure_context(self) -> bool:
        return self.secure

    def has_camera_api(self) -> bool:
        return self.camera_api
