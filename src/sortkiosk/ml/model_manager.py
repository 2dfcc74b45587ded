"""Model manager: fetch model artifacts and create ONNX sessions.

Artifacts are a model file and a metadata file listing the output labels.
They are downloaded from HuggingFace when a repo id is configured, and
otherwise read from the local models directory.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from sortkiosk.errors import ModelLoadError

if TYPE_CHECKING:
    from sortkiosk.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelArtifacts:
    """Local paths of the model file and its label metadata."""

    model_path: Path
    metadata_path: Path


class ModelManager(Protocol):
    """Protocol for model artifact management."""

    def ensure_downloaded(self) -> ModelArtifacts:
        """Ensure the model artifacts are present locally and return their paths."""
        ...

    def create_session(self, model_path: Path) -> InferenceSession:
        """Create an InferenceSession for a model file."""
        ...

    def shutdown(self) -> None:
        """Release any resources held by the manager."""
        ...


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class OnnxModelManager:
    """Fetches model artifacts and builds ONNX inference sessions."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)
        self._artifacts: ModelArtifacts | None = None

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    def ensure_downloaded(self) -> ModelArtifacts:
        """Return local artifact paths, downloading them first if configured."""
        if self._artifacts is not None and self._artifacts.model_path.exists():
            return self._artifacts

        if self._settings.model_repo_id is None:
            artifacts = ModelArtifacts(
                model_path=self._models_dir / self._settings.model_filename,
                metadata_path=self._models_dir / self._settings.metadata_filename,
            )
            for path in (artifacts.model_path, artifacts.metadata_path):
                if not path.is_file():
                    raise ModelLoadError(f"Model artifact not found: {path}")
        else:
            self._models_dir.mkdir(parents=True, exist_ok=True)
            artifacts = ModelArtifacts(
                model_path=self._download(self._settings.model_filename),
                metadata_path=self._download(self._settings.metadata_filename),
            )

        self._artifacts = artifacts
        return artifacts

    def create_session(self, model_path: Path) -> InferenceSession:
        """Create an InferenceSession with the configured providers."""
        session = InferenceSession(
            str(model_path),
            sess_options=self._session_options,
            providers=self._providers,
        )
        logger.info("Loaded session for %s", model_path.name)
        return session

    def shutdown(self) -> None:
        """Forget resolved artifact paths."""
        self._artifacts = None

    # -- Internal -----------------------------------------------------------

    def _download(self, filename: str) -> Path:
        repo_id = self._settings.model_repo_id
        try:
            downloaded = Path(
                hf_hub_download(
                    repo_id=repo_id,
                    filename=filename,
                    local_dir=str(self._models_dir),
                )
            )
        except Exception as exc:
            raise ModelLoadError(f"Unable to fetch {filename} from {repo_id}: {exc}") from exc
        logger.info("Downloaded %s to %s", filename, downloaded)
        return downloaded

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
