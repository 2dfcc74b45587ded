"""Trash classifier: one-time model load, inference and confidence ranking."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sortkiosk.errors import InferenceError, KioskError, ModelLoadError, NotLoadedError
from sortkiosk.ml.preprocessing import DEFAULT_INPUT_SIZE, decode_image, to_model_input

if TYPE_CHECKING:
    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

    from sortkiosk.catalog import LabelCatalog
    from sortkiosk.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Prediction:
    """A single ranked classification result."""

    label: str
    confidence: float
    display_name: str
    display_category: str


class ModelMetadata(BaseModel):
    """Label metadata shipped next to the model file."""

    model_config = ConfigDict(populate_by_name=True)

    labels: list[str] = Field(default_factory=list)
    image_size: int = Field(default=DEFAULT_INPUT_SIZE, alias="imageSize", ge=1)


@dataclass(frozen=True)
class ModelHandle:
    """Loaded session plus the labels aligned with its output vector."""

    session: InferenceSession
    input_name: str
    input_size: int
    layout: Literal["nhwc", "nchw"]
    labels: tuple[str, ...]


class TrashClassifier:
    """Classifies waste images into catalog categories.

    The model is loaded at most once and reused for every prediction. The
    instance is owned by the application and passed to whoever needs it.
    """

    def __init__(
        self,
        model_manager: ModelManager,
        catalog: LabelCatalog,
        max_image_pixels: int,
    ) -> None:
        self._model_manager = model_manager
        self._catalog = catalog
        self._max_image_pixels = max_image_pixels
        self._handle: ModelHandle | None = None
        self._load_lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._handle is not None

    @property
    def labels(self) -> list[str]:
        """Model labels in output order (empty until loaded)."""
        if self._handle is None:
            return []
        return list(self._handle.labels)

    def load(self) -> None:
        """Load the model and its label metadata.

        Safe to call repeatedly and from several threads: only the first
        successful call does any work. A failed load can be retried.

        Raises:
            ModelLoadError: If an artifact cannot be fetched or parsed.
        """
        with self._load_lock:
            if self._handle is not None:
                return
            logger.info("Loading trash classification model")
            self._handle = self._load_handle()
            logger.info("Model loaded, labels: %s", ", ".join(self._handle.labels))

    def classify(self, image: NDArray[np.uint8]) -> list[Prediction]:
        """Classify an RGB frame.

        Args:
            image: HxWx3 RGB uint8 array of any resolution.

        Returns:
            Catalog-mapped predictions sorted by confidence (descending).
            Labels without a catalog entry are left out.

        Raises:
            NotLoadedError: If load() has not completed.
            InferenceError: If preprocessing or the forward pass fails.
        """
        handle = self._handle
        if handle is None:
            raise NotLoadedError()

        try:
            tensor = to_model_input(image, handle.input_size, handle.layout)
            outputs = handle.session.run(None, {handle.input_name: tensor})
            scores = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        except KioskError:
            raise
        except Exception as exc:
            logger.exception("Prediction failed")
            raise InferenceError() from exc

        return self._rank(handle.labels, scores)

    def classify_encoded(self, image_bytes: bytes) -> list[Prediction]:
        """Decode an encoded image file and classify it.

        Raises:
            DecodeError: If the bytes cannot be decoded as an image.
        """
        if self._handle is None:
            raise NotLoadedError()
        return self.classify(decode_image(image_bytes, self._max_image_pixels))

    # -- Internal -----------------------------------------------------------

    def _load_handle(self) -> ModelHandle:
        try:
            artifacts = self._model_manager.ensure_downloaded()
            metadata = ModelMetadata.model_validate_json(artifacts.metadata_path.read_bytes())
            session = self._model_manager.create_session(artifacts.model_path)
            model_input = session.get_inputs()[0]
        except ModelLoadError:
            raise
        except (OSError, ValidationError) as exc:
            raise ModelLoadError(f"Unable to read model metadata: {exc}") from exc
        except Exception as exc:
            raise ModelLoadError(f"Unable to load trash recognition model: {exc}") from exc

        shape = list(model_input.shape)
        layout: Literal["nhwc", "nchw"] = "nchw" if len(shape) == 4 and shape[1] == 3 else "nhwc"
        return ModelHandle(
            session=session,
            input_name=model_input.name,
            input_size=metadata.image_size,
            layout=layout,
            labels=tuple(metadata.labels),
        )

    def _rank(self, labels: tuple[str, ...], scores: NDArray[np.float32]) -> list[Prediction]:
        if scores.shape[0] < len(labels):
            raise InferenceError(f"Model returned {scores.shape[0]} scores for {len(labels)} labels")

        results: list[Prediction] = []
        for index, label in enumerate(labels):
            entry = self._catalog.resolve(label)
            if entry is None:
                continue
            results.append(
                Prediction(
                    label=label,
                    confidence=float(scores[index]),
                    display_name=entry.display_name,
                    display_category=str(entry.category),
                )
            )

        # sorted() is stable: equal confidences keep label order
        return sorted(results, key=lambda p: p.confidence, reverse=True)
