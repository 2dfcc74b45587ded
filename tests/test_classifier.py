"""Tests for the trash classifier."""

from __future__ import annotations

import io
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

import numpy as np
import pytest
from PIL import Image

from conftest import failing_manager, make_frame
from sortkiosk.errors import DecodeError, InferenceError, ModelLoadError, NotLoadedError

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


def _png_bytes(width: int = 32, height: int = 24) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), "green").save(buf, format="PNG")
    return buf.getvalue()


class TestLoad:
    def test_load_reads_labels(self, make_classifier: Callable) -> None:
        classifier, _ = make_classifier(["coffee_cups", "food"], [0.1, 0.9])
        assert classifier.is_loaded is False
        assert classifier.labels == []

        classifier.load()

        assert classifier.is_loaded is True
        assert classifier.labels == ["coffee_cups", "food"]

    def test_load_is_idempotent(self, make_classifier: Callable) -> None:
        classifier, manager = make_classifier(["food"], [1.0])
        classifier.load()
        classifier.load()
        assert manager.create_calls == 1

    def test_concurrent_loads_create_one_session(self, make_classifier: Callable) -> None:
        classifier, manager = make_classifier(["food"], [1.0])
        create_session = manager.create_session

        def _slow_create(path: Path) -> object:
            time.sleep(0.05)
            return create_session(path)

        manager.create_session = _slow_create  # type: ignore[method-assign]
        start = threading.Barrier(8)

        def _load() -> None:
            start.wait()
            classifier.load()

        with ThreadPoolExecutor(max_workers=8) as pool:
            for future in [pool.submit(_load) for _ in range(8)]:
                future.result()

        assert manager.create_calls == 1
        assert classifier.is_loaded is True

    def test_failed_load_can_be_retried(self, make_classifier: Callable) -> None:
        classifier, manager = make_classifier(["food"], [1.0])
        failing_manager(manager)

        with pytest.raises(ModelLoadError):
            classifier.load()
        assert classifier.is_loaded is False

        classifier.load()
        assert classifier.is_loaded is True

    def test_malformed_metadata_raises_model_load_error(self, make_classifier: Callable) -> None:
        classifier, _ = make_classifier([], [], metadata="{not json")
        with pytest.raises(ModelLoadError):
            classifier.load()

    def test_missing_labels_key_means_no_labels(self, make_classifier: Callable) -> None:
        classifier, _ = make_classifier([], [0.5], metadata={"modelName": "trash"})
        classifier.load()
        assert classifier.labels == []
        assert classifier.classify(make_frame()) == []

    def test_session_failure_raises_model_load_error(self, make_classifier: Callable) -> None:
        classifier, manager = make_classifier(["food"], [1.0])

        def _boom(path: object) -> None:
            raise RuntimeError("corrupt model")

        manager.create_session = _boom  # type: ignore[method-assign]
        with pytest.raises(ModelLoadError, match="corrupt model"):
            classifier.load()


class TestClassify:
    def test_classify_before_load_raises(self, make_classifier: Callable) -> None:
        classifier, manager = make_classifier(["food"], [1.0])
        with pytest.raises(NotLoadedError):
            classifier.classify(make_frame())
        assert manager.session.feeds == []

    def test_unmapped_labels_are_dropped(self, make_classifier: Callable) -> None:
        classifier, _ = make_classifier(["coffee_cups", "unknown_x"], [0.2, 0.8])
        classifier.load()

        results = classifier.classify(make_frame())

        assert len(results) == 1
        top = results[0]
        assert top.label == "coffee_cups"
        assert top.confidence == pytest.approx(0.2)
        assert top.display_name == "Coffee Cup"
        assert top.display_category == "Coffee Cup"

    def test_results_sorted_descending(self, make_classifier: Callable) -> None:
        labels = ["coffee_cups", "refundable_10c", "landfill", "mixed_recycling", "paper_cardboard", "food"]
        classifier, _ = make_classifier(labels, [0.05, 0.3, 0.1, 0.2, 0.25, 0.1])
        classifier.load()

        confidences = [p.confidence for p in classifier.classify(make_frame())]

        assert confidences == sorted(confidences, reverse=True)
        assert len(confidences) == 6

    def test_ties_keep_label_order(self, make_classifier: Callable) -> None:
        classifier, _ = make_classifier(["food", "landfill", "paper_cardboard"], [0.3, 0.4, 0.3])
        classifier.load()

        labels = [p.label for p in classifier.classify(make_frame())]

        assert labels == ["landfill", "food", "paper_cardboard"]

    def test_input_tensor_is_resized_and_scaled(self, make_classifier: Callable) -> None:
        classifier, manager = make_classifier(["food"], [1.0])
        classifier.load()

        classifier.classify(make_frame(width=1280, height=720, value=255))

        tensor = manager.session.feeds[0]["input_1"]
        assert tensor.shape == (1, 224, 224, 3)
        assert tensor.dtype == np.float32
        assert tensor.max() == pytest.approx(1.0)

    def test_channels_first_model_gets_nchw_input(self, make_classifier: Callable) -> None:
        classifier, manager = make_classifier(["food"], [1.0], input_shape=(1, 3, 224, 224))
        classifier.load()

        classifier.classify(make_frame())

        assert manager.session.feeds[0]["input_1"].shape == (1, 3, 224, 224)

    def test_short_output_raises_inference_error(self, make_classifier: Callable) -> None:
        classifier, _ = make_classifier(["food", "landfill"], [0.9])
        classifier.load()
        with pytest.raises(InferenceError):
            classifier.classify(make_frame())

    def test_runtime_failure_raises_inference_error(self, make_classifier: Callable) -> None:
        classifier, manager = make_classifier(["food"], [1.0])
        classifier.load()
        manager.session.error = RuntimeError("bad input")
        with pytest.raises(InferenceError):
            classifier.classify(make_frame())

    def test_repeated_calls_are_independent(self, make_classifier: Callable) -> None:
        classifier, _ = make_classifier(["food", "landfill"], [0.7, 0.3])
        classifier.load()
        first = classifier.classify(make_frame(value=10))
        second = classifier.classify(make_frame(value=200))
        assert first == second


class TestClassifyEncoded:
    def test_classify_encoded_png(self, make_classifier: Callable) -> None:
        classifier, manager = make_classifier(["food", "landfill"], [0.91, 0.09])
        classifier.load()

        results = classifier.classify_encoded(_png_bytes())

        assert results[0].display_name == "Food Waste"
        assert manager.session.feeds[0]["input_1"].shape == (1, 224, 224, 3)

    def test_garbage_bytes_raise_decode_error(self, make_classifier: Callable) -> None:
        classifier, _ = make_classifier(["food"], [1.0])
        classifier.load()
        with pytest.raises(DecodeError):
            classifier.classify_encoded(b"definitely not an image")

    def test_oversized_image_raises_decode_error(self, make_classifier: Callable) -> None:
        classifier, _ = make_classifier(["food"], [1.0], max_image_pixels=100)
        classifier.load()
        with pytest.raises(DecodeError, match="too large"):
            classifier.classify_encoded(_png_bytes(20, 20))

    def test_encoded_before_load_raises(self, make_classifier: Callable) -> None:
        classifier, _ = make_classifier(["food"], [1.0])
        with pytest.raises(NotLoadedError):
            classifier.classify_encoded(_png_bytes())
