"""Tests for prediction presentation."""

from __future__ import annotations

import pytest

from sortkiosk.api.presentation import DEFAULT_COLORS, colors_for, prediction_out
from sortkiosk.catalog import WasteCategory
from sortkiosk.ml.classifier import Prediction


def _prediction(confidence: float) -> Prediction:
    return Prediction(label="food", confidence=confidence, display_name="Food Waste", display_category="Food Waste")


class TestPredictionOut:
    def test_percent_is_rounded(self) -> None:
        out = prediction_out(_prediction(0.876))
        assert out.percent == 88
        assert out.confidence == pytest.approx(0.876)

    @pytest.mark.parametrize(
        ("raw", "confidence", "percent"),
        [(3.7, 1.0, 100), (-2.5, 0.0, 0)],
    )
    def test_out_of_range_scores_are_clamped(self, raw: float, confidence: float, percent: int) -> None:
        out = prediction_out(_prediction(raw))
        assert out.confidence == confidence
        assert out.percent == percent


class TestColors:
    def test_known_category(self) -> None:
        assert colors_for(WasteCategory.FOOD_WASTE).bin == "#db2777"

    def test_unknown_category_is_grey(self) -> None:
        assert colors_for("Compost") == DEFAULT_COLORS
