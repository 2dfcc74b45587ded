"""Category colours used by the kiosk screens."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sortkiosk.api.schemas import CategoryColors, PredictionOut
from sortkiosk.catalog import WasteCategory

if TYPE_CHECKING:
    from sortkiosk.ml.classifier import Prediction

_WHITE = "#ffffff"

CATEGORY_COLORS: dict[str, CategoryColors] = {
    WasteCategory.COFFEE_CUP: CategoryColors(bin="#000000", text="#000000", bin_label=_WHITE),
    WasteCategory.REFUNDABLE_BOTTLE: CategoryColors(bin="#9333ea", text="#9333ea", bin_label=_WHITE),
    WasteCategory.LANDFILL: CategoryColors(bin="#dc2626", text="#dc2626", bin_label=_WHITE),
    # light bin, so its label is drawn dark
    WasteCategory.MIXED_RECYCLING: CategoryColors(bin="#e5e7eb", text="#4b5563", bin_label="#4b5563"),
    WasteCategory.PAPER_CARDBOARD: CategoryColors(bin="#2563eb", text="#2563eb", bin_label=_WHITE),
    WasteCategory.FOOD_WASTE: CategoryColors(bin="#db2777", text="#db2777", bin_label=_WHITE),
}

DEFAULT_COLORS = CategoryColors(bin="#6b7280", text="#4b5563", bin_label=_WHITE)


def colors_for(category: str) -> CategoryColors:
    return CATEGORY_COLORS.get(category, DEFAULT_COLORS)


def prediction_out(prediction: Prediction) -> PredictionOut:
    """Clamp a raw score to [0, 1] and report it as a whole percentage."""
    confidence = min(max(prediction.confidence, 0.0), 1.0)
    return PredictionOut(
        label=prediction.label,
        name=prediction.display_name,
        category=prediction.display_category,
        confidence=confidence,
        percent=round(confidence * 100),
    )
