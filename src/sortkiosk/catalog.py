"""Static label catalog: model label -> display name and disposal category."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping


class WasteCategory(StrEnum):
    COFFEE_CUP = "Coffee Cup"
    REFUNDABLE_BOTTLE = "Refundable Bottle"
    LANDFILL = "Landfill"
    MIXED_RECYCLING = "Mixed Recycling"
    PAPER_CARDBOARD = "Paper Cardboard"
    FOOD_WASTE = "Food Waste"


@dataclass(frozen=True)
class LabelEntry:
    """Human-readable view of a model label."""

    display_name: str
    category: WasteCategory


DEFAULT_LABELS: dict[str, LabelEntry] = {
    "coffee_cups": LabelEntry("Coffee Cup", WasteCategory.COFFEE_CUP),
    "refundable_10c": LabelEntry("Refundable Bottle", WasteCategory.REFUNDABLE_BOTTLE),
    "landfill": LabelEntry("Landfill", WasteCategory.LANDFILL),
    "mixed_recycling": LabelEntry("Mixed Recycling", WasteCategory.MIXED_RECYCLING),
    "paper_cardboard": LabelEntry("Paper Cardboard", WasteCategory.PAPER_CARDBOARD),
    "food": LabelEntry("Food Waste", WasteCategory.FOOD_WASTE),
}


class LabelCatalog:
    """Read-only label table. Unknown labels resolve to ``None``."""

    def __init__(self, entries: Mapping[str, LabelEntry] | None = None) -> None:
        self._entries = MappingProxyType(dict(DEFAULT_LABELS if entries is None else entries))

    def resolve(self, label: str) -> LabelEntry | None:
        return self._entries.get(label)

    def labels(self) -> list[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, label: object) -> bool:
        return label in self._entries
