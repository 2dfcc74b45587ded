"""Pydantic request/response schemas for the SortKiosk API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class CategoryColors(BaseModel):
    """Presentation colours for a disposal category."""

    bin: str = Field(description="Bin background colour (hex)")
    text: str = Field(description="Category text colour (hex)")
    bin_label: str = Field(description="Colour of the label drawn on the bin (hex)")


class PredictionOut(BaseModel):
    """A single ranked classification."""

    label: str
    name: str
    category: str
    confidence: float = Field(ge=0.0, le=1.0)
    percent: int = Field(description="Confidence rounded to a whole percentage")


class RecognitionResponse(BaseModel):
    """Top classification plus up to two runners-up."""

    item: PredictionOut
    colors: CategoryColors
    alternatives: list[PredictionOut]


class RecognizedItemOut(BaseModel):
    name: str
    category: str
    colors: CategoryColors


class FlowResponse(BaseModel):
    """Current kiosk screen and its state."""

    screen: str = Field(description="'welcome', 'recognition', 'sorting' or 'reward_pending'")
    item: RecognizedItemOut | None = None
    sorting_complete: bool
    countdown: int | None = None
    redirect_url: str | None = Field(default=None, description="Set once the reward handoff fired")


class CameraSupportResponse(BaseModel):
    supported: bool
    reason: str | None = None


class CameraStatusResponse(BaseModel):
    state: str = Field(description="'idle', 'acquiring', 'active' or 'failed'")
    facing: str | None = None
    width: int | None = None
    height: int | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    model_loaded: bool
    model_loading: bool = False
    camera: str
    screen: str
    concurrent_requests: int
    queue_depth: int


class ModelResponse(BaseModel):
    """Loaded model labels and the categories they map to."""

    loaded: bool
    labels: list[str]
    mapped_labels: list[str]
    categories: list[str]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
