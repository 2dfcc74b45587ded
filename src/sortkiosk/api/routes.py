"""API route definitions."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException, Request, UploadFile, status
from fastapi.responses import Response

from sortkiosk.api.presentation import colors_for, prediction_out
from sortkiosk.api.schemas import (
    CameraStatusResponse,
    CameraSupportResponse,
    ErrorResponse,
    FlowResponse,
    HealthResponse,
    ModelResponse,
    RecognitionResponse,
    RecognizedItemOut,
)
from sortkiosk.camera.devices import encode_jpeg
from sortkiosk.camera.environment import check_camera_support
from sortkiosk.errors import NotActiveError
from sortkiosk.flow.controller import RecognizedItem, Screen

if TYPE_CHECKING:
    from sortkiosk.camera.acquisition import MediaAcquisition
    from sortkiosk.camera.surface import PreviewSurface
    from sortkiosk.config import Settings
    from sortkiosk.flow.controller import KioskFlow
    from sortkiosk.flow.handoff import RedirectHandoff
    from sortkiosk.ml.classifier import Prediction
    from sortkiosk.ml.inference import ClassifierRunner

router = APIRouter(prefix="/api/v1")

_KIOSK_ERRORS = {
    status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
}


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_runner(request: Request) -> ClassifierRunner:
    runner: ClassifierRunner = request.app.state.classifier_runner
    return runner


def _get_media(request: Request) -> MediaAcquisition:
    media: MediaAcquisition = request.app.state.media
    return media


def _get_surface(request: Request) -> PreviewSurface:
    surface: PreviewSurface = request.app.state.surface
    return surface


def _get_flow(request: Request) -> KioskFlow:
    flow: KioskFlow = request.app.state.flow
    return flow


def _flow_response(request: Request) -> FlowResponse:
    snapshot = _get_flow(request).snapshot()
    handoff: RedirectHandoff = request.app.state.handoff
    item = None
    if snapshot.item is not None:
        item = RecognizedItemOut(
            name=snapshot.item.name,
            category=snapshot.item.category,
            colors=colors_for(snapshot.item.category),
        )
    return FlowResponse(
        screen=snapshot.screen,
        item=item,
        sorting_complete=snapshot.sorting_complete,
        countdown=snapshot.countdown,
        redirect_url=handoff.url if snapshot.handed_off else None,
    )


def _camera_response(media: MediaAcquisition) -> CameraStatusResponse:
    session = media.session
    if session is None:
        return CameraStatusResponse(state=media.state)
    width, height = session.stream.resolution
    facing = session.constraints.facing
    return CameraStatusResponse(
        state=media.state,
        facing=str(facing) if facing is not None else "default",
        width=width,
        height=height,
    )


def _require_recognition_screen(flow: KioskFlow) -> None:
    if flow.screen is not Screen.RECOGNITION:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Recognition is only available on the recognition screen",
        )


def _recognition_response(request: Request, predictions: list[Prediction]) -> RecognitionResponse:
    if not predictions:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail="Unable to identify trash type",
        )
    top = predictions[0]
    item = RecognizedItem(name=top.display_name, category=top.display_category)
    if not _get_flow(request).record_recognition(item):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="The kiosk session changed while recognizing, please start again",
        )
    runners_up = _get_settings(request).runners_up
    return RecognitionResponse(
        item=prediction_out(top),
        colors=colors_for(top.display_category),
        alternatives=[prediction_out(p) for p in predictions[1 : 1 + runners_up]],
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    runner = _get_runner(request)
    return HealthResponse(
        status="ok",
        model_loaded=runner.classifier.is_loaded,
        model_loading=runner.is_loading,
        camera=_get_media(request).state,
        screen=_get_flow(request).screen,
        concurrent_requests=runner.active_count,
        queue_depth=runner.queue_depth,
    )


@router.get(
    "/model",
    response_model=ModelResponse,
    summary="Describe the loaded model",
)
async def describe_model(request: Request) -> ModelResponse:
    """Return model labels and which of them the label catalog maps."""
    classifier = _get_runner(request).classifier
    catalog = request.app.state.catalog
    labels = classifier.labels
    mapped = [label for label in labels if label in catalog]
    categories = sorted({str(catalog.resolve(label).category) for label in mapped})
    return ModelResponse(loaded=classifier.is_loaded, labels=labels, mapped_labels=mapped, categories=categories)


# ---------------------------------------------------------------------------
# Camera
# ---------------------------------------------------------------------------


@router.get(
    "/camera/support",
    response_model=CameraSupportResponse,
    summary="Check camera support",
)
async def camera_support(request: Request) -> CameraSupportResponse:
    support = check_camera_support(request.app.state.environment)
    return CameraSupportResponse(supported=support.supported, reason=support.reason)


@router.get("/camera", response_model=CameraStatusResponse, summary="Camera state")
async def camera_status(request: Request) -> CameraStatusResponse:
    return _camera_response(_get_media(request))


@router.post(
    "/camera/start",
    response_model=CameraStatusResponse,
    responses={**_KIOSK_ERRORS, status.HTTP_504_GATEWAY_TIMEOUT: {"model": ErrorResponse}},
    summary="Start the camera",
)
async def start_camera(request: Request) -> CameraStatusResponse:
    """Open the kiosk camera, trying rear, front, then any device."""
    media = _get_media(request)
    await media.acquire(_get_surface(request))
    return _camera_response(media)


@router.get(
    "/camera/preview",
    responses={
        status.HTTP_200_OK: {"content": {"image/jpeg": {}}},
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    },
    summary="Latest camera frame as JPEG",
)
async def camera_preview(request: Request) -> Response:
    if not _get_media(request).is_active:
        raise NotActiveError()
    frame = await asyncio.to_thread(_get_surface(request).refresh)
    if frame is None:
        raise NotActiveError()
    return Response(content=encode_jpeg(frame), media_type="image/jpeg")


@router.post("/camera/stop", response_model=CameraStatusResponse, summary="Stop the camera")
async def stop_camera(request: Request) -> CameraStatusResponse:
    media = _get_media(request)
    media.release()
    return _camera_response(media)


# ---------------------------------------------------------------------------
# Recognition
# ---------------------------------------------------------------------------


@router.post(
    "/recognize/capture",
    response_model=RecognitionResponse,
    responses={**_KIOSK_ERRORS, status.HTTP_422_UNPROCESSABLE_CONTENT: {"model": ErrorResponse}},
    summary="Capture a camera frame and classify it",
)
async def recognize_capture(request: Request) -> RecognitionResponse:
    _require_recognition_screen(_get_flow(request))
    frame = await asyncio.to_thread(_get_media(request).capture_frame)
    predictions = await _get_runner(request).classify_frame(frame)
    return _recognition_response(request, predictions)


@router.post(
    "/recognize/upload",
    response_model=RecognitionResponse,
    responses={
        **_KIOSK_ERRORS,
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_413_CONTENT_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_422_UNPROCESSABLE_CONTENT: {"model": ErrorResponse},
    },
    summary="Classify an uploaded image",
)
async def recognize_upload(request: Request, file: UploadFile) -> RecognitionResponse:
    _require_recognition_screen(_get_flow(request))
    data = await file.read()
    if len(data) > _get_settings(request).max_file_size:
        raise HTTPException(
            status_code=status.HTTP_413_CONTENT_TOO_LARGE,
            detail="Image file is too large",
        )
    predictions = await _get_runner(request).classify_file(data)
    return _recognition_response(request, predictions)


@router.post("/recognize/discard", response_model=FlowResponse, summary="Recognize again")
async def recognize_discard(request: Request) -> FlowResponse:
    _get_flow(request).discard_recognition()
    return _flow_response(request)


# ---------------------------------------------------------------------------
# Flow
# ---------------------------------------------------------------------------


@router.get("/flow", response_model=FlowResponse, summary="Current kiosk screen")
async def get_flow(request: Request) -> FlowResponse:
    return _flow_response(request)


@router.post(
    "/flow/start",
    response_model=FlowResponse,
    responses=_KIOSK_ERRORS,
    summary="Start recognition",
)
async def start_flow(request: Request) -> FlowResponse:
    """Move to the recognition screen and make sure the model is loaded."""
    flow = _get_flow(request)
    if not flow.start() and flow.screen is not Screen.RECOGNITION:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A kiosk session is already running")
    await _get_runner(request).ensure_loaded()
    return _flow_response(request)


@router.post(
    "/flow/confirm",
    response_model=FlowResponse,
    responses={status.HTTP_409_CONFLICT: {"model": ErrorResponse}},
    summary="Confirm the classification",
)
async def confirm_flow(request: Request) -> FlowResponse:
    if not _get_flow(request).confirm():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No recognized item to confirm")
    _get_media(request).release()
    return _flow_response(request)


@router.post(
    "/flow/acknowledge",
    response_model=FlowResponse,
    responses={status.HTTP_409_CONFLICT: {"model": ErrorResponse}},
    summary="Acknowledge sorting completion",
)
async def acknowledge_flow(request: Request) -> FlowResponse:
    if not _get_flow(request).acknowledge_sorting():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Sorting is not complete yet")
    return _flow_response(request)


@router.post("/flow/reset", response_model=FlowResponse, summary="Return to the welcome screen")
async def reset_flow(request: Request) -> FlowResponse:
    _get_media(request).release()
    _get_flow(request).reset()
    return _flow_response(request)
