"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sortkiosk.config import Settings

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sortkiosk.api.routes import router
from sortkiosk.camera.acquisition import MediaAcquisition
from sortkiosk.camera.devices import OpenCVCameraDevice, fallback_chain
from sortkiosk.camera.environment import HostEnvironment
from sortkiosk.camera.surface import PreviewSurface
from sortkiosk.catalog import LabelCatalog
from sortkiosk.config import get_settings
from sortkiosk.errors import KioskError
from sortkiosk.flow.controller import FlowTimings, KioskFlow
from sortkiosk.flow.handoff import RedirectHandoff
from sortkiosk.ml.classifier import TrashClassifier
from sortkiosk.ml.inference import ClassifierRunner
from sortkiosk.ml.model_manager import OnnxModelManager

logger = logging.getLogger(__name__)


def init_app_state(app: FastAPI, settings: Settings) -> None:
    """Construct the kiosk components and attach them to ``app.state``."""
    app.state.settings = settings
    app.state.catalog = LabelCatalog()
    app.state.model_manager = OnnxModelManager(settings)
    classifier = TrashClassifier(
        app.state.model_manager,
        app.state.catalog,
        max_image_pixels=settings.max_image_pixels,
    )
    app.state.classifier_runner = ClassifierRunner(classifier, settings)

    app.state.environment = HostEnvironment(secure_context=settings.secure_context)
    app.state.media = MediaAcquisition(
        OpenCVCameraDevice(settings),
        app.state.environment,
        candidates=fallback_chain(settings.camera_width, settings.camera_height),
        ready_timeout=settings.camera_ready_timeout,
    )
    app.state.surface = PreviewSurface()

    app.state.handoff = RedirectHandoff(settings.reward_url)
    app.state.flow = KioskFlow(FlowTimings.from_settings(settings), on_handoff=app.state.handoff)


def shutdown_app_state(app: FastAPI) -> None:
    """Stop timers, release the camera and tear down the worker pool."""
    app.state.flow.shutdown()
    app.state.media.release()
    app.state.classifier_runner.shutdown()
    app.state.model_manager.shutdown()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting SortKiosk (device=%s, models_dir=%s, repo=%s, camera_timeout=%ss)",
        settings.device,
        settings.models_dir,
        settings.model_repo_id,
        settings.camera_ready_timeout,
    )

    init_app_state(app, settings)

    logger.info("SortKiosk ready")
    yield

    logger.info("Shutting down SortKiosk")
    shutdown_app_state(app)
    logger.info("SortKiosk shutdown complete")


async def kiosk_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Turn a typed kiosk failure into its user-facing message."""
    status_code = exc.status_code if isinstance(exc, KioskError) else 500
    logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="SortKiosk",
        description="Waste-sorting kiosk: camera capture, on-device classification and reward flow",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(KioskError, kiosk_error_handler)
    application.include_router(router)
    return application


app = create_app()
