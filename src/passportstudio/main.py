"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from passportstudio.ml.model_manager import ModelManager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from passportstudio import __version__
from passportstudio.api.routes import router
from passportstudio.config import get_settings
from passportstudio.ml.inference import InferencePool
from passportstudio.ml.model_manager import OnnxModelManager
from passportstudio.pipeline.orchestrator import PassportPhotoPipeline

logger = logging.getLogger(__name__)

EVICTION_INTERVAL_SECONDS: float = 60.0


async def _evict_idle_models(model_manager: ModelManager) -> None:
    while True:
        await asyncio.sleep(EVICTION_INTERVAL_SECONDS)
        model_manager.unload_idle_models()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting PassportStudio (device=%s, max_concurrent=%s, detection=%s, segmentation=%s, enhancement=%s)",
        settings.device,
        settings.max_concurrent,
        settings.face_detection_model,
        settings.segmentation_model if settings.segmentation_enabled else "disabled",
        "enabled" if settings.enhancement_url else "disabled",
    )

    inference_pool = InferencePool(settings)
    model_manager = OnnxModelManager(settings)
    app.state.inference_pool = inference_pool
    app.state.model_manager = model_manager
    app.state.pipeline = PassportPhotoPipeline.from_settings(settings, inference_pool, model_manager)

    eviction_task = asyncio.create_task(_evict_idle_models(model_manager))

    logger.info("PassportStudio ready")
    yield

    logger.info("Shutting down PassportStudio")
    eviction_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await eviction_task
    inference_pool.shutdown()
    model_manager.shutdown()
    logger.info("PassportStudio shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="PassportStudio",
        description="Passport photo generation: face-centered crop on a solid background",
        version=__version__,
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = get_settings()
    uvicorn.run("passportstudio.main:app", host=settings.host, port=settings.port)
