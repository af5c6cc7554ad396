"""API route definitions."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, Form, Request, UploadFile, status
from fastapi.responses import JSONResponse, Response

from passportstudio.api.middleware import verify_api_key
from passportstudio.api.schemas import (
    ErrorResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
)
from passportstudio.errors import DecodeError, NoFaceDetectedError, PoolBusyError
from passportstudio.imaging.raster import parse_color
from passportstudio.ml.model_manager import MODEL_REGISTRY

if TYPE_CHECKING:
    from passportstudio.config import Settings
    from passportstudio.ml.inference import InferencePool
    from passportstudio.ml.model_manager import ModelManager
    from passportstudio.models import OutputSpec
    from passportstudio.pipeline.orchestrator import PassportPhotoPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_model_manager(request: Request) -> ModelManager:
    manager: ModelManager = request.app.state.model_manager
    return manager


def _get_pipeline(request: Request) -> PassportPhotoPipeline:
    pipeline: PassportPhotoPipeline = request.app.state.pipeline
    return pipeline


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


def _resolve_output(
    default: OutputSpec,
    background_color: str | None,
    width: int | None,
    height: int | None,
) -> OutputSpec:
    output = default
    if background_color:
        output = replace(output, background_color=parse_color(background_color))
    if width is not None:
        output = replace(output, width=width)
    if height is not None:
        output = replace(output, height=height)
    return output


@router.post(
    "/passport-photo",
    response_class=Response,
    responses={
        status.HTTP_200_OK: {"content": {"image/png": {}}, "description": "The generated passport photo"},
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Generate a passport photo",
)
async def create_passport_photo(
    request: Request,
    file: UploadFile,
    background_color: Annotated[str | None, Form()] = None,
    width: Annotated[int | None, Form(ge=1, le=10_000)] = None,
    height: Annotated[int | None, Form(ge=1, le=10_000)] = None,
    enhance: Annotated[bool, Form()] = False,
    prompt: Annotated[str | None, Form()] = None,
) -> Response:
    """Crop and compose an uploaded photo into a fixed-size passport photo PNG."""
    settings = _get_settings(request)
    pipeline = _get_pipeline(request)

    try:
        data = await file.read(settings.max_file_size + 1)
    finally:
        await file.close()
    if len(data) > settings.max_file_size:
        return _error(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, f"File exceeds {settings.max_file_size} bytes")

    try:
        output = _resolve_output(pipeline.default_output, background_color, width, height)
    except ValueError as exc:
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, f"Invalid output options: {exc}")

    try:
        result = await pipeline.generate(data, output, enhance=enhance, prompt=prompt)
    except DecodeError as exc:
        logger.info("Rejected undecodable upload %r: %s", file.filename, exc)
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))
    except NoFaceDetectedError:
        logger.info("No face detected in upload %r", file.filename)
        return _error(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "No face detected. Try a clearer, front-facing photo with good lighting.",
        )
    except PoolBusyError:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Server is busy, please retry")

    return Response(
        content=result.png,
        media_type=result.media_type,
        headers={"Content-Disposition": 'inline; filename="passport-photo.png"'},
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    stats = _get_inference_pool(request).stats()
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        models_loaded=_get_model_manager(request).get_loaded_models(),
        concurrent_requests=stats.active,
        queue_depth=stats.waiting,
        enhancement_enabled=_get_pipeline(request).enhancement_enabled,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return registered models and whether the current configuration uses them."""
    settings = _get_settings(request)
    active_models = {settings.face_detection_model}
    if settings.segmentation_enabled:
        active_models.add(settings.segmentation_model)

    models = [
        ModelInfo(
            name=spec.name,
            task=spec.task.value,
            status="active" if spec.name in active_models else "available",
            license=spec.license,
        )
        for spec in MODEL_REGISTRY.values()
    ]
    return ModelsResponse(models=models)
