"""PassportPhotoPipeline: load, enhance, composite, detect, plan, render and flatten.

Steps run strictly in order for one call; blocking work is submitted to the
InferencePool. Only DecodeError, NoFaceDetectedError and PoolBusyError are
expected to reach the caller: enhancement and segmentation problems are logged
and bypassed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from passportstudio.enhancement import create_gateway
from passportstudio.enhancement.gateway import (
    DisabledEnhancementGateway,
    EnhancementRequest,
    EnhancementSuccess,
)
from passportstudio.errors import NoFaceDetectedError, PoolBusyError
from passportstudio.imaging.compositor import composite
from passportstudio.imaging.loader import ImageLoader
from passportstudio.imaging.renderer import encode_png, render_crop
from passportstudio.ml.face_analyzer import YuNetFaceAnalyzer
from passportstudio.ml.segmenter import U2NetSegmenter, UnavailableSegmenter
from passportstudio.models import CropGeometry, OutputSpec, PipelineResult
from passportstudio.pipeline.crop_planner import plan_crop

if TYPE_CHECKING:
    from passportstudio.config import Settings
    from passportstudio.enhancement.gateway import EnhancementGateway
    from passportstudio.imaging.loader import ImageSource
    from passportstudio.imaging.raster import Color, RasterImage
    from passportstudio.ml.face_analyzer import FaceAnalyzer
    from passportstudio.ml.inference import InferencePool
    from passportstudio.ml.model_manager import ModelManager
    from passportstudio.ml.segmenter import PersonSegmenter

logger = logging.getLogger(__name__)


class PassportPhotoPipeline:
    """
    Turns one source photo into a fixed-size, fully opaque passport photo PNG.

    Usage:
        pipeline = PassportPhotoPipeline.from_settings(settings, pool, model_manager)
        result = await pipeline.generate(photo_bytes, OutputSpec(600, 800, (255, 255, 255)))
    """

    def __init__(
        self,
        settings: Settings,
        face_analyzer: FaceAnalyzer,
        segmenter: PersonSegmenter,
        pool: InferencePool,
        enhancement_gateway: EnhancementGateway | None = None,
        loader: ImageLoader | None = None,
    ) -> None:
        self._face_analyzer = face_analyzer
        self._segmenter = segmenter
        self._pool = pool
        self._gateway = enhancement_gateway or DisabledEnhancementGateway()
        self._loader = loader or ImageLoader(settings)

        self._default_output = OutputSpec.from_settings(settings)
        self._geometry = CropGeometry.from_settings(settings)
        self._prompt = settings.enhancement_prompt
        self._negative_prompt = settings.enhancement_negative_prompt
        self._enhancement_size = (settings.enhancement_width, settings.enhancement_height)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        pool: InferencePool,
        model_manager: ModelManager,
    ) -> PassportPhotoPipeline:
        """Wire the default YuNet / U²-Net adapters and the configured gateway."""
        face_analyzer = YuNetFaceAnalyzer(
            model_manager,
            model_name=settings.face_detection_model,
            score_threshold=settings.detection_score_threshold,
        )
        segmenter: PersonSegmenter
        if settings.segmentation_enabled:
            segmenter = U2NetSegmenter(
                model_manager,
                model_name=settings.segmentation_model,
                threshold=settings.segmentation_threshold,
            )
        else:
            segmenter = UnavailableSegmenter()
        gateway = create_gateway(settings, segmenter, pool)
        return cls(settings, face_analyzer, segmenter, pool, gateway)

    @property
    def default_output(self) -> OutputSpec:
        return self._default_output

    @property
    def enhancement_enabled(self) -> bool:
        return self._gateway.enabled

    async def generate(
        self,
        source: ImageSource,
        output: OutputSpec | None = None,
        *,
        enhance: bool = False,
        prompt: str | None = None,
    ) -> PipelineResult:
        """Generate a passport photo from ``source``.

        Raises:
            DecodeError: If the source cannot be loaded.
            NoFaceDetectedError: If no usable face is found.
            PoolBusyError: If the worker pool stays saturated.
        """
        output = output or self._default_output

        image = await self._loader.load(source)
        logger.info("Loaded %dx%d source image", image.width, image.height)

        if enhance:
            image = await self._enhance(image, output, prompt)

        composited = await self._composite(image, output.background_color)

        detection = await self._pool.run(self._face_analyzer.detect, composited)
        if detection is None:
            raise NoFaceDetectedError()

        plan = plan_crop(detection, composited.size, output, self._geometry)
        rendered = await self._pool.run(render_crop, composited, plan, output)
        png = await self._pool.run(_flatten_png, rendered, output.background_color)

        logger.info("Generated %dx%d passport photo (%d bytes)", output.width, output.height, len(png))
        return PipelineResult(png=png)

    async def _enhance(self, image: RasterImage, output: OutputSpec, prompt: str | None) -> RasterImage:
        width, height = self._enhancement_size
        request = EnhancementRequest(
            prompt=prompt or self._prompt,
            negative_prompt=self._negative_prompt,
            width=width,
            height=height,
            background_color=output.background_color,
        )
        result = await self._gateway.enhance(image, request)
        if isinstance(result, EnhancementSuccess):
            return result.image
        logger.warning("Enhancement unavailable (%s), continuing with the original image", result.reason)
        return image

    async def _composite(self, image: RasterImage, background: Color) -> RasterImage:
        if not self._segmenter.available:
            return await self._pool.run(composite, image, background)

        try:
            mask = await self._pool.run(self._segmenter.segment, image)
        except PoolBusyError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Segmentation failed, compositing the full image: %s", exc)
            return await self._pool.run(composite, image, background)
        return await self._pool.run(composite, image, background, mask)


def _flatten_png(rendered: RasterImage, background: Color) -> bytes:
    # Upstream enhancement may leave partial alpha; the artifact must be opaque.
    return encode_png(composite(rendered, background))
