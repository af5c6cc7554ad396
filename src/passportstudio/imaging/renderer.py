"""Rendering a crop plan onto the fixed output canvas, and PNG encoding."""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING

from PIL import Image

from passportstudio.imaging.raster import RasterImage

if TYPE_CHECKING:
    from passportstudio.models import CropPlan, OutputSpec

logger = logging.getLogger(__name__)


def render_crop(image: RasterImage, plan: CropPlan, output: OutputSpec) -> RasterImage:
    """Draw ``plan.source_rect`` of ``image`` into ``plan.dest_rect`` of a new canvas.

    The canvas has the output dimensions and is filled with the background color.
    The source rectangle may have sub-pixel bounds; the destination is rounded to
    whole pixels and anything falling outside the canvas is clipped.
    """
    src = plan.source_rect
    dst = plan.dest_rect
    dest_w = max(1, round(dst.width))
    dest_h = max(1, round(dst.height))
    offset = (round(dst.x), round(dst.y))

    canvas = Image.new("RGBA", (output.width, output.height), (*output.background_color, 255))
    layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))

    source = image.to_pil()
    region = source.resize(
        (dest_w, dest_h),
        Image.Resampling.LANCZOS,
        box=(src.x, src.y, src.right, src.bottom),
    )
    layer.paste(region, offset)
    logger.debug("Rendered %dx%d region at %s onto %dx%d canvas", dest_w, dest_h, offset, *canvas.size)
    return RasterImage.from_pil(Image.alpha_composite(canvas, layer))


def encode_png(image: RasterImage) -> bytes:
    buffer = io.BytesIO()
    image.to_pil().save(buffer, format="PNG")
    return buffer.getvalue()
