"""Compositing a source image onto a solid background color."""

from __future__ import annotations

import numpy as np

from passportstudio.errors import DimensionMismatchError
from passportstudio.imaging.raster import WHITE, Color, RasterImage, SegmentationMask

# Marker color for background pixels in the mask image sent upstream.
EMPTY: Color = (0, 0, 0)


def _check_dimensions(image: RasterImage, mask: SegmentationMask) -> None:
    if mask.size != image.size:
        raise DimensionMismatchError(
            f"Mask is {mask.width}x{mask.height} but image is {image.width}x{image.height}"
        )


def composite(
    image: RasterImage,
    background: Color,
    mask: SegmentationMask | None = None,
) -> RasterImage:
    """Draw ``image`` onto a canvas of the same size filled with ``background``.

    Without a mask the image is alpha-blended over the fill, so opaque pixels
    replace the background 1:1 and the result is fully opaque. With a mask,
    foreground pixels copy the source RGB and alpha while background pixels keep
    the fill color.

    Raises:
        DimensionMismatchError: If ``mask`` does not match ``image`` exactly.
    """
    out = np.empty((image.height, image.width, 4), dtype=np.uint8)
    out[:, :, :3] = background
    out[:, :, 3] = 255

    if mask is None:
        alpha = image.alpha.astype(np.uint32)[:, :, None]
        src = image.rgb.astype(np.uint32)
        bg = np.asarray(background, dtype=np.uint32)
        blended = (src * alpha + bg * (255 - alpha) + 127) // 255
        out[:, :, :3] = blended.astype(np.uint8)
        return RasterImage(out)

    _check_dimensions(image, mask)
    fg = mask.foreground
    out[fg] = image.pixels[fg]
    return RasterImage(out)


def mask_image(mask: SegmentationMask) -> RasterImage:
    """Render a mask as a flat opaque picture: white foreground, EMPTY elsewhere."""
    out = np.empty((mask.height, mask.width, 4), dtype=np.uint8)
    out[:, :, :3] = EMPTY
    out[mask.foreground, :3] = WHITE
    out[:, :, 3] = 255
    return RasterImage(out)


def full_mask_image(width: int, height: int) -> RasterImage:
    """An all-foreground mask picture, used when no segmentation is available."""
    return RasterImage.filled(width, height, WHITE)
