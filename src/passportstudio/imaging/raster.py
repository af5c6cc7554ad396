"""Immutable raster surfaces and masks shared by every pipeline stage."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageColor

if TYPE_CHECKING:
    from numpy.typing import NDArray

Color = tuple[int, int, int]

WHITE: Color = (255, 255, 255)


def parse_color(value: str | Color) -> Color:
    """Parse a CSS-style color ("#fff", "#e6eef6", "white", "rgb(...)") into an RGB tuple.

    Raises:
        ValueError: If the value is not a recognizable color.
    """
    if isinstance(value, tuple):
        if len(value) != 3 or any(not 0 <= int(c) <= 255 for c in value):
            raise ValueError(f"Invalid RGB color: {value!r}")
        return (int(value[0]), int(value[1]), int(value[2]))
    rgb = ImageColor.getrgb(value.strip())
    return (rgb[0], rgb[1], rgb[2])


def _readonly(array: NDArray[np.generic]) -> NDArray[np.generic]:
    frozen = np.array(array, copy=True)
    frozen.setflags(write=False)
    return frozen


@dataclass(frozen=True, eq=False)
class RasterImage:
    """A decoded RGBA image.

    ``pixels`` is an HxWx4 uint8 array that is copied and marked read-only on
    construction; every transformation produces a new ``RasterImage``.
    """

    pixels: NDArray[np.uint8]

    def __post_init__(self) -> None:
        pixels = np.asarray(self.pixels)
        if pixels.dtype != np.uint8 or pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"Expected an HxWx4 uint8 array, got {pixels.dtype} {pixels.shape}")
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise ValueError("Image must have non-zero dimensions")
        object.__setattr__(self, "pixels", _readonly(pixels))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        """(width, height), matching Pillow's convention."""
        return self.width, self.height

    @property
    def rgb(self) -> NDArray[np.uint8]:
        return self.pixels[:, :, :3]

    @property
    def alpha(self) -> NDArray[np.uint8]:
        return self.pixels[:, :, 3]

    def is_opaque(self) -> bool:
        return bool((self.alpha == 255).all())

    @classmethod
    def from_pil(cls, image: Image.Image) -> RasterImage:
        rgba = image if image.mode == "RGBA" else image.convert("RGBA")
        return cls(np.asarray(rgba, dtype=np.uint8))

    @classmethod
    def filled(cls, width: int, height: int, color: Color, alpha: int = 255) -> RasterImage:
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[:, :, :3] = color
        pixels[:, :, 3] = alpha
        return cls(pixels)

    def to_pil(self) -> Image.Image:
        return Image.fromarray(np.ascontiguousarray(self.pixels))


@dataclass(frozen=True, eq=False)
class SegmentationMask:
    """Per-pixel person/background classification (True = foreground)."""

    foreground: NDArray[np.bool_]

    def __post_init__(self) -> None:
        foreground = np.asarray(self.foreground, dtype=bool)
        if foreground.ndim != 2:
            raise ValueError(f"Expected an HxW mask, got shape {foreground.shape}")
        object.__setattr__(self, "foreground", _readonly(foreground))

    @property
    def width(self) -> int:
        return int(self.foreground.shape[1])

    @property
    def height(self) -> int:
        return int(self.foreground.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def coverage(self) -> float:
        """Fraction of pixels classified as foreground."""
        return float(self.foreground.mean()) if self.foreground.size else 0.0
