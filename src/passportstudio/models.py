"""Value objects describing the output frame and the crop geometry."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from passportstudio.imaging.raster import WHITE, Color, parse_color

if TYPE_CHECKING:
    from passportstudio.config import Settings


@dataclass(frozen=True)
class OutputSpec:
    """The fixed target frame of a generated passport photo."""

    width: int = 600
    height: int = 800
    background_color: Color = WHITE

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Output dimensions must be positive, got {self.width}x{self.height}")

    @classmethod
    def from_settings(cls, settings: Settings) -> OutputSpec:
        return cls(
            width=settings.output_width,
            height=settings.output_height,
            background_color=parse_color(settings.background_color),
        )


@dataclass(frozen=True)
class CropGeometry:
    """Tunable constants of the crop planner.

    margin:
        Extra face size included around the bounding box horizontally.
    vertical_margin_factor:
        Multiplier on ``margin`` for the vertical direction (headroom for hair and shoulders).
    face_height_ratio:
        Fraction of the output height the clamped crop height is scaled to.
    eye_line_ratio:
        Fraction of the output height where the eye line is placed.
    """

    margin: float = 0.6
    vertical_margin_factor: float = 1.4
    face_height_ratio: float = 0.5
    eye_line_ratio: float = 0.35

    @classmethod
    def from_settings(cls, settings: Settings) -> CropGeometry:
        return cls(
            margin=settings.crop_margin,
            vertical_margin_factor=settings.vertical_margin_factor,
            face_height_ratio=settings.face_height_ratio,
            eye_line_ratio=settings.eye_line_ratio,
        )


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height


@dataclass(frozen=True)
class CropPlan:
    """Source rectangle to sample and where to place it on the output canvas."""

    source_rect: Rect
    dest_rect: Rect


@dataclass(frozen=True)
class PipelineResult:
    """The final PNG artifact; nothing about intermediate state is kept."""

    png: bytes
    media_type: str = "image/png"
