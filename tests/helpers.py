"""Shared builders for synthetic images, detections and stub capabilities."""

from __future__ import annotations

import io
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageDraw

from passportstudio.config import Settings
from passportstudio.imaging.raster import RasterImage, SegmentationMask
from passportstudio.ml.face_analyzer import BoundingBox, FaceDetection, FaceLandmarks, Point

if TYPE_CHECKING:
    from collections.abc import Callable

TEST_MODELS_DIR = str(Path(tempfile.gettempdir()) / "passportstudio_test_models")


def make_settings(**overrides: object) -> Settings:
    defaults: dict[str, object] = {
        "device": "cpu",
        "models_dir": TEST_MODELS_DIR,
        "model_ttl": 300,
        "intra_op_threads": 0,
        "inter_op_threads": 1,
        "gpu_mem_limit": 2_147_483_648,
        "max_concurrent": 2,
        "segmentation_enabled": False,
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]


def encode(image: Image.Image, fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def solid_png(width: int, height: int, color: tuple[int, int, int] = (120, 130, 140), alpha: int = 255) -> bytes:
    return encode(Image.new("RGBA", (width, height), (*color, alpha)))


def portrait_image(width: int = 400, height: int = 500) -> Image.Image:
    """A gray backdrop with a skin-colored face ellipse and two dark eyes."""
    img = Image.new("RGB", (width, height), (90, 110, 130))
    draw = ImageDraw.Draw(img)
    face = (width * 0.3, height * 0.2, width * 0.7, height * 0.6)
    draw.ellipse(face, fill=(224, 182, 150))
    eye_y = height * 0.35
    for eye_x in (width * 0.42, width * 0.58):
        draw.ellipse((eye_x - 6, eye_y - 4, eye_x + 6, eye_y + 4), fill=(30, 20, 20))
    return img


def portrait_png(width: int = 400, height: int = 500) -> bytes:
    return encode(portrait_image(width, height))


def portrait_detection(width: int = 400, height: int = 500) -> FaceDetection:
    """Detection matching the face drawn by ``portrait_image``."""
    return make_detection(
        x=width * 0.3,
        y=height * 0.2,
        w=width * 0.4,
        h=height * 0.4,
        eyes_y=height * 0.35,
    )


def make_detection(x: float, y: float, w: float, h: float, eyes_y: float | None = None) -> FaceDetection:
    eyes_y = y + h * 0.4 if eyes_y is None else eyes_y
    return FaceDetection(
        bounding_box=BoundingBox(x=x, y=y, width=w, height=h),
        landmarks=FaceLandmarks(
            left_eye=(Point(x + w * 0.3, eyes_y),),
            right_eye=(Point(x + w * 0.7, eyes_y),),
        ),
        score=0.99,
    )


def decode_png(data: bytes) -> Image.Image:
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        return img.copy()


class StubFaceAnalyzer:
    """Returns a fixed detection and records the images it was shown."""

    model_name = "stub"

    def __init__(self, detection: FaceDetection | None) -> None:
        self.detection = detection
        self.images: list[RasterImage] = []

    def detect(self, image: RasterImage) -> FaceDetection | None:
        self.images.append(image)
        return self.detection


class StubSegmenter:
    """Segmenter backed by a function of the image, or failing with ``error``."""

    available = True

    def __init__(
        self,
        mask_fn: Callable[[RasterImage], np.ndarray] | None = None,
        error: Exception | None = None,
    ) -> None:
        self._mask_fn = mask_fn
        self._error = error
        self.calls = 0

    def segment(self, image: RasterImage) -> SegmentationMask:
        self.calls += 1
        if self._error is not None:
            raise self._error
        assert self._mask_fn is not None
        return SegmentationMask(self._mask_fn(image))


def left_half_mask(image: RasterImage) -> np.ndarray:
    mask = np.zeros((image.height, image.width), dtype=bool)
    mask[:, : image.width // 2] = True
    return mask
