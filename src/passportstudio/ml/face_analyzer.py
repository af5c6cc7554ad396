"""Face analysis: single-face detection with facial landmarks.

Implementations: YuNet through OpenCV's ``FaceDetectorYN`` (default).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import cv2
import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from passportstudio.imaging.raster import RasterImage
    from passportstudio.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned face box in source pixel coordinates."""

    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)


@dataclass(frozen=True)
class FaceLandmarks:
    left_eye: tuple[Point, ...] = ()
    right_eye: tuple[Point, ...] = ()
    nose: tuple[Point, ...] = ()
    mouth: tuple[Point, ...] = ()

    def eye_points(self) -> tuple[Point, ...]:
        return self.left_eye + self.right_eye


@dataclass(frozen=True)
class FaceDetection:
    bounding_box: BoundingBox
    landmarks: FaceLandmarks
    score: float = 1.0


class FaceAnalyzer(Protocol):
    """Protocol for single-face detectors."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    def detect(self, image: RasterImage) -> FaceDetection | None:
        """Detect the most confident face in an image.

        Args:
            image: Decoded RGBA raster.

        Returns:
            The single best detection, or None if no face was found.
        """
        ...


def _clamp_box(x: float, y: float, w: float, h: float, width: int, height: int) -> BoundingBox:
    x0 = min(max(0.0, x), float(width))
    y0 = min(max(0.0, y), float(height))
    x1 = min(max(0.0, x + w), float(width))
    y1 = min(max(0.0, y + h), float(height))
    return BoundingBox(x=x0, y=y0, width=x1 - x0, height=y1 - y0)


def _create_detector(model_path: str, size: tuple[int, int], score_threshold: float, nms_threshold: float) -> Any:
    return cv2.FaceDetectorYN.create(
        model_path,
        "",
        size,
        score_threshold=float(score_threshold),
        nms_threshold=float(nms_threshold),
    )


class YuNetFaceAnalyzer:
    """YuNet detector; keeps the highest-scoring face only.

    YuNet rows are ``[x, y, w, h, re_x, re_y, le_x, le_y, nt_x, nt_y,
    rcm_x, rcm_y, lcm_x, lcm_y, score]`` with right/left from the subject's view.
    """

    def __init__(
        self,
        model_manager: ModelManager,
        model_name: str = "yunet_2023mar",
        score_threshold: float = 0.6,
        nms_threshold: float = 0.3,
    ) -> None:
        self._model_manager = model_manager
        self._model_name = model_name
        self._score_threshold = score_threshold
        self._nms_threshold = nms_threshold
        self._detector: Any = None
        self._lock = threading.Lock()

    @property
    def model_name(self) -> str:
        return self._model_name

    def detect(self, image: RasterImage) -> FaceDetection | None:
        bgr = cv2.cvtColor(np.ascontiguousarray(image.pixels), cv2.COLOR_RGBA2BGR)
        with self._lock:
            detector = self._get_detector(image.size)
            detector.setInputSize(image.size)
            _, faces = detector.detect(bgr)

        if faces is None or len(faces) == 0:
            logger.info("No face detected in %dx%d image", image.width, image.height)
            return None

        best = max(faces, key=lambda row: float(row[14]))
        if len(faces) > 1:
            logger.debug("Found %d faces, keeping the most confident (score=%.3f)", len(faces), best[14])
        return self._to_detection(best, image.width, image.height)

    def _get_detector(self, size: tuple[int, int]) -> Any:
        if self._detector is None:
            model_path = self._model_manager.ensure_downloaded(self._model_name)
            self._detector = _create_detector(str(model_path), size, self._score_threshold, self._nms_threshold)
            logger.info("Created YuNet detector from %s", model_path)
        return self._detector

    @staticmethod
    def _to_detection(row: NDArray[np.float32], width: int, height: int) -> FaceDetection:
        values = [float(v) for v in row]

        def point(i: int) -> Point:
            return Point(values[i], values[i + 1])

        landmarks = FaceLandmarks(
            right_eye=(point(4),),
            left_eye=(point(6),),
            nose=(point(8),),
            mouth=(point(10), point(12)),
        )
        return FaceDetection(
            bounding_box=_clamp_box(values[0], values[1], values[2], values[3], width, height),
            landmarks=landmarks,
            score=values[14],
        )
