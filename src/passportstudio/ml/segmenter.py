"""Person segmentation: foreground/background classification per pixel.

Implementations: U²-Net human segmentation through ONNX Runtime, plus an
explicit unavailable variant so callers can branch on availability.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

import cv2
import numpy as np

from passportstudio.imaging.raster import SegmentationMask

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from passportstudio.imaging.raster import RasterImage
    from passportstudio.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)


class PersonSegmenter(Protocol):
    """Protocol for person segmentation models."""

    @property
    def available(self) -> bool:
        """Whether ``segment`` can be called at all."""
        ...

    def segment(self, image: RasterImage) -> SegmentationMask:
        """Classify every pixel of ``image`` as person (True) or background.

        Returns:
            A mask with exactly the dimensions of ``image``.
        """
        ...


class UnavailableSegmenter:
    """Stand-in used when segmentation is disabled or not installed."""

    available = False

    def segment(self, image: RasterImage) -> SegmentationMask:
        raise RuntimeError("Person segmentation is not available")


class U2NetSegmenter:
    """U²-Net person segmentation.

    The image is resized to 320x320, scaled by its maximum value and normalized
    with ImageNet statistics. The first output map is min-max normalized,
    resized back to the source size and thresholded.
    """

    available = True

    INPUT_SIZE = 320
    MEAN = np.array([0.485, 0.456, 0.406], dtype=np.float32)
    STD = np.array([0.229, 0.224, 0.225], dtype=np.float32)

    def __init__(
        self,
        model_manager: ModelManager,
        model_name: str = "u2net_human_seg",
        threshold: float = 0.7,
    ) -> None:
        self._model_manager = model_manager
        self._model_name = model_name
        self._threshold = threshold

    @property
    def model_name(self) -> str:
        return self._model_name

    def segment(self, image: RasterImage) -> SegmentationMask:
        session = self._model_manager.get_session(self._model_name)
        input_name = session.get_inputs()[0].name
        outputs = session.run(None, {input_name: self._preprocess(image)})
        probabilities = self._postprocess(np.asarray(outputs[0]), image.width, image.height)
        mask = SegmentationMask(probabilities > self._threshold)
        logger.debug("Segmented %dx%d image, foreground coverage %.1f%%", image.width, image.height, mask.coverage() * 100)
        return mask

    def _preprocess(self, image: RasterImage) -> NDArray[np.float32]:
        resized = cv2.resize(
            np.ascontiguousarray(image.rgb),
            (self.INPUT_SIZE, self.INPUT_SIZE),
            interpolation=cv2.INTER_LANCZOS4,
        ).astype(np.float32)
        resized /= max(float(resized.max()), 1e-6)
        normalized = (resized - self.MEAN) / self.STD
        return normalized.transpose(2, 0, 1)[np.newaxis].astype(np.float32)

    @staticmethod
    def _postprocess(raw: NDArray[np.float32], width: int, height: int) -> NDArray[np.float32]:
        pred = raw.reshape(raw.shape[-2], raw.shape[-1]).astype(np.float32)
        lo, hi = float(pred.min()), float(pred.max())
        pred = (pred - lo) / (hi - lo) if hi > lo else np.zeros_like(pred)
        return cv2.resize(pred, (width, height), interpolation=cv2.INTER_LINEAR)
