"""Crop planning: where to sample the source and where to draw it in the output frame.

The plan enlarges the detected face box by a margin (more vertically than
horizontally), clamps it to the source image, scales the clamped crop to a fixed
fraction of the output height, centers it horizontally and places it vertically
so the eye line lands at ``eye_line_ratio`` of the output height.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from passportstudio.errors import NoFaceDetectedError
from passportstudio.models import CropGeometry, CropPlan, OutputSpec, Rect

if TYPE_CHECKING:
    from passportstudio.ml.face_analyzer import FaceDetection

logger = logging.getLogger(__name__)


def source_rect(
    detection: FaceDetection,
    source_size: tuple[int, int],
    geometry: CropGeometry,
) -> Rect:
    """Margin-enlarged face box, clamped so it never leaves the source image."""
    source_w, source_h = source_size
    box = detection.bounding_box
    if box.width <= 0 or box.height <= 0:
        raise ValueError(f"Face bounding box must have a positive size, got {box.width}x{box.height}")

    center = box.center
    crop_w = box.width * (1 + geometry.margin)
    crop_h = box.height * (1 + geometry.margin * geometry.vertical_margin_factor)

    sx = min(max(0.0, center.x - crop_w / 2), float(source_w))
    sy = min(max(0.0, center.y - crop_h / 2), float(source_h))
    sw = min(source_w - sx, crop_w)
    sh = min(source_h - sy, crop_h)
    if sw <= 0 or sh <= 0:
        raise ValueError("Face bounding box lies outside the source image")
    return Rect(sx, sy, sw, sh)


def eye_line_y(detection: FaceDetection) -> float:
    """Mean y of all eye landmark points; falls back to the box center."""
    points = detection.landmarks.eye_points()
    if not points:
        logger.warning("Detection has no eye landmarks, using the face center as eye line")
        return detection.bounding_box.center.y
    return sum(p.y for p in points) / len(points)


def plan_crop(
    detection: FaceDetection | None,
    source_size: tuple[int, int],
    output: OutputSpec,
    geometry: CropGeometry | None = None,
) -> CropPlan:
    """Compute the source rectangle and its placement on the output canvas.

    Raises:
        NoFaceDetectedError: If ``detection`` is None, or its box is empty or
            lies outside the source image.
    """
    if detection is None:
        raise NoFaceDetectedError()
    geometry = geometry or CropGeometry()

    try:
        src = source_rect(detection, source_size, geometry)
    except ValueError as exc:
        raise NoFaceDetectedError(f"Unusable face detection: {exc}") from exc

    scale = (output.height * geometry.face_height_ratio) / src.height
    dest_w = src.width * scale
    dest_h = src.height * scale
    dest_x = (output.width - dest_w) / 2

    eye_ratio = (eye_line_y(detection) - src.y) / src.height
    dest_y = output.height * geometry.eye_line_ratio - eye_ratio * dest_h

    plan = CropPlan(source_rect=src, dest_rect=Rect(dest_x, dest_y, dest_w, dest_h))
    logger.debug("Crop plan: source=%s dest=%s", plan.source_rect, plan.dest_rect)
    return plan
