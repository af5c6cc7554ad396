"""Tests for the YuNet face analyzer with the OpenCV detector mocked out."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from passportstudio.imaging.raster import RasterImage
from passportstudio.ml.face_analyzer import YuNetFaceAnalyzer


def _row(x: float, y: float, w: float, h: float, score: float) -> list[float]:
    return [
        x, y, w, h,
        x + w * 0.3, y + h * 0.4,  # right eye
        x + w * 0.7, y + h * 0.42,  # left eye
        x + w * 0.5, y + h * 0.6,  # nose tip
        x + w * 0.35, y + h * 0.8,  # right mouth corner
        x + w * 0.65, y + h * 0.8,  # left mouth corner
        score,
    ]


def _analyzer(faces: np.ndarray | None) -> tuple[YuNetFaceAnalyzer, MagicMock, MagicMock]:
    manager = MagicMock()
    manager.ensure_downloaded.return_value = Path("/models/yunet.onnx")
    detector = MagicMock()
    detector.detect.return_value = (1, faces)
    return YuNetFaceAnalyzer(manager), manager, detector


IMAGE = RasterImage.filled(320, 240, (128, 128, 128))


class TestYuNetFaceAnalyzer:
    def test_no_faces_returns_none(self) -> None:
        analyzer, _, detector = _analyzer(None)
        with patch("passportstudio.ml.face_analyzer._create_detector", return_value=detector):
            assert analyzer.detect(IMAGE) is None

    def test_keeps_most_confident_face(self) -> None:
        faces = np.array([_row(10, 10, 50, 60, 0.7), _row(100, 50, 80, 100, 0.95)], dtype=np.float32)
        analyzer, _, detector = _analyzer(faces)

        with patch("passportstudio.ml.face_analyzer._create_detector", return_value=detector):
            detection = analyzer.detect(IMAGE)

        assert detection is not None
        assert detection.score == pytest.approx(0.95)
        assert detection.bounding_box.x == pytest.approx(100)
        assert detection.bounding_box.width == pytest.approx(80)

    def test_landmarks_are_mapped(self) -> None:
        faces = np.array([_row(100, 50, 80, 100, 0.9)], dtype=np.float32)
        analyzer, _, detector = _analyzer(faces)

        with patch("passportstudio.ml.face_analyzer._create_detector", return_value=detector):
            detection = analyzer.detect(IMAGE)

        assert detection is not None
        assert detection.landmarks.right_eye[0].x == pytest.approx(124)
        assert detection.landmarks.left_eye[0].y == pytest.approx(92)
        assert len(detection.landmarks.mouth) == 2
        assert len(detection.landmarks.eye_points()) == 2

    def test_box_is_clamped_to_image(self) -> None:
        faces = np.array([_row(-20, 200, 100, 100, 0.9)], dtype=np.float32)
        analyzer, _, detector = _analyzer(faces)

        with patch("passportstudio.ml.face_analyzer._create_detector", return_value=detector):
            detection = analyzer.detect(IMAGE)

        assert detection is not None
        box = detection.bounding_box
        assert box.x == 0
        assert box.width == pytest.approx(80)
        assert box.y + box.height == pytest.approx(240)

    def test_detector_created_once_and_resized_per_image(self) -> None:
        analyzer, manager, detector = _analyzer(None)

        with patch("passportstudio.ml.face_analyzer._create_detector", return_value=detector) as create:
            analyzer.detect(IMAGE)
            analyzer.detect(RasterImage.filled(64, 48, (0, 0, 0)))

        create.assert_called_once()
        manager.ensure_downloaded.assert_called_once_with("yunet_2023mar")
        detector.setInputSize.assert_any_call((64, 48))
        bgr = detector.detect.call_args.args[0]
        assert bgr.shape == (48, 64, 3)
