"""
Tests for the detection modules (shape_classifier, contour_analyzer, feature_selector).
"""

from pathlib import Path

import cv2
import numpy as np
import pytest

from conftest import PLATE_ROI, plate_corners

from plate_tracker.detection.contour_analyzer import ContourAnalyzer, ShapeType
from plate_tracker.detection.feature_selector import FeatureSelector
from plate_tracker.detection.shape_classifier import ShapeClassifier, default_cascade_path
from plate_tracker.exceptions import ClassifierLoadError, DetectionError, ModelNotReadyError


def _contour(points):
    return np.array(points, dtype=np.int32).reshape(-1, 1, 2)


class TestShapeClassifier:
    """Tests for ShapeClassifier."""

    def test_defaults(self):
        classifier = ShapeClassifier({})

        assert classifier.scale_factor == 1.5
        assert classifier.min_neighbors == 3
        assert classifier.is_ready is False

    def test_detect_before_load_raises(self, plate_frame):
        classifier = ShapeClassifier({})

        with pytest.raises(ModelNotReadyError):
            classifier.detect(plate_frame)

    def test_model_not_ready_is_detection_error(self):
        assert issubclass(ModelNotReadyError, DetectionError)

    def test_load_missing_file(self, tmp_path):
        classifier = ShapeClassifier({})
        missing = tmp_path / "missing.xml"

        with pytest.raises(ClassifierLoadError) as exc_info:
            classifier.load(str(missing))

        assert exc_info.value.path == str(missing)
        assert classifier.is_ready is False

    def test_load_invalid_file(self, tmp_path):
        bogus = tmp_path / "bogus.xml"
        bogus.write_text("<not-a-cascade/>")
        classifier = ShapeClassifier({})

        with pytest.raises(ClassifierLoadError):
            classifier.load(str(bogus))

    def test_opencv_without_cascade_support(self, tmp_path, monkeypatch):
        cascade = tmp_path / "plate.xml"
        cascade.write_text("<opencv_storage/>")
        monkeypatch.delattr(cv2, "CascadeClassifier")
        classifier = ShapeClassifier({})

        with pytest.raises(ClassifierLoadError) as exc_info:
            classifier.load(str(cascade))

        assert exc_info.value.path == str(cascade)
        assert classifier.is_ready is False

    def test_classifier_construction_error(self, tmp_path, monkeypatch):
        cascade = tmp_path / "plate.xml"
        cascade.write_text("<opencv_storage/>")

        def broken_classifier():
            raise cv2.error("no cascade support")

        monkeypatch.setattr(cv2, "CascadeClassifier", broken_classifier)

        with pytest.raises(ClassifierLoadError):
            ShapeClassifier({}).load(str(cascade))

    def test_opencv_without_cascade_data(self, monkeypatch):
        monkeypatch.delattr(cv2, "data")

        with pytest.raises(ClassifierLoadError):
            ShapeClassifier({}).load()

    def test_load_bundled_cascade(self, plate_frame):
        # The plate cascade ships with opencv-python 4.x; a missing file is a broken install.
        assert Path(default_cascade_path()).is_file()
        classifier = ShapeClassifier({'classifier': {'cascade_path': None}})

        loaded = classifier.load()

        assert loaded == default_cascade_path()
        assert classifier.is_ready
        # A blank synthetic frame is not a plate; the call must simply succeed.
        result = classifier.detect(np.zeros_like(plate_frame))
        assert result is None or len(result) == 4


class TestContourAnalyzer:
    """Tests for ContourAnalyzer."""

    @pytest.fixture
    def analyzer(self, pipeline_config):
        return ContourAnalyzer(pipeline_config)

    def test_detect_square(self, analyzer):
        square = _contour([[0, 0], [0, 50], [50, 50], [50, 0]])
        assert analyzer.detect_shape(square) == ShapeType.SQUARE

    def test_detect_rectangle(self, analyzer):
        rect = _contour([[0, 0], [0, 50], [120, 50], [120, 0]])
        assert analyzer.detect_shape(rect) == ShapeType.RECTANGLE

    def test_detect_triangle_unidentified(self, analyzer):
        tri = _contour([[0, 0], [60, 0], [30, 50]])
        assert analyzer.detect_shape(tri) == ShapeType.UNIDENTIFIED

    def test_isolate_roi(self, analyzer, plate_frame):
        x, y, w, h = PLATE_ROI
        isolated = analyzer.isolate_roi(plate_frame, PLATE_ROI)

        assert isolated.shape == plate_frame.shape
        assert np.array_equal(isolated[y:y + h, x:x + w], plate_frame[y:y + h, x:x + w])
        assert not isolated[:y].any()
        assert not isolated[:, x + w:].any()

    def test_isolate_roi_clipped(self, analyzer, plate_frame):
        isolated = analyzer.isolate_roi(plate_frame, (-50, -50, 100, 100))
        assert np.array_equal(isolated[:50, :50], plate_frame[:50, :50])

    def test_find_rectangle_contours(self, analyzer, plate_frame):
        contours = analyzer.find_rectangle_contours(plate_frame, PLATE_ROI)
        assert len(contours) >= 1

    def test_find_plate_quad(self, analyzer, plate_frame):
        mask = analyzer.find_plate_quad(plate_frame, PLATE_ROI)

        assert mask.shape == plate_frame.shape[:2] + (4,)
        assert mask.dtype == np.uint8
        # Plate interior filled white, far corner of the frame untouched
        assert tuple(mask[120, 160]) == (255, 255, 255, 255)
        assert not mask[:40].any()

    def test_find_plate_quad_empty_roi(self, analyzer, plate_frame):
        # ROI over black background: no contours, empty mask
        mask = analyzer.find_plate_quad(plate_frame, (270, 170, 40, 40))
        assert not mask.any()

    def test_small_contours_rejected(self, analyzer):
        frame = np.zeros((240, 320, 4), dtype=np.uint8)
        cv2.rectangle(frame, (100, 100), (110, 104), (255, 255, 255, 255), -1)

        # Contour area is far below 10 % of the ROI
        assert analyzer.find_rectangle_contours(frame, (20, 20, 280, 200)) == []

    def test_repeatable(self, analyzer, plate_frame):
        first  = analyzer.find_plate_quad(plate_frame, PLATE_ROI)
        second = analyzer.find_plate_quad(plate_frame, PLATE_ROI)

        assert np.array_equal(first, second)

    def test_frame_not_modified(self, analyzer, plate_frame):
        before = plate_frame.copy()
        analyzer.find_plate_quad(plate_frame, PLATE_ROI)
        assert np.array_equal(plate_frame, before)


class TestFeatureSelector:
    """Tests for FeatureSelector."""

    def test_corners_on_plate_mask(self, pipeline_config, plate_frame):
        mask = ContourAnalyzer(pipeline_config).find_plate_quad(plate_frame, PLATE_ROI)
        corners = FeatureSelector(pipeline_config).select_corners(mask)

        assert corners.shape == (4, 1, 2)
        assert corners.dtype == np.float32

        found = corners.reshape(-1, 2)
        for expected in plate_corners():
            distances = np.linalg.norm(found - expected, axis=1)
            assert distances.min() < 4.0

    def test_empty_mask(self, pipeline_config):
        corners = FeatureSelector(pipeline_config).select_corners(
            np.zeros((240, 320, 4), dtype=np.uint8))

        assert corners.shape == (0, 1, 2)

    def test_max_corners(self, plate_frame):
        selector = FeatureSelector({'feature_selection': {'max_corners': 2}})
        mask = ContourAnalyzer({}).find_plate_quad(plate_frame, PLATE_ROI)

        assert len(selector.select_corners(mask)) <= 2

    def test_to_tracked_points(self):
        corners = np.array([[[1.5, 2.5]], [[3.0, 4.0]]], dtype=np.float32)
        points = FeatureSelector.to_tracked_points(corners)

        assert [p.as_tuple() for p in points] == [(1.5, 2.5), (3.0, 4.0)]
