"""
Tests for the utility modules (config_loader, data_io, image_convert, metrics, draw_utils).
"""

import logging
from pathlib import Path

import cv2
import numpy as np
import pytest
import yaml

from plate_tracker.utils.config_loader import get_nested_value, load_config, load_default_config
from plate_tracker.utils.data_io import load_tracked_rings, save_tracked_rings
from plate_tracker.utils.image_convert import frame_from_buffer, to_gray, to_rgba
from plate_tracker.utils.metrics import PipelineMetrics
from plate_tracker.visualization.draw_utils import (
    blank_mask,
    draw_feature_points,
    draw_tracked_ring,
    overlay_mask,
)


class TestConfigLoader:
    """Tests for config_loader."""

    def test_default_config_sections(self):
        config = load_default_config()

        for section in ('classifier', 'contour_analysis', 'feature_selection', 'optical_flow',
                        'outlier_filter', 'drawing', 'rendering', 'worker'):
            assert section in config
        assert config['optical_flow']['win_size'] == [15, 15]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))

    def test_invalid_yaml(self, tmp_path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("optical_flow: [unclosed\n")

        with pytest.raises(yaml.YAMLError) as exc_info:
            load_config(str(bad))
        assert "bad.yaml" in str(exc_info.value)

    def test_empty_file(self, tmp_path):
        empty = tmp_path / "empty.yaml"
        empty.write_text("")

        assert load_config(str(empty)) == {}

    def test_get_nested_value(self):
        config = {'optical_flow': {'max_level': 2}}

        assert get_nested_value(config, 'optical_flow.max_level') == 2
        assert get_nested_value(config, 'optical_flow.win_size', (15, 15)) == (15, 15)
        assert get_nested_value(config, 'missing.key') is None

    def test_nested_lookups_on_default_config(self):
        config = load_default_config()

        assert get_nested_value(config, 'logging.level', 'INFO') == 'INFO'
        assert get_nested_value(config, 'rendering.subdivisions', 0) == 9
        assert get_nested_value(config, 'rendering.seam_offsets', False) is True
        # A null section falls back to the default
        assert get_nested_value({'rendering': None}, 'rendering.subdivisions', 9) == 9


class TestDataIO:
    """Tests for save_tracked_rings / load_tracked_rings."""

    def test_save_and_load(self, tmp_path):
        rings = [
            None,
            np.array([[1, 2], [3, 4], [5, 6], [7, 8]], dtype=np.float32),
            np.array([[9, 10], [11, 12], [13, 14], [15, 16], [17, 18]], dtype=np.float32),
            None,
        ]
        path = tmp_path / "results" / "rings.npz"

        save_tracked_rings(rings, str(path), metadata={'video': 'car.mp4', 'fps': 25.0})
        loaded, metadata = load_tracked_rings(str(path))

        assert len(loaded) == 4
        assert loaded[0] is None and loaded[3] is None
        assert np.array_equal(loaded[1], rings[1])
        assert np.array_equal(loaded[2], rings[2])
        assert metadata == {'video': 'car.mp4', 'fps': 25.0}

    def test_without_metadata(self, tmp_path):
        path = tmp_path / "rings.npz"
        save_tracked_rings([None, None], str(path))

        loaded, metadata = load_tracked_rings(str(path))

        assert loaded == [None, None]
        assert metadata is None


class TestImageConvert:
    """Tests for image_convert."""

    def test_frame_from_buffer(self):
        buffer = bytearray(range(24))
        frame = frame_from_buffer(buffer, width=3, height=2, channels=4)

        assert frame.shape == (2, 3, 4)
        assert frame[1, 2, 3] == 23

        # Private copy: later writes to the buffer do not leak in
        buffer[0] = 99
        assert frame[0, 0, 0] == 0

    def test_frame_from_buffer_size_mismatch(self):
        with pytest.raises(ValueError):
            frame_from_buffer(bytes(10), width=3, height=2, channels=4)

    def test_frame_from_buffer_bad_geometry(self):
        with pytest.raises(ValueError):
            frame_from_buffer(bytes(12), width=3, height=2, channels=2)

    def test_to_gray(self):
        rgba = np.zeros((4, 5, 4), dtype=np.uint8)
        rgba[..., :3] = 200

        gray = to_gray(rgba)

        assert gray.shape == (4, 5)
        assert gray[0, 0] == 200
        assert to_gray(gray) is gray

    def test_to_rgba_gray(self):
        rgba = to_rgba(np.full((3, 3), 77, dtype=np.uint8))

        assert rgba.shape == (3, 3, 4)
        assert tuple(rgba[0, 0]) == (77, 77, 77, 255)

    def test_to_rgba_float_scaled(self):
        rgba = to_rgba(np.full((2, 2, 3), 1.0, dtype=np.float32))
        assert tuple(rgba[0, 0]) == (255, 255, 255, 255)

    def test_to_rgba_uint16_scaled(self):
        rgba = to_rgba(np.full((2, 2), 256 * 100, dtype=np.uint16))
        assert rgba[0, 0, 0] == 100

    def test_to_rgba_signed_shifted(self):
        rgba = to_rgba(np.zeros((2, 2), dtype=np.int8))
        assert rgba[0, 0, 0] == 128

    def test_to_rgba_passthrough(self):
        image = np.random.default_rng(1).integers(0, 256, (4, 4, 4), dtype=np.uint8)
        assert np.array_equal(to_rgba(image), image)

    def test_to_rgba_bad_channels(self):
        with pytest.raises(ValueError):
            to_rgba(np.zeros((2, 2, 2), dtype=np.uint8))


class TestPipelineMetrics:
    """Tests for PipelineMetrics."""

    def test_record_frame(self):
        metrics = PipelineMetrics(slow_threshold_ms=100.0)
        for ms, mode in ((10.0, 'DETECTING'), (20.0, 'TRACKING'), (30.0, 'TRACKING')):
            metrics.record_frame(ms, mode=mode, active_points=4)

        assert metrics.count == 3
        assert metrics.last_ms == 30.0
        assert metrics.max_ms == 30.0
        assert metrics.mean_ms == pytest.approx(20.0)
        assert metrics.frames_in_mode('DETECTING') == 1
        assert metrics.frames_in_mode('TRACKING') == 2

    def test_latency_histogram(self):
        metrics = PipelineMetrics()
        metrics.record_frame(20.0, mode='TRACKING')

        registry = metrics.registry
        assert registry.get_sample_value('plate_tracker_frame_latency_seconds_count',
                                         {'mode': 'TRACKING'}) == 1
        assert registry.get_sample_value('plate_tracker_frame_latency_seconds_sum',
                                         {'mode': 'TRACKING'}) == pytest.approx(0.02)
        assert registry.get_sample_value('plate_tracker_frame_latency_seconds_bucket',
                                         {'mode': 'TRACKING', 'le': '0.035'}) == 1
        assert registry.get_sample_value('plate_tracker_frame_latency_seconds_bucket',
                                         {'mode': 'TRACKING', 'le': '0.01'}) == 0

    def test_active_points_gauge(self):
        metrics = PipelineMetrics()
        metrics.record_frame(1.0, mode='TRACKING', active_points=5)
        metrics.record_frame(1.0, mode='TRACKING', active_points=0)

        assert metrics.registry.get_sample_value('plate_tracker_active_points') == 0

    def test_tracking_lost_counter(self):
        metrics = PipelineMetrics()
        metrics.record_tracking_lost()
        metrics.record_tracking_lost()

        assert metrics.lost_count == 2
        assert metrics.as_dict()['tracking_lost'] == 2

    def test_empty(self):
        metrics = PipelineMetrics()

        assert metrics.as_dict() == {'count': 0, 'last_ms': 0.0, 'mean_ms': 0.0,
                                     'max_ms': 0.0, 'tracking_lost': 0}

    def test_registries_are_independent(self):
        first, second = PipelineMetrics(), PipelineMetrics()
        first.record_frame(5.0, mode='DETECTING')

        assert first.count == 1
        assert second.count == 0

    def test_slow_frame_warning(self, caplog):
        metrics = PipelineMetrics(slow_threshold_ms=5.0)

        with caplog.at_level(logging.WARNING, logger='plate_tracker.utils.metrics'):
            metrics.record_frame(12.0, mode='TRACKING')

        assert "process_frame[TRACKING]" in caplog.text

    def test_fast_frame_not_warned(self, caplog):
        metrics = PipelineMetrics(slow_threshold_ms=50.0)

        with caplog.at_level(logging.WARNING, logger='plate_tracker.utils.metrics'):
            metrics.record_frame(1.0, mode='DETECTING')

        assert caplog.text == ""


class TestDrawUtils:
    """Tests for draw_utils."""

    def test_blank_mask(self):
        mask = blank_mask(np.zeros((10, 20, 3), dtype=np.uint8))
        assert mask.shape == (10, 20, 4)
        assert not mask.any()

    def test_feature_points(self):
        mask = draw_feature_points(blank_mask(np.zeros((50, 50, 4), np.uint8)), [(10, 10), (40, 30)])

        assert tuple(mask[10, 10]) == (255, 255, 255, 255)
        assert tuple(mask[30, 40]) == (255, 255, 255, 255)
        assert not mask[0, 0].any()

    def test_tracked_ring_closed(self):
        mask = blank_mask(np.zeros((60, 60, 4), np.uint8))
        draw_tracked_ring(mask, [(10, 10), (50, 10), (50, 50), (10, 50)])

        # Closing segment from the last point back to the first
        assert mask[30, 10, 1] == 255
        # Ring is drawn in green only
        assert not mask[:, :, 0].any()

    def test_overlay_mask(self):
        frame = np.full((5, 5, 4), 100, dtype=np.uint8)
        mask = np.zeros_like(frame)
        mask[2, 2] = (200, 0, 0, 0)

        blended = overlay_mask(frame, mask)

        assert tuple(blended[2, 2]) == (255, 100, 100, 100)
        assert tuple(blended[0, 0]) == (100, 100, 100, 100)

    def test_overlay_without_mask(self):
        frame = np.full((5, 5, 4), 100, dtype=np.uint8)
        blended = overlay_mask(frame, None)

        assert np.array_equal(blended, frame)
        assert blended is not frame


class TestPackaging:
    """Checks on the project metadata next to the package."""

    ROOT = Path(__file__).resolve().parents[2]

    def test_readme_is_long_description(self):
        pyproject = (self.ROOT / "pyproject.toml").read_text()

        assert 'readme = "README.md"' in pyproject
        assert (self.ROOT / "README.md").is_file()

    def test_opencv_pinned_below_5(self):
        pyproject = (self.ROOT / "pyproject.toml").read_text()

        assert '"opencv-python>=4.5,<5"' in pyproject
        assert int(cv2.__version__.split('.')[0]) < 5
