"""
Shared fixtures: pipeline configuration and synthetic plate frames.
"""

import sys
from pathlib import Path

import cv2
import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from plate_tracker.utils.config_loader import DEFAULT_CONFIG_PATH, load_config

FRAME_W, FRAME_H = 320, 240

# White plate body, (x0, y0, x1, y1) inclusive, and the classifier ROI around it.
PLATE_RECT = (60, 80, 260, 160)
PLATE_ROI  = (40, 60, 240, 120)


def make_plate_frame(dx: int = 0, dy: int = 0) -> np.ndarray:
    """Black RGBA frame with a filled white rectangle, shifted by (dx, dy)."""
    frame = np.zeros((FRAME_H, FRAME_W, 4), dtype=np.uint8)
    frame[:, :, 3] = 255
    x0, y0, x1, y1 = PLATE_RECT
    cv2.rectangle(frame, (x0 + dx, y0 + dy), (x1 + dx, y1 + dy), (255, 255, 255, 255), -1)
    return frame


def plate_corners(dx: float = 0, dy: float = 0) -> np.ndarray:
    x0, y0, x1, y1 = PLATE_RECT
    return np.array([[x0, y0], [x1, y0], [x1, y1], [x0, y1]], dtype=np.float32) + (dx, dy)


class FakeClassifier:
    """Stands in for the cascade: always reports the same ROI."""

    def __init__(self, roi=PLATE_ROI):
        self.roi = roi
        self.calls = 0

    @property
    def is_ready(self) -> bool:
        return True

    def load(self, path=None) -> str:
        return path or 'fake-cascade.xml'

    def detect(self, frame):
        self.calls += 1
        return self.roi


@pytest.fixture
def pipeline_config():
    """Packaged configuration, or an inline equivalent if it is missing."""
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(str(DEFAULT_CONFIG_PATH))
    return {
        'classifier': {'cascade_path': None, 'scale_factor': 1.5, 'min_neighbors': 3},
        'optical_flow': {'win_size': [15, 15], 'max_level': 2,
                         'criteria_max_iter': 10, 'criteria_eps': 0.03},
        'outlier_filter': {'distance_ratio': 1.05, 'preserve_skip_on_removal': True},
        'worker': {'load_timeout_s': 30.0, 'frame_timeout_s': 5.0, 'slow_frame_ms': 50.0},
    }


@pytest.fixture
def plate_frame():
    return make_plate_frame()


@pytest.fixture
def shifted_plate_frame():
    return make_plate_frame(dx=4, dy=3)
