"""
feature_selector.py

Selection of the corner features that seed optical-flow tracking.

Shi-Tomasi corners (minimum-eigenvalue quality measure) are extracted from the
filled plate mask produced by the ContourAnalyzer. On a filled quadrilateral the
strongest responses sit on its four vertices, which is why at most four corners
are requested.
"""

from typing import Dict, List

import cv2
import numpy as np

from plate_tracker.tracking.state import TrackedPoint, unpack_points
from plate_tracker.utils.image_convert import to_gray


class FeatureSelector:
    """Wraps ``cv2.goodFeaturesToTrack`` with the pipeline's fixed parameters."""

    def __init__(self, config: Dict):
        """
        Args:
            config: Full configuration dict. Relevant sub-key: ``feature_selection``.
        """
        cfg = config.get('feature_selection', {})

        self.max_corners   = cfg.get('max_corners',   4)
        self.quality_level = cfg.get('quality_level', 0.01)
        self.min_distance  = cfg.get('min_distance',  10)
        self.block_size    = cfg.get('block_size',    3)
        # k only matters when the Harris measure is selected.
        self.use_harris    = cfg.get('use_harris',    False)
        self.harris_k      = cfg.get('harris_k',      0.04)

    def select_corners(self, mask: np.ndarray) -> np.ndarray:
        """
        Detect trackable corners in a plate mask.

        Args:
            mask: Filled plate mask (RGBA or gray).

        Returns:
            float32 array (N, 1, 2) with 0 <= N <= max_corners, in the order the
            detector reports them (no sorting).
        """
        corners = cv2.goodFeaturesToTrack(
            to_gray(mask),
            maxCorners=self.max_corners,
            qualityLevel=self.quality_level,
            minDistance=self.min_distance,
            mask=None,
            blockSize=self.block_size,
            useHarrisDetector=self.use_harris,
            k=self.harris_k,
        )

        if corners is None:
            return np.zeros((0, 1, 2), dtype=np.float32)
        return corners.astype(np.float32).reshape(-1, 1, 2)

    @staticmethod
    def to_tracked_points(corners: np.ndarray) -> List[TrackedPoint]:
        return unpack_points(corners)
