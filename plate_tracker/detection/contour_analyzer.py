"""
contour_analyzer.py

Extraction of the plate's inner quadrilateral from a detected plate rectangle.

Pipeline
--------
1. ROI isolation        – copies only the pixels inside the detected rectangle into
                           an empty frame-sized canvas, so coordinates are unchanged.
2. Canny edge detection  – on the grayscale canvas.
3. Contour extraction    – every contour as a flat list (no hierarchy).
4. Shape classification  – polygon approximation; four vertices make a square or a
                           rectangle depending on the bounding-box aspect ratio.
5. Area filtering        – keeps rectangles covering 10 % to 90 % of the ROI.
6. Hull filling          – draws the convex hull of every kept contour filled white
                           into a frame-sized RGBA mask.

The analyzer holds no state between calls: the same frame and ROI always
produce the same mask.
"""

import logging
from enum import Enum
from typing import Dict, List, Tuple

import cv2
import numpy as np

from plate_tracker.utils.image_convert import to_gray

log = logging.getLogger(__name__)

Rect = Tuple[int, int, int, int]

MASK_COLOR = (255, 255, 255, 255)


class ShapeType(Enum):
    """Classification of an approximated contour."""
    SQUARE       = "SQUARE"
    RECTANGLE    = "RECTANGLE"
    UNIDENTIFIED = "UNIDENTIFIED"


class ContourAnalyzer:
    """
    Finds rectangle-shaped contours inside the plate ROI and fills their hulls.

    Output convention
    -----------------
    The mask has the frame's height and width and 4 channels; hull pixels are
    (255, 255, 255, 255), everything else is 0.
    """

    def __init__(self, config: Dict):
        """
        Args:
            config: Full configuration dict. Relevant sub-key: ``contour_analysis``.
        """
        cfg = config.get('contour_analysis', {})

        # --- Edge detection parameters ---
        self.canny_low      = cfg.get('canny_low',      0)
        self.canny_high     = cfg.get('canny_high',     255)
        self.canny_aperture = cfg.get('canny_aperture', 3)

        # Epsilon for approxPolyDP as a fraction of the closed contour perimeter.
        self.epsilon_factor = cfg.get('epsilon_factor', 0.04)

        # Bounding-box aspect ratios in this closed range count as squares.
        self.square_ratio_min = cfg.get('square_ratio_min', 0.95)
        self.square_ratio_max = cfg.get('square_ratio_max', 1.05)

        # Contour area relative to the ROI area, both bounds exclusive.
        self.min_area_ratio = cfg.get('min_area_ratio', 0.1)
        self.max_area_ratio = cfg.get('max_area_ratio', 0.9)

    # ------------------------------------------------------------------
    # Shape classification
    # ------------------------------------------------------------------

    def detect_shape(self, contour: np.ndarray) -> ShapeType:
        """
        Classify a contour by its polygonal approximation.

        Args:
            contour: OpenCV contour (N, 1, 2).

        Returns:
            SQUARE or RECTANGLE for four-vertex approximations, UNIDENTIFIED otherwise.
        """
        perimeter = cv2.arcLength(contour, True)
        approx    = cv2.approxPolyDP(contour, self.epsilon_factor * perimeter, True)

        if len(approx) != 4:
            return ShapeType.UNIDENTIFIED

        _, _, w, h = cv2.boundingRect(approx)
        ratio = w / float(h) if h > 0 else 0.0
        if self.square_ratio_min <= ratio <= self.square_ratio_max:
            return ShapeType.SQUARE
        return ShapeType.RECTANGLE

    # ------------------------------------------------------------------
    # Core analysis
    # ------------------------------------------------------------------

    def isolate_roi(self, frame: np.ndarray, roi: Rect) -> np.ndarray:
        """Copy the ROI pixels into a zero canvas of the frame's size."""
        x, y, w, h = roi
        frame_h, frame_w = frame.shape[:2]

        x0, y0 = max(0, x), max(0, y)
        x1, y1 = min(frame_w, x + w), min(frame_h, y + h)

        canvas = np.zeros_like(frame)
        if x1 > x0 and y1 > y0:
            canvas[y0:y1, x0:x1] = frame[y0:y1, x0:x1]
        return canvas

    def find_rectangle_contours(self, frame: np.ndarray, roi: Rect) -> List[np.ndarray]:
        """
        Return the contours inside ``roi`` classified as rectangles whose area
        lies strictly between ``min_area_ratio`` and ``max_area_ratio`` of the ROI.
        """
        plate = self.isolate_roi(frame, roi)
        gray  = to_gray(plate)
        edges = cv2.Canny(gray, self.canny_low, self.canny_high,
                          apertureSize=self.canny_aperture)

        contours, _ = cv2.findContours(edges, cv2.RETR_LIST, cv2.CHAIN_APPROX_SIMPLE)

        roi_area = roi[2] * roi[3]
        kept = []
        for contour in contours:
            if self.detect_shape(contour) != ShapeType.RECTANGLE:
                continue
            area = cv2.contourArea(contour)
            if self.min_area_ratio * roi_area < area < self.max_area_ratio * roi_area:
                kept.append(contour)

        log.debug(f"{len(contours)} contours in ROI {roi}, {len(kept)} plate-like rectangles")
        return kept

    def find_plate_quad(self, frame: np.ndarray, roi: Rect) -> np.ndarray:
        """
        Build the filled plate mask for a detected plate rectangle.

        Args:
            frame: RGBA frame.
            roi:   (x, y, width, height) returned by the ShapeClassifier.

        Returns:
            uint8 mask with the frame's height/width and 4 channels, white where
            the convex hull of a kept rectangle lies. Overlapping hulls merge.
        """
        mask = np.zeros(frame.shape[:2] + (4,), dtype=np.uint8)

        for contour in self.find_rectangle_contours(frame, roi):
            hull = cv2.convexHull(contour, clockwise=False, returnPoints=True)
            cv2.drawContours(mask, [hull], 0, MASK_COLOR, cv2.FILLED)

        return mask
