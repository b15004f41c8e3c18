"""
optical_flow.py

Frame-to-frame propagation of the plate corner features with pyramidal
Lucas-Kanade optical flow.

One tracking step
-----------------
1. The new frame is converted to gray.
2. ``cv2.calcOpticalFlowPyrLK`` moves every previous point into the new frame
   (forward direction only, no forward-backward check).
3. Points whose status flag is not 1 are discarded. The per-point error is not
   used as a filter.
4. The surviving points are put in ring order around their centroid
   (``order_clockwise``).
5. Points much farther from the centroid than the average are dropped
   (``reject_outliers``); the remaining ring is what gets drawn.
6. The angle-ordered set from step 4 (not the distance-filtered ring) becomes
   the seed for the next frame.

Centroid approximation
----------------------
The centroid is the midpoint of the y extremes and of the x extremes, i.e. the
centre of the bounding box, not the mean of the points. For the four corners of
a plate the two coincide closely enough, and the bounding-box centre is not
dragged by a single drifting point.

Rotational reference
--------------------
After the centroid computation the points are sorted by descending x, and the
first of them (the right-most, top-most on ties) is the reference angle: every
later point whose angle is smaller gets 2π added, so the ordering starts at the
reference and proceeds clockwise in image coordinates (y pointing down).
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from plate_tracker.tracking.state import MIN_TRACK_POINTS, TrackedPoint, TrackState
from plate_tracker.utils.image_convert import to_gray
from plate_tracker.visualization.draw_utils import blank_mask, draw_tracked_ring

log = logging.getLogger(__name__)

Center = Tuple[float, float]


# ----------------------------------------------------------------------
# Ring geometry
# ----------------------------------------------------------------------

def compute_centroid(points: Sequence[TrackedPoint]) -> Tuple[Center, List[TrackedPoint]]:
    """
    Bounding-box centre of the points.

    Returns:
        ((cx, cy), points sorted by descending x). The sorted list is stable
        with respect to a prior ascending-y sort, which fixes the order of
        points sharing the same x.

    Raises:
        ValueError: If ``points`` is empty.
    """
    if not points:
        raise ValueError("Cannot compute the centroid of an empty point set")

    by_y = sorted(points, key=lambda p: p.y)
    cy = (by_y[0].y + by_y[-1].y) / 2

    by_x = sorted(by_y, key=lambda p: p.x, reverse=True)
    cx = (by_x[0].x + by_x[-1].x) / 2

    return (cx, cy), by_x


def order_clockwise(points: Sequence[TrackedPoint]) -> Tuple[List[TrackedPoint], Center]:
    """
    Sort points into a ring around their centroid.

    Each returned point is a new TrackedPoint with ``angle`` (adjusted as
    described in the module docstring) and ``radius`` filled in.

    Returns:
        (ordered points, (cx, cy))
    """
    center, candidates = compute_centroid([TrackedPoint(p.x, p.y) for p in points])
    cx, cy = center

    start_angle: Optional[float] = None
    for point in candidates:
        angle = math.atan2(point.y - cy, point.x - cx)
        if start_angle is None:
            start_angle = angle
        elif angle < start_angle:
            angle += 2 * math.pi
        point.angle  = angle
        point.radius = math.hypot(point.x - cx, point.y - cy)

    return sorted(candidates, key=lambda p: p.angle), center


def reject_outliers(points: Sequence[TrackedPoint],
                    center: Center,
                    distance_ratio: float = 1.05,
                    skip_after_removal: bool = True) -> List[TrackedPoint]:
    """
    Drop points lying farther than ``distance_ratio`` times the mean distance
    from ``center``. The mean is computed once, over all input points.

    With ``skip_after_removal`` the pass walks the list by index and deletes in
    place, so the point that slides into a removed point's slot is never
    evaluated: of two adjacent outliers only the first is removed. Without it,
    every point is tested against the threshold.

    Returns:
        A new list; the input is not modified.
    """
    if not points:
        return []

    cx, cy = center
    distances = [math.hypot(p.x - cx, p.y - cy) for p in points]
    limit = distance_ratio * (sum(distances) / len(distances))

    if not skip_after_removal:
        return [p for p, d in zip(points, distances) if d <= limit]

    kept = list(points)
    index = 0
    while index < len(kept):
        if math.hypot(kept[index].x - cx, kept[index].y - cy) > limit:
            del kept[index]
        index += 1
    return kept


# ----------------------------------------------------------------------
# Tracker
# ----------------------------------------------------------------------

@dataclass
class TrackStepResult:
    """
    Outcome of one tracking step.

    Attributes:
        mask       : RGBA image with the ring drawn (blank if the ring is too short)
        ring       : distance-filtered points, drawn only when it has >= 4 points
        ordered    : angle-ordered points before distance filtering
        next_state : seed for the next frame, None when tracking is lost
        center     : centroid used for ordering, None if no point survived
    """
    mask:       np.ndarray
    ring:       List[TrackedPoint] = field(default_factory=list)
    ordered:    List[TrackedPoint] = field(default_factory=list)
    next_state: Optional[TrackState] = None
    center:     Optional[Center] = None

    @property
    def lost(self) -> bool:
        return self.next_state is None


class OpticalFlowTracker:
    """
    Pyramidal Lucas-Kanade tracker for the plate corner ring.

    The tracker itself is stateless: the previous frame and points come in as a
    TrackState and the successor state goes out in the TrackStepResult. The
    FrameOrchestrator decides what to do with it.

    Failure handling
    ----------------
    ``cv2.calcOpticalFlowPyrLK`` raises ``cv2.error`` on malformed input (empty
    point set, frame size change). This is logged and reported as a lost track
    rather than propagated, so a bad frame never ends the session.
    """

    def __init__(self, config: Dict):
        """
        Args:
            config: Full configuration dict. Relevant sub-keys:
                    ``optical_flow``   – win_size, max_level, criteria_max_iter, criteria_eps
                    ``outlier_filter`` – distance_ratio, preserve_skip_on_removal
                    ``drawing``        – ring_radius, ring_thickness, ring_color
        """
        flow_cfg = config.get('optical_flow', {})
        self.win_size  = tuple(flow_cfg.get('win_size', (15, 15)))
        self.max_level = flow_cfg.get('max_level', 2)
        self.criteria  = (
            cv2.TERM_CRITERIA_EPS | cv2.TERM_CRITERIA_COUNT,
            flow_cfg.get('criteria_max_iter', 10),
            flow_cfg.get('criteria_eps', 0.03),
        )

        outlier_cfg = config.get('outlier_filter', {})
        self.distance_ratio     = outlier_cfg.get('distance_ratio', 1.05)
        self.skip_after_removal = outlier_cfg.get('preserve_skip_on_removal', True)

        draw_cfg = config.get('drawing', {})
        self.ring_radius    = draw_cfg.get('ring_radius', 2)
        self.ring_thickness = draw_cfg.get('ring_thickness', 2)
        self.ring_color     = tuple(draw_cfg.get('ring_color', (0, 255, 0, 255)))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _calc_flow(self, prev_gray: np.ndarray, gray: np.ndarray,
                   points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Run LK optical flow; returns (new points, status) and may raise cv2.error."""
        new_points, status, _err = cv2.calcOpticalFlowPyrLK(
            prev_gray,
            gray,
            points,
            None,
            winSize=self.win_size,
            maxLevel=self.max_level,
            criteria=self.criteria,
        )
        return new_points, status

    def _good_points(self, new_points: Optional[np.ndarray],
                     status: Optional[np.ndarray]) -> List[TrackedPoint]:
        if new_points is None or status is None:
            return []
        return [
            TrackedPoint(float(x), float(y))
            for (x, y), found in zip(new_points.reshape(-1, 2), status.reshape(-1))
            if found == 1
        ]

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def step(self, state: TrackState, frame: np.ndarray) -> TrackStepResult:
        """
        Advance the tracked ring by one frame.

        Args:
            state: Previous gray frame and seed points.
            frame: Current RGBA frame.

        Returns:
            TrackStepResult; ``next_state`` is None when fewer than four points
            survive the status filter or optical flow failed.
        """
        gray = to_gray(frame)
        mask = blank_mask(frame)

        try:
            new_points, status = self._calc_flow(state.prev_gray, gray, state.points)
        except cv2.error as e:
            log.warning(f"Optical flow failed, dropping track: {e}")
            return TrackStepResult(mask=mask)

        good = self._good_points(new_points, status)
        if not good:
            log.info("No feature survived optical flow, dropping track")
            return TrackStepResult(mask=mask)

        ordered, center = order_clockwise(good)
        ring = reject_outliers(ordered, center,
                               distance_ratio=self.distance_ratio,
                               skip_after_removal=self.skip_after_removal)

        if len(ring) >= MIN_TRACK_POINTS:
            draw_tracked_ring(mask, ring,
                              radius=self.ring_radius,
                              thickness=self.ring_thickness,
                              color=self.ring_color)
        else:
            ring = []

        # The next seed is the ordered set, before distance filtering.
        next_state = TrackState.create(gray, ordered)

        log.debug(f"LK step: {state.num_points} -> {len(good)} found, "
                  f"{len(ring)} in ring, center=({center[0]:.1f}, {center[1]:.1f})")

        return TrackStepResult(mask=mask, ring=ring, ordered=ordered,
                               next_state=next_state, center=center)
