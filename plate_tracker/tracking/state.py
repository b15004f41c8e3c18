"""
state.py

Data carried between frames by the tracking pipeline.

TrackState is the only piece of state that survives from one frame to the next.
It is owned by the FrameOrchestrator and is either fully present (previous gray
frame plus at least ``MIN_TRACK_POINTS`` points) or absent altogether.
"""

import numpy as np
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


# Below this many points a track cannot be started, and an existing one is dropped.
MIN_TRACK_POINTS = 4


class TrackingMode(Enum):
    """The two states of the per-frame state machine."""
    DETECTING = "DETECTING"
    TRACKING  = "TRACKING"


@dataclass
class TrackedPoint:
    """
    A 2-D point with its polar coordinates relative to the ring centroid.

    Attributes:
        x, y   : pixel coordinates
        angle  : atan2 angle around the centroid, possibly shifted by 2π
                 during clockwise ordering
        radius : Euclidean distance from the centroid
    """
    x:      float
    y:      float
    angle:  float = 0.0
    radius: float = 0.0

    def as_tuple(self):
        return (self.x, self.y)


@dataclass(frozen=True)
class TrackState:
    """
    Previous grayscale frame and the point set to propagate from it.

    Attributes:
        prev_gray : single-channel uint8 frame the points were measured on
        points    : float32 array of shape (N, 1, 2), N >= MIN_TRACK_POINTS
    """
    prev_gray: np.ndarray
    points:    np.ndarray = field(repr=False)

    def __post_init__(self):
        if self.prev_gray is None or self.prev_gray.ndim != 2:
            raise ValueError("TrackState requires a single-channel previous frame")
        if self.points is None or len(self.points) < MIN_TRACK_POINTS:
            raise ValueError(f"TrackState requires at least {MIN_TRACK_POINTS} points")

    @classmethod
    def create(cls, gray: np.ndarray, points) -> Optional["TrackState"]:
        """
        Build a state from copies of ``gray`` and ``points``.

        Returns None instead of raising when there are too few points, which is
        how the caller learns that tracking cannot start or must stop.
        """
        packed = pack_points(points)
        if len(packed) < MIN_TRACK_POINTS:
            return None
        return cls(prev_gray=gray.copy(), points=packed)

    @property
    def num_points(self) -> int:
        return len(self.points)


def pack_points(points) -> np.ndarray:
    """
    Convert TrackedPoints, (x, y) pairs or an OpenCV point array to the
    (N, 1, 2) float32 layout expected by ``cv2.calcOpticalFlowPyrLK``.
    """
    if points is None:
        return np.zeros((0, 1, 2), dtype=np.float32)
    if isinstance(points, np.ndarray):
        return points.astype(np.float32).reshape(-1, 1, 2)

    coords = [p.as_tuple() if isinstance(p, TrackedPoint) else (p[0], p[1]) for p in points]
    if not coords:
        return np.zeros((0, 1, 2), dtype=np.float32)
    return np.array(coords, dtype=np.float32).reshape(-1, 1, 2)


def unpack_points(points: Optional[np.ndarray]) -> List[TrackedPoint]:
    """Inverse of ``pack_points``: OpenCV point array to a list of TrackedPoints."""
    if points is None:
        return []
    return [TrackedPoint(float(x), float(y)) for x, y in np.asarray(points).reshape(-1, 2)]
