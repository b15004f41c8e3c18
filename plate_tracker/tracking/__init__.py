"""
Tracking module - Optical-flow tracking of the plate corners and tracking state.
"""

from .state import TrackedPoint, TrackState, TrackingMode, MIN_TRACK_POINTS
from .optical_flow import OpticalFlowTracker, TrackStepResult, order_clockwise, reject_outliers

__all__ = [
    'TrackedPoint',
    'TrackState',
    'TrackingMode',
    'MIN_TRACK_POINTS',
    'OpticalFlowTracker',
    'TrackStepResult',
    'order_clockwise',
    'reject_outliers',
]
