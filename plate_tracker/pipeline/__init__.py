"""
Pipeline module - Per-frame orchestration and the background worker client.
"""

from .orchestrator import FrameOrchestrator, TrackingMode
from .worker import PlateTrackerWorker, FrameResponse

__all__ = [
    'FrameOrchestrator',
    'TrackingMode',
    'PlateTrackerWorker',
    'FrameResponse',
]
