"""
Plate Tracker Package
License-plate detection, corner tracking with optical flow and perspective overlay rendering.
"""

__version__ = "1.0.0"
__author__ = "Plate Tracking Team"

# Main imports for convenience
from plate_tracker.utils.config_loader import load_config, load_default_config
from plate_tracker.pipeline.orchestrator import FrameOrchestrator, TrackingMode
from plate_tracker.pipeline.worker import PlateTrackerWorker

__all__ = [
    'load_config',
    'load_default_config',
    'FrameOrchestrator',
    'TrackingMode',
    'PlateTrackerWorker',
]
