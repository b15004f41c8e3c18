"""
Visualization module - Drawing helpers and video output.
"""

from .draw_utils import draw_feature_points, draw_tracked_ring, overlay_mask, draw_tracking_info
from .video_writer import VideoWriterManager

__all__ = [
    'draw_feature_points',
    'draw_tracked_ring',
    'overlay_mask',
    'draw_tracking_info',
    'VideoWriterManager',
]
