"""
Utility functions for configuration, I/O, frame conversion and metrics.
"""

from .config_loader import load_config, load_default_config, get_nested_value
from .data_io import save_tracked_rings, load_tracked_rings
from .image_convert import frame_from_buffer, to_gray, to_rgba
from .logging_setup import setup_logging
from .metrics import PipelineMetrics

__all__ = [
    'load_config',
    'load_default_config',
    'get_nested_value',
    'save_tracked_rings',
    'load_tracked_rings',
    'frame_from_buffer',
    'to_gray',
    'to_rgba',
    'setup_logging',
    'PipelineMetrics',
]
