#!/usr/bin/env python3
"""
Launcher for the plate tracker.

Usage:
    python run_tracking.py --input data/videos/input/car.mp4 [--overlay logo.png] [--save-results]

All options are forwarded to plate_tracker/scripts/process_video.py.
"""

import sys

from plate_tracker.scripts.process_video import main

if __name__ == '__main__':
    sys.exit(main())
