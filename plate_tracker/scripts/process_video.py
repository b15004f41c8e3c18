#!/usr/bin/env python3
"""
Run the plate tracker over a video file.

Pipeline:
1. Load the configuration and the plate classifier
2. Feed every frame (as RGBA) through the background worker
3. Overlay the returned mask (detected corners or tracked ring)
4. Optionally texture-map an image onto the tracked plate
5. Write the annotated video and, optionally, the per-frame rings

Usage:
    python plate_tracker/scripts/process_video.py --input data/videos/input/car.mp4 \
                                                  --overlay data/overlay.png \
                                                  --save-results
"""

import argparse
import logging
import sys
from pathlib import Path

import cv2
import numpy as np
from tqdm import tqdm

# Project root on the path when run as a plain script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from plate_tracker.exceptions import PlateTrackerError
from plate_tracker.pipeline.worker import PlateTrackerWorker
from plate_tracker.rendering.perspective import order_corners, render_quad
from plate_tracker.tracking.state import MIN_TRACK_POINTS, TrackingMode
from plate_tracker.utils.config_loader import DEFAULT_CONFIG_PATH, get_nested_value, load_config
from plate_tracker.utils.data_io import save_tracked_rings
from plate_tracker.utils.image_convert import to_rgba
from plate_tracker.utils.logging_setup import setup_logging
from plate_tracker.visualization.draw_utils import draw_quad_outline, draw_tracking_info, overlay_mask
from plate_tracker.visualization.video_writer import VideoWriterManager

log = logging.getLogger("process_video")


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Detect and track a license plate in a video',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument('--input', type=str, required=True,
                        help='Input video path')
    parser.add_argument('--output', type=str, default=None,
                        help='Output video path (default: data/videos/output/<name>_tracked.mp4)')
    parser.add_argument('--config', type=str, default=str(DEFAULT_CONFIG_PATH),
                        help='Pipeline parameters (YAML)')
    parser.add_argument('--cascade', type=str, default=None,
                        help='Cascade classifier XML (default: from config, else the OpenCV plate cascade)')
    parser.add_argument('--overlay', type=str, default=None,
                        help='Image to render onto the tracked plate')
    parser.add_argument('--wireframe', action='store_true',
                        help='Outline the overlay triangles')
    parser.add_argument('--save-results', action='store_true',
                        help='Save the tracked ring of every frame (.npz)')
    parser.add_argument('--visualize', action='store_true',
                        help='Show the annotated video while processing')
    parser.add_argument('--max-frames', type=int, default=None,
                        help='Maximum number of frames to process (debug)')
    parser.add_argument('--log-level', type=str, default=None,
                        help='Logging level (default: from config)')

    return parser.parse_args()


def load_overlay(path: str) -> np.ndarray:
    """Read an image from disk as RGBA."""
    image = cv2.imread(path, cv2.IMREAD_UNCHANGED)
    if image is None:
        raise FileNotFoundError(f"Overlay image not found: {path}")
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    if image.ndim == 3:
        image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
    return to_rgba(image)


def process_video(args):
    """
    Process the whole video.

    Returns:
        0 on success, 1 on error
    """
    # ========== SETUP ==========
    config = load_config(args.config)
    setup_logging(args.log_level or get_nested_value(config, 'logging.level', 'INFO'))

    print("=" * 60)
    print("PLATE TRACKER - PROCESSING")
    print("=" * 60)

    cap = cv2.VideoCapture(args.input)
    if not cap.isOpened():
        print(f"Cannot open video: {args.input}")
        return 1

    fps          = cap.get(cv2.CAP_PROP_FPS) or 30.0
    frame_count  = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
    frame_width  = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
    frame_height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
    print(f"  FPS: {fps:.1f}, Frames: {frame_count}, Size: {frame_width}x{frame_height}")

    if args.max_frames:
        frame_count = min(frame_count, args.max_frames)

    if args.output is None:
        args.output = f"data/videos/output/{Path(args.input).stem}_tracked.mp4"

    overlay = load_overlay(args.overlay) if args.overlay else None

    subdivisions = get_nested_value(config, 'rendering.subdivisions', 9)
    seam_offsets = get_nested_value(config, 'rendering.seam_offsets', True)

    rings = []
    tracked_frames = 0

    # ========== PROCESSING ==========
    with PlateTrackerWorker(config) as worker:
        print(f"  OpenCV {worker.wait(worker.initialize(), worker.load_timeout_s)}")
        try:
            cascade = worker.wait(worker.load_classifier_asset(args.cascade), worker.load_timeout_s)
        except PlateTrackerError as e:
            print(f"Cannot load the plate classifier: {e}")
            cap.release()
            return 1
        print(f"  Classifier: {cascade}")

        with VideoWriterManager(args.output, fps, (frame_width, frame_height)) as writer:
            pbar = tqdm(total=frame_count, desc="Processing", unit="frame")

            for frame_idx in range(frame_count):
                ret, frame_bgr = cap.read()
                if not ret:
                    break

                frame = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGBA)
                try:
                    response = worker.wait(worker.process_frame(frame, tag=frame_idx),
                                           worker.frame_timeout_s)
                except PlateTrackerError as e:
                    log.warning(f"Frame {frame_idx} skipped: {e}")
                    rings.append(None)
                    pbar.update(1)
                    continue

                annotated = overlay_mask(frame, response.mask)
                points = np.array(response.points, dtype=np.float32).reshape(-1, 2)

                if len(points) == MIN_TRACK_POINTS and response.mode == TrackingMode.TRACKING:
                    corners = order_corners(points)
                    if overlay is not None:
                        render_quad(annotated, overlay, corners,
                                    subdivisions=subdivisions,
                                    seam_offsets=seam_offsets,
                                    wireframe=args.wireframe)
                    else:
                        draw_quad_outline(annotated, corners)

                if len(points) and response.mode == TrackingMode.TRACKING:
                    tracked_frames += 1
                rings.append(points if len(points) else None)

                draw_tracking_info(annotated, frame_idx, response.mode.value,
                                   len(points), response.latency_ms)
                writer.write(annotated)

                if args.visualize:
                    cv2.imshow('Plate Tracker', cv2.cvtColor(annotated, cv2.COLOR_RGBA2BGR))
                    if cv2.waitKey(1) & 0xFF == ord('q'):
                        print("\n  Interrupted by user")
                        break

                pbar.update(1)

            pbar.close()

        stats = worker.wait(worker.stats(), worker.frame_timeout_s)

    # ========== CLEANUP ==========
    cap.release()
    if args.visualize:
        cv2.destroyAllWindows()

    if args.save_results and rings:
        save_tracked_rings(
            rings,
            f"data/results/tracked_rings/{Path(args.input).stem}_rings.npz",
            metadata={'video': args.input, 'fps': fps, 'cascade': cascade},
        )

    # ========== SUMMARY ==========
    print("\n" + "=" * 60)
    print("PROCESSING COMPLETE")
    print("=" * 60)
    print(f"Frames processed: {len(rings)}/{frame_count}")
    print(f"Frames tracked:   {tracked_frames}")
    print(f"Latency:          mean {stats['mean_ms']:.1f}ms, max {stats['max_ms']:.1f}ms")
    print(f"Tracking lost:    {stats['tracking_lost']} times")
    print(f"Output video:     {args.output}")

    return 0


def main():
    args = parse_args()
    return process_video(args)


if __name__ == '__main__':
    sys.exit(main())
