"""
orchestrator.py

Per-frame decision between plate detection and corner tracking.

State machine
-------------
    DETECTING --plate found, >= 4 corners-->  TRACKING   (TrackState created)
    DETECTING --no plate / < 4 corners----->  DETECTING  (empty result)
    TRACKING  --step keeps >= 4 points----->  TRACKING   (TrackState replaced)
    TRACKING  --step keeps < 4 points------>  DETECTING  (TrackState dropped, empty result)

Losing the track is not an error: the next frame simply runs detection again,
which is the only retry mechanism.
"""

import logging
import time
from typing import Dict, List, Optional

import numpy as np

from plate_tracker.detection.contour_analyzer import ContourAnalyzer
from plate_tracker.detection.feature_selector import FeatureSelector
from plate_tracker.detection.shape_classifier import ShapeClassifier
from plate_tracker.tracking.optical_flow import OpticalFlowTracker
from plate_tracker.tracking.state import MIN_TRACK_POINTS, TrackedPoint, TrackingMode, TrackState
from plate_tracker.utils.image_convert import to_gray
from plate_tracker.utils.metrics import PipelineMetrics
from plate_tracker.visualization.draw_utils import blank_mask, draw_feature_points

log = logging.getLogger(__name__)


class FrameOrchestrator:
    """
    Runs the detection or the tracking pipeline on each frame.

    The orchestrator is the single owner of the TrackState; nothing outside it
    reads or writes the previous frame and points. It is not thread-safe: frames
    must be processed one at a time (the PlateTrackerWorker guarantees this).
    """

    def __init__(
        self,
        config:     Dict,
        classifier: Optional[ShapeClassifier] = None,
        analyzer:   Optional[ContourAnalyzer] = None,
        selector:   Optional[FeatureSelector] = None,
        tracker:    Optional[OpticalFlowTracker] = None,
    ):
        """
        Args:
            config:     Full configuration dict (see config/pipeline_params.yaml).
            classifier: Plate classifier; built from ``config`` if omitted. It
                        still has to be loaded before the first detection.
            analyzer, selector, tracker: Optional pre-built components.
        """
        self.classifier = classifier or ShapeClassifier(config)
        self.analyzer   = analyzer   or ContourAnalyzer(config)
        self.selector   = selector   or FeatureSelector(config)
        self.tracker    = tracker    or OpticalFlowTracker(config)

        draw_cfg = config.get('drawing', {})
        self.feature_radius = draw_cfg.get('feature_radius', 3)
        self.feature_color  = tuple(draw_cfg.get('feature_color', (255, 255, 255, 255)))

        worker_cfg = config.get('worker', {})
        self.metrics = PipelineMetrics(slow_threshold_ms=worker_cfg.get('slow_frame_ms', 50.0))

        self._state: Optional[TrackState] = None
        self.last_points: List[TrackedPoint] = []

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def mode(self) -> TrackingMode:
        return TrackingMode.TRACKING if self._state is not None else TrackingMode.DETECTING

    @property
    def track_state(self) -> Optional[TrackState]:
        return self._state

    def reset(self) -> None:
        """Drop any active track; the next frame runs detection."""
        if self._state is not None:
            log.info("Track reset")
        self._state = None
        self.last_points = []

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    def _detect(self, frame: np.ndarray) -> Optional[np.ndarray]:
        """
        Detection pipeline: classifier -> contour analysis -> corner selection.

        Raises:
            ModelNotReadyError: Propagated from the classifier.
        """
        roi = self.classifier.detect(frame)
        if roi is None:
            log.debug("No plate candidate")
            return None

        plate_mask = self.analyzer.find_plate_quad(frame, roi)
        corners    = self.selector.select_corners(plate_mask)

        if len(corners) < MIN_TRACK_POINTS:
            log.debug(f"Plate at {roi} yielded only {len(corners)} corners")
            return None

        self._state = TrackState.create(to_gray(frame), corners)
        self.last_points = self.selector.to_tracked_points(corners)
        log.info(f"Plate detected at {roi}, tracking {len(corners)} corners")

        return draw_feature_points(blank_mask(frame), self.last_points,
                                   radius=self.feature_radius, color=self.feature_color)

    def _track(self, frame: np.ndarray) -> Optional[np.ndarray]:
        result = self.tracker.step(self._state, frame)

        self._state = result.next_state
        self.last_points = result.ring

        if result.lost:
            log.info("Tracking lost, back to detection")
            self.metrics.record_tracking_lost()
            self.last_points = []
            return None
        return result.mask

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def process_frame(self, frame: np.ndarray) -> Optional[np.ndarray]:
        """
        Process one RGBA frame.

        Args:
            frame: (H, W, 4) uint8 frame; it is not modified.

        Returns:
            RGBA mask of the frame's size with the detected corners or the
            tracked ring drawn on it, or None when no plate is currently tracked.

        Raises:
            ModelNotReadyError: Detection was needed but the classifier is not loaded.
        """
        start = time.perf_counter()
        mode = self.mode

        try:
            if mode == TrackingMode.DETECTING:
                return self._detect(frame)
            return self._track(frame)
        finally:
            self.metrics.record_frame((time.perf_counter() - start) * 1000.0,
                                     mode=mode.value, active_points=len(self.last_points))
