"""
metrics.py - Prometheus metrics for the processing pipeline.

Every PipelineMetrics owns its own CollectorRegistry, so several orchestrators
(one per worker, or one per test) never collide on metric names. Pass
``registry=prometheus_client.REGISTRY`` to publish through the process-wide
registry instead, e.g. behind ``prometheus_client.start_http_server``.
"""

import logging
from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

log = logging.getLogger(__name__)

# Frame latencies of interest sit between a few ms and a few hundred ms.
LATENCY_BUCKETS = (0.002, 0.005, 0.01, 0.02, 0.035, 0.05, 0.075, 0.1, 0.25, 0.5, 1.0)


class PipelineMetrics:
    """
    Per-frame latency, frame counts and track health.

    Updated once per processed frame by the orchestrator. Frames slower than
    ``slow_threshold_ms`` are reported at WARNING level, the others at DEBUG.
    """

    def __init__(self, slow_threshold_ms: float = 50.0,
                 registry: Optional[CollectorRegistry] = None):
        self.slow_threshold_ms = slow_threshold_ms
        self.registry = registry if registry is not None else CollectorRegistry()

        self.frame_latency = Histogram(
            "plate_tracker_frame_latency_seconds",
            "Per-frame processing latency",
            ["mode"],
            buckets=LATENCY_BUCKETS,
            registry=self.registry,
        )
        self.frames = Counter(
            "plate_tracker_frames_total",
            "Frames processed, by pipeline mode",
            ["mode"],
            registry=self.registry,
        )
        self.tracking_lost = Counter(
            "plate_tracker_tracking_lost_total",
            "Times the tracker lost the plate and fell back to detection",
            registry=self.registry,
        )
        self.active_points = Gauge(
            "plate_tracker_active_points",
            "Corner points tracked after the last frame",
            registry=self.registry,
        )

        self.last_ms = 0.0
        self.max_ms  = 0.0

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_frame(self, duration_ms: float, mode: str, active_points: int = 0) -> None:
        """
        Record one processed frame.

        Args:
            duration_ms:   Wall time spent on the frame, in milliseconds.
            mode:          Pipeline mode the frame ran in (DETECTING / TRACKING).
            active_points: Points tracked once the frame completed.
        """
        duration_ms = max(duration_ms, 0.0)
        self.last_ms = duration_ms
        self.max_ms  = max(self.max_ms, duration_ms)

        self.frame_latency.labels(mode).observe(duration_ms / 1000.0)
        self.frames.labels(mode).inc()
        self.active_points.set(max(active_points, 0))

        operation = f"process_frame[{mode}]"
        if duration_ms > self.slow_threshold_ms:
            log.warning(f"Slow operation: {operation} took {duration_ms:.2f}ms "
                        f"(threshold: {self.slow_threshold_ms}ms)")
        else:
            log.debug(f"{operation} took {duration_ms:.2f}ms")

    def record_tracking_lost(self) -> None:
        self.tracking_lost.inc()

    # ------------------------------------------------------------------
    # Read-back
    # ------------------------------------------------------------------

    def _latency_total(self, suffix: str) -> float:
        total = 0.0
        for metric in self.frame_latency.collect():
            for sample in metric.samples:
                if sample.name.endswith(suffix):
                    total += sample.value
        return total

    @property
    def count(self) -> int:
        return int(self._latency_total('_count'))

    @property
    def mean_ms(self) -> float:
        count = self.count
        return self._latency_total('_sum') * 1000.0 / count if count else 0.0

    def frames_in_mode(self, mode: str) -> int:
        value = self.registry.get_sample_value("plate_tracker_frames_total", {'mode': mode})
        return int(value or 0)

    @property
    def lost_count(self) -> int:
        return int(self.registry.get_sample_value("plate_tracker_tracking_lost_total") or 0)

    def as_dict(self) -> Dict[str, float]:
        return {
            'count':         self.count,
            'last_ms':       self.last_ms,
            'mean_ms':       self.mean_ms,
            'max_ms':        self.max_ms,
            'tracking_lost': self.lost_count,
        }
