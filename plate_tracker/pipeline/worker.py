"""
worker.py

Asynchronous client around the frame pipeline.

All OpenCV work runs on one dedicated worker thread, which owns the
FrameOrchestrator and therefore the only TrackState. Every public operation
returns a ``concurrent.futures.Future`` so the caller's display loop is never
blocked; ``wait()`` turns a future into a result with a timeout.

Protocol
--------
1. ``initialize()``             – start the worker and build the pipeline.
2. ``load_classifier_asset()``  – load the cascade once (may take a while).
3. ``process_frame(frame, tag)`` – one frame at a time; the response carries the
                                  caller's correlation tag back. Raw pixel buffers
                                  go through ``process_buffer()`` instead.

Submitting a frame while the previous one is still in flight raises
WorkerBusyError: there is no queue, the caller waits for each response.
"""

import concurrent.futures
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import cv2
import numpy as np

from plate_tracker.exceptions import WorkerBusyError, WorkerNotInitializedError, WorkerTimeoutError
from plate_tracker.pipeline.orchestrator import FrameOrchestrator
from plate_tracker.tracking.state import TrackingMode
from plate_tracker.utils.config_loader import load_default_config
from plate_tracker.utils.image_convert import BufferLike, frame_from_buffer, to_rgba

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrameResponse:
    """
    Result of one ``process_frame`` request.

    Attributes:
        tag        : correlation tag given with the request
        mask       : RGBA mask, or None when no plate is tracked
        mode       : pipeline mode after this frame
        latency_ms : processing time of this frame on the worker
        points     : detected corners or drawn ring, as (x, y) pairs
    """
    tag:        Any
    mask:       Optional[np.ndarray]
    mode:       TrackingMode
    latency_ms: float
    points:     Tuple[Tuple[float, float], ...] = ()

    @property
    def empty(self) -> bool:
        return self.mask is None


class PlateTrackerWorker:
    """
    Typed client for the single background pipeline worker.

    Supports the context-manager protocol::

        with PlateTrackerWorker(config) as worker:
            worker.wait(worker.initialize())
            worker.wait(worker.load_classifier_asset(), worker.load_timeout_s)
            response = worker.wait(worker.process_frame(frame, tag=0), worker.frame_timeout_s)
    """

    def __init__(self, config: Optional[Dict] = None,
                 orchestrator_factory=FrameOrchestrator):
        """
        Args:
            config: Full configuration dict; the packaged defaults if None.
                    Relevant sub-key: ``worker`` (load_timeout_s, frame_timeout_s).
            orchestrator_factory: Callable building the pipeline from ``config``
                    on the worker thread.
        """
        self.config = config if config is not None else load_default_config()

        worker_cfg = self.config.get('worker', {})
        self.load_timeout_s  = worker_cfg.get('load_timeout_s', 30.0)
        self.frame_timeout_s = worker_cfg.get('frame_timeout_s', 5.0)

        self._orchestrator_factory = orchestrator_factory
        self._executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
        # Only touched from the worker thread.
        self._orchestrator: Optional[FrameOrchestrator] = None

        self._lock = threading.Lock()
        self._in_flight: Optional[concurrent.futures.Future] = None

    # ------------------------------------------------------------------
    # Worker-thread side
    # ------------------------------------------------------------------

    def _initialize(self) -> str:
        if self._orchestrator is not None:
            log.debug("Pipeline already built, keeping the current classifier and track")
            return cv2.__version__
        self._orchestrator = self._orchestrator_factory(self.config)
        log.info(f"Pipeline worker ready (OpenCV {cv2.__version__})")
        return cv2.__version__

    def _load_classifier(self, path: Optional[str]) -> str:
        return self._orchestrator.classifier.load(path)

    def _process(self, frame: np.ndarray, tag: Any) -> FrameResponse:
        mask = self._orchestrator.process_frame(frame)
        return FrameResponse(
            tag=tag,
            mask=mask,
            mode=self._orchestrator.mode,
            latency_ms=self._orchestrator.metrics.last_ms,
            points=tuple(p.as_tuple() for p in self._orchestrator.last_points),
        )

    def _reset(self) -> None:
        self._orchestrator.reset()

    def _stats(self) -> Dict[str, float]:
        return self._orchestrator.metrics.as_dict()

    # ------------------------------------------------------------------
    # Caller side
    # ------------------------------------------------------------------

    def _require_executor(self) -> concurrent.futures.ThreadPoolExecutor:
        if self._executor is None:
            raise WorkerNotInitializedError("Worker not started; call initialize() first")
        return self._executor

    def initialize(self) -> concurrent.futures.Future:
        """
        Start the worker thread and build the pipeline on it.

        Calling it again once the pipeline exists keeps the loaded classifier
        and the active track; the future still resolves to the OpenCV version.
        """
        if self._executor is None:
            self._executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=1, thread_name_prefix='plate-tracker')
        return self._executor.submit(self._initialize)

    def load_classifier_asset(self, path: Optional[str] = None) -> concurrent.futures.Future:
        """
        Load the cascade classifier on the worker.

        The future raises ClassifierLoadError if the asset cannot be read.
        """
        return self._require_executor().submit(self._load_classifier, path)

    def process_frame(self, frame: np.ndarray, tag: Any = None) -> concurrent.futures.Future:
        """
        Submit one frame.

        The frame is copied, so the caller may reuse its buffer immediately.
        The future resolves to a FrameResponse, or raises ModelNotReadyError if
        detection was needed before the classifier was loaded.

        Raises:
            WorkerBusyError: If the previous frame has not completed yet.
        """
        return self._submit_frame(np.array(frame, copy=True), tag)

    def process_buffer(self, buffer: BufferLike, width: int, height: int,
                       channels: int = 4, tag: Any = None) -> concurrent.futures.Future:
        """
        Submit one frame given as a raw interleaved 8-bit pixel buffer.

        Gray and RGB buffers are expanded to RGBA. The buffer is copied, so the
        caller may overwrite it as soon as this returns.

        Raises:
            ValueError: If the buffer does not hold width * height * channels bytes.
            WorkerBusyError: If the previous frame has not completed yet.
        """
        frame = frame_from_buffer(buffer, width, height, channels)
        if channels != 4:
            frame = to_rgba(frame)
        return self._submit_frame(frame, tag)

    def _submit_frame(self, frame: np.ndarray, tag: Any) -> concurrent.futures.Future:
        executor = self._require_executor()
        with self._lock:
            if self._in_flight is not None and not self._in_flight.done():
                raise WorkerBusyError("A frame is already being processed")
            future = executor.submit(self._process, frame, tag)
            self._in_flight = future
        return future

    def reset(self) -> concurrent.futures.Future:
        """Drop the current track; the next frame runs detection."""
        return self._require_executor().submit(self._reset)

    def stats(self) -> concurrent.futures.Future:
        """Latency statistics of the frames processed so far (milliseconds)."""
        return self._require_executor().submit(self._stats)

    @staticmethod
    def wait(future: concurrent.futures.Future, timeout: Optional[float] = None) -> Any:
        """
        Block until ``future`` completes.

        A request that has not started yet is cancelled on timeout; a frame that
        is already running cannot be interrupted and completes in the background.

        Raises:
            WorkerTimeoutError: If the result is not available within ``timeout``.
        """
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise WorkerTimeoutError(f"Request did not complete within {timeout}s",
                                     timeout_s=timeout)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
            log.info("Pipeline worker stopped")

    # Context manager support
    def __enter__(self):
        return self

    def __exit__(self, *_):
        self.shutdown()
