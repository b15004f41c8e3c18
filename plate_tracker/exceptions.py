"""Custom exception classes for plate_tracker."""

from typing import Optional


class PlateTrackerError(Exception):
    """Base exception for all plate_tracker errors."""

    pass


class DetectionError(PlateTrackerError):
    """Base exception for detection-related errors."""

    pass


class ModelNotReadyError(DetectionError):
    """Raised when detection is requested before the cascade classifier is loaded."""

    pass


class ClassifierLoadError(DetectionError):
    """Raised when the cascade classifier asset cannot be read."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class WorkerError(PlateTrackerError):
    """Base exception for the background worker protocol."""

    pass


class WorkerNotInitializedError(WorkerError):
    """Raised when a request is submitted before initialize()."""

    pass


class WorkerBusyError(WorkerError):
    """Raised when a frame is submitted while the previous one is still in flight."""

    pass


class WorkerTimeoutError(WorkerError):
    """Raised when a request does not complete within the allowed time."""

    def __init__(self, message: str, timeout_s: Optional[float] = None):
        self.timeout_s = timeout_s
        super().__init__(message)
