"""
shape_classifier.py

License-plate localisation with an OpenCV Haar cascade.

The cascade is a trained sliding-window detector: ``detectMultiScale`` scans the
frame at a pyramid of scales (ratio ``scale_factor`` between levels) and keeps
windows confirmed by at least ``min_neighbors`` overlapping hits. The first
rectangle it returns is taken as the plate candidate.

The classifier asset is loaded once with ``load()`` before any call to
``detect()``; detecting with no model loaded is a programming error and fails
immediately with ModelNotReadyError.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

import cv2
import numpy as np

from plate_tracker.exceptions import ClassifierLoadError, ModelNotReadyError
from plate_tracker.utils.image_convert import to_gray

log = logging.getLogger(__name__)

Rect = Tuple[int, int, int, int]

# Plate cascade shipped in opencv-python's data directory.
DEFAULT_CASCADE_NAME = 'haarcascade_russian_plate_number.xml'


def default_cascade_path() -> str:
    """
    Path of the plate cascade bundled with the installed OpenCV.

    Raises:
        ClassifierLoadError: If this OpenCV build ships no cascade data directory.
    """
    data = getattr(cv2, "data", None)
    if data is None or not hasattr(data, "haarcascades"):
        raise ClassifierLoadError(f"OpenCV {cv2.__version__} ships no cascade data",
                                  path=DEFAULT_CASCADE_NAME)
    return str(Path(data.haarcascades) / DEFAULT_CASCADE_NAME)


class ShapeClassifier:
    """
    Wraps a ``cv2.CascadeClassifier`` trained on number plates.

    Detection is read-only on the frame: the frame is converted to gray into a
    new buffer and never modified.
    """

    def __init__(self, config: Dict):
        """
        Args:
            config: Full configuration dict. Relevant sub-key: ``classifier``,
                    which may contain:
                      cascade_path  (str)   – cascade XML, null for the bundled one
                      scale_factor  (float) – pyramid scale step (default 1.5)
                      min_neighbors (int)   – confirmations per window (default 3)
        """
        cfg = config.get('classifier', {})

        self.cascade_path  = cfg.get('cascade_path') or None
        self.scale_factor  = cfg.get('scale_factor', 1.5)
        self.min_neighbors = cfg.get('min_neighbors', 3)

        self._classifier: Optional[cv2.CascadeClassifier] = None

    @property
    def is_ready(self) -> bool:
        return self._classifier is not None

    def load(self, path: Optional[str] = None) -> str:
        """
        Load the cascade asset.

        Args:
            path: Cascade XML file. Falls back to the configured path, then to
                  the cascade bundled with OpenCV.

        Returns:
            The path that was loaded.

        Raises:
            ClassifierLoadError: If the file is missing or is not a valid cascade, or
                                 if the installed OpenCV cannot build a classifier.
        """
        cascade_path = path or self.cascade_path or default_cascade_path()

        if not Path(cascade_path).is_file():
            raise ClassifierLoadError(f"Cascade file not found: {cascade_path}", path=cascade_path)

        try:
            classifier = cv2.CascadeClassifier()
        except (AttributeError, cv2.error) as e:
            raise ClassifierLoadError(f"OpenCV {cv2.__version__} cannot build a cascade classifier: {e}",
                                      path=cascade_path) from e

        try:
            loaded = classifier.load(cascade_path)
        except cv2.error as e:
            raise ClassifierLoadError(f"Malformed cascade file {cascade_path}: {e}",
                                      path=cascade_path) from e

        if not loaded or classifier.empty():
            raise ClassifierLoadError(f"Could not load cascade classifier: {cascade_path}",
                                      path=cascade_path)

        self._classifier = classifier
        log.info(f"Cascade classifier loaded: {cascade_path}")
        return cascade_path

    def detect(self, frame: np.ndarray) -> Optional[Rect]:
        """
        Find the plate candidate in a frame.

        Args:
            frame: RGBA (or RGB / gray) uint8 image.

        Returns:
            (x, y, width, height) of the first candidate, or None if the cascade
            found nothing.

        Raises:
            ModelNotReadyError: If ``load()`` has not completed successfully.
        """
        if self._classifier is None:
            raise ModelNotReadyError("Cascade classifier not loaded; call load() before detect()")

        detections = self._classifier.detectMultiScale(
            to_gray(frame),
            scaleFactor=self.scale_factor,
            minNeighbors=self.min_neighbors,
        )

        if len(detections) == 0:
            return None

        x, y, w, h = detections[0]
        return (int(x), int(y), int(w), int(h))
