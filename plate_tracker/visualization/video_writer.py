"""
video_writer.py - Annotated output video for offline tracking runs.

The pipeline works on RGBA frames; OpenCV writes BGR. The writer accepts either
and converts on the way out.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np

log = logging.getLogger(__name__)


class VideoWriterManager:
    """
    cv2.VideoWriter with lazy opening and codec fallback.

    The output size is taken from the first frame unless given up front. When
    the preferred FourCC cannot be opened, the fallbacks are tried in order.

        with VideoWriterManager("out.mp4", fps=25) as writer:
            writer.write(rgba_frame)
    """

    FALLBACK_CODECS = ('mp4v', 'avc1', 'XVID', 'MJPG')

    def __init__(self,
                 output_path: str,
                 fps: float = 30.0,
                 frame_size: Optional[Tuple[int, int]] = None,
                 codec: str = 'mp4v'):
        """
        Args:
            output_path: Destination file; parent directories are created.
            fps:         Output frame rate.
            frame_size:  (width, height), or None to use the first frame's size.
            codec:       Preferred FourCC.
        """
        self.output_path = Path(output_path)
        self.fps         = fps
        self.frame_size  = frame_size
        self.codec       = codec

        self.output_path.parent.mkdir(parents=True, exist_ok=True)

        self._writer: Optional[cv2.VideoWriter] = None
        self.frames_written = 0

        if frame_size is not None:
            self._open(frame_size)

    @property
    def is_open(self) -> bool:
        return self._writer is not None

    def _open(self, frame_size: Tuple[int, int]) -> None:
        """
        Raises:
            RuntimeError: If none of the codecs can be opened.
        """
        candidates = [self.codec] + [c for c in self.FALLBACK_CODECS if c != self.codec]

        for codec in candidates:
            writer = cv2.VideoWriter(str(self.output_path),
                                     cv2.VideoWriter_fourcc(*codec),
                                     self.fps, frame_size)
            if writer.isOpened():
                self._writer = writer
                self.frame_size = frame_size
                log.info(f"Writing {self.output_path} [{codec}, {self.fps:.1f} fps, {frame_size}]")
                return
            writer.release()
            log.debug(f"Codec {codec} unavailable for {self.output_path}")

        raise RuntimeError(f"Could not open a video writer for {self.output_path} "
                           f"(tried {candidates}, size={frame_size})")

    @staticmethod
    def _to_bgr(frame: np.ndarray) -> np.ndarray:
        if frame.ndim == 2:
            return cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
        if frame.shape[2] == 4:
            return cv2.cvtColor(frame, cv2.COLOR_RGBA2BGR)
        return frame

    def write(self, frame: np.ndarray) -> None:
        """Append one frame; 4-channel frames are RGBA, 3-channel ones BGR."""
        if frame is None:
            return
        if self._writer is None:
            h, w = frame.shape[:2]
            self._open((w, h))
        self._writer.write(self._to_bgr(frame))
        self.frames_written += 1

    def release(self) -> None:
        if self._writer is not None:
            self._writer.release()
            self._writer = None
            log.info(f"Saved {self.output_path} ({self.frames_written} frames)")

    def __enter__(self):
        return self

    def __exit__(self, *_):
        self.release()
