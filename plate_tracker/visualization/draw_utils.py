"""
draw_utils.py - Drawing helpers for feature masks, tracked rings and debug views.
"""

import cv2
import numpy as np
from typing import Iterable, Optional, Sequence, Tuple

WHITE = (255, 255, 255, 255)
GREEN = (0, 255, 0, 255)


def _pt(p) -> Tuple[int, int]:
    """Integer pixel position for TrackedPoints, (x, y) pairs or (1, 2) arrays."""
    if hasattr(p, 'x'):
        return (int(round(p.x)), int(round(p.y)))
    p = np.asarray(p).reshape(-1)
    return (int(round(p[0])), int(round(p[1])))


def blank_mask(frame: np.ndarray) -> np.ndarray:
    """Zero RGBA image with the frame's height and width."""
    return np.zeros(frame.shape[:2] + (4,), dtype=np.uint8)


def draw_feature_points(mask: np.ndarray,
                        points: Iterable,
                        radius: int = 3,
                        color: Sequence[int] = WHITE) -> np.ndarray:
    """Draws a filled anti-aliased dot at every selected corner (detection output)."""
    for p in points:
        cv2.circle(mask, _pt(p), radius, tuple(color), -1, cv2.LINE_AA)
    return mask


def draw_tracked_ring(mask: np.ndarray,
                      ring: Sequence,
                      radius: int = 2,
                      thickness: int = 2,
                      color: Sequence[int] = GREEN) -> np.ndarray:
    """
    Draws the tracked ring as a closed loop: a dot per point, anti-aliased
    segments between consecutive points and an 8-connected closing segment
    from the last point back to the first.
    """
    color = tuple(color)
    n = len(ring)
    for i, p in enumerate(ring):
        cv2.circle(mask, _pt(p), radius, color, -1, cv2.LINE_AA)
        if i + 1 < n:
            cv2.line(mask, _pt(p), _pt(ring[i + 1]), color, thickness, cv2.LINE_AA)
        else:
            cv2.line(mask, _pt(p), _pt(ring[0]), color, thickness, cv2.LINE_8)
    return mask


def overlay_mask(frame: np.ndarray, mask: Optional[np.ndarray]) -> np.ndarray:
    """Saturating add of an RGBA mask onto an RGBA frame of the same size."""
    if mask is None:
        return frame.copy()
    return cv2.add(frame, mask)


def draw_tracking_info(frame: np.ndarray,
                       frame_idx: int,
                       mode: str,
                       num_points: int,
                       latency_ms: float) -> None:
    """Draws tracking info (frame index, mode, point count, latency) in the top-left corner."""
    y_offset = 30
    for text in [f"Frame: {frame_idx}", f"Mode: {mode}",
                 f"Points: {num_points}", f"Latency: {latency_ms:.1f}ms"]:
        cv2.putText(frame, text, (10, y_offset),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, (255, 255, 255, 255), 2)
        y_offset += 25


def draw_quad_outline(frame: np.ndarray,
                      corners: np.ndarray,
                      color: Sequence[int] = GREEN,
                      thickness: int = 2) -> None:
    """Draws the plate quadrilateral (TL, TR, BR, BL) with corner labels."""
    cv2.polylines(frame, [np.asarray(corners).reshape(-1, 1, 2).astype(np.int32)],
                  isClosed=True, color=tuple(color), thickness=thickness)
    for label, corner in zip(['TL', 'TR', 'BR', 'BL'], np.asarray(corners).reshape(-1, 2)):
        pt = _pt(corner)
        cv2.putText(frame, label, (pt[0] + 6, pt[1] - 6),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.5, tuple(color), 1, cv2.LINE_AA)
