"""
perspective.py

Texture mapping of an image onto an arbitrary quadrilateral.

The destination quadrilateral is cut into a ``subdivisions x subdivisions`` grid
of cells, each split into two triangles. Every triangle carries three screen
positions and the three matching texture coordinates in the source image. A
single affine transform is exact for a triangle, so drawing the source image
through each triangle's transform, clipped to that triangle, approximates the
perspective warp of the whole quadrilateral; finer grids approximate it better.

Adjacent triangles are drawn with small fixed vertex offsets (SEAM_OFFSETS) so
that rounding at shared edges does not leave visible cracks.
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np


@dataclass
class Point:
    """A screen position in device pixels."""
    x: float = 0.0
    y: float = 0.0


@dataclass
class TexCoord:
    """A position in the source image, in pixels."""
    u: float = 0.0
    v: float = 0.0


@dataclass
class Triangle:
    """Three screen vertices and their texture coordinates."""
    p0: Point
    p1: Point
    p2: Point
    t0: TexCoord
    t1: TexCoord
    t2: TexCoord


# Per-vertex (dx, dy) nudges. The first triangle of a cell is
# (top-left, bottom-right, bottom-left), the second (top-left, top-right, bottom-right).
SEAM_OFFSETS = (
    ((-1, 0), (2, 1), (-1, 1)),
    ((-2, 0), (1, 0), (1, 1)),
)
NO_OFFSETS = (
    ((0, 0), (0, 0), (0, 0)),
    ((0, 0), (0, 0), (0, 0)),
)


def _as_point(p) -> Point:
    if isinstance(p, Point):
        return p
    p = np.asarray(p, dtype=np.float64).reshape(-1)
    return Point(float(p[0]), float(p[1]))


def _lerp(a: Tuple[float, float], b: Tuple[float, float], t: float) -> Tuple[float, float]:
    return (a[0] + (b[0] - a[0]) * t, a[1] + (b[1] - a[1]) * t)


# ----------------------------------------------------------------------
# Geometry
# ----------------------------------------------------------------------

def calculate_geometry(image_size: Tuple[int, int],
                       top_left, top_right, bottom_right, bottom_left,
                       subdivisions: int = 9,
                       seam_offsets: bool = True) -> List[Triangle]:
    """
    Subdivide a destination quadrilateral into textured triangles.

    Rows are interpolated along the left (TL→BL) and right (TR→BR) edges, then
    columns along each row, so the grid follows the quadrilateral's shape.

    Args:
        image_size:   (width, height) of the source image.
        top_left, top_right, bottom_right, bottom_left:
                      Destination corners as Points or (x, y) pairs.
        subdivisions: Cells per side.
        seam_offsets: Apply SEAM_OFFSETS to the screen vertices.

    Returns:
        2 * subdivisions**2 triangles, row by row.
    """
    img_w, img_h = image_size
    tl, tr = _as_point(top_left), _as_point(top_right)
    br, bl = _as_point(bottom_right), _as_point(bottom_left)
    offsets = SEAM_OFFSETS if seam_offsets else NO_OFFSETS

    def shifted(p: Tuple[float, float], offset: Tuple[int, int]) -> Point:
        return Point(p[0] + offset[0], p[1] + offset[1])

    triangles = []
    for row in range(subdivisions):
        cur_row  = row / subdivisions
        next_row = (row + 1) / subdivisions

        cur_left   = _lerp((tl.x, tl.y), (bl.x, bl.y), cur_row)
        cur_right  = _lerp((tr.x, tr.y), (br.x, br.y), cur_row)
        next_left  = _lerp((tl.x, tl.y), (bl.x, bl.y), next_row)
        next_right = _lerp((tr.x, tr.y), (br.x, br.y), next_row)

        for col in range(subdivisions):
            cur_col  = col / subdivisions
            next_col = (col + 1) / subdivisions

            cell_tl = _lerp(cur_left,  cur_right,  cur_col)
            cell_tr = _lerp(cur_left,  cur_right,  next_col)
            cell_br = _lerp(next_left, next_right, next_col)
            cell_bl = _lerp(next_left, next_right, cur_col)

            u1, u2 = cur_col * img_w, next_col * img_w
            v1, v2 = cur_row * img_h, next_row * img_h

            first, second = offsets
            triangles.append(Triangle(
                shifted(cell_tl, first[0]), shifted(cell_br, first[1]), shifted(cell_bl, first[2]),
                TexCoord(u1, v1), TexCoord(u2, v2), TexCoord(u1, v2),
            ))
            triangles.append(Triangle(
                shifted(cell_tl, second[0]), shifted(cell_tr, second[1]), shifted(cell_br, second[2]),
                TexCoord(u1, v1), TexCoord(u2, v1), TexCoord(u2, v2),
            ))

    return triangles


def triangle_affine(tri: Triangle) -> Optional[np.ndarray]:
    """
    Affine transform taking the triangle's texture coordinates to its screen
    vertices.

    Returns:
        2x3 float64 matrix [[a, c, e], [b, d, f]] with x' = a*u + c*v + e and
        y' = b*u + d*v + f, or None when the texture triangle is degenerate
        (zero determinant).
    """
    x0, y0 = tri.p0.x, tri.p0.y
    x1, y1 = tri.p1.x, tri.p1.y
    x2, y2 = tri.p2.x, tri.p2.y
    sx0, sy0 = tri.t0.u, tri.t0.v
    sx1, sy1 = tri.t1.u, tri.t1.v
    sx2, sy2 = tri.t2.u, tri.t2.v

    denom = sx0 * (sy2 - sy1) - sx1 * sy2 + sx2 * sy1 + (sx1 - sx2) * sy0
    if denom == 0:
        return None

    m11 = -(sy0 * (x2 - x1) - sy1 * x2 + sy2 * x1 + (sy1 - sy2) * x0) / denom
    m12 = (sy1 * y2 + sy0 * (y1 - y2) - sy2 * y1 + (sy2 - sy1) * y0) / denom
    m21 = (sx0 * (x2 - x1) - sx1 * x2 + sx2 * x1 + (sx1 - sx2) * x0) / denom
    m22 = -(sx1 * y2 + sx0 * (y1 - y2) - sx2 * y1 + (sx2 - sx1) * y0) / denom
    dx = (sx0 * (sy2 * x1 - sy1 * x2) + sy0 * (sx1 * x2 - sx2 * x1)
          + (sx2 * sy1 - sx1 * sy2) * x0) / denom
    dy = (sx0 * (sy2 * y1 - sy1 * y2) + sy0 * (sx1 * y2 - sx2 * y1)
          + (sx2 * sy1 - sx1 * sy2) * y0) / denom

    return np.array([[m11, m21, dx],
                     [m12, m22, dy]], dtype=np.float64)


# ----------------------------------------------------------------------
# Drawing
# ----------------------------------------------------------------------

def draw_triangle(canvas: np.ndarray, image: np.ndarray, tri: Triangle) -> bool:
    """
    Draw ``image`` through the triangle's affine transform, clipped to the
    triangle, directly into ``canvas``.

    Only the triangle's bounding box is warped. Pixels the seam offsets push
    just outside the source image take the colour of the nearest edge pixel.

    Returns:
        False if the triangle was skipped (degenerate transform or entirely
        off-canvas), True otherwise.
    """
    matrix = triangle_affine(tri)
    if matrix is None:
        return False

    canvas_h, canvas_w = canvas.shape[:2]
    pts = np.array([[tri.p0.x, tri.p0.y], [tri.p1.x, tri.p1.y], [tri.p2.x, tri.p2.y]],
                   dtype=np.float64)

    x0 = max(0, int(math.floor(pts[:, 0].min())))
    y0 = max(0, int(math.floor(pts[:, 1].min())))
    x1 = min(canvas_w, int(math.ceil(pts[:, 0].max())) + 1)
    y1 = min(canvas_h, int(math.ceil(pts[:, 1].max())) + 1)
    if x1 <= x0 or y1 <= y0:
        return False

    # Work in the bounding box's local frame.
    local = matrix.copy()
    local[0, 2] -= x0
    local[1, 2] -= y0

    region = canvas[y0:y1, x0:x1]
    warped = cv2.warpAffine(image, local, (x1 - x0, y1 - y0),
                            flags=cv2.INTER_LINEAR, borderMode=cv2.BORDER_REPLICATE)

    # 4 fractional bits keep sub-pixel vertex positions in the clip polygon.
    clip = np.zeros((y1 - y0, x1 - x0), dtype=np.uint8)
    local_pts = np.round((pts - (x0, y0)) * 16).astype(np.int32)
    cv2.fillConvexPoly(clip, local_pts, 255, lineType=cv2.LINE_8, shift=4)

    inside = clip > 0
    region[inside] = warped[inside]
    return True


def draw_wireframe(canvas: np.ndarray, tri: Triangle,
                   color: Sequence[int] = (0, 255, 0, 255)) -> None:
    pts = np.array([[tri.p0.x, tri.p0.y], [tri.p1.x, tri.p1.y], [tri.p2.x, tri.p2.y]])
    cv2.polylines(canvas, [np.round(pts).astype(np.int32).reshape(-1, 1, 2)],
                  isClosed=True, color=tuple(color), thickness=1)


def draw_stretched(canvas: np.ndarray, image: Optional[np.ndarray],
                   triangles: Sequence[Triangle], wireframe: bool = False) -> int:
    """
    Draw every triangle; returns how many were actually drawn.
    """
    drawn = 0
    for tri in triangles:
        if wireframe:
            draw_wireframe(canvas, tri)
        if image is not None and draw_triangle(canvas, image, tri):
            drawn += 1
    return drawn


def render_quad(canvas: np.ndarray, image: np.ndarray, corners,
                subdivisions: int = 9, seam_offsets: bool = True,
                wireframe: bool = False) -> None:
    """
    Texture-map ``image`` onto the quadrilateral ``corners`` of ``canvas``.

    Args:
        canvas:  Target image, modified in place. Must have the same number of
                 channels as ``image``.
        image:   Source image.
        corners: (top_left, top_right, bottom_right, bottom_left) in canvas pixels.
        subdivisions, seam_offsets: See ``calculate_geometry``.
        wireframe: Also outline every triangle.

    Raises:
        ValueError: On a channel mismatch or when ``corners`` does not hold four points.
    """
    canvas_channels = 1 if canvas.ndim == 2 else canvas.shape[2]
    image_channels  = 1 if image.ndim == 2 else image.shape[2]
    if canvas_channels != image_channels:
        raise ValueError(f"Canvas has {canvas_channels} channels, image has {image_channels}")

    corners = np.asarray(corners, dtype=np.float64).reshape(-1, 2)
    if len(corners) != 4:
        raise ValueError(f"Expected 4 corners, got {len(corners)}")

    img_h, img_w = image.shape[:2]
    triangles = calculate_geometry((img_w, img_h), *corners,
                                   subdivisions=subdivisions, seam_offsets=seam_offsets)
    draw_stretched(canvas, image, triangles, wireframe=wireframe)


def order_corners(points) -> np.ndarray:
    """
    Reorder four unordered points into [top-left, top-right, bottom-right, bottom-left].

    Points above the centroid form the top pair, the rest the bottom pair, each
    pair sorted by x. When the split is not two-and-two (strongly rotated
    quadrilateral) the points are ordered by angle around the centroid instead,
    starting from the top-left quadrant.

    Returns:
        (4, 2) float32 array.
    """
    corners = np.asarray(points, dtype=np.float32).reshape(-1, 2)
    if len(corners) != 4:
        raise ValueError(f"Expected 4 points, got {len(corners)}")

    center = corners.mean(axis=0)
    top_mask = corners[:, 1] < center[1]

    if top_mask.sum() == 2:
        top = corners[top_mask]
        bottom = corners[~top_mask]
        top_left, top_right = top[np.argsort(top[:, 0])]
        bottom_left, bottom_right = bottom[np.argsort(bottom[:, 0])]
        return np.array([top_left, top_right, bottom_right, bottom_left], dtype=np.float32)

    # atan2 with y down: -pi..pi, top-left quadrant around -3pi/4.
    angles = np.arctan2(corners[:, 1] - center[1], corners[:, 0] - center[0])
    order = np.argsort((angles + 3 * np.pi / 4) % (2 * np.pi))
    return corners[order].astype(np.float32)
