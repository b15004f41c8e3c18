"""
Rendering module - Texture mapping of an image onto a tracked quadrilateral.
"""

from .perspective import (
    Point,
    TexCoord,
    Triangle,
    calculate_geometry,
    draw_stretched,
    draw_triangle,
    order_corners,
    render_quad,
    triangle_affine,
)

__all__ = [
    'Point',
    'TexCoord',
    'Triangle',
    'calculate_geometry',
    'draw_stretched',
    'draw_triangle',
    'order_corners',
    'render_quad',
    'triangle_affine',
]
