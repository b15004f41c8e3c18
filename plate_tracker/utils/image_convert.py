"""
image_convert.py - Conversions between raw pixel buffers, pipeline frames and RGBA output.

Frames travel through the pipeline as RGBA ``uint8`` arrays of shape (H, W, 4).
"""

import cv2
import numpy as np
from typing import Union


BufferLike = Union[bytes, bytearray, memoryview, np.ndarray]


def frame_from_buffer(buffer: BufferLike, width: int, height: int,
                      channels: int = 4) -> np.ndarray:
    """
    Wrap a raw interleaved 8-bit pixel buffer as an (H, W, C) array.

    The result is a private copy, so later writes into ``buffer`` by the caller
    do not leak into a frame that is being processed.

    Raises:
        ValueError: If the buffer size does not match width * height * channels.
    """
    if width <= 0 or height <= 0 or channels not in (1, 3, 4):
        raise ValueError(f"Invalid frame geometry: {width}x{height}x{channels}")

    data = np.frombuffer(buffer, dtype=np.uint8) if not isinstance(buffer, np.ndarray) \
        else buffer.astype(np.uint8, copy=False).reshape(-1)

    expected = width * height * channels
    if data.size != expected:
        raise ValueError(f"Buffer holds {data.size} bytes, expected {expected} "
                         f"for a {width}x{height}x{channels} frame")

    shape = (height, width) if channels == 1 else (height, width, channels)
    return data.reshape(shape).copy()


def to_gray(image: np.ndarray) -> np.ndarray:
    """Convert an RGBA, RGB or already-gray image to single-channel gray."""
    if image.ndim == 2:
        return image
    channels = image.shape[2]
    if channels == 4:
        return cv2.cvtColor(image, cv2.COLOR_RGBA2GRAY)
    if channels == 3:
        return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
    if channels == 1:
        return image[:, :, 0]
    raise ValueError(f"Unsupported number of channels: {channels}")


def to_rgba(mat: np.ndarray) -> np.ndarray:
    """
    Convert any 1/3/4-channel image to an 8-bit RGBA array.

    Depth scaling follows the usual display convention: 8-bit data is kept,
    16/32-bit integers are divided by 256 and floats are multiplied by 255.
    Signed 8/16-bit data is shifted by 128 so that zero maps to mid-gray.

    Raises:
        ValueError: For images that do not have 1, 3 or 4 channels.
    """
    depth = mat.dtype
    if depth in (np.uint8, np.int8):
        scale = 1.0
    elif depth in (np.uint16, np.int16, np.int32):
        scale = 1.0 / 256.0
    else:
        scale = 255.0
    shift = 128.0 if depth in (np.int8, np.int16) else 0.0

    if depth == np.uint8:
        img = mat.copy()
    else:
        img = np.clip(np.rint(mat.astype(np.float64) * scale + shift), 0, 255).astype(np.uint8)

    channels = 1 if img.ndim == 2 else img.shape[2]
    if channels == 1:
        return cv2.cvtColor(img.reshape(img.shape[:2]), cv2.COLOR_GRAY2RGBA)
    if channels == 3:
        return cv2.cvtColor(img, cv2.COLOR_RGB2RGBA)
    if channels == 4:
        return img
    raise ValueError("Bad number of channels (source image must have 1, 3 or 4 channels)")
