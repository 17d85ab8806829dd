"""Exponential blur applied in place to an 8-bit coverage bitmap."""

from __future__ import annotations

import math

APREC = 16
ZPREC = 7


def blur_alpha(radius: float) -> int:
    """Return the fixed-point filter weight for a blur of the given radius.

    The weight is chosen so that about 90% of the kernel lies within the radius.
    """
    sigma = radius * 0.57735  # 1 / sqrt(3)
    return int((1 << APREC) * (1.0 - math.exp(-2.3 / (sigma + 1.0))))


def _smooth(data: bytearray, indices: range, alpha: int) -> None:
    """Run the filter forwards then backwards along one line, zeroing its ends."""
    z = 0
    for i in indices[1:]:
        z += (alpha * ((data[i] << ZPREC) - z)) >> APREC
        data[i] = (z >> ZPREC) & 0xFF
    data[indices[-1]] = 0
    z = 0
    for i in reversed(indices[:-1]):
        z += (alpha * ((data[i] << ZPREC) - z)) >> APREC
        data[i] = (z >> ZPREC) & 0xFF
    data[indices[0]] = 0


def _blur_columns(data: bytearray, offset: int, width: int, height: int, stride: int, alpha: int) -> None:
    for x in range(width):
        start = offset + x
        _smooth(data, range(start, start + height * stride, stride), alpha)


def _blur_rows(data: bytearray, offset: int, width: int, height: int, stride: int, alpha: int) -> None:
    for y in range(height):
        start = offset + y * stride
        _smooth(data, range(start, start + width), alpha)


def blur(data: bytearray, offset: int, width: int, height: int, stride: int, radius: float) -> None:
    """Blur a width x height region of ``data`` starting at ``offset`` in place.

    Rows are ``stride`` bytes apart. A radius below 1 leaves the data unchanged.
    The outermost pixels of the region are always cleared.
    """
    if radius < 1 or width <= 0 or height <= 0:
        return
    if offset < 0 or width > stride or offset + (height - 1) * stride + width > len(data):
        raise ValueError("blur region lies outside the buffer")
    alpha = blur_alpha(radius)
    _blur_columns(data, offset, width, height, stride, alpha)
    _blur_rows(data, offset, width, height, stride, alpha)
    _blur_columns(data, offset, width, height, stride, alpha)
    _blur_rows(data, offset, width, height, stride, alpha)