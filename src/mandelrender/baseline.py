"""Baseline Mandelbrot implementation."""

from __future__ import annotations

from typing import List, Optional, Tuple


def escape_time(c: complex, limit: int) -> Optional[int]:
    z_re = 0.0
    z_im = 0.0
    for i in range(limit):
        if z_re * z_re + z_im * z_im > 4.0:
            return i
        new_re = (z_re * z_re - z_im * z_im) + c.real
        z_im = 2.0 * z_re * z_im + c.imag
        z_re = new_re
    return None


def render_set(
    bounds: Tuple[int, int],
    upper_left: complex,
    lower_right: complex,
    limit: int = 255,
) -> List[int]:
    """Row-major intensities for the given viewport, computed in plain Python."""
    width, height = bounds
    span_re = lower_right.real - upper_left.real
    span_im = upper_left.imag - lower_right.imag

    pixels = [0] * (width * height)
    for row in range(height):
        for col in range(width):
            c = complex(
                upper_left.real + col * span_re / width,
                upper_left.imag - row * span_im / height,
            )
            time = escape_time(c, limit)
            pixels[row * width + col] = 0 if time is None else 255 - time
    return pixels
