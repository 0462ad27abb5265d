from __future__ import annotations

from typing import Optional, Tuple

import numpy as np
from numba import njit, prange

from .config import RenderConfig

__all__ = [
    "escape_time",
    "pixel_to_point",
    "intensity",
    "allocate_pixels",
    "chunk_rows",
    "render_rows",
    "render_chunk_into",
    "compute_chunk",
    "render_set",
    "render_set_parallel",
]

ESCAPE_RADIUS_SQ = 4.0


@njit(nogil=True)
def _escape_time(c_re: float, c_im: float, limit: int) -> int:
    # returns ``limit`` when the orbit stays bounded
    z_re = 0.0
    z_im = 0.0
    for i in range(limit):
        if z_re * z_re + z_im * z_im > ESCAPE_RADIUS_SQ:
            return i
        new_re = (z_re * z_re - z_im * z_im) + c_re
        z_im = 2.0 * z_re * z_im + c_im
        z_re = new_re
    return limit


@njit(nogil=True)
def _pixel_to_point(
    width: int,
    height: int,
    col: int,
    row: int,
    ul_re: float,
    ul_im: float,
    lr_re: float,
    lr_im: float,
) -> Tuple[float, float]:
    span_re = lr_re - ul_re
    span_im = ul_im - lr_im
    return ul_re + col * span_re / width, ul_im - row * span_im / height


@njit(nogil=True)
def _intensity(time: int, limit: int) -> int:
    if time >= limit:
        return 0
    return 255 - time


@njit(nogil=True)
def _render_rows_into(
    out: np.ndarray,
    start_row: int,
    width: int,
    height: int,
    ul_re: float,
    ul_im: float,
    lr_re: float,
    lr_im: float,
    limit: int,
) -> None:
    for local_row in range(out.shape[0]):
        row = start_row + local_row
        for col in range(width):
            c_re, c_im = _pixel_to_point(width, height, col, row, ul_re, ul_im, lr_re, lr_im)
            out[local_row, col] = _intensity(_escape_time(c_re, c_im, limit), limit)


@njit(parallel=True)
def _render_set_parallel(
    out: np.ndarray,
    width: int,
    height: int,
    ul_re: float,
    ul_im: float,
    lr_re: float,
    lr_im: float,
    limit: int,
) -> None:
    for row in prange(height):
        for col in range(width):
            c_re, c_im = _pixel_to_point(width, height, col, row, ul_re, ul_im, lr_re, lr_im)
            out[row, col] = _intensity(_escape_time(c_re, c_im, limit), limit)


def escape_time(c: complex, limit: int) -> Optional[int]:
    """Iteration at which the orbit of ``c`` leaves the radius-2 disc.

    Returns ``None`` if the orbit is still bounded after ``limit`` iterations,
    i.e. ``c`` is taken to belong to the Mandelbrot set.
    """
    time = _escape_time(float(c.real), float(c.imag), int(limit))
    return None if time >= limit else int(time)


def pixel_to_point(
    bounds: Tuple[int, int],
    pixel: Tuple[int, int],
    upper_left: complex,
    lower_right: complex,
) -> complex:
    """Map pixel ``(col, row)`` of a ``(width, height)`` image onto the viewport."""
    re, im = _pixel_to_point(
        bounds[0],
        bounds[1],
        pixel[0],
        pixel[1],
        upper_left.real,
        upper_left.imag,
        lower_right.real,
        lower_right.imag,
    )
    return complex(re, im)


def intensity(result: Optional[int]) -> int:
    """Grayscale value for an escape result: inside is black, fast escapers are bright."""
    if result is None:
        return 0
    return 255 - result


def allocate_pixels(config: RenderConfig) -> np.ndarray:
    return np.zeros((config.height, config.width), dtype=np.uint8)


def chunk_rows(config: RenderConfig, chunk_id: int) -> Tuple[int, int]:
    start_row = min(chunk_id * config.chunk_size, config.height)
    end_row = min(start_row + config.chunk_size, config.height)
    return start_row, end_row


def _kernel_args(config: RenderConfig) -> tuple:
    return (
        config.width,
        config.height,
        float(config.upper_left.real),
        float(config.upper_left.imag),
        float(config.lower_right.real),
        float(config.lower_right.imag),
        config.limit,
    )


def render_rows(config: RenderConfig, start_row: int, end_row: int) -> np.ndarray:
    """Render image rows ``[start_row, end_row)`` into a new block."""
    block = np.zeros((max(end_row - start_row, 0), config.width), dtype=np.uint8)
    _render_rows_into(block, start_row, *_kernel_args(config))
    return block


def render_chunk_into(config: RenderConfig, chunk_id: int, pixels: np.ndarray) -> Tuple[int, int]:
    """Render one chunk straight into its slice of the shared buffer."""
    start, end = chunk_rows(config, chunk_id)
    _render_rows_into(pixels[start:end], start, *_kernel_args(config))
    return start, end


def compute_chunk(config: RenderConfig, chunk_id: int) -> Tuple[int, int, np.ndarray]:
    start, end = chunk_rows(config, chunk_id)
    return start, end, render_rows(config, start, end)


def render_set(config: RenderConfig) -> np.ndarray:
    """Render the whole image sequentially in row-major order."""
    return render_rows(config, 0, config.height)


def render_set_parallel(config: RenderConfig) -> np.ndarray:
    pixels = allocate_pixels(config)
    _render_set_parallel(pixels, *_kernel_args(config))
    return pixels
