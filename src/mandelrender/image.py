"""PNG output for rendered intensity buffers."""

from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image


def save_image(path: str | Path, pixels: np.ndarray) -> Path:
    """Write a ``(height, width)`` uint8 buffer as an 8-bit grayscale PNG.

    The whole file is encoded and written in one go; errors opening or writing
    ``path`` propagate as ``OSError``.
    """
    if pixels.ndim != 2:
        raise ValueError(f"expected a 2-D pixel buffer, got shape {pixels.shape}")
    if pixels.dtype != np.uint8:
        raise ValueError(f"expected a uint8 pixel buffer, got {pixels.dtype}")

    path = Path(path)
    image = Image.fromarray(np.ascontiguousarray(pixels))
    image.save(path, format="PNG")
    return path


def load_image(path: str | Path) -> np.ndarray:
    """Read a grayscale PNG back into a ``(height, width)`` uint8 array."""
    with Image.open(path) as image:
        return np.asarray(image.convert("L"), dtype=np.uint8)
