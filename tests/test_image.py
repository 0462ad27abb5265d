"""PNG encoding of intensity buffers."""

import numpy as np
import pytest
from PIL import Image
from mandelrender.image import load_image, save_image


def test_save_image_writes_grayscale_png(tmp_path):
    pixels = np.arange(12 * 5, dtype=np.uint8).reshape(5, 12)
    path = save_image(tmp_path / "out.png", pixels)

    with Image.open(path) as image:
        assert image.format == "PNG"
        assert image.mode == "L"
        assert image.size == (12, 5)
    np.testing.assert_array_equal(load_image(path), pixels)


@pytest.mark.parametrize(
    "pixels",
    [np.zeros((3, 4), dtype=np.int32), np.zeros(12, dtype=np.uint8), np.zeros((3, 4, 3), dtype=np.uint8)],
)
def test_save_image_rejects_bad_buffers(tmp_path, pixels):
    with pytest.raises(ValueError):
        save_image(tmp_path / "out.png", pixels)


def test_save_image_missing_directory(tmp_path):
    with pytest.raises(OSError):
        save_image(tmp_path / "missing" / "out.png", np.zeros((2, 2), dtype=np.uint8))
