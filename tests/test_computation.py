"""Escape-time evaluator, coordinate mapping and intensity buffer."""

from dataclasses import replace

import numpy as np
import pytest
from mandelrender.computation import (
    allocate_pixels,
    chunk_rows,
    compute_chunk,
    escape_time,
    intensity,
    pixel_to_point,
    render_chunk_into,
    render_set,
    render_set_parallel,
)
from mandelrender.config import MAX_LIMIT, default_render_config


@pytest.mark.parametrize(
    "c, limit, expected",
    [
        (0j, 10, None),
        (0.25 + 0j, 10, None),
        (0.5 + 0j, 10, 5),
        (1.0 + 0j, 10, 3),
        (0.25j, 10, None),
        (0.5j, 10, None),
        (1j, 10, None),
        (2.0 + 0j, 255, 2),
        (-0.75 + 0.1j, 255, 33),
        (-1.2 + 0.35j, 255, 9),
    ],
)
def test_escape_time(c, limit, expected):
    assert escape_time(c, limit) == expected


@pytest.mark.parametrize("c", [0j, -1 + 0j, -0.5 + 0j, -0.1 + 0.1j, -1.25 + 0j, -2 + 0j, 1j, 0.5j])
def test_points_in_the_set_never_escape(c):
    assert escape_time(c, 255) is None


@pytest.mark.parametrize("c", [3 + 0j, -2.5j, 2.1 + 0.1j, -2.01 + 0j, 10 + 10j])
def test_points_outside_radius_two_escape_after_first_step(c):
    # z0 = 0 never escapes, so |c| > 2 is caught by the second check
    assert escape_time(c, 255) == 1


def test_escape_time_limit_bounds_result():
    assert escape_time(0.5 + 0j, 5) is None
    assert escape_time(0.5 + 0j, 6) == 5
    assert escape_time(3 + 0j, 1) is None


def test_pixel_to_point():
    assert pixel_to_point((100, 200), (25, 175), complex(-1.0, 1.0), complex(1.0, -1.0)) == complex(-0.5, -0.75)


def test_pixel_to_point_corners():
    upper_left, lower_right = complex(-1.20, 0.35), complex(-1.00, 0.20)
    bounds = (100, 75)
    step_re = (lower_right.real - upper_left.real) / bounds[0]
    step_im = (upper_left.imag - lower_right.imag) / bounds[1]

    assert pixel_to_point(bounds, (0, 0), upper_left, lower_right) == upper_left

    last = pixel_to_point(bounds, (99, 74), upper_left, lower_right)
    assert abs(last.real - lower_right.real) <= step_re + 1e-12
    assert abs(last.imag - lower_right.imag) <= step_im + 1e-12
    assert last.real < lower_right.real
    assert last.imag > lower_right.imag


def test_intensity_mapping():
    assert intensity(None) == 0
    assert intensity(0) == 255
    assert intensity(9) == 246
    assert intensity(254) == 1


@pytest.fixture
def e2e_config():
    return default_render_config(output="mandel.png", image_size="100x75", chunk_size=8)


def test_render_set_shape_and_corner(e2e_config):
    pixels = render_set(e2e_config)

    assert pixels.shape == (75, 100)
    assert pixels.dtype == np.uint8
    assert pixels.size == 7500
    assert len(pixels.tobytes()) == 7500
    assert pixels[0, 0] == 255 - 9


def test_render_matches_pointwise_evaluation(e2e_config):
    pixels = render_set(e2e_config)
    for col, row in [(0, 0), (99, 0), (0, 74), (99, 74), (50, 37), (13, 61)]:
        c = pixel_to_point(e2e_config.bounds, (col, row), e2e_config.upper_left, e2e_config.lower_right)
        assert pixels[row, col] == intensity(escape_time(c, e2e_config.limit))


def test_render_is_deterministic(e2e_config):
    first = render_set(e2e_config)
    second = render_set(e2e_config)
    assert first.tobytes() == second.tobytes()


def test_output_name_does_not_change_buffer(e2e_config):
    other = replace(e2e_config, output="elsewhere.png")
    assert render_set(e2e_config).tobytes() == render_set(other).tobytes()


def test_parallel_kernel_matches_serial(e2e_config):
    np.testing.assert_array_equal(render_set_parallel(e2e_config), render_set(e2e_config))


def test_chunk_rows_cover_image_without_overlap(e2e_config):
    rows = [chunk_rows(e2e_config, cid) for cid in range(e2e_config.total_chunks)]
    assert rows[0][0] == 0
    assert rows[-1][1] == e2e_config.height
    for (_, end), (start, _) in zip(rows, rows[1:]):
        assert end == start
    assert chunk_rows(e2e_config, e2e_config.total_chunks) == (75, 75)


def test_chunks_assemble_full_image(e2e_config):
    expected = render_set(e2e_config)

    assembled = allocate_pixels(e2e_config)
    for cid in range(e2e_config.total_chunks):
        start, end, block = compute_chunk(e2e_config, cid)
        assembled[start:end] = block
    np.testing.assert_array_equal(assembled, expected)

    in_place = allocate_pixels(e2e_config)
    for cid in reversed(range(e2e_config.total_chunks)):
        render_chunk_into(e2e_config, cid, in_place)
    np.testing.assert_array_equal(in_place, expected)


def test_only_bounded_points_are_black_at_the_largest_limit():
    config = default_render_config(
        image_size="60x40", upper_left=complex(-2.2, 1.2), lower_right=complex(0.8, -1.2), limit=MAX_LIMIT
    )
    pixels = render_set(config)
    for row in range(config.height):
        for col in range(config.width):
            c = pixel_to_point(config.bounds, (col, row), config.upper_left, config.lower_right)
            assert (pixels[row, col] == 0) == (escape_time(c, config.limit) is None)
