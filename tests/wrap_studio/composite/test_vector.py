import logging

import numpy as np
import pytest

from wrap_studio.composite.vector import (
    _generate_rounded_rect,
    bounds,
    draw_curve,
    draw_ellipse,
    draw_polygon,
    draw_polyline,
    draw_rounded_rect,
)

logger = logging.getLogger(__name__)


def test_draw_polygon():
    mask = draw_polygon((40, 40), (10, 10, 30, 10, 30, 30, 10, 30))
    assert mask.shape == (40, 40, 1)
    assert mask.dtype == np.float32
    assert mask[20, 20, 0] == pytest.approx(1.0)
    assert mask[5, 5, 0] == 0.0
    assert mask.max() <= 1.0


def test_draw_polygon_origin():
    mask = draw_polygon((40, 40), (110, 110, 130, 110, 130, 130, 110, 130), origin=(100, 100))
    assert mask[20, 20, 0] == pytest.approx(1.0)
    assert mask[35, 35, 0] == 0.0


def test_draw_polygon_outline_only():
    mask = draw_polygon(
        (40, 40), (10, 10, 30, 10, 30, 30, 10, 30), brush=False, pen_width=2.0
    )
    assert mask[20, 20, 0] == 0.0
    assert mask[20, 10, 0] > 0.4


def test_draw_ellipse():
    mask = draw_ellipse((40, 40), (0, 0, 40, 40))
    assert mask[20, 20, 0] == pytest.approx(1.0)
    assert mask[0, 0, 0] == 0.0
    assert mask[39, 39, 0] == 0.0


def test_draw_rounded_rect():
    square = draw_rounded_rect((40, 40), (0, 0, 40, 40), 0)
    rounded = draw_rounded_rect((40, 40), (0, 0, 40, 40), 10)
    assert square[1, 1, 0] > 0.9
    assert rounded[1, 1, 0] < 0.1
    assert rounded[20, 20, 0] == pytest.approx(1.0)
    assert rounded[1, 20, 0] > 0.9


def test_rounded_rect_radius_is_clamped():
    pill = draw_rounded_rect((40, 20), (0, 0, 40, 20), 100)
    assert pill[10, 20, 0] == pytest.approx(1.0)
    assert pill[1, 1, 0] < 0.1


def test_rounded_rect_path():
    path = list(_generate_rounded_rect(0, 0, 40, 40, 10))
    assert path[:4] == ["M", 10, 0, "C"]
    assert path[-1] == "Z"
    assert (len(path) - 5) % 6 == 0


def test_draw_polyline():
    mask = draw_polyline((60, 40), (10, 20, 50, 20), 4.0)
    assert mask[20, 30, 0] == pytest.approx(1.0)
    assert mask[30, 30, 0] == 0.0
    # Round caps reach past the end points.
    assert mask[20, 9, 0] > 0.0
    assert mask[20, 50, 0] > 0.0


def test_draw_curve():
    segments = [(10, 10, 50, 10, 50, 10)]
    mask = draw_curve((60, 20), (10, 10), segments, 6.0)
    assert mask[10, 30, 0] == pytest.approx(1.0)
    assert mask[18, 30, 0] == 0.0


def test_draw_curve_single_anchor_is_a_dot():
    mask = draw_curve((20, 20), (10, 10), [], 8.0)
    assert mask[10, 10, 0] == pytest.approx(1.0)
    assert mask[0, 0, 0] == 0.0


def test_empty_canvas():
    mask = draw_polygon((0, 10), (0, 0, 1, 0, 1, 1))
    assert mask.shape == (10, 0, 1)


def test_bounds():
    assert bounds((10, 20, 30, 5)) == (10, 5, 30, 20)
    assert bounds((10, 20, 30, 5), 2) == (8, 3, 32, 22)
    assert bounds(()) is None
