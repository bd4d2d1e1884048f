import logging

import numpy as np
import pytest

from wrap_studio.api.layers import BrushStroke
from wrap_studio.composite.brush import (
    StrokeCapture,
    control_points,
    feather_radius,
    layer_bbox,
    rasterize_stroke,
    render_bbox,
    render_strokes,
    stroke_bbox,
)
from wrap_studio.errors import ValidationError

logger = logging.getLogger(__name__)

BBOX = (0, 0, 100, 100)


def _stroke(points=(20, 50, 80, 50), **kwargs):
    kwargs.setdefault("color", "#ff0000")
    kwargs.setdefault("size", 20)
    return BrushStroke(points=points, **kwargs)


@pytest.mark.parametrize(
    ("hardness", "size", "expected"),
    [(100, 20, 0.0), (50, 20, 5.0), (0, 20, 10.0), (0, 8, 4.0)],
)
def test_feather_radius(hardness, size, expected):
    assert feather_radius(_stroke(hardness=hardness, size=size)) == expected


def test_stroke_bbox():
    assert stroke_bbox(_stroke((10, 10, 50, 30), size=10)) == (5, 5, 55, 35)


def test_layer_bbox():
    assert layer_bbox([]) == (0, 0, 1, 1)
    strokes = [_stroke((10, 10, 50, 30), size=10), _stroke((60, 0, 70, 0), size=2)]
    assert layer_bbox(strokes) == (-5, -11, 86, 56)
    assert layer_bbox(strokes, padding=0) == (5, -1, 66, 36)


def test_render_bbox_covers_feather():
    hard = render_bbox([_stroke()])
    soft = render_bbox([_stroke(hardness=0)])
    assert soft[0] < hard[0] and soft[2] > hard[2]
    assert render_bbox([]) == (0, 0, 0, 0)


def test_control_points_straight():
    assert control_points((0, 0, 10, 0)) == [(0, 0, 10, 0, 10, 0)]
    assert control_points((0, 0, 10, 0, 20, 10), tension=0) == [
        (0, 0, 10, 0, 10, 0),
        (10, 0, 20, 10, 20, 10),
    ]
    assert control_points((5, 5)) == []


def test_control_points_pass_through_points():
    points = (0, 0, 10, 10, 20, 0, 30, 10)
    segments = control_points(points)
    assert len(segments) == 3
    assert [segment[4:] for segment in segments] == [(10, 10), (20, 0), (30, 10)]


def test_control_points_are_smooth():
    segments = control_points((0, 0, 10, 10, 20, 0, 30, 10))
    # Tangents on both sides of an interior anchor are collinear.
    incoming = np.subtract(segments[0][4:], segments[0][2:4])
    outgoing = np.subtract(segments[1][0:2], segments[0][4:])
    cross = incoming[0] * outgoing[1] - incoming[1] * outgoing[0]
    assert cross == pytest.approx(0.0, abs=1e-9)


def test_rasterize_stroke():
    shape = rasterize_stroke(_stroke(), BBOX)
    assert shape.shape == (100, 100, 1)
    assert shape[50, 50, 0] == pytest.approx(1.0)
    assert shape[50, 12, 0] > 0.0  # round cap
    assert shape[75, 50, 0] == 0.0


def test_softness_grows_as_hardness_drops():
    hard = rasterize_stroke(_stroke(hardness=100), BBOX)
    medium = rasterize_stroke(_stroke(hardness=50), BBOX)
    soft = rasterize_stroke(_stroke(hardness=0), BBOX)
    assert hard[65, 50, 0] == 0.0
    assert soft[65, 50, 0] > medium[65, 50, 0] > hard[65, 50, 0]
    assert soft[50, 50, 0] == pytest.approx(1.0)


def test_eraser_is_hard_edged():
    hard = rasterize_stroke(_stroke(color="transparent"), BBOX)
    soft = rasterize_stroke(_stroke(color="transparent", hardness=0), BBOX)
    assert np.array_equal(hard, soft)


def test_render_strokes():
    color, shape, alpha, bbox = render_strokes([_stroke(opacity=0.5)])
    assert bbox == render_bbox([_stroke()])
    y, x = 50 - bbox[1], 50 - bbox[0]
    assert np.allclose(color[y, x], (1.0, 0.0, 0.0))
    assert alpha[y, x, 0] == pytest.approx(0.5)
    assert shape[y, x, 0] == pytest.approx(1.0)
    assert alpha[0, 0, 0] == 0.0


def test_eraser_removes_paint():
    strokes = [_stroke(), _stroke((50, 20, 50, 80), color="transparent", size=10)]
    color, shape, alpha, bbox = render_strokes(strokes, BBOX)
    assert alpha[50, 50, 0] == pytest.approx(0.0, abs=1e-6)
    assert alpha[50, 30, 0] == pytest.approx(1.0)
    assert alpha[30, 50, 0] == 0.0


def test_partial_eraser():
    strokes = [_stroke(), _stroke((50, 20, 50, 80), color="transparent", opacity=0.25)]
    _, _, alpha, _ = render_strokes(strokes, BBOX)
    assert alpha[50, 50, 0] == pytest.approx(0.75)


def test_eraser_alone_leaves_nothing():
    _, _, alpha, _ = render_strokes([_stroke(color="transparent")], BBOX)
    assert not alpha.any()


def test_blend_mode_within_layer():
    strokes = [_stroke(), _stroke((50, 20, 50, 80), color="#808080", blend_mode="multiply")]
    color, _, _, _ = render_strokes(strokes, BBOX)
    assert np.allclose(color[50, 50], (128 / 255.0, 0.0, 0.0), atol=1e-6)
    assert np.allclose(color[30, 50], (128 / 255.0,) * 3, atol=1e-6)


def test_stroke_capture():
    capture = StrokeCapture("brush-1", color="#00ff00", size=6, hardness=80)
    assert not capture.is_committable
    assert capture.to_stroke() is None
    assert capture.preview() == ()

    capture.add_point(10, 10)
    assert len(capture) == 1
    assert capture.to_stroke() is None
    dot = capture.preview()[0]
    assert dot.points == (10, 10, 10, 10)

    capture.add_point(20, 15)
    stroke = capture.to_stroke()
    assert stroke.points == (10, 10, 20, 15)
    assert (stroke.color, stroke.size, stroke.hardness) == ("#00ff00", 6, 80)
    assert capture.preview() == (stroke,)


@pytest.mark.parametrize(
    "kwargs",
    [{"size": 0}, {"color": "not-a-color"}, {"hardness": 101}, {"opacity": -1}, {"blend_mode": "dodge"}],
)
def test_stroke_capture_validation(kwargs):
    with pytest.raises(ValidationError):
        StrokeCapture("brush-1", **kwargs)
