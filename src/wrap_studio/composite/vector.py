"""Vector shapes and path rasterization for compositing.

Every function returns a float32 coverage mask of shape ``(height, width, 1)``
in [0, 1], anti-aliased by aggdraw. Coordinates are given in the layer's local
space and shifted by ``origin``, the local position of the mask's top-left
pixel.
"""

import logging
import math
from typing import Iterable, Optional, Sequence

import aggdraw
import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

#: Cubic Bezier approximation of a quarter circle.
KAPPA = 4.0 * (math.sqrt(2.0) - 1.0) / 3.0

Segment = tuple[float, float, float, float, float, float]


def draw_polygon(
    size: tuple[int, int],
    points: Sequence[float],
    origin: tuple[float, float] = (0.0, 0.0),
    brush: bool = True,
    pen_width: float = 0.0,
) -> np.ndarray:
    """Draw a closed polygon given as flat ``(x0, y0, x1, y1, ...)`` points."""
    xy = list(_shift(points, origin))

    def paint(draw, pen, brush_):
        draw.polygon(xy, pen, brush_)

    return _draw(size, paint, brush, pen_width)


def draw_ellipse(
    size: tuple[int, int],
    bbox: tuple[float, float, float, float],
    origin: tuple[float, float] = (0.0, 0.0),
    brush: bool = True,
    pen_width: float = 0.0,
) -> np.ndarray:
    """Draw an ellipse inscribed in ``(left, top, right, bottom)``."""
    xy = list(_shift(bbox, origin))

    def paint(draw, pen, brush_):
        draw.ellipse(xy, pen, brush_)

    return _draw(size, paint, brush, pen_width)


def draw_rounded_rect(
    size: tuple[int, int],
    bbox: tuple[float, float, float, float],
    radius: float,
    origin: tuple[float, float] = (0.0, 0.0),
    brush: bool = True,
    pen_width: float = 0.0,
) -> np.ndarray:
    """Draw a rectangle whose corners are rounded by ``radius``."""
    left, top, right, bottom = _shift(bbox, origin)
    radius = min(radius, (right - left) / 2.0, (bottom - top) / 2.0)
    if radius <= 0:
        return draw_polygon(
            size, (left, top, right, top, right, bottom, left, bottom),
            brush=brush, pen_width=pen_width,
        )
    path = " ".join(map(str, _generate_rounded_rect(left, top, right, bottom, radius)))

    def paint(draw, pen, brush_):
        draw.symbol((0, 0), aggdraw.Symbol(path), pen, brush_)

    return _draw(size, paint, brush, pen_width)


def draw_polyline(
    size: tuple[int, int],
    points: Sequence[float],
    width: float,
    origin: tuple[float, float] = (0.0, 0.0),
) -> np.ndarray:
    """Draw an open polyline with round caps and round joins."""
    xy = list(_shift(points, origin))

    def paint(draw, pen, brush_):
        draw.line(xy, pen)
        _draw_dots(draw, xy, width, brush_)

    return _draw(size, paint, True, width)


def draw_curve(
    size: tuple[int, int],
    start: tuple[float, float],
    segments: Iterable[Segment],
    width: float,
    origin: tuple[float, float] = (0.0, 0.0),
) -> np.ndarray:
    """
    Draw an open chain of cubic Bezier ``segments`` starting at ``start``,
    with round caps and round joins at every anchor.
    """
    start = tuple(_shift(start, origin))
    segments = [tuple(_shift(segment, origin)) for segment in segments]
    anchors = list(start)
    for segment in segments:
        anchors.extend(segment[4:6])
    path = " ".join(map(str, _generate_symbol(start, segments)))

    def paint(draw, pen, brush_):
        if segments:
            draw.symbol((0, 0), aggdraw.Symbol(path), pen, None)
        _draw_dots(draw, anchors, width, brush_)

    return _draw(size, paint, True, width)


def _draw(size, paint, brush, pen_width):
    width, height = size
    if width <= 0 or height <= 0:
        return np.zeros((max(height, 0), max(width, 0), 1), dtype=np.float32)
    mask = Image.new("L", (width, height), 0)
    draw = aggdraw.Draw(mask)
    pen = aggdraw.Pen(color=255, width=pen_width) if pen_width > 0 else None
    brush_ = aggdraw.Brush(color=255) if brush else None
    if pen is None and brush_ is None:
        logger.debug("Nothing to draw")
    else:
        paint(draw, pen, brush_)
    draw.flush()
    del draw
    return np.expand_dims(np.array(mask).astype(np.float32) / 255.0, 2)


def _draw_dots(draw, xy: Sequence[float], diameter: float, brush) -> None:
    radius = diameter / 2.0
    for x, y in zip(xy[0::2], xy[1::2]):
        draw.ellipse((x - radius, y - radius, x + radius, y + radius), None, brush)


def _shift(values: Iterable[float], origin: tuple[float, float]) -> Iterable[float]:
    for index, value in enumerate(values):
        yield float(value) - origin[index % 2]


def _generate_symbol(
    start: Sequence[float], segments: Sequence[Segment], closed: bool = False
):
    """Sequence generator for SVG path."""
    yield "M"
    yield start[0]
    yield start[1]
    if segments:
        yield "C"
    for segment in segments:
        yield from segment
    if closed:
        yield "Z"


def _line_segment(x0: float, y0: float, x1: float, y1: float) -> Segment:
    return (x0, y0, x1, y1, x1, y1)


def _arc_segment(
    x0: float, y0: float, x1: float, y1: float, cx: float, cy: float
) -> Segment:
    """Quarter arc from ``(x0, y0)`` to ``(x1, y1)`` around the corner ``(cx, cy)``."""
    return (
        x0 + KAPPA * (cx - x0),
        y0 + KAPPA * (cy - y0),
        x1 + KAPPA * (cx - x1),
        y1 + KAPPA * (cy - y1),
        x1,
        y1,
    )


def _generate_rounded_rect(
    left: float, top: float, right: float, bottom: float, r: float
):
    segments: list[Segment] = [
        _line_segment(left + r, top, right - r, top),
        _arc_segment(right - r, top, right, top + r, right, top),
        _line_segment(right, top + r, right, bottom - r),
        _arc_segment(right, bottom - r, right - r, bottom, right, bottom),
        _line_segment(right - r, bottom, left + r, bottom),
        _arc_segment(left + r, bottom, left, bottom - r, left, bottom),
        _line_segment(left, bottom - r, left, top + r),
        _arc_segment(left, top + r, left + r, top, left, top),
    ]
    return _generate_symbol((left + r, top), segments, closed=True)


def bounds(points: Sequence[float], padding: float = 0.0) -> Optional[tuple[float, float, float, float]]:
    """Axis-aligned ``(left, top, right, bottom)`` of flat points, or None."""
    if len(points) < 2:
        return None
    xs, ys = points[0::2], points[1::2]
    return (
        min(xs) - padding,
        min(ys) - padding,
        max(xs) + padding,
        max(ys) + padding,
    )
