"""
Brush stroke engine.

A brush layer is rendered as an isolated group: its strokes are composited in
order into a transparent buffer, each with its own blend mode, and only the
finished buffer is composited onto the layers below. Eraser strokes
(``color="transparent"``) remove paint from that buffer and never reach lower
layers.

Strokes are drawn as a smooth curve through their points (cardinal spline of
tension 0.5) with round caps and joins. A stroke with ``hardness < 100`` gets a
feather radius of ``(100 - hardness) / 100 * size * 0.5``. The feather is a
glow approximation: the hard stroke is blurred with a Gaussian of
``sigma = radius / 2`` in the stroke's own color and the blur is united with
the hard shape, so the core stays opaque and only the edge falls off. This is
not a physically accurate soft-brush model, but softness grows monotonically
as hardness decreases.
"""

import logging
import math
from typing import Optional, Sequence

import numpy as np
from attrs import define, field
from scipy.ndimage import gaussian_filter

from wrap_studio.api.layers import BrushStroke, positive, validate_stroke_color
from wrap_studio.api.utils import parse_color
from wrap_studio.composite import utils, vector
from wrap_studio.constants import HIT_PADDING, STROKE_TENSION, BlendMode
from wrap_studio.validators import range_, to_enum

logger = logging.getLogger(__name__)

BBox = tuple[int, int, int, int]


def feather_radius(stroke: BrushStroke) -> float:
    """Feather radius of a stroke; zero for hard strokes."""
    if stroke.hardness >= 100:
        return 0.0
    return (100.0 - stroke.hardness) / 100.0 * stroke.size * 0.5


def stroke_bbox(stroke: BrushStroke) -> tuple[float, float, float, float]:
    """
    Ink bounds ``(left, top, right, bottom)`` of a stroke: the box around its
    points expanded by half the stroke width.
    """
    box = vector.bounds(stroke.points, stroke.size / 2.0)
    assert box is not None
    return box


def layer_bbox(
    strokes: Sequence[BrushStroke], padding: float = HIT_PADDING
) -> tuple[float, float, float, float]:
    """
    Hit-test region ``(x, y, width, height)`` of a brush layer.

    The union of every stroke's ink bounds, padded by ``padding`` on each side.
    An empty stroke list yields the ``(0, 0, 1, 1)`` selection anchor.
    """
    boxes = [stroke_bbox(stroke) for stroke in strokes]
    if not boxes:
        return (0.0, 0.0, 1.0, 1.0)
    left = min(box[0] for box in boxes)
    top = min(box[1] for box in boxes)
    right = max(box[2] for box in boxes)
    bottom = max(box[3] for box in boxes)
    return (
        left - padding,
        top - padding,
        right - left + 2 * padding,
        bottom - top + 2 * padding,
    )


def control_points(
    points: Sequence[float], tension: float = STROKE_TENSION
) -> list[vector.Segment]:
    """
    Cubic Bezier segments of a smooth curve through flat ``points``.

    Each segment is ``(c1x, c1y, c2x, c2y, x, y)`` and ends on the next input
    point, so the curve passes through every point. Interior control points
    follow the cardinal spline of the given tension; the first and last
    segments are quadratic curves raised to cubic form. Two points, or zero
    tension, give straight segments.
    """
    anchors = list(zip(points[0::2], points[1::2]))
    if len(anchors) < 2:
        return []
    if len(anchors) == 2 or tension == 0:
        return [
            (x0, y0, x1, y1, x1, y1)
            for (x0, y0), (x1, y1) in zip(anchors, anchors[1:])
        ]

    preceding, leaving = {}, {}
    for index in range(1, len(anchors) - 1):
        (x0, y0), (x1, y1), (x2, y2) = anchors[index - 1 : index + 2]
        d01 = math.hypot(x1 - x0, y1 - y0)
        d12 = math.hypot(x2 - x1, y2 - y1)
        total = d01 + d12
        fa = tension * d01 / total if total else 0.0
        fb = tension * d12 / total if total else 0.0
        preceding[index] = (x1 - fa * (x2 - x0), y1 - fa * (y2 - y0))
        leaving[index] = (x1 + fb * (x2 - x0), y1 + fb * (y2 - y0))

    last = len(anchors) - 2
    segments = []
    for index, (p0, p1) in enumerate(zip(anchors, anchors[1:])):
        if index == 0:
            segments.append(_quadratic(p0, preceding[1], p1))
        elif index == last:
            segments.append(_quadratic(p0, leaving[last], p1))
        else:
            segments.append(leaving[index] + preceding[index + 1] + p1)
    return segments


def _quadratic(p0, control, p1) -> vector.Segment:
    return (
        p0[0] + 2.0 / 3.0 * (control[0] - p0[0]),
        p0[1] + 2.0 / 3.0 * (control[1] - p0[1]),
        p1[0] + 2.0 / 3.0 * (control[0] - p1[0]),
        p1[1] + 2.0 / 3.0 * (control[1] - p1[1]),
        p1[0],
        p1[1],
    )


def render_bbox(strokes: Sequence[BrushStroke]) -> BBox:
    """Integer buffer bounds that hold every stroke including its feather."""
    if not strokes:
        return (0, 0, 0, 0)
    boxes = []
    for stroke in strokes:
        margin = 1.5 * feather_radius(stroke) + 2.0
        left, top, right, bottom = stroke_bbox(stroke)
        boxes.append((left - margin, top - margin, right + margin, bottom + margin))
    return (
        int(math.floor(min(box[0] for box in boxes))),
        int(math.floor(min(box[1] for box in boxes))),
        int(math.ceil(max(box[2] for box in boxes))),
        int(math.ceil(max(box[3] for box in boxes))),
    )


def rasterize_stroke(stroke: BrushStroke, bbox: BBox) -> np.ndarray:
    """
    Coverage of a single stroke within ``bbox``, before opacity.

    Eraser strokes are always hard-edged.
    """
    size = (bbox[2] - bbox[0], bbox[3] - bbox[1])
    origin = (bbox[0], bbox[1])
    anchors = stroke.point_pairs
    shape = vector.draw_curve(
        size, anchors[0], control_points(stroke.points), stroke.size, origin
    )
    radius = 0.0 if stroke.is_eraser else feather_radius(stroke)
    if radius > 0:
        glow = gaussian_filter(shape[:, :, 0], sigma=radius / 2.0)
        shape = utils.union(shape, np.expand_dims(glow, 2))
    return utils.clip(shape)


def render_strokes(
    strokes: Sequence[BrushStroke], bbox: Optional[BBox] = None
) -> tuple[np.ndarray, np.ndarray, np.ndarray, BBox]:
    """
    Render a stroke list into an isolated buffer.

    :return: ``(color, shape, alpha, bbox)`` where ``bbox`` is the buffer
        position in layer space.
    """
    from wrap_studio.composite.composite import Compositor

    bbox = bbox or render_bbox(strokes)
    compositor = Compositor(bbox, 1.0, 0.0, isolated=True)
    for stroke in strokes:
        shape = rasterize_stroke(stroke, bbox)
        if stroke.is_eraser:
            compositor.apply_erase(shape * stroke.opacity)
            continue
        r, g, b, a = parse_color(stroke.color)
        color = np.full(
            (compositor.height, compositor.width, 3), (r, g, b), dtype=np.float32
        )
        compositor.apply_source(color, shape, shape * (stroke.opacity * a), stroke.blend_mode)
    color, shape, alpha = compositor.finish()
    return color, shape, alpha, bbox


@define
class StrokeCapture:
    """
    In-progress stroke for a brush layer.

    Points are accumulated in layer space while the pointer is down;
    :py:meth:`to_stroke` yields the committed record, or None when fewer than
    two points were captured.

    Example::

        capture = StrokeCapture("brush-1", color="#ff0000", size=12)
        capture.add_point(10, 10)
        capture.add_point(50, 10)
        stroke = capture.to_stroke()
    """

    layer_id: str = field()
    color: str = field(default="#000000", validator=validate_stroke_color)
    size: float = field(default=10.0, validator=positive)
    hardness: float = field(default=100.0, validator=range_(0, 100))
    opacity: float = field(default=1.0, validator=range_(0.0, 1.0))
    blend_mode: BlendMode = field(default=BlendMode.NORMAL, converter=to_enum(BlendMode))
    points: list[float] = field(factory=list)

    def add_point(self, x: float, y: float) -> None:
        self.points.extend((float(x), float(y)))

    def __len__(self) -> int:
        return len(self.points) // 2

    @property
    def is_committable(self) -> bool:
        return len(self) >= 2

    def to_stroke(self) -> Optional[BrushStroke]:
        if not self.is_committable:
            logger.debug("Dropping stroke with %d point(s)" % len(self))
            return None
        return BrushStroke(
            points=tuple(self.points),
            color=self.color,
            size=self.size,
            hardness=self.hardness,
            opacity=self.opacity,
            blend_mode=self.blend_mode,
        )

    def preview(self) -> tuple[BrushStroke, ...]:
        """Strokes to draw as the in-progress overlay."""
        if len(self) == 1:
            x, y = self.points
            return (
                BrushStroke(
                    points=(x, y, x, y),
                    color=self.color,
                    size=self.size,
                    hardness=self.hardness,
                    opacity=self.opacity,
                    blend_mode=self.blend_mode,
                ),
            )
        stroke = self.to_stroke()
        return (stroke,) if stroke is not None else ()
