"""Per-kind painting of layers into local-space buffers.

Each painter takes a layer payload and returns ``(color, shape, alpha, bbox)``
where ``bbox`` is the integer ``(left, top, right, bottom)`` position of the
buffer in the layer's local coordinate space. The layer transform is applied
later, when the buffer is placed on the surface.
"""

import functools
import logging
import math
from typing import Optional

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from wrap_studio.api.layers import (
    BitmapData,
    BrushData,
    CircleData,
    Layer,
    LineData,
    RectData,
    StarData,
    TextData,
)
from wrap_studio.api.utils import parse_color
from wrap_studio.cache import ImageCache
from wrap_studio.composite import brush, utils, vector
from wrap_studio.constants import BlendMode, LayerKind, TextAlign
from wrap_studio.registry import new_registry

logger = logging.getLogger(__name__)

PAINTERS, register = new_registry()

BBox = tuple[int, int, int, int]
Rendered = tuple[np.ndarray, np.ndarray, np.ndarray, BBox]

#: Extra pixels around vector buffers for anti-aliased edges.
EDGE_PADDING = 1.0


def render(layer: Layer, cache: ImageCache) -> Rendered:
    """Paint a layer in its local space."""
    painter = PAINTERS[layer.kind]
    return painter(layer.data, cache)


def layer_bounds(layer: Layer, cache: ImageCache) -> tuple[float, float, float, float]:
    """Local ``(left, top, right, bottom)`` of a layer, used for selection."""
    if layer.kind is LayerKind.BRUSH:
        x, y, width, height = brush.layer_bbox(layer.data.strokes)
        return (x, y, x + width, y + height)
    if layer.kind.has_bitmap:
        width, height = cache.get(layer.data.source).size
        return (0.0, 0.0, float(width), float(height))
    _, _, _, bbox = render(layer, cache)
    return tuple(float(v) for v in bbox)  # type: ignore[return-value]


def star_points(num_points: int, inner_radius: float, outer_radius: float) -> list[float]:
    """Vertices of a star centered on the origin, first tip pointing up."""
    points = []
    for n in range(2 * num_points):
        radius = outer_radius if n % 2 == 0 else inner_radius
        angle = n * math.pi / num_points
        points.extend((radius * math.sin(angle), -radius * math.cos(angle)))
    return points


@register(LayerKind.TEXTURE)
@register(LayerKind.IMAGE)
def draw_bitmap(data: BitmapData, cache: ImageCache) -> Rendered:
    entry = cache.get(data.source)
    color, alpha = utils.from_pil(entry.image)
    return color, alpha, alpha.copy(), (0, 0, entry.width, entry.height)


@register(LayerKind.BRUSH)
def draw_brush(data: BrushData, cache: ImageCache) -> Rendered:
    return brush.render_strokes(data.strokes)


@register(LayerKind.RECT)
def draw_rect(data: RectData, cache: ImageCache) -> Rendered:
    box = (0.0, 0.0, data.width, data.height)
    bbox = _bbox(box, _stroke_extent(data.stroke, data.stroke_width))

    def draw(brush_, pen_width):
        return vector.draw_rounded_rect(
            _size(bbox), box, data.corner_radius, _origin(bbox), brush_, pen_width
        )

    return _fill_and_stroke(bbox, data.fill, data.stroke, data.stroke_width, draw)


@register(LayerKind.CIRCLE)
def draw_circle(data: CircleData, cache: ImageCache) -> Rendered:
    r = data.radius
    box = (-r, -r, r, r)
    bbox = _bbox(box, _stroke_extent(data.stroke, data.stroke_width))

    def draw(brush_, pen_width):
        return vector.draw_ellipse(_size(bbox), box, _origin(bbox), brush_, pen_width)

    return _fill_and_stroke(bbox, data.fill, data.stroke, data.stroke_width, draw)


@register(LayerKind.STAR)
def draw_star(data: StarData, cache: ImageCache) -> Rendered:
    points = star_points(data.num_points, data.inner_radius, data.outer_radius)
    box = vector.bounds(points)
    assert box is not None
    # Miter joins on sharp tips can reach past the vertices.
    extent = _stroke_extent(data.stroke, data.stroke_width) * 4.0
    bbox = _bbox(box, extent)

    def draw(brush_, pen_width):
        return vector.draw_polygon(_size(bbox), points, _origin(bbox), brush_, pen_width)

    return _fill_and_stroke(bbox, data.fill, data.stroke, data.stroke_width, draw)


@register(LayerKind.LINE)
def draw_line(data: LineData, cache: ImageCache) -> Rendered:
    box = vector.bounds(data.points)
    assert box is not None
    bbox = _bbox(box, data.stroke_width / 2.0)
    shape = vector.draw_polyline(
        _size(bbox), data.points, data.stroke_width, _origin(bbox)
    )
    return _fill_and_stroke(
        bbox, None, data.stroke, data.stroke_width, lambda b, w: shape
    )


@register(LayerKind.TEXT)
def draw_text(data: TextData, cache: ImageCache) -> Rendered:
    """
    Draw text with its top-left corner at the layer position.

    Lines are ``font_size`` apart. Without an explicit ``width`` the block is
    as wide as its longest line, and alignment applies within that block.
    """
    font = load_font(data.font_family, int(round(data.font_size)), data.bold, data.italic)
    lines = data.text.split("\n")
    measure = ImageDraw.Draw(Image.new("L", (1, 1)))
    widths = [measure.textlength(line, font=font) for line in lines]
    block_width = data.width if data.width is not None else max(widths + [1.0])
    line_height = data.font_size
    bbox = (
        0,
        0,
        int(math.ceil(max([block_width] + widths))) + 2,
        int(math.ceil(line_height * len(lines) + data.font_size * 0.25)) + 2,
    )
    mask = Image.new("L", _size(bbox), 0)
    draw = ImageDraw.Draw(mask)
    ascent, _ = font.getmetrics()
    underline = max(1, int(round(data.font_size / 15.0)))
    for index, (line, width) in enumerate(zip(lines, widths)):
        x = _align_offset(data.align, block_width, width)
        y = index * line_height
        draw.text((x, y), line, fill=255, font=font)
        if data.underline and line:
            baseline = y + ascent + underline
            draw.line([(x, baseline), (x + width, baseline)], fill=255, width=underline)
    shape = np.expand_dims(np.asarray(mask, dtype=np.float32) / 255.0, 2)
    return _fill_and_stroke(bbox, data.fill, None, 0.0, lambda b, w: shape)


def _align_offset(align: TextAlign, block_width: float, width: float) -> float:
    if align is TextAlign.CENTER:
        return (block_width - width) / 2.0
    if align is TextAlign.RIGHT:
        return block_width - width
    return 0.0


@functools.lru_cache(maxsize=64)
def load_font(
    family: str, size: int, bold: bool = False, italic: bool = False
) -> ImageFont.ImageFont:
    """
    Load a TrueType face by family name, falling back to Pillow's default font.
    """
    for name in _font_candidates(family, bold, italic):
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    logger.warning("Font %r is not available, using the default font" % family)
    return ImageFont.load_default(size=size)


def _font_candidates(family: str, bold: bool, italic: bool):
    style = ("Bold" if bold else "") + ("Italic" if italic else "")
    compact = family.replace(" ", "")
    if style:
        yield "%s-%s.ttf" % (compact, style)
        yield "%s %s.ttf" % (family, " ".join(filter(None, ("Bold" if bold else "", "Italic" if italic else ""))))
        suffix = ("b" if bold else "") + ("i" if italic else "")
        yield "%s%s.ttf" % (compact.lower(), suffix)
    yield "%s.ttf" % family
    yield "%s.ttf" % compact.lower()
    dejavu = "DejaVuSans" + ("-" + style.replace("Italic", "Oblique") if style else "")
    yield "%s.ttf" % dejavu


def _fill_and_stroke(
    bbox: BBox,
    fill: Optional[str],
    stroke: Optional[str],
    stroke_width: float,
    draw,
) -> Rendered:
    """Composite the fill and then the stroke outline of a shape."""
    from wrap_studio.composite.composite import Compositor

    compositor = Compositor(bbox, 1.0, 0.0, isolated=True)
    if fill is not None:
        _apply_color(compositor, fill, draw(True, 0.0))
    if stroke is not None and stroke_width > 0:
        _apply_color(compositor, stroke, draw(False, stroke_width))
    color, shape, alpha = compositor.finish()
    return color, shape, alpha, bbox


def _apply_color(compositor, value: str, shape: np.ndarray) -> None:
    r, g, b, a = parse_color(value)
    color = np.full((compositor.height, compositor.width, 3), (r, g, b), dtype=np.float32)
    compositor.apply_source(color, shape, shape * a, BlendMode.NORMAL)


def _stroke_extent(stroke: Optional[str], stroke_width: float) -> float:
    return stroke_width / 2.0 if stroke is not None else 0.0


def _bbox(box: tuple[float, float, float, float], extent: float) -> BBox:
    pad = extent + EDGE_PADDING
    return (
        int(math.floor(box[0] - pad)),
        int(math.floor(box[1] - pad)),
        int(math.ceil(box[2] + pad)),
        int(math.ceil(box[3] + pad)),
    )


def _size(bbox: BBox) -> tuple[int, int]:
    return (bbox[2] - bbox[0], bbox[3] - bbox[1])


def _origin(bbox: BBox) -> tuple[float, float]:
    return (float(bbox[0]), float(bbox[1]))
