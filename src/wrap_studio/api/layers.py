"""
Layer module.

A layer is a single immutable record tagged with its
:py:class:`~wrap_studio.constants.LayerKind`. The common fields (visibility,
lock, opacity, transform) live on :py:class:`Layer`; the variant-specific
payload lives in :py:attr:`Layer.data`, one record type per kind:

- ``texture`` / ``image``: :py:class:`BitmapData`
- ``brush``: :py:class:`BrushData`
- ``text``: :py:class:`TextData`
- ``rect``: :py:class:`RectData`
- ``circle``: :py:class:`CircleData`
- ``line``: :py:class:`LineData`
- ``star``: :py:class:`StarData`

Rendering and serialization dispatch on :py:attr:`Layer.kind`; there is no
layer class hierarchy. Records are frozen, so a tuple of layers is a cheap
snapshot that shares every unchanged layer with its predecessor.

Example::

    layer = make_layer({"type": "rect", "x": 100, "y": 100}, "rect-1")
    moved = layer.update(x=120, fill="#000000")
"""

import logging
import math
from typing import Any, Iterable, Mapping, Optional, Union

from attrs import define, evolve, field, fields

from wrap_studio.api.utils import (
    snake_case,
    validate_color,
    validate_optional_color,
)
from wrap_studio.constants import (
    ERASE_COLOR,
    BlendMode,
    LayerKind,
    TextAlign,
)
from wrap_studio.errors import ValidationError
from wrap_studio.registry import new_registry
from wrap_studio.validators import finite, non_negative, range_, to_enum

logger = logging.getLogger(__name__)

PAYLOAD_TYPES, register = new_registry()


def positive(inst: Any, attr: Any, value: Any) -> None:
    finite(inst, attr, value)
    if value <= 0:
        raise ValidationError(
            "'%s' must be positive (got %r)" % (attr.name, value)
        )


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("Expected an integer, got %r" % (value,)) from None


def _to_points(value: Iterable[Any]) -> tuple[float, ...]:
    try:
        return tuple(float(v) for v in value)
    except (TypeError, ValueError):
        raise ValidationError("Points must be a flat sequence of numbers") from None


def _validate_points(inst: Any, attr: Any, value: tuple[float, ...]) -> None:
    if len(value) < 4:
        raise ValidationError(
            "'%s' needs at least 2 points (got %d coordinates)" % (attr.name, len(value))
        )
    if len(value) % 2:
        raise ValidationError("'%s' must hold (x, y) pairs" % attr.name)
    if not all(math.isfinite(v) for v in value):
        raise ValidationError("'%s' must be finite" % attr.name)


def validate_stroke_color(inst: Any, attr: Any, value: Any) -> None:
    if value != ERASE_COLOR:
        validate_color(inst, attr, value)


def _normalize(spec: Mapping[str, Any]) -> dict[str, Any]:
    return {snake_case(key): value for key, value in spec.items()}


@define(frozen=True)
class BrushStroke:
    """
    One committed free-hand stroke.

    .. py:attribute:: points

        Flat ``(x0, y0, x1, y1, ...)`` coordinates in layer space, at least two
        points.

    .. py:attribute:: color

        CSS color, or ``"transparent"`` for an eraser stroke.

    .. py:attribute:: hardness

        Edge hardness in [0, 100]; 100 is a hard edge.
    """

    points: tuple[float, ...] = field(converter=_to_points, validator=_validate_points)
    color: str = field(default="#000000", validator=validate_stroke_color)
    size: float = field(default=10.0, validator=positive)
    hardness: float = field(default=100.0, validator=range_(0, 100))
    opacity: float = field(default=1.0, validator=range_(0.0, 1.0))
    blend_mode: BlendMode = field(
        default=BlendMode.NORMAL, converter=to_enum(BlendMode)
    )

    @property
    def is_eraser(self) -> bool:
        return self.color == ERASE_COLOR

    @property
    def point_pairs(self) -> list[tuple[float, float]]:
        return list(zip(self.points[0::2], self.points[1::2]))

    @classmethod
    def from_spec(cls, spec: Union["BrushStroke", Mapping[str, Any]]) -> "BrushStroke":
        if isinstance(spec, BrushStroke):
            return spec
        try:
            return cls(**_normalize(spec))
        except TypeError as e:
            raise ValidationError("Invalid brush stroke: %s" % e) from None


def _to_strokes(value: Iterable[Any]) -> tuple[BrushStroke, ...]:
    return tuple(BrushStroke.from_spec(s) for s in value)


@register(LayerKind.TEXTURE)
@register(LayerKind.IMAGE)
@define(frozen=True)
class BitmapData:
    """Bitmap payload; :py:attr:`source` is an image cache key."""

    source: str = field()

    @source.validator
    def _validate_source(self, attribute: Any, value: Any) -> None:
        if not isinstance(value, str) or not value:
            raise ValidationError("Bitmap layers need a source")


@register(LayerKind.BRUSH)
@define(frozen=True)
class BrushData:
    """Ordered, append-only list of strokes."""

    strokes: tuple[BrushStroke, ...] = field(factory=tuple, converter=_to_strokes)

    def append(self, stroke: BrushStroke) -> "BrushData":
        return BrushData(self.strokes + (stroke,))


@register(LayerKind.TEXT)
@define(frozen=True)
class TextData:
    text: str = field(default="Sample Text")
    font_family: str = field(default="Arial")
    font_size: float = field(default=48.0, validator=positive)
    fill: str = field(default="#ffffff", validator=validate_color)
    align: TextAlign = field(default=TextAlign.LEFT, converter=to_enum(TextAlign))
    bold: bool = field(default=False, converter=bool)
    italic: bool = field(default=False, converter=bool)
    underline: bool = field(default=False, converter=bool)
    width: Optional[float] = field(default=None)

    @width.validator
    def _validate_width(self, attribute: Any, value: Any) -> None:
        if value is not None:
            positive(self, attribute, value)


@register(LayerKind.RECT)
@define(frozen=True)
class RectData:
    width: float = field(default=200.0, validator=positive)
    height: float = field(default=100.0, validator=positive)
    fill: Optional[str] = field(default="#B73038", validator=validate_optional_color)
    stroke: Optional[str] = field(default=None, validator=validate_optional_color)
    stroke_width: float = field(default=0.0, validator=non_negative)
    corner_radius: float = field(default=0.0, validator=non_negative)


@register(LayerKind.CIRCLE)
@define(frozen=True)
class CircleData:
    """Circle centered on the layer position."""

    radius: float = field(default=50.0, validator=positive)
    fill: Optional[str] = field(default="#D7DCDD", validator=validate_optional_color)
    stroke: Optional[str] = field(default=None, validator=validate_optional_color)
    stroke_width: float = field(default=0.0, validator=non_negative)


@register(LayerKind.LINE)
@define(frozen=True)
class LineData:
    points: tuple[float, ...] = field(
        default=(100.0, 100.0, 300.0, 200.0),
        converter=_to_points,
        validator=_validate_points,
    )
    stroke: str = field(default="#ffffff", validator=validate_color)
    stroke_width: float = field(default=4.0, validator=positive)


@register(LayerKind.STAR)
@define(frozen=True)
class StarData:
    """Star centered on the layer position, first tip pointing up."""

    num_points: int = field(default=5, converter=_to_int, validator=range_(2, 100))
    inner_radius: float = field(default=30.0, validator=positive)
    outer_radius: float = field(default=60.0, validator=positive)
    fill: Optional[str] = field(default="#ffffff", validator=validate_optional_color)
    stroke: Optional[str] = field(default="#ffffff", validator=validate_optional_color)
    stroke_width: float = field(default=1.0, validator=non_negative)


Payload = Union[BitmapData, BrushData, TextData, RectData, CircleData, LineData, StarData]


@define(frozen=True)
class Layer:
    """
    A single design layer.

    .. py:attribute:: id

        Unique identifier, e.g. ``rect-3``.

    .. py:attribute:: kind

        Variant tag, see :py:class:`~wrap_studio.constants.LayerKind`.

    .. py:attribute:: data

        Variant payload matching :py:attr:`kind`.

    .. py:attribute:: rotation

        Rotation in degrees, clockwise on screen, around the layer position.
    """

    id: str = field()
    kind: LayerKind = field(converter=to_enum(LayerKind))
    name: str = field()
    data: Payload = field()
    visible: bool = field(default=True, converter=bool)
    locked: bool = field(default=False, converter=bool)
    opacity: float = field(default=1.0, validator=range_(0.0, 1.0))
    x: float = field(default=0.0, validator=finite)
    y: float = field(default=0.0, validator=finite)
    rotation: float = field(default=0.0, validator=finite)
    scale_x: float = field(default=1.0, validator=finite)
    scale_y: float = field(default=1.0, validator=finite)

    @data.validator
    def _validate_data(self, attribute: Any, value: Any) -> None:
        expected = PAYLOAD_TYPES[self.kind]
        if not isinstance(value, expected):
            raise ValidationError(
                "%s layer needs %s, got %s"
                % (self.kind.value, expected.__name__, type(value).__name__)
            )

    @property
    def is_rendered(self) -> bool:
        """Invisible and fully transparent layers are skipped when compositing."""
        return self.visible and self.opacity > 0

    @property
    def source(self) -> Optional[str]:
        return self.data.source if isinstance(self.data, BitmapData) else None

    def update(self, **changes: Any) -> "Layer":
        """
        Return a copy with common and payload fields replaced.

        Keys may be snake_case or camelCase. Brush strokes cannot be replaced
        here; see :py:meth:`BrushData.append`.

        :raise ValidationError: on unknown fields, brush strokes or invalid
            values.
        """
        changes = _normalize(changes)
        for key in ("id", "kind", "type", "data"):
            if key in changes:
                raise ValidationError("'%s' cannot be updated" % key)
        # Committed strokes are append-only.
        if self.kind is LayerKind.BRUSH and "strokes" in changes:
            raise ValidationError(
                "Strokes of %s can only be appended by committing a stroke" % self.id
            )
        common, payload = _split(self.kind, changes)
        blocked = (set(common) | set(payload)) - LOCK_EXEMPT
        if self.locked and blocked:
            raise ValidationError(
                "Layer %s is locked; cannot change %s"
                % (self.id, ", ".join(sorted(blocked)))
            )
        if payload:
            common["data"] = evolve(self.data, **payload)
        return evolve(self, **common)


COMMON_FIELDS = frozenset(
    f.name for f in fields(Layer) if f.name not in ("id", "kind", "data")
)
LOCK_EXEMPT = frozenset(("locked", "visible", "name"))


def _split(kind: LayerKind, spec: Mapping[str, Any]) -> tuple[dict, dict]:
    payload_fields = {f.name for f in fields(PAYLOAD_TYPES[kind])}
    common, payload = {}, {}
    for key, value in spec.items():
        if key in COMMON_FIELDS:
            common[key] = value
        elif key in payload_fields:
            payload[key] = value
        else:
            raise ValidationError("Unknown field %r for %s layer" % (key, kind.value))
    return common, payload


def make_layer(spec: Mapping[str, Any], layer_id: str, name: Optional[str] = None) -> Layer:
    """
    Build a validated layer from a spec mapping.

    The spec carries a ``type`` discriminator plus any common or payload
    fields, in snake_case or camelCase; missing fields take the tool defaults.
    Bitmap layers need ``source`` set to an image cache key.

    :raise ValidationError: if the layer spec is malformed.
    """
    spec = _normalize(spec)
    kind = to_enum(LayerKind)(spec.pop("type", spec.pop("kind", None)))
    spec.pop("id", None)
    spec.pop("data", None)
    layer_name = spec.pop("name", None) or name or layer_id
    common, payload = _split(kind, spec)
    try:
        data = PAYLOAD_TYPES[kind](**payload)
    except TypeError as e:
        raise ValidationError("Invalid %s layer: %s" % (kind.value, e)) from None
    return Layer(id=layer_id, kind=kind, name=str(layer_name), data=data, **common)
