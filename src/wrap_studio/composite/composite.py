"""Composite implementation for layer rendering and masking."""

import logging
import math
from typing import Callable, Iterable, Optional, Sequence, Union, cast

import numpy as np
from PIL import Image
from scipy.ndimage import affine_transform

from wrap_studio.api.layers import Layer
from wrap_studio.api.utils import parse_color
from wrap_studio.cache import ImageCache
from wrap_studio.composite import brush, paint, utils, vector
from wrap_studio.composite.blend import BLEND_FUNC, normal
from wrap_studio.constants import (
    CURSOR_COLOR,
    DEFAULT_BASE_COLOR,
    SELECTION_COLOR,
    SURFACE_SIZE,
    BlendMode,
)

logger = logging.getLogger(__name__)

BBox = tuple[int, int, int, int]
Source = tuple[np.ndarray, np.ndarray, np.ndarray]
MaskLike = Union[None, float, np.ndarray, Image.Image]

SURFACE = (0, 0, SURFACE_SIZE, SURFACE_SIZE)


def composite_pil(
    layers: Sequence[Layer],
    cache: ImageCache,
    mask: MaskLike = None,
    base_color: str = DEFAULT_BASE_COLOR,
    viewport: BBox = SURFACE,
    overlays: Iterable[Source] = (),
    layer_filter: Optional[Callable] = None,
) -> Image.Image:
    """
    Composite layers and return an RGBA PIL Image.

    See :py:func:`composite` for the arguments. ``overlays`` are extra
    ``(color, shape, alpha)`` sources drawn on top of the masked result.
    """
    color, _, alpha = composite(
        layers, cache, mask, base_color, viewport, layer_filter=layer_filter
    )
    overlays = list(overlays)
    if overlays:
        color, _, alpha = apply_overlays(viewport, color, alpha, overlays)
    return utils.to_pil(color, alpha)


def composite(
    layers: Sequence[Layer],
    cache: ImageCache,
    mask: MaskLike = None,
    base_color: str = DEFAULT_BASE_COLOR,
    viewport: BBox = SURFACE,
    layer_filter: Optional[Callable] = None,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Composite a layer stack against a template mask and return NumPy arrays.

    The base color fill and the design layers are each rendered as a group,
    and each group is intersected with the mask (destination-in), so nothing
    is ever painted where the mask is transparent.

    Args:
        layers: Layers in z-order, bottom first
        cache: Image cache holding the bitmaps of texture and image layers
        mask: Template mask of the viewport size, ``(H, W)`` or ``(H, W, 1)``
            array or PIL image; None means fully opaque
        base_color: CSS color of the base fill
        viewport: Surface region to composite, default the whole surface
        layer_filter: Optional callable(layer) -> bool selecting layers

    Returns:
        Tuple of (color, shape, alpha) as float32 ndarrays with shape
        (height, width, channels).

    Examples:
        >>> color, shape, alpha = composite(session.layers, session.cache, mask)
        >>> # Without the base fill
        >>> color, shape, alpha = composite(layers, cache, mask, "transparent")
    """
    compositor = Compositor(viewport, cache=cache, isolated=True, layer_filter=layer_filter)
    for layer in layers:
        compositor.apply(layer)
    color_d, shape_d, alpha_d = compositor.finish()

    mask = _mask_array(mask, compositor.height, compositor.width)
    r, g, b, a = parse_color(base_color)
    base = np.full((compositor.height, compositor.width, 3), (r, g, b), dtype=np.float32)

    result = Compositor(viewport, isolated=True)
    result.apply_source(base, mask, mask * a, BlendMode.NORMAL)
    result.apply_source(color_d, shape_d * mask, alpha_d * mask, BlendMode.NORMAL)
    return result.finish()


def _mask_array(mask: MaskLike, height: int, width: int) -> np.ndarray:
    if mask is None:
        return np.ones((height, width, 1), dtype=np.float32)
    if isinstance(mask, (int, float)):
        return np.full((height, width, 1), mask, dtype=np.float32)
    if isinstance(mask, Image.Image):
        mask = utils.mask_to_array(mask)
    mask = np.asarray(mask, dtype=np.float32)
    if mask.ndim == 2:
        mask = np.expand_dims(mask, 2)
    if mask.shape != (height, width, 1):
        raise ValueError(
            "Mask shape %s does not match the viewport %dx%d"
            % (mask.shape, width, height)
        )
    return mask


def apply_overlays(
    viewport: BBox, color: np.ndarray, alpha: np.ndarray, overlays: Iterable[Source]
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Draw overlay sources over a finished composite, unmasked."""
    compositor = Compositor(viewport, isolated=True)
    compositor.apply_source(color, alpha, alpha, BlendMode.NORMAL)
    for color_o, shape_o, alpha_o in overlays:
        compositor.apply_source(color_o, shape_o, alpha_o, BlendMode.NORMAL)
    return compositor.finish()


def layer_matrix(layer: Layer) -> np.ndarray:
    """
    3x3 matrix mapping layer-local coordinates to surface coordinates.

    Scale is applied first, then the clockwise rotation in degrees, then the
    translation to the layer position.
    """
    theta = math.radians(layer.rotation)
    cos, sin = math.cos(theta), math.sin(theta)
    return np.array(
        [
            [cos * layer.scale_x, -sin * layer.scale_y, layer.x],
            [sin * layer.scale_x, cos * layer.scale_y, layer.y],
            [0.0, 0.0, 1.0],
        ],
        dtype=np.float64,
    )


def to_local(layer: Layer, x: float, y: float) -> tuple[float, float]:
    """Map a surface point into the layer's local space."""
    local = np.linalg.inv(layer_matrix(layer)) @ np.array([x, y, 1.0])
    return float(local[0]), float(local[1])


def to_surface(layer: Layer, x: float, y: float) -> tuple[float, float]:
    """Map a layer-local point onto the surface."""
    point = layer_matrix(layer) @ np.array([x, y, 1.0])
    return float(point[0]), float(point[1])


def place(
    viewport: BBox,
    bbox: BBox,
    layer: Layer,
    color: np.ndarray,
    shape: np.ndarray,
    alpha: np.ndarray,
) -> Optional[Source]:
    """
    Move a local-space buffer at ``bbox`` onto the viewport through the layer
    transform.

    Integral translations are pasted as is; any other transform is resampled
    bilinearly with premultiplied color. Returns None when the transform is
    degenerate.
    """
    matrix = layer_matrix(layer)
    linear, offset = matrix[:2, :2], matrix[:2, 2]
    if np.allclose(linear, np.eye(2)) and np.allclose(offset, np.round(offset)):
        dx, dy = int(round(offset[0])), int(round(offset[1]))
        moved = (bbox[0] + dx, bbox[1] + dy, bbox[2] + dx, bbox[3] + dy)
        return (
            paste(viewport, moved, color, 1.0),
            paste(viewport, moved, shape),
            paste(viewport, moved, alpha),
        )

    if abs(np.linalg.det(linear)) < 1e-12:
        logger.debug("Degenerate transform %s" % layer.id)
        return None

    m = np.linalg.inv(matrix)
    v0, v1 = viewport[0] + 0.5, viewport[1] + 0.5
    # scipy maps output (row, col) indices to input (row, col) indices.
    index_matrix = np.array([[m[1, 1], m[1, 0]], [m[0, 1], m[0, 0]]])
    index_offset = np.array(
        [
            m[1, 0] * v0 + m[1, 1] * v1 + m[1, 2] - bbox[1] - 0.5,
            m[0, 0] * v0 + m[0, 1] * v1 + m[0, 2] - bbox[0] - 0.5,
        ]
    )
    output_shape = (viewport[3] - viewport[1], viewport[2] - viewport[0])

    def resample(plane: np.ndarray) -> np.ndarray:
        return affine_transform(
            plane,
            index_matrix,
            offset=index_offset,
            output_shape=output_shape,
            order=1,
            mode="constant",
            cval=0.0,
        )

    premultiplied = color * alpha
    alpha_t = np.expand_dims(resample(alpha[:, :, 0]), 2)
    shape_t = np.expand_dims(resample(shape[:, :, 0]), 2)
    color_t = np.stack(
        [resample(premultiplied[:, :, i]) for i in range(color.shape[2])], axis=2
    )
    color_t = utils.clip(utils.divide(color_t, alpha_t))
    return (
        color_t.astype(np.float32),
        utils.clip(shape_t).astype(np.float32),
        utils.clip(alpha_t).astype(np.float32),
    )


def paste(
    viewport: BBox,
    bbox: BBox,
    values: np.ndarray,
    background: Optional[float] = None,
) -> np.ndarray:
    """Change to the specified viewport."""
    shape = (viewport[3] - viewport[1], viewport[2] - viewport[0], values.shape[2])
    view = (
        np.full(shape, background, dtype=np.float32)
        if background
        else np.zeros(shape, dtype=np.float32)
    )
    inter = utils.intersect(viewport, bbox)
    if inter == (0, 0, 0, 0):
        return view

    v = (
        inter[0] - viewport[0],
        inter[1] - viewport[1],
        inter[2] - viewport[0],
        inter[3] - viewport[1],
    )
    b = (inter[0] - bbox[0], inter[1] - bbox[1], inter[2] - bbox[0], inter[3] - bbox[1])
    view[v[1] : v[3], v[0] : v[2], :] = values[b[1] : b[3], b[0] : b[2], :]
    return view


def draw_selection(viewport: BBox, layer: Layer, cache: ImageCache) -> Source:
    """Outline of a layer's transformed bounds."""
    left, top, right, bottom = paint.layer_bounds(layer, cache)
    corners = []
    for x, y in ((left, top), (right, top), (right, bottom), (left, bottom), (left, top)):
        corners.extend(to_surface(layer, x, y))
    shape = vector.draw_polyline(
        _viewport_size(viewport), corners, 1.0, (viewport[0], viewport[1])
    )
    return _solid(SELECTION_COLOR, shape)


def draw_cursor(viewport: BBox, x: float, y: float, radius: float) -> Source:
    """Brush cursor outline centered on ``(x, y)``."""
    radius = max(radius, 1.0)
    shape = vector.draw_ellipse(
        _viewport_size(viewport),
        (x - radius, y - radius, x + radius, y + radius),
        (viewport[0], viewport[1]),
        brush=False,
        pen_width=1.0,
    )
    return _solid(CURSOR_COLOR, shape)


def _solid(value: str, shape: np.ndarray) -> Source:
    r, g, b, a = parse_color(value)
    color = np.full(shape.shape[:2] + (3,), (r, g, b), dtype=np.float32)
    return color, shape, shape * a


def _viewport_size(viewport: BBox) -> tuple[int, int]:
    return (viewport[2] - viewport[0], viewport[3] - viewport[1])


class Compositor(object):
    """Composite context.

    Example::

        compositor = Compositor((0, 0, 1024, 1024), cache=cache, isolated=True)
        for layer in layers:
            compositor.apply(layer)
        color, shape, alpha = compositor.finish()
    """

    def __init__(
        self,
        viewport: BBox,
        color: Union[float, tuple[float, ...], np.ndarray] = 1.0,
        alpha: Union[float, np.ndarray] = 0.0,
        isolated: bool = False,
        cache: Optional[ImageCache] = None,
        layer_filter: Optional[Callable] = None,
    ):
        self._viewport = viewport
        self._cache = cache
        self._layer_filter = layer_filter

        if isolated:
            self._alpha_0 = np.zeros((self.height, self.width, 1), dtype=np.float32)
        elif isinstance(alpha, np.ndarray):
            self._alpha_0 = alpha
        else:
            self._alpha_0 = np.full(
                (self.height, self.width, 1), alpha, dtype=np.float32
            )

        if isinstance(color, np.ndarray):
            self._color_0 = color
        else:
            channels = 1 if isinstance(color, float) else len(color)
            self._color_0 = np.full(
                (self.height, self.width, channels), color, dtype=np.float32
            )

        self._shape_g = np.zeros((self.height, self.width, 1), dtype=np.float32)
        self._alpha_g = np.zeros((self.height, self.width, 1), dtype=np.float32)
        self._color = self._color_0
        self._alpha = self._alpha_0

    def apply(self, layer: Layer) -> None:
        """Render a layer, place it through its transform and composite it."""
        logger.debug("Compositing %s" % layer.id)

        if self._layer_filter is not None and not self._layer_filter(layer):
            logger.debug("Ignore %s" % layer.id)
            return
        if not layer.is_rendered:
            logger.debug("Skip hidden %s" % layer.id)
            return

        source = self._get_object(layer)
        if source is None:
            return
        color, shape, alpha = source
        self.apply_source(color, shape, alpha * layer.opacity, BlendMode.NORMAL)

    def apply_source(
        self,
        color: np.ndarray,
        shape: np.ndarray,
        alpha: np.ndarray,
        blend_mode: BlendMode = BlendMode.NORMAL,
    ) -> None:
        """Composite a ``(color, shape, alpha)`` source over the group."""
        if self._color_0.shape[2] == 1 and 1 < color.shape[2]:
            self._color_0 = np.repeat(self._color_0, color.shape[2], axis=2)
        if self._color.shape[2] == 1 and 1 < color.shape[2]:
            self._color = np.repeat(self._color, color.shape[2], axis=2)

        self._shape_g = cast(np.ndarray, utils.union(self._shape_g, shape))
        self._alpha_g = cast(np.ndarray, utils.union(self._alpha_g, alpha))
        alpha_previous = self._alpha
        self._alpha = cast(np.ndarray, utils.union(self._alpha_0, self._alpha_g))

        alpha_b = alpha_previous
        color_b = self._color

        blend_fn = BLEND_FUNC.get(blend_mode, normal)
        color_t = (shape - alpha) * alpha_b * color_b + alpha * (
            (1.0 - alpha_b) * color + alpha_b * blend_fn(color_b, color)
        )
        self._color = utils.clip(
            utils.divide(
                (1.0 - shape) * alpha_previous * self._color + color_t, self._alpha
            )
        )

    def apply_erase(self, amount: np.ndarray) -> None:
        """
        Remove group content in proportion to ``amount`` (destination-out).

        Color is kept; only the group's coverage and alpha shrink, so the
        backdrop below the group is never affected.
        """
        keep = 1.0 - utils.clip(amount)
        self._shape_g = self._shape_g * keep
        self._alpha_g = self._alpha_g * keep
        self._alpha = cast(np.ndarray, utils.union(self._alpha_0, self._alpha_g))

    def finish(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        return self.color, self.shape, self.alpha

    @property
    def viewport(self) -> BBox:
        return self._viewport

    @property
    def width(self) -> int:
        return self._viewport[2] - self._viewport[0]

    @property
    def height(self) -> int:
        return self._viewport[3] - self._viewport[1]

    @property
    def color(self) -> np.ndarray:
        return utils.clip(
            self._color
            + (self._color - self._color_0)
            * (utils.divide(self._alpha_0, self._alpha_g) - self._alpha_0)
        )

    @property
    def shape(self) -> np.ndarray:
        return self._shape_g

    @property
    def alpha(self) -> np.ndarray:
        return self._alpha_g

    def _get_object(self, layer: Layer) -> Optional[Source]:
        """Paint a layer locally and place it on the viewport."""
        if self._cache is None:
            raise ValueError("Compositing layers requires an image cache")
        color, shape, alpha, bbox = paint.render(layer, self._cache)
        if bbox[2] <= bbox[0] or bbox[3] <= bbox[1]:
            logger.debug("Empty %s" % layer.id)
            return None
        return place(self._viewport, bbox, layer, color, shape, alpha)
