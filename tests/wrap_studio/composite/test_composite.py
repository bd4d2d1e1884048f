import logging

import numpy as np
import pytest
from PIL import Image

from wrap_studio.api.layers import make_layer
from wrap_studio.cache import ImageCache, decode_source
from wrap_studio.composite import composite, composite_pil
from wrap_studio.composite.composite import (
    Compositor,
    draw_cursor,
    paste,
    place,
    to_local,
    to_surface,
)

logger = logging.getLogger(__name__)

VIEWPORT = (0, 0, 64, 64)


@pytest.fixture
def cache():
    return ImageCache()


@pytest.fixture
def left_mask():
    mask = np.zeros((64, 64, 1), dtype=np.float32)
    mask[:, :32] = 1.0
    return mask


def _layers(cache, make_png):
    entry = cache.insert(decode_source(make_png((64, 64), (0, 0, 255, 255))))
    return [
        make_layer({"type": "texture", "source": entry.key}, "texture-1"),
        make_layer({"type": "rect", "x": 0, "y": 0, "width": 64, "height": 64}, "rect-2"),
        make_layer({"type": "circle", "x": 32, "y": 32, "radius": 40}, "circle-3"),
        make_layer(
            {"type": "brush", "strokes": [{"points": [0, 32, 64, 32], "size": 30}]},
            "brush-4",
        ),
        make_layer({"type": "line", "points": [0, 0, 64, 64], "strokeWidth": 10}, "line-5"),
        make_layer({"type": "star", "x": 32, "y": 32, "outerRadius": 60}, "star-6"),
        make_layer({"type": "text", "text": "WWWW", "fontSize": 40}, "text-7"),
    ]


@pytest.mark.parametrize("base_color", ["#F5F5F0", "transparent", "#00000080"])
def test_nothing_outside_mask(cache, make_png, left_mask, base_color):
    layers = _layers(cache, make_png)
    for count in range(len(layers) + 1):
        color, shape, alpha = composite(
            layers[:count], cache, left_mask, base_color, VIEWPORT
        )
        assert not alpha[:, 32:].any()
        assert not shape[:, 32:].any()


def test_transformed_layers_outside_mask(cache, left_mask):
    layers = [
        make_layer(
            {"type": "rect", "x": 40, "y": -10, "rotation": 30, "scaleX": 1.5, "width": 60},
            "rect-1",
        )
    ]
    _, _, alpha = composite(layers, cache, left_mask, "transparent", VIEWPORT)
    assert not alpha[:, 32:].any()
    assert alpha[:, :32].any()


def test_base_fill(cache, left_mask):
    color, _, alpha = composite([], cache, left_mask, "#ff0000", VIEWPORT)
    assert np.allclose(color[0, 0], (1.0, 0.0, 0.0))
    assert alpha[0, 0, 0] == 1.0
    assert alpha[0, 63, 0] == 0.0


def test_partial_mask(cache):
    mask = np.full((64, 64, 1), 0.5, dtype=np.float32)
    layers = [make_layer({"type": "rect", "x": 0, "y": 0, "width": 64, "height": 64}, "rect-1")]
    _, _, alpha = composite(layers, cache, mask, "transparent", VIEWPORT)
    assert alpha[32, 32, 0] == pytest.approx(0.5)


def test_mask_from_image(cache):
    mask = Image.new("L", (64, 64), 0)
    mask.paste(255, (0, 0, 16, 64))
    _, _, alpha = composite([], cache, mask, "#ffffff", VIEWPORT)
    assert alpha[10, 10, 0] == 1.0
    assert alpha[10, 20, 0] == 0.0


def test_mask_size_mismatch(cache):
    with pytest.raises(ValueError):
        composite([], cache, np.ones((32, 32)), "#ffffff", VIEWPORT)


@pytest.mark.render
def test_rect_over_base(cache):
    layers = [make_layer({"type": "rect", "x": 150, "y": 150}, "rect-1")]
    image = composite_pil(layers, cache)
    assert image.size == (1024, 1024)
    assert image.mode == "RGBA"
    assert image.getpixel((200, 200)) == (0xB7, 0x30, 0x38, 255)
    assert image.getpixel((100, 100)) == (0xF5, 0xF5, 0xF0, 255)


def test_opacity_and_visibility(cache):
    rect = {"type": "rect", "x": 0, "y": 0, "width": 64, "height": 64}
    half = make_layer(dict(rect, opacity=0.5), "rect-1")
    hidden = make_layer(dict(rect, visible=False), "rect-2")
    clear = make_layer(dict(rect, opacity=0), "rect-3")
    _, _, alpha = composite([half], cache, None, "transparent", VIEWPORT)
    assert alpha[32, 32, 0] == pytest.approx(0.5)
    for layer in (hidden, clear):
        _, _, alpha = composite([layer], cache, None, "transparent", VIEWPORT)
        assert not alpha.any()


def test_layer_filter(cache):
    layers = [
        make_layer({"type": "rect", "x": 0, "y": 0, "width": 64, "height": 64}, "rect-1"),
        make_layer({"type": "circle", "x": 32, "y": 32, "fill": "#000000"}, "circle-2"),
    ]
    color, _, _ = composite(
        layers, cache, None, "#ffffff", VIEWPORT, layer_filter=lambda l: l.kind == "rect"
    )
    assert np.allclose(color[32, 32], (0xB7 / 255.0, 0x30 / 255.0, 0x38 / 255.0))


def test_z_order(cache):
    rect = {"type": "rect", "x": 0, "y": 0, "width": 64, "height": 64}
    red = make_layer(dict(rect, fill="#ff0000"), "rect-1")
    blue = make_layer(dict(rect, fill="#0000ff"), "rect-2")
    color, _, _ = composite([red, blue], cache, None, "#ffffff", VIEWPORT)
    assert np.allclose(color[32, 32], (0.0, 0.0, 1.0))
    color, _, _ = composite([blue, red], cache, None, "#ffffff", VIEWPORT)
    assert np.allclose(color[32, 32], (1.0, 0.0, 0.0))


def test_eraser_only_affects_its_layer(cache):
    layers = [
        make_layer(
            {"type": "rect", "x": 0, "y": 0, "width": 64, "height": 64, "fill": "#0000ff"},
            "rect-1",
        ),
        make_layer(
            {
                "type": "brush",
                "strokes": [
                    {"points": [0, 32, 64, 32], "color": "#ff0000", "size": 20},
                    {"points": [32, 0, 32, 64], "color": "transparent", "size": 10},
                ],
            },
            "brush-2",
        ),
    ]
    color, _, alpha = composite(layers, cache, None, "#ffffff", VIEWPORT)
    assert np.allclose(color[32, 10], (1.0, 0.0, 0.0))
    assert np.allclose(color[32, 32], (0.0, 0.0, 1.0))
    assert np.allclose(color[5, 32], (0.0, 0.0, 1.0))
    assert np.allclose(alpha, 1.0)


def test_place_translation_is_pasted():
    color = np.full((4, 4, 3), 0.5, dtype=np.float32)
    ones = np.ones((4, 4, 1), dtype=np.float32)
    layer = make_layer({"type": "rect", "x": 10, "y": 20}, "rect-1")
    color_t, shape_t, alpha_t = place(VIEWPORT, (0, 0, 4, 4), layer, color, ones, ones)
    assert alpha_t[20:24, 10:14].min() == 1.0
    assert alpha_t.sum() == 16
    assert np.allclose(color_t[21, 11], 0.5)


def test_place_rotation():
    color = np.zeros((4, 20, 3), dtype=np.float32)
    ones = np.ones((4, 20, 1), dtype=np.float32)
    layer = make_layer({"type": "rect", "x": 50, "y": 50, "rotation": 90}, "rect-1")
    _, _, alpha = place((0, 0, 100, 100), (0, 0, 20, 4), layer, color, ones, ones)
    assert alpha[60, 48, 0] == pytest.approx(1.0)
    assert alpha[52, 60, 0] == 0.0


def test_place_scale():
    color = np.ones((10, 10, 3), dtype=np.float32)
    ones = np.ones((10, 10, 1), dtype=np.float32)
    layer = make_layer({"type": "rect", "scaleX": 2, "scaleY": 2}, "rect-1")
    _, _, alpha = place(VIEWPORT, (0, 0, 10, 10), layer, color, ones, ones)
    assert alpha[15, 15, 0] == pytest.approx(1.0)
    assert alpha[25, 25, 0] == 0.0


def test_place_degenerate():
    ones = np.ones((4, 4, 1), dtype=np.float32)
    layer = make_layer({"type": "rect", "scaleX": 0}, "rect-1")
    assert place(VIEWPORT, (0, 0, 4, 4), layer, ones, ones, ones) is None


def test_local_surface_mapping():
    layer = make_layer(
        {"type": "rect", "x": 30, "y": 40, "rotation": 45, "scaleX": 2, "scaleY": 0.5},
        "rect-1",
    )
    x, y = to_surface(layer, 10, 20)
    assert to_local(layer, x, y) == pytest.approx((10, 20))
    assert to_surface(layer, 0, 0) == pytest.approx((30, 40))


def test_paste():
    values = np.ones((10, 10, 1), dtype=np.float32)
    view = paste((0, 0, 20, 20), (-5, 15, 5, 25), values)
    assert view.shape == (20, 20, 1)
    assert view.sum() == 25
    assert view[19, 0, 0] == 1.0
    assert not paste((0, 0, 20, 20), (30, 30, 40, 40), values).any()


def test_overlays_are_unmasked(cache, left_mask):
    cursor = draw_cursor(VIEWPORT, 48, 32, 8)
    image = composite_pil([], cache, left_mask, "#000000", VIEWPORT, [cursor])
    assert image.getpixel((40, 32))[3] > 0
    assert image.getpixel((48, 32))[3] == 0


def test_compositor_needs_cache():
    compositor = Compositor(VIEWPORT, isolated=True)
    with pytest.raises(ValueError):
        compositor.apply(make_layer({"type": "rect"}, "rect-1"))
