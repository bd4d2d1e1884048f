"""Pytest configuration and shared fixtures for wrap-studio tests."""

import io
import logging
from typing import Any, Callable

import numpy as np
import pytest
from PIL import Image

from wrap_studio import Session
from wrap_studio.constants import SURFACE_SIZE
from wrap_studio.masks import SolidMaskProvider

logging.basicConfig(level=logging.DEBUG)


def pytest_configure(config: Any) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "render: mark test as compositing the full 1024x1024 surface",
    )


def encode(image: Image.Image, format: str = "PNG", **kwargs: Any) -> bytes:
    with io.BytesIO() as f:
        image.save(f, format=format, **kwargs)
        return f.getvalue()


@pytest.fixture
def make_png() -> Callable[..., bytes]:
    """Factory of solid-color PNG bytes."""

    def factory(size=(40, 20), color=(255, 0, 0, 255)) -> bytes:
        return encode(Image.new("RGBA", size, color))

    return factory


@pytest.fixture
def noise_image() -> Image.Image:
    """Incompressible RGB noise."""
    rng = np.random.default_rng(0)
    array = rng.integers(0, 256, size=(128, 128, 3), dtype=np.uint8)
    return Image.fromarray(array, "RGB")


@pytest.fixture
def half_mask() -> np.ndarray:
    """Template mask that is opaque on the left half only."""
    mask = np.zeros((SURFACE_SIZE, SURFACE_SIZE, 1), dtype=np.float32)
    mask[:, : SURFACE_SIZE // 2] = 1.0
    return mask


@pytest.fixture
def session() -> Session:
    """Session on a fully opaque template."""
    return Session("model3", masks=SolidMaskProvider(1.0))


@pytest.fixture
def masked_session(half_mask: np.ndarray) -> Session:
    """Session on a template that only covers the left half."""
    return Session("model3", masks=SolidMaskProvider(half_mask))


@pytest.fixture
def every_kind(session: Session, make_png: Callable[..., bytes]) -> Session:
    """Session holding one layer of every kind."""
    session.add_layer({"type": "texture", "src": make_png((64, 64), (0, 0, 255, 255))})
    session.add_layer({"type": "image", "src": make_png((600, 300)), "name": "decal.png"})
    brush_id = session.add_layer({"type": "brush"})
    session.commit_stroke(
        brush_id,
        {"points": [10, 10, 50, 10, 80, 40], "color": "#00ff00", "size": 8, "hardness": 60},
    )
    session.add_layer({"type": "text", "text": "Hello\nWorld", "align": "center"})
    session.add_layer({"type": "rect", "cornerRadius": 8, "stroke": "#000000", "strokeWidth": 2})
    session.add_layer({"type": "circle", "opacity": 0.5})
    session.add_layer({"type": "line", "points": [0, 0, 100, 50, 200, 0]})
    session.add_layer({"type": "star", "numPoints": 6, "rotation": 15})
    return session
