import io
import logging

import pytest
from PIL import Image

from wrap_studio.constants import OverlayKind
from wrap_studio.export import export, export_bytes, export_png

logger = logging.getLogger(__name__)

pytestmark = pytest.mark.render


def test_export_size(every_kind):
    image = export(every_kind)
    assert image.size == (1024, 1024)
    assert image.mode == "RGBA"


def test_export_hides_overlays(session):
    session.add_layer({"type": "rect"})
    session.set_cursor(600, 600, radius=20)
    session.begin_stroke(color="#0000ff", size=20)
    session.add_stroke_point(400, 400)
    session.add_stroke_point(500, 400)
    blank = export(session)
    assert blank.getpixel((450, 400)) == (245, 245, 240, 255)
    assert blank.getpixel((580, 600)) == (245, 245, 240, 255)
    assert all(session.overlay_visible(kind) for kind in OverlayKind)
    assert session.capture is not None


def test_export_is_masked(masked_session, make_png):
    masked_session.add_layer(
        {"type": "texture", "src": make_png((1024, 1024), (255, 0, 0, 255))}
    )
    image = export(masked_session)
    assert image.getpixel((100, 500)) == (255, 0, 0, 255)
    assert image.getpixel((800, 500))[3] == 0


def test_export_png(session, tmp_path):
    session.add_layer({"type": "circle"})
    path = tmp_path / "wrap.png"
    export_png(session, path)
    with Image.open(path) as image:
        assert image.format == "PNG"
        assert image.size == (1024, 1024)
        assert image.getpixel((150, 150)) == (0xD7, 0xDC, 0xDD, 255)


def test_export_bytes(session):
    data = export_bytes(session)
    assert data.startswith(b"\x89PNG")
    with Image.open(io.BytesIO(data)) as image:
        assert image.size == (1024, 1024)
