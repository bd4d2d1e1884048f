import io
import logging

import pytest
from PIL import Image

from wrap_studio.cache import (
    ImageCache,
    content_key,
    decode_source,
    from_data_uri,
    to_data_uri,
)
from wrap_studio.errors import DecodeError

logger = logging.getLogger(__name__)


def test_decode_bytes(make_png):
    data = make_png((40, 20))
    entry = decode_source(data)
    assert entry.key == content_key(data)
    assert entry.data == data
    assert entry.mime == "image/png"
    assert entry.size == (40, 20)
    assert entry.image.mode == "RGBA"
    assert entry.image.getpixel((0, 0)) == (255, 0, 0, 255)


def test_decode_data_uri_and_file(make_png, tmp_path):
    data = make_png()
    assert decode_source(to_data_uri(data)).key == content_key(data)

    path = tmp_path / "decal.png"
    path.write_bytes(data)
    assert decode_source(str(path)).data == data
    assert decode_source(path).data == data
    with open(path, "rb") as f:
        assert decode_source(f).data == data


def test_decode_pil_image():
    image = Image.new("RGB", (8, 4), (0, 255, 0))
    entry = decode_source(image)
    assert entry.mime == "image/png"
    assert entry.image.mode == "RGBA"
    assert decode_source(entry.data).size == (8, 4)


def test_decode_jpeg_mime():
    with io.BytesIO() as f:
        Image.new("RGB", (8, 8), (10, 20, 30)).save(f, format="JPEG")
        data = f.getvalue()
    assert decode_source(data).mime == "image/jpeg"


@pytest.mark.parametrize(
    "source",
    [b"", b"not an image", "data:image/png;base64,!!!", "data:text/plain,hello"],
)
def test_decode_error(source):
    with pytest.raises(DecodeError):
        decode_source(source)


def test_decode_missing_file(tmp_path):
    with pytest.raises(DecodeError):
        decode_source(str(tmp_path / "missing.png"))


def test_data_uri_roundtrip():
    data, mime = from_data_uri(to_data_uri(b"\x00\x01binary", "image/webp"))
    assert data == b"\x00\x01binary"
    assert mime == "image/webp"


def test_cache_refcount(make_png):
    cache = ImageCache()
    entry = decode_source(make_png())
    assert cache.insert(entry) is entry
    assert entry.key in cache
    assert len(cache) == 1
    assert cache.refcount(entry.key) == 0

    cache.acquire(entry.key)
    cache.acquire(entry.key)
    assert cache.refcount(entry.key) == 2
    cache.release(entry.key)
    assert entry.key in cache
    cache.release(entry.key)
    assert entry.key not in cache
    with pytest.raises(KeyError):
        cache.get(entry.key)


def test_cache_dedupes(make_png):
    cache = ImageCache()
    data = make_png()
    first = cache.insert(decode_source(data))
    second = cache.insert(decode_source(data))
    assert second is first
    assert len(cache) == 1


def test_cache_acquire_unknown():
    cache = ImageCache()
    with pytest.raises(KeyError):
        cache.acquire("deadbeef")
    cache.release("deadbeef")


def test_cache_collect_and_clear(make_png):
    cache = ImageCache()
    kept = cache.insert(decode_source(make_png(color=(1, 2, 3, 255))))
    cache.insert(decode_source(make_png(color=(4, 5, 6, 255))))
    cache.acquire(kept.key)
    assert cache.collect() == 1
    assert list(cache) == [kept]
    cache.clear()
    assert len(cache) == 0
