"""
Image cache.

Raster sources (encoded bytes, data URIs, files, or already decoded PIL images)
are decoded once into RGBA bitmaps and shared between every layer that
references them. Entries are keyed by the SHA-1 of their encoded bytes, so the
same source inserted twice is stored once::

    entry = decode_source(open("decal.png", "rb").read())
    cache.insert(entry)
    cache.acquire(entry.key)    # a layer now references the bitmap
    cache.release(entry.key)    # last reference dropped: evicted

Entries are never mutated once inserted.
"""

import base64
import binascii
import hashlib
import io
import logging
import os
from typing import Any, BinaryIO, Iterator, Union

from attrs import define, field
from PIL import Image

from wrap_studio.errors import DecodeError

logger = logging.getLogger(__name__)

Source = Union[bytes, bytearray, str, os.PathLike, BinaryIO, Image.Image]

DATA_URI_PREFIX = "data:"


@define(frozen=True, eq=False)
class CachedImage:
    """
    Decoded bitmap together with the encoded bytes it came from.

    .. py:attribute:: key

        Content hash of :py:attr:`data`.

    .. py:attribute:: data

        Original encoded bytes, embedded verbatim when the project is saved.

    .. py:attribute:: mime

        MIME type of :py:attr:`data`, e.g. ``image/png``.

    .. py:attribute:: image

        Decoded RGBA :py:class:`PIL.Image.Image`.
    """

    key: str = field()
    data: bytes = field(repr=False)
    mime: str = field()
    image: Image.Image = field(repr=False)

    @property
    def size(self) -> tuple[int, int]:
        return self.image.size

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def nbytes(self) -> int:
        return len(self.data)


def content_key(data: bytes) -> str:
    """Return the cache key of encoded bytes."""
    return hashlib.sha1(data).hexdigest()


def to_data_uri(data: bytes, mime: str = "image/png") -> str:
    """Encode bytes as an inline ``data:`` URI."""
    return "data:%s;base64,%s" % (mime, base64.b64encode(data).decode("ascii"))


def from_data_uri(uri: str) -> tuple[bytes, str]:
    """
    Decode an inline ``data:<mime>;base64,<payload>`` URI.

    :raise DecodeError: if the URI is malformed.
    """
    if not uri.startswith(DATA_URI_PREFIX) or "," not in uri:
        raise DecodeError("Not a data URI: %s" % uri[:32])
    header, payload = uri[len(DATA_URI_PREFIX) :].split(",", 1)
    parts = header.split(";")
    mime = parts[0] or "application/octet-stream"
    if "base64" not in parts[1:]:
        raise DecodeError("Only base64 data URIs are supported")
    try:
        return base64.b64decode(payload, validate=True), mime
    except (binascii.Error, ValueError) as e:
        raise DecodeError("Corrupt data URI payload: %s" % e) from e


def _read_bytes(source: Source) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    if isinstance(source, str) and source.startswith(DATA_URI_PREFIX):
        return from_data_uri(source)[0]
    if isinstance(source, (str, os.PathLike)):
        try:
            with open(source, "rb") as f:
                return f.read()
        except OSError as e:
            raise DecodeError("Cannot read image file %s: %s" % (source, e)) from e
    if hasattr(source, "read"):
        return source.read()
    raise DecodeError("Unsupported image source: %s" % type(source).__name__)


def encode_png(image: Image.Image, **kwargs: Any) -> bytes:
    """Encode a PIL image as PNG bytes."""
    with io.BytesIO() as f:
        image.save(f, format="PNG", **kwargs)
        return f.getvalue()


def decode_source(source: Source) -> CachedImage:
    """
    Decode a raster source into a cache entry without inserting it.

    :param source: encoded bytes, a ``data:`` URI, a file path, a binary
        file-like object, or a PIL image (which is encoded as PNG first).
    :raise DecodeError: if the source cannot be read or decoded.
    """
    if isinstance(source, Image.Image):
        image = source.convert("RGBA")
        data = encode_png(image)
        return CachedImage(content_key(data), data, "image/png", image)

    data = _read_bytes(source)
    if not data:
        raise DecodeError("Empty image source")
    try:
        with Image.open(io.BytesIO(data)) as im:
            im.load()
            mime = Image.MIME.get(im.format or "", "image/png")
            image = im.convert("RGBA")
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
        logger.error("Failed to decode image: %s" % e)
        raise DecodeError("Failed to decode image: %s" % e) from e
    if image.width == 0 or image.height == 0:
        raise DecodeError("Image has no pixels")
    return CachedImage(content_key(data), data, mime, image)


class ImageCache:
    """
    Reference-counted store of decoded bitmaps shared across layers.

    A layer referencing a bitmap holds one reference per history entry it
    appears in; the entry is evicted when its count drops to zero.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CachedImage] = {}
        self._refs: dict[str, int] = {}

    def insert(self, entry: CachedImage) -> CachedImage:
        """
        Insert a decoded entry and return the stored one. An entry with the
        same key is kept as is.
        """
        existing = self._entries.get(entry.key)
        if existing is not None:
            return existing
        logger.debug("Cache insert %s (%d bytes)" % (entry.key, entry.nbytes))
        self._entries[entry.key] = entry
        self._refs[entry.key] = 0
        return entry

    def get(self, key: str) -> CachedImage:
        try:
            return self._entries[key]
        except KeyError:
            raise KeyError("No cached image for source %s" % key) from None

    def acquire(self, key: str) -> None:
        if key not in self._entries:
            raise KeyError("No cached image for source %s" % key)
        self._refs[key] += 1

    def release(self, key: str) -> None:
        count = self._refs.get(key)
        if count is None:
            return
        count -= 1
        if count > 0:
            self._refs[key] = count
            return
        logger.debug("Cache evict %s" % key)
        del self._refs[key]
        del self._entries[key]

    def refcount(self, key: str) -> int:
        return self._refs.get(key, 0)

    def collect(self) -> int:
        """Evict entries that no layer references; return how many."""
        unused = [key for key, count in self._refs.items() if count <= 0]
        for key in unused:
            logger.debug("Cache evict %s" % key)
            del self._refs[key]
            del self._entries[key]
        return len(unused)

    def clear(self) -> None:
        self._entries.clear()
        self._refs.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CachedImage]:
        return iter(list(self._entries.values()))

    def __repr__(self) -> str:
        return "%s(entries=%d)" % (self.__class__.__name__, len(self._entries))
