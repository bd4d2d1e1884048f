"""
Bounded re-encoder.

Embedded bitmaps larger than the size ceiling are re-encoded before they are
written into a project document:

1. an input already within the ceiling is returned unchanged;
2. otherwise a lossless PNG re-encode is tried;
3. otherwise the WebP quality is binary searched within
   ``[min_quality, max_quality]`` for the highest quality that fits, and the
   chosen WebP result is converted back to PNG.

The ceiling bounds the WebP encoding measured by the search; the PNG holding
its decoded pixels may be larger. If even the minimum quality is too large,
the minimum quality result is returned and
:py:class:`~wrap_studio.errors.EncodingBudgetExceeded` is issued as a warning.
"""

import asyncio
import io
import logging
import warnings
from typing import Optional

from attrs import define, field
from PIL import Image

from wrap_studio.cache import CachedImage, decode_source, encode_png
from wrap_studio.constants import (
    MAX_EMBED_BYTES,
    MAX_QUALITY,
    MIN_QUALITY,
    QUALITY_TOLERANCE,
)
from wrap_studio.errors import EncodingBudgetExceeded, ValidationError
from wrap_studio.validators import in_

logger = logging.getLogger(__name__)

LOSSY_FORMAT = "WEBP"


@define(frozen=True)
class EncodeResult:
    """
    Outcome of :py:func:`reencode`. :py:attr:`data` is always in the input's
    format when unchanged, and PNG otherwise.

    .. py:attribute:: method

        ``"original"``, ``"lossless"`` or ``"lossy"``.

    .. py:attribute:: quality

        Lossy quality in [0, 1], None unless ``method == "lossy"``.

    .. py:attribute:: lossy_size

        Size of the WebP encoding chosen by the quality search, None unless
        ``method == "lossy"``.

    .. py:attribute:: within_budget

        False when even the minimum quality overflowed the ceiling.
    """

    data: bytes = field(repr=False)
    mime: str = field()
    method: str = field(validator=in_(("original", "lossless", "lossy")))
    quality: Optional[float] = field(default=None)
    within_budget: bool = field(default=True)
    lossy_size: Optional[int] = field(default=None)

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def changed(self) -> bool:
        return self.method != "original"


def encode_lossy(image: Image.Image, quality: float) -> bytes:
    """Encode as WebP at a quality in [0, 1], keeping alpha."""
    with io.BytesIO() as f:
        image.save(f, format=LOSSY_FORMAT, quality=int(round(quality * 100)))
        return f.getvalue()


def reencode(
    entry: CachedImage,
    max_bytes: int = MAX_EMBED_BYTES,
    min_quality: float = MIN_QUALITY,
    max_quality: float = MAX_QUALITY,
    tolerance: float = QUALITY_TOLERANCE,
) -> EncodeResult:
    """
    Fit a cached bitmap's encoded bytes under ``max_bytes``.

    Never returns a result larger than the input when the input already fits.
    """
    if max_bytes < 1:
        raise ValidationError("max_bytes must be positive (got %r)" % max_bytes)
    if not 0 < min_quality <= max_quality <= 1:
        raise ValidationError(
            "Invalid quality range [%r, %r]" % (min_quality, max_quality)
        )
    if entry.nbytes <= max_bytes:
        return EncodeResult(entry.data, entry.mime, "original")

    lossless = encode_png(entry.image, optimize=True, compress_level=9)
    logger.debug("Lossless re-encode: %d -> %d bytes" % (entry.nbytes, len(lossless)))
    if len(lossless) <= max_bytes:
        return EncodeResult(lossless, "image/png", "lossless")

    best: Optional[tuple[float, bytes]] = None
    low, high = min_quality, max_quality
    data = encode_lossy(entry.image, high)
    if len(data) <= max_bytes:
        best = (high, data)
    else:
        while high - low > tolerance:
            mid = (low + high) / 2.0
            data = encode_lossy(entry.image, mid)
            logger.debug("Quality %.3f: %d bytes" % (mid, len(data)))
            if len(data) <= max_bytes:
                best = (mid, data)
                low = mid
            else:
                high = mid

    if best is None:
        data = encode_lossy(entry.image, min_quality)
        if len(data) > max_bytes:
            message = (
                "Cannot fit %s under %d bytes; minimum quality gives %d bytes"
                % (entry.key, max_bytes, len(data))
            )
            logger.warning(message)
            warnings.warn(message, EncodingBudgetExceeded, stacklevel=2)
        best = (min_quality, data)

    quality, data = best
    return _canonical(data, quality, len(data) <= max_bytes)


def _canonical(lossy: bytes, quality: float, within_budget: bool) -> EncodeResult:
    with Image.open(io.BytesIO(lossy)) as im:
        data = encode_png(im.convert("RGBA"), optimize=True)
    logger.debug("Lossy %d bytes converted to %d PNG bytes" % (len(lossy), len(data)))
    return EncodeResult(
        data,
        "image/png",
        "lossy",
        quality,
        within_budget=within_budget,
        lossy_size=len(lossy),
    )


async def reencode_async(entry: CachedImage, **kwargs) -> EncodeResult:
    """Run :py:func:`reencode` off the event loop."""
    return await asyncio.to_thread(reencode, entry, **kwargs)


def reencode_entry(entry: CachedImage, **kwargs) -> CachedImage:
    """
    Re-encode a cache entry and decode the result back into an RGBA entry.

    Returns ``entry`` itself when it already fits.
    """
    result = reencode(entry, **kwargs)
    if not result.changed:
        return entry
    return decode_source(result.data)
