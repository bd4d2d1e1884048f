"""Utility functions for composite operations."""

from typing import Union, overload

import numpy as np
from numpy.typing import NDArray
from PIL import Image


def divide(a: NDArray[np.floating], b: NDArray[np.floating]) -> NDArray[np.floating]:
    """Safe division for color ops."""
    with np.errstate(divide="ignore", invalid="ignore"):
        c = np.true_divide(a, b)
        c[~np.isfinite(c)] = 1.0
    return c


def intersect(
    a: tuple[int, int, int, int], b: tuple[int, int, int, int]
) -> tuple[int, int, int, int]:
    """Calculate intersection of two bounding boxes."""
    inter = (max(a[0], b[0]), max(a[1], b[1]), min(a[2], b[2]), min(a[3], b[3]))
    if inter[0] >= inter[2] or inter[1] >= inter[3]:
        return (0, 0, 0, 0)
    return inter


@overload
def union(backdrop: float, source: float) -> float: ...


@overload
def union(
    backdrop: NDArray[np.floating], source: NDArray[np.floating]
) -> NDArray[np.floating]: ...


@overload
def union(backdrop: float, source: NDArray[np.floating]) -> NDArray[np.floating]: ...


@overload
def union(backdrop: NDArray[np.floating], source: float) -> NDArray[np.floating]: ...


def union(
    backdrop: Union[float, NDArray[np.floating]],
    source: Union[float, NDArray[np.floating]],
) -> Union[float, NDArray[np.floating]]:
    """Generalized union of shape."""
    return backdrop + source - (backdrop * source)


def clip(x: NDArray[np.floating]) -> NDArray[np.floating]:
    """Clip between [0, 1]."""
    return np.clip(x, 0.0, 1.0)


def from_pil(image: Image.Image) -> tuple[np.ndarray, np.ndarray]:
    """Split a PIL image into float32 ``(color, alpha)`` arrays in [0, 1]."""
    array = np.asarray(image.convert("RGBA"), dtype=np.float32) / 255.0
    return array[:, :, :3], array[:, :, 3:4]


def to_pil(color: np.ndarray, alpha: np.ndarray) -> Image.Image:
    """Merge float ``(color, alpha)`` arrays into an RGBA PIL image."""
    array = np.concatenate((color, alpha), axis=2)
    array = np.round(255.0 * clip(array)).astype(np.uint8)
    return Image.fromarray(array, "RGBA")


def mask_to_array(image: Image.Image) -> np.ndarray:
    """
    Convert a template mask bitmap into a float ``(height, width, 1)`` array.

    The alpha channel is used when the bitmap has one, luminance otherwise.
    """
    if "A" in image.getbands():
        channel = image.getchannel("A")
    else:
        channel = image.convert("L")
    return np.expand_dims(np.asarray(channel, dtype=np.float32) / 255.0, 2)
