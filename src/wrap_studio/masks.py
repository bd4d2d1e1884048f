"""
Template mask providers.

A template mask is a 1024x1024 bitmap whose opacity marks the paintable
silhouette of a model. Mask lookup lives outside the compositing engine; a
provider maps a model id to a float ``(1024, 1024, 1)`` array.

Directory layout expected by :py:class:`DirectoryMaskProvider`::

    masks/
        model3/template.png
        modely/template.png
"""

import logging
import os
from typing import Optional, Union

import numpy as np
from PIL import Image

from wrap_studio.composite.utils import mask_to_array
from wrap_studio.constants import SURFACE_SIZE
from wrap_studio.errors import DecodeError

logger = logging.getLogger(__name__)

TEMPLATE_NAME = "template.png"


def load_mask(source: Union[str, os.PathLike, Image.Image]) -> np.ndarray:
    """
    Load a template mask as a float ``(H, W, 1)`` array.

    The alpha channel is used when present, otherwise luminance.

    :raise DecodeError: if the mask cannot be read or is not 1024x1024.
    """
    if isinstance(source, Image.Image):
        image = source
    else:
        try:
            with Image.open(source) as im:
                im.load()
                image = im.copy()
        except (OSError, ValueError) as e:
            logger.error("Failed to load template mask %s: %s" % (source, e))
            raise DecodeError("Failed to load template mask %s: %s" % (source, e)) from e
    if image.size != (SURFACE_SIZE, SURFACE_SIZE):
        raise DecodeError(
            "Template mask must be %dx%d, got %dx%d"
            % (SURFACE_SIZE, SURFACE_SIZE, image.width, image.height)
        )
    return mask_to_array(image)


class DirectoryMaskProvider:
    """Resolves ``<root>/<model_id>/template.png`` and caches loaded masks."""

    def __init__(self, root: Union[str, os.PathLike]):
        self._root = os.fspath(root)
        self._masks: dict[str, np.ndarray] = {}

    @property
    def root(self) -> str:
        return self._root

    def path(self, model_id: str) -> str:
        if not model_id or os.sep in model_id or model_id in (".", ".."):
            raise KeyError("Invalid model id %r" % model_id)
        return os.path.join(self._root, model_id, TEMPLATE_NAME)

    def __call__(self, model_id: str) -> np.ndarray:
        mask = self._masks.get(model_id)
        if mask is None:
            path = self.path(model_id)
            if not os.path.exists(path):
                raise KeyError("No template mask for model %s at %s" % (model_id, path))
            logger.debug("Loading template mask %s" % path)
            mask = load_mask(path)
            self._masks[model_id] = mask
        return mask

    def __repr__(self) -> str:
        return "%s(%r)" % (self.__class__.__name__, self._root)


class SolidMaskProvider:
    """
    Mask provider returning the same mask for every model.

    :param mask: float opacity in [0, 1], an array, or a PIL image.
    """

    def __init__(self, mask: Union[float, np.ndarray, Image.Image] = 1.0):
        if isinstance(mask, Image.Image):
            mask = load_mask(mask)
        elif isinstance(mask, np.ndarray):
            mask = np.asarray(mask, dtype=np.float32)
            if mask.ndim == 2:
                mask = np.expand_dims(mask, 2)
        else:
            mask = np.full((SURFACE_SIZE, SURFACE_SIZE, 1), mask, dtype=np.float32)
        self._mask = mask

    def __call__(self, model_id: Optional[str] = None) -> np.ndarray:
        return self._mask
