"""
Project module.
"""

import logging
from typing import Any, Optional

from attrs import define, evolve, field

from wrap_studio.api.layers import Layer
from wrap_studio.api.utils import validate_color
from wrap_studio.constants import DEFAULT_BASE_COLOR, DEFAULT_PROJECT_NAME
from wrap_studio.errors import ValidationError

logger = logging.getLogger(__name__)


def _validate_model_id(inst: Any, attr: Any, value: Any) -> None:
    if not isinstance(value, str) or not value:
        raise ValidationError("'%s' must be a non-empty string" % attr.name)


@define(frozen=True)
class Project:
    """
    Design state: template model, base fill and the layer stack.

    .. py:attribute:: layers

        Layers in z-order, bottom first.
    """

    model_id: str = field(validator=_validate_model_id)
    base_color: str = field(default=DEFAULT_BASE_COLOR, validator=validate_color)
    layers: tuple[Layer, ...] = field(factory=tuple, converter=tuple)
    name: str = field(default=DEFAULT_PROJECT_NAME)

    @layers.validator
    def _validate_layers(self, attribute: Any, value: tuple) -> None:
        seen = set()
        for layer in value:
            if not isinstance(layer, Layer):
                raise ValidationError("Expected Layer, got %s" % type(layer).__name__)
            if layer.id in seen:
                raise ValidationError("Duplicate layer id %s" % layer.id)
            seen.add(layer.id)

    def find(self, layer_id: str) -> Optional[Layer]:
        for layer in self.layers:
            if layer.id == layer_id:
                return layer
        return None

    def index(self, layer_id: str) -> int:
        """
        :raise KeyError: if there is no such layer.
        """
        for index, layer in enumerate(self.layers):
            if layer.id == layer_id:
                return index
        raise KeyError("No layer with id %s" % layer_id)

    def sources(self) -> set[str]:
        """Cache keys of every bitmap the layers reference."""
        return {layer.source for layer in self.layers if layer.source is not None}

    def with_layers(self, layers: Any) -> "Project":
        return evolve(self, layers=tuple(layers))

    def __len__(self) -> int:
        return len(self.layers)
