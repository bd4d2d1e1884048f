"""
Utility functions for the API layer.
"""

import re
from typing import Any, Optional

from PIL import ImageColor

from wrap_studio.constants import ERASE_COLOR
from wrap_studio.errors import ValidationError

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def parse_color(value: str) -> tuple[float, float, float, float]:
    """
    Parse a CSS color string into RGBA floats in [0, 1].

    ``"transparent"`` maps to fully transparent black.

    :raise ValidationError: if the color string is not understood.
    """
    if value == ERASE_COLOR:
        return (0.0, 0.0, 0.0, 0.0)
    try:
        rgba = ImageColor.getrgb(value)
    except (ValueError, AttributeError, TypeError):
        raise ValidationError("Invalid color: %r" % (value,)) from None
    if len(rgba) == 3:
        rgba = rgba + (255,)
    return tuple(c / 255.0 for c in rgba)  # type: ignore[return-value]


def validate_color(inst: Any, attr: Any, value: Any) -> None:
    """attrs validator for CSS color strings."""
    if not isinstance(value, str):
        raise ValidationError("'%s' must be a color string" % attr.name)
    parse_color(value)


def validate_optional_color(inst: Any, attr: Any, value: Optional[str]) -> None:
    if value is not None:
        validate_color(inst, attr, value)


def camel_case(name: str) -> str:
    """``scale_x`` -> ``scaleX``"""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def snake_case(name: str) -> str:
    """``scaleX`` -> ``scale_x``"""
    return _CAMEL_RE.sub("_", name).lower()
