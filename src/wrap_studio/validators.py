"""
Validation functions for attrs.
"""

import math
from typing import Any, Iterable

from attrs import define, field

from wrap_studio.errors import ValidationError

__all__ = ["in_", "range_", "finite", "non_negative", "to_enum"]


@define(repr=False, frozen=True)
class _InValidator:
    options: Any = field()

    def __call__(self, inst: Any, attr: Any, value: Any) -> None:
        try:
            found = value in self.options
        except TypeError:
            found = False
        if not found:
            raise ValidationError(
                "'{name}' must be in {options!r} (got {value!r})".format(
                    name=attr.name, options=self.options, value=value
                )
            )

    def __repr__(self) -> str:
        return "<in_ validator with options {options!r}>".format(options=self.options)


@define(repr=False, frozen=True)
class _RangeValidator:
    minimum: Any = field()
    maximum: Any = field()

    def __call__(self, inst: Any, attr: Any, value: Any) -> None:
        try:
            in_range = self.minimum <= value and value <= self.maximum
        except TypeError:
            in_range = False

        if not in_range:
            raise ValidationError(
                "'{name}' must be in range [{minimum!r}, {maximum!r}] "
                "(got {value!r})".format(
                    name=attr.name,
                    minimum=self.minimum,
                    maximum=self.maximum,
                    value=value,
                )
            )

    def __repr__(self) -> str:
        return "<range_ validator with [{minimum!r}, {maximum!r}]>".format(
            minimum=self.minimum, maximum=self.maximum
        )


def in_(options: Iterable[Any]) -> _InValidator:
    """
    A validator that raises a :exc:`ValidationError` if the initializer is
    called with a value that does not belong in the options.
    """
    return _InValidator(options)


def range_(minimum: Any, maximum: Any) -> _RangeValidator:
    """
    A validator that raises a :exc:`ValidationError` if the initializer is
    called with a value that does not belong in the [minimum, maximum] range.
    The check is performed using ``minimum <= value and value <= maximum``
    """
    return _RangeValidator(minimum, maximum)


def finite(inst: Any, attr: Any, value: Any) -> None:
    """Reject NaN and infinities."""
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationError(
            "'{name}' must be a finite number (got {value!r})".format(
                name=attr.name, value=value
            )
        )


def non_negative(inst: Any, attr: Any, value: Any) -> None:
    """Reject non-finite and negative numbers."""
    finite(inst, attr, value)
    if value < 0:
        raise ValidationError(
            "'{name}' must not be negative (got {value!r})".format(
                name=attr.name, value=value
            )
        )


def to_enum(enum_cls: Any) -> Any:
    """
    A converter that maps raw values onto ``enum_cls`` and raises
    :exc:`ValidationError` for unknown values.
    """

    def converter(value: Any) -> Any:
        try:
            return enum_cls(value)
        except ValueError:
            raise ValidationError(
                "{value!r} is not a valid {name}".format(
                    value=value, name=enum_cls.__name__
                )
            ) from None

    return converter
