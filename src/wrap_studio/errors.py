"""
Exception and warning types.

All errors are local to the operation that raised them; the session state,
history and image cache are only mutated once an operation has succeeded.
"""


class WrapStudioError(Exception):
    """Base class of all wrap_studio errors."""


class ValidationError(WrapStudioError, ValueError):
    """Malformed layer spec, degenerate geometry or out-of-range field."""


class DecodeError(WrapStudioError):
    """Unreadable or corrupt bitmap source."""


class SerializationError(WrapStudioError):
    """Version mismatch or missing required field in a project document."""


class EncodingBudgetExceeded(UserWarning):
    """
    The bounded re-encoder could not meet the size ceiling even at the minimum
    quality. The oversized result is still used.
    """
