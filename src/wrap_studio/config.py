"""
Runtime configuration.

Fixed values live in :py:mod:`wrap_studio.constants`; the tunables collected
here can be overridden per session or from ``WRAP_STUDIO_*`` environment
variables::

    config = Config.from_env()
    session = Session(config=config)
"""

import logging
import os
from typing import Mapping, Optional

from attrs import define, field, validators

from wrap_studio import constants
from wrap_studio.errors import ValidationError
from wrap_studio.validators import range_

logger = logging.getLogger(__name__)

ENV_PREFIX = "WRAP_STUDIO_"


def _optional_positive(inst, attr, value):
    if value is not None and (not isinstance(value, int) or value < 1):
        raise ValidationError(
            "'{name}' must be a positive integer or None (got {value!r})".format(
                name=attr.name, value=value
            )
        )


@define(frozen=True)
class Config:
    """
    Session tunables.

    .. py:attribute:: max_embed_bytes

        Size ceiling of a single embedded bitmap payload.

    .. py:attribute:: min_quality
    .. py:attribute:: max_quality

        Admissible lossy quality range of the bounded re-encoder.

    .. py:attribute:: history_limit

        Maximum number of history entries, ``None`` for unbounded. A limit
        evicts the oldest entries.

    .. py:attribute:: mask_root

        Directory holding one ``<model_id>/template.png`` per model.
    """

    max_embed_bytes: int = field(
        default=constants.MAX_EMBED_BYTES, validator=range_(1, 1 << 31)
    )
    min_quality: float = field(default=constants.MIN_QUALITY, validator=range_(0.01, 1.0))
    max_quality: float = field(default=constants.MAX_QUALITY, validator=range_(0.01, 1.0))
    history_limit: Optional[int] = field(default=None, validator=_optional_positive)
    mask_root: Optional[str] = field(
        default=None, validator=validators.optional(validators.instance_of(str))
    )
    default_model_id: str = field(default=constants.DEFAULT_MODEL_ID)

    @max_quality.validator
    def _validate_quality_range(self, attribute, value):
        if value < self.min_quality:
            raise ValidationError(
                "max_quality %g is below min_quality %g" % (value, self.min_quality)
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """
        Build a config from ``WRAP_STUDIO_*`` variables.

        Recognized variables: ``MAX_EMBED_BYTES``, ``MIN_QUALITY``,
        ``MAX_QUALITY``, ``HISTORY_LIMIT``, ``MASK_ROOT``, ``DEFAULT_MODEL``.
        """
        environ = os.environ if environ is None else environ
        kwargs = {}
        parsers = {
            "MAX_EMBED_BYTES": ("max_embed_bytes", int),
            "MIN_QUALITY": ("min_quality", float),
            "MAX_QUALITY": ("max_quality", float),
            "HISTORY_LIMIT": ("history_limit", int),
            "MASK_ROOT": ("mask_root", str),
            "DEFAULT_MODEL": ("default_model_id", str),
        }
        for suffix, (name, parse) in parsers.items():
            raw = environ.get(ENV_PREFIX + suffix)
            if raw is None or raw == "":
                continue
            try:
                kwargs[name] = parse(raw)
            except ValueError:
                raise ValidationError(
                    "Invalid value for %s%s: %r" % (ENV_PREFIX, suffix, raw)
                ) from None
        logger.debug("Config overrides from environment: %r" % kwargs)
        return cls(**kwargs)
