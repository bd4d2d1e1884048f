"""
Export pipeline.

The export is the masked composite rendered at exactly 1024x1024 with every
overlay (selection box, in-progress stroke, brush cursor) hidden for the
duration of the render::

    image = export(session)
    export_png(session, "wrap.png")
"""

import io
import logging
import os
from typing import TYPE_CHECKING, BinaryIO, Union

from PIL import Image

from wrap_studio.constants import SURFACE_SIZE

if TYPE_CHECKING:
    from wrap_studio.api.session import Session

logger = logging.getLogger(__name__)


def export(session: "Session") -> Image.Image:
    """Render the final RGBA raster of a session."""
    with session.suppress_overlays():
        image = session.render_frame()
    assert image.size == (SURFACE_SIZE, SURFACE_SIZE)
    logger.debug("Exported %s" % session.model_id)
    return image


def export_png(session: "Session", fp: Union[str, os.PathLike, BinaryIO]) -> None:
    """Write the export as a lossless PNG to a path or binary file object."""
    export(session).save(fp, format="PNG")


def export_bytes(session: "Session") -> bytes:
    """Return the export encoded as PNG bytes."""
    with io.BytesIO() as f:
        export_png(session, f)
        return f.getvalue()
