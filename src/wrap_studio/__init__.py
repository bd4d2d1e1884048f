"""
wrap-studio: layer composition, masking and history engine for vehicle wrap
designs.

A design is a stack of layers (shapes, text, free-hand brush strokes and
bitmaps) confined to the silhouette of a 1024x1024 template mask, exported as
a pixel-exact 1024x1024 raster.

Basic usage::

    from wrap_studio import Session, document

    session = Session("model3")
    session.add_layer({"type": "rect", "x": 100, "y": 100})
    session.add_layer({"type": "image", "src": "decal.png"})

    # Undo the last step
    session.undo()

    # Save and export
    document.save(session, "design.twrap")
    session.current_composite().save("wrap.png")

Architecture:

- :py:mod:`wrap_studio.api`: layer model, history and session (primary interface)
- :py:mod:`wrap_studio.composite`: rendering and masking engine
- :py:mod:`wrap_studio.document`: project file format
- :py:mod:`wrap_studio.encoding`: bounded re-encoder for embedded bitmaps
- :py:mod:`wrap_studio.export`: export pipeline
"""

from wrap_studio.api.session import Session
from wrap_studio.version import __version__

__all__ = ["Session", "__version__"]
