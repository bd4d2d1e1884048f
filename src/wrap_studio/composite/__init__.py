"""
Composite module for layer rendering and masking.

This subpackage provides the rendering engine that turns a layer stack into
the 1024x1024 wrap texture. It paints each layer kind in its local space,
places it on the surface through the layer transform, and confines the result
to the template mask.

Key modules:

- :py:mod:`wrap_studio.composite.composite`: Compositor and masking
- :py:mod:`wrap_studio.composite.blend`: Blend mode implementations
- :py:mod:`wrap_studio.composite.brush`: Brush stroke engine
- :py:mod:`wrap_studio.composite.vector`: Shape and path rasterization
- :py:mod:`wrap_studio.composite.paint`: Per-kind layer painters

Example usage::

    from wrap_studio.composite import composite_pil

    image = composite_pil(session.layers, session.cache, mask, "#F5F5F0")
    image.save('wrap.png')

Pixels are float32 NumPy arrays in [0, 1]: color ``(H, W, 3)``, shape and
alpha ``(H, W, 1)``.
"""

from wrap_studio.composite.composite import Compositor, composite, composite_pil

__all__ = [
    "Compositor",
    "composite",
    "composite_pil",
]
