"""
Registry pattern utility for creating type registries.

Layer variants are dispatched on their :py:class:`~wrap_studio.constants.LayerKind`
tag through registries built here, rather than through a class hierarchy::

    from wrap_studio.registry import new_registry

    RENDERERS, register = new_registry()

    @register(LayerKind.RECT)
    def draw_rect(data, cache):
        ...

    color, shape, alpha, bbox = RENDERERS[layer.kind](layer.data, cache)
"""

from typing import Any, Callable, Tuple, TypeVar, Union

T = TypeVar("T")


def new_registry(attribute: Union[str, None] = None) -> Tuple[dict, Callable]:
    """
    Returns an empty dict and a @register decorator.

    :param attribute: Optional attribute name to set on registered objects.
                     The key will be stored as this attribute on the object.
    :return: Tuple of (registry_dict, register_decorator)
    """
    registry = {}

    def register(key: Any) -> Callable[[Callable[..., T]], Callable[..., T]]:
        def decorator(func: Callable[..., T]) -> Callable[..., T]:
            registry[key] = func
            if attribute:
                setattr(func, attribute, key)
            return func

        return decorator

    return registry, register
