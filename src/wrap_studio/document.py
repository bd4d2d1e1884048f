"""
Project document format.

A project is saved as a single JSON document with every bitmap embedded as a
``data:`` URI::

    {
        "format": "wrap-studio",
        "version": 1,
        "modelId": "model3",
        "baseColor": "#F5F5F0",
        "projectName": "Untitled Project",
        "layers": [
            {"id": "rect-1", "type": "rect", "name": "Layer 1", "x": 100, ...},
            {"id": "image-2", "type": "image", "src": "data:image/png;base64,..."},
            {"id": "brush-3", "type": "brush", "strokes": [
                {"points": [10, 10, 50, 10], "color": "#ff0000", "size": 10,
                 "hardness": 100, "opacity": 1, "blendMode": "normal"}
            ]}
        ]
    }

Layer keys are camelCase. Embedded bitmaps above the size ceiling go through
the bounded re-encoder (:py:mod:`wrap_studio.encoding`) first.
"""

import json
import logging
import os
from enum import Enum
from typing import Any, Mapping, Optional, Union

from attrs import fields

from wrap_studio.api.layers import BitmapData, BrushStroke, Layer, make_layer
from wrap_studio.api.project import Project
from wrap_studio.api.session import Session
from wrap_studio.api.utils import camel_case
from wrap_studio.cache import CachedImage, ImageCache, decode_source, to_data_uri
from wrap_studio.config import Config
from wrap_studio.constants import (
    DEFAULT_PROJECT_NAME,
    FORMAT_NAME,
    FORMAT_VERSION,
    MAX_EMBED_BYTES,
    MAX_QUALITY,
    MIN_QUALITY,
    LayerKind,
)
from wrap_studio.encoding import reencode
from wrap_studio.errors import DecodeError, SerializationError, ValidationError

logger = logging.getLogger(__name__)

_COMMON = ("visible", "locked", "opacity", "x", "y", "rotation", "scale_x", "scale_y")


def _value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, tuple):
        return [_value(v) for v in value]
    return value


def _record(record: Any) -> dict[str, Any]:
    return {camel_case(f.name): _value(getattr(record, f.name)) for f in fields(type(record))}


def serialize(
    project: Project,
    cache: ImageCache,
    max_bytes: int = MAX_EMBED_BYTES,
    min_quality: float = MIN_QUALITY,
    max_quality: float = MAX_QUALITY,
) -> dict[str, Any]:
    """
    Convert a project into a JSON-compatible document.

    :param cache: image cache holding every bitmap the layers reference.
    """
    payloads: dict[str, str] = {}

    def embed(key: str) -> str:
        uri = payloads.get(key)
        if uri is None:
            result = reencode(
                cache.get(key),
                max_bytes=max_bytes,
                min_quality=min_quality,
                max_quality=max_quality,
            )
            if result.changed:
                logger.debug("Re-encoded %s: %s, %d bytes" % (key, result.method, result.size))
            uri = to_data_uri(result.data, result.mime)
            payloads[key] = uri
        return uri

    return {
        "format": FORMAT_NAME,
        "version": FORMAT_VERSION,
        "modelId": project.model_id,
        "baseColor": project.base_color,
        "projectName": project.name,
        "layers": [serialize_layer(layer, embed) for layer in project.layers],
    }


def serialize_layer(layer: Layer, embed: Any) -> dict[str, Any]:
    """Convert a layer; ``embed`` maps a cache key to its data URI."""
    item: dict[str, Any] = {"id": layer.id, "type": layer.kind.value, "name": layer.name}
    for name in _COMMON:
        item[camel_case(name)] = getattr(layer, name)
    if isinstance(layer.data, BitmapData):
        item["src"] = embed(layer.data.source)
    elif layer.kind is LayerKind.BRUSH:
        item["strokes"] = [_record(stroke) for stroke in layer.data.strokes]
    else:
        item.update(_record(layer.data))
    return item


def deserialize(document: Mapping[str, Any]) -> tuple[Project, list[CachedImage]]:
    """
    Reconstruct a project and its decoded bitmaps from a document.

    Brush strokes with fewer than two points are dropped.

    :raise SerializationError: on a format or version mismatch, a missing
        field, or an invalid layer or bitmap.
    """
    if not isinstance(document, Mapping):
        raise SerializationError("Project document must be an object")
    if document.get("format", FORMAT_NAME) != FORMAT_NAME:
        raise SerializationError("Not a %s document: %r" % (FORMAT_NAME, document.get("format")))
    version = _require(document, "version")
    if version != FORMAT_VERSION:
        raise SerializationError(
            "Unsupported document version %r (expected %d)" % (version, FORMAT_VERSION)
        )
    model_id = _require(document, "modelId")
    base_color = _require(document, "baseColor")
    items = _require(document, "layers")
    if not isinstance(items, list):
        raise SerializationError("'layers' must be a list")

    images: dict[str, CachedImage] = {}
    layers = [deserialize_layer(item, images) for item in items]
    try:
        project = Project(
            model_id=model_id,
            base_color=base_color,
            layers=layers,
            name=document.get("projectName") or DEFAULT_PROJECT_NAME,
        )
    except ValidationError as e:
        raise SerializationError("Invalid project: %s" % e) from e
    return project, list(images.values())


def deserialize_layer(item: Any, images: dict[str, CachedImage]) -> Layer:
    if not isinstance(item, Mapping):
        raise SerializationError("Layer must be an object, got %s" % type(item).__name__)
    layer_id = _require(item, "id")
    spec = dict(item)
    spec["type"] = _require(item, "type")
    spec.pop("id")
    try:
        kind = LayerKind(spec["type"])
    except ValueError:
        raise SerializationError("Unknown layer type %r" % spec["type"]) from None

    if kind.has_bitmap:
        uri = _require(item, "src")
        spec.pop("src")
        try:
            entry = decode_source(uri)
        except DecodeError as e:
            raise SerializationError("Layer %s: %s" % (layer_id, e)) from e
        images.setdefault(entry.key, entry)
        spec["source"] = entry.key
    elif kind is LayerKind.BRUSH:
        spec["strokes"] = _load_strokes(layer_id, spec.get("strokes") or [])

    try:
        return make_layer(spec, str(layer_id))
    except ValidationError as e:
        raise SerializationError("Invalid layer %s: %s" % (layer_id, e)) from e


def _load_strokes(layer_id: Any, strokes: Any) -> list[BrushStroke]:
    if not isinstance(strokes, list):
        raise SerializationError("Layer %s: 'strokes' must be a list" % layer_id)
    kept = []
    for stroke in strokes:
        points = stroke.get("points") if isinstance(stroke, Mapping) else None
        if not isinstance(points, list) or len(points) < 4:
            logger.warning("Dropping degenerate stroke in layer %s" % layer_id)
            continue
        try:
            kept.append(BrushStroke.from_spec(stroke))
        except ValidationError as e:
            raise SerializationError("Invalid stroke in layer %s: %s" % (layer_id, e)) from e
    return kept


def _require(mapping: Mapping[str, Any], key: str) -> Any:
    try:
        return mapping[key]
    except KeyError:
        raise SerializationError("Missing required field %r" % key) from None


def dumps(session: Session, indent: Optional[int] = None) -> str:
    """Serialize a session's project to a JSON string."""
    config = session.config
    document = serialize(
        session.project,
        session.cache,
        max_bytes=config.max_embed_bytes,
        min_quality=config.min_quality,
        max_quality=config.max_quality,
    )
    return json.dumps(document, indent=indent)


def loads(
    text: Union[str, bytes], session: Optional[Session] = None, **kwargs: Any
) -> Session:
    """
    Load a JSON document into ``session``, or into a new session built with
    ``kwargs``. The session is left untouched when loading fails.

    :raise SerializationError: if the document is invalid.
    """
    try:
        document = json.loads(text)
    except ValueError as e:
        raise SerializationError("Malformed project document: %s" % e) from e
    project, images = deserialize(document)
    if session is None:
        session = Session(project.model_id, **kwargs)
    try:
        session.open_project(project, images)
    except ValidationError as e:
        raise SerializationError(str(e)) from e
    return session


def save(session: Session, path: Union[str, os.PathLike]) -> None:
    """Write a session's project to ``path`` and mark it saved."""
    text = dumps(session)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    session.mark_saved()
    logger.debug("Saved %s" % os.fspath(path))


def load(
    path: Union[str, os.PathLike],
    session: Optional[Session] = None,
    config: Optional[Config] = None,
    masks: Any = None,
) -> Session:
    """
    Read a project file.

    :raise SerializationError: if the file is not a valid project.
    """
    try:
        with open(path, "rb") as f:
            text = f.read()
    except OSError as e:
        raise SerializationError("Cannot read %s: %s" % (os.fspath(path), e)) from e
    return loads(text, session, config=config, masks=masks)
