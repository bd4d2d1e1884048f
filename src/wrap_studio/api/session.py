"""
Editor session.

A :py:class:`Session` owns one project: its layer stack, undo history, image
cache, selection and the transient overlays of the interactive frame. Every
layer mutation goes through the session and is recorded as exactly one history
entry; failed mutations leave the session untouched.

Example::

    from wrap_studio import Session

    session = Session("model3")
    rect_id = session.add_layer({"type": "rect", "x": 100, "y": 100})
    session.update_layer(rect_id, fill="#000000")
    session.undo()
    image = session.current_composite()
"""

import asyncio
import contextlib
import logging
import re
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence

import numpy as np
from attrs import evolve
from PIL import Image

from wrap_studio.api.history import History, HistoryEntry
from wrap_studio.api.layers import BrushStroke, Layer, make_layer
from wrap_studio.api.project import Project
from wrap_studio.api.utils import parse_color, snake_case
from wrap_studio.cache import CachedImage, ImageCache, Source, decode_source
from wrap_studio.composite.brush import StrokeCapture
from wrap_studio.composite.composite import (
    composite_pil,
    draw_cursor,
    draw_selection,
    to_local,
)
from wrap_studio.config import Config
from wrap_studio.constants import (
    DEFAULT_BASE_COLOR,
    DEFAULT_PROJECT_NAME,
    IMPORT_TARGET_SIZE,
    SURFACE_SIZE,
    BlendMode,
    LayerKind,
    OverlayKind,
)
from wrap_studio.errors import ValidationError
from wrap_studio.export import export
from wrap_studio.masks import DirectoryMaskProvider, SolidMaskProvider
from wrap_studio.validators import to_enum

logger = logging.getLogger(__name__)

#: Initial placement of new layers, per kind.
LAYER_DEFAULTS = {
    LayerKind.TEXTURE: {"x": 0.0, "y": 0.0},
    LayerKind.BRUSH: {"x": 0.0, "y": 0.0},
    LayerKind.TEXT: {"x": 100.0, "y": 100.0},
    LayerKind.RECT: {"x": 100.0, "y": 100.0},
    LayerKind.CIRCLE: {"x": 150.0, "y": 150.0},
    LayerKind.LINE: {"x": 0.0, "y": 0.0},
    LayerKind.STAR: {"x": 200.0, "y": 200.0},
    LayerKind.IMAGE: {"x": 100.0, "y": 100.0},
}

_SOURCE_KEYS = ("source", "src", "image")
_ID_RE = re.compile(r"^(?P<kind>[a-z]+)-(?P<index>\d+)$")


def fit_scale(width: int, height: int, target: int = IMPORT_TARGET_SIZE) -> float:
    """Uniform scale bringing the long side of an import down to ``target``."""
    long_side = max(width, height)
    if long_side <= target:
        return 1.0
    return target / float(long_side)


class Session:
    """
    Editing context for a single project.

    :param model_id: template model, defaults to ``config.default_model_id``.
    :param config: :py:class:`~wrap_studio.config.Config` tunables.
    :param masks: callable mapping a model id to a ``(1024, 1024, 1)`` mask
        array. Defaults to a :py:class:`~wrap_studio.masks.DirectoryMaskProvider`
        on ``config.mask_root``, or a fully opaque mask when unset.
    """

    def __init__(
        self,
        model_id: Optional[str] = None,
        config: Optional[Config] = None,
        masks: Any = None,
        name: str = DEFAULT_PROJECT_NAME,
        base_color: str = DEFAULT_BASE_COLOR,
    ):
        self.config = config or Config()
        if masks is None:
            if self.config.mask_root:
                masks = DirectoryMaskProvider(self.config.mask_root)
            else:
                masks = SolidMaskProvider()
        self._masks = masks
        self.cache = ImageCache()
        self._project = Project(
            model_id or self.config.default_model_id, base_color, (), name
        )
        self._history = History(self._project.layers, limit=self.config.history_limit)
        self._selection: Optional[str] = None
        self._dirty = False
        self._counter = 0
        self._generations: dict[str, int] = {}
        self._capture: Optional[StrokeCapture] = None
        self._cursor: Optional[tuple[float, float, float]] = None
        self._overlays = {kind: True for kind in OverlayKind}

    def __repr__(self) -> str:
        return "%s(model_id=%r, layers=%d, dirty=%s)" % (
            self.__class__.__name__,
            self.model_id,
            len(self.layers),
            self._dirty,
        )

    @property
    def project(self) -> Project:
        return self._project

    @property
    def layers(self) -> tuple[Layer, ...]:
        return self._project.layers

    @property
    def model_id(self) -> str:
        return self._project.model_id

    @property
    def base_color(self) -> str:
        return self._project.base_color

    @property
    def name(self) -> str:
        return self._project.name

    @property
    def history(self) -> History:
        return self._history

    @property
    def selection(self) -> Optional[str]:
        return self._selection

    @property
    def selected_layer(self) -> Optional[Layer]:
        if self._selection is None:
            return None
        return self._project.find(self._selection)

    @property
    def dirty(self) -> bool:
        """True when there are changes since the last save."""
        return self._dirty

    @property
    def mask(self) -> np.ndarray:
        """Template mask of the active model."""
        return self._masks(self.model_id)

    def get_layer(self, layer_id: str) -> Layer:
        """
        :raise KeyError: if there is no such layer.
        """
        return self.layers[self._project.index(layer_id)]

    # Project metadata

    def mark_saved(self) -> None:
        self._dirty = False

    def rename(self, name: str) -> None:
        self._project = evolve(self._project, name=str(name))
        self._dirty = True

    def set_base_color(self, color: str) -> None:
        """Change the base fill. This is not an undoable step."""
        parse_color(color)
        self._project = evolve(self._project, base_color=color)
        self._dirty = True

    def set_model(self, model_id: str) -> None:
        """Switch the template model; layers are kept."""
        self._project = evolve(self._project, model_id=model_id)
        self._dirty = True

    def new_project(
        self, model_id: Optional[str] = None, name: str = DEFAULT_PROJECT_NAME
    ) -> None:
        """Discard every layer, the history and the cache."""
        project = Project(model_id or self.config.default_model_id, DEFAULT_BASE_COLOR, (), name)
        self._open(project, ())
        logger.debug("New project for %s" % project.model_id)

    def open_project(self, project: Project, images: Iterable[CachedImage] = ()) -> None:
        """
        Replace the session content with a loaded project.

        :param images: decoded bitmaps referenced by the project's layers.
        :raise ValidationError: if a layer references a missing bitmap.
        """
        images = list(images)
        keys = {entry.key for entry in images}
        missing = project.sources() - keys
        if missing:
            raise ValidationError("Missing bitmaps for sources %s" % sorted(missing))
        self._open(project, images)
        for layer in project.layers:
            match = _ID_RE.match(layer.id)
            if match:
                self._counter = max(self._counter, int(match.group("index")))

    def _open(self, project: Project, images: Sequence[CachedImage]) -> None:
        for slot in list(self._generations):
            self._generations[slot] += 1
        self.cache.clear()
        for entry in images:
            self.cache.insert(entry)
        self._project = project
        self._history.reset(project.layers)
        for key in project.sources():
            self.cache.acquire(key)
        self.cache.collect()
        self._selection = None
        self._capture = None
        self._cursor = None
        self._counter = 0
        self._dirty = False

    # Layer mutations

    def add_layer(self, spec: Mapping[str, Any]) -> str:
        """
        Create a layer from a spec and return its id.

        ``spec`` carries a ``type`` (or ``kind``) plus any layer fields;
        missing fields take the tool defaults. Texture and image layers take
        their bitmap from ``src`` / ``image`` / ``source``: encoded bytes, a
        data URI, a path, a PIL image, or the key of a cached bitmap. Imported
        images larger than 300 px are scaled down to fit unless a scale is
        given.

        :raise ValidationError: if the layer spec is invalid.
        :raise DecodeError: if the bitmap cannot be decoded.
        """
        return self._add_layer(spec, None)

    def _add_layer(self, spec: Mapping[str, Any], entry: Optional[CachedImage]) -> str:
        fields = {snake_case(key): value for key, value in spec.items()}
        kind = to_enum(LayerKind)(fields.pop("type", fields.pop("kind", None)))
        payload = dict(LAYER_DEFAULTS[kind])
        payload.update(fields)
        payload["type"] = kind

        if kind.has_bitmap:
            if entry is None:
                entry = self._resolve_source(_pop_source(payload))
            else:
                _pop_source(payload, required=False)
            payload["source"] = entry.key
            if kind is LayerKind.IMAGE and not {"scale_x", "scale_y"} & set(payload):
                scale = fit_scale(entry.width, entry.height)
                payload["scale_x"] = payload["scale_y"] = scale

        layer_id = self._next_id(kind)
        name = payload.pop("name", None) or self.next_layer_name()
        layer = make_layer(payload, layer_id, name)
        project = self._project.with_layers(self.layers + (layer,))

        if entry is not None:
            self.cache.insert(entry)
        self._commit(project, "add %s" % layer_id)
        self._selection = layer_id
        logger.debug("Added %s" % layer_id)
        return layer_id

    def update_layer(self, layer_id: str, **changes: Any) -> Layer:
        """
        Replace fields of a layer and return the updated layer.

        A bitmap layer's ``source`` / ``src`` may be replaced by any raster
        source; the previous bitmap is kept when decoding fails. An update that
        changes nothing records no history entry.

        :raise KeyError: if there is no such layer.
        :raise ValidationError: on invalid or locked fields.
        :raise DecodeError: if a new bitmap cannot be decoded.
        """
        return self._update_layer(layer_id, changes, None)

    def _update_layer(
        self, layer_id: str, changes: Mapping[str, Any], entry: Optional[CachedImage]
    ) -> Layer:
        index = self._project.index(layer_id)
        layer = self.layers[index]
        changes = {snake_case(key): value for key, value in changes.items()}
        if layer.kind.has_bitmap and (entry is not None or set(_SOURCE_KEYS) & set(changes)):
            if entry is None:
                entry = self._resolve_source(_pop_source(changes))
            else:
                _pop_source(changes, required=False)
            changes["source"] = entry.key

        updated = layer.update(**changes)
        if updated == layer:
            logger.debug("No change to %s" % layer_id)
            return layer
        layers = list(self.layers)
        layers[index] = updated
        project = self._project.with_layers(layers)

        if entry is not None:
            self.cache.insert(entry)
        self._commit(project, "update %s" % layer_id)
        return updated

    def remove_layer(self, layer_id: str) -> None:
        """
        :raise KeyError: if there is no such layer.
        """
        index = self._project.index(layer_id)
        layers = self.layers[:index] + self.layers[index + 1 :]
        self._commit(self._project.with_layers(layers), "remove %s" % layer_id)
        if self._capture is not None and self._capture.layer_id == layer_id:
            self._capture = None

    def reorder(self, layer_id: str, new_index: int) -> None:
        """
        Move a layer to ``new_index`` in z-order (0 is the bottom).

        :raise KeyError: if there is no such layer.
        :raise ValidationError: if the index is out of range.
        """
        index = self._project.index(layer_id)
        if not isinstance(new_index, int) or not 0 <= new_index < len(self.layers):
            raise ValidationError(
                "Index %r out of range for %d layers" % (new_index, len(self.layers))
            )
        if new_index == index:
            return
        layers = list(self.layers)
        layers.insert(new_index, layers.pop(index))
        self._commit(self._project.with_layers(layers), "reorder %s" % layer_id)

    def set_selection(self, layer_id: Optional[str]) -> None:
        """
        Select a layer, or clear the selection with None.

        :raise KeyError: if there is no such layer.
        """
        if layer_id is not None:
            self._project.index(layer_id)
        self._selection = layer_id

    def next_layer_name(self) -> str:
        """Lowest free ``Layer N`` name."""
        names = {layer.name for layer in self.layers}
        index = 1
        while "Layer %d" % index in names:
            index += 1
        return "Layer %d" % index

    def _next_id(self, kind: LayerKind) -> str:
        ids = {layer.id for layer in self.layers}
        while True:
            self._counter += 1
            layer_id = "%s-%d" % (kind.value, self._counter)
            if layer_id not in ids:
                return layer_id

    def _resolve_source(self, value: Any) -> CachedImage:
        if isinstance(value, CachedImage):
            return value
        if isinstance(value, str) and value in self.cache:
            return self.cache.get(value)
        return decode_source(value)

    def _commit(self, project: Project, label: str) -> None:
        for key in project.sources():
            self.cache.acquire(key)
        dropped = self._history.commit(project.layers, label)
        self._release(dropped)
        self._project = project
        self._dirty = True
        if self._selection is not None and project.find(self._selection) is None:
            self._selection = None

    def _release(self, entries: Iterable[HistoryEntry]) -> None:
        for entry in entries:
            for key in {layer.source for layer in entry.layers if layer.source}:
                self.cache.release(key)

    # History

    def undo(self) -> bool:
        """Restore the previous state; return False when there is none."""
        return self._restore(self._history.undo())

    def redo(self) -> bool:
        """Restore the next state; return False when there is none."""
        return self._restore(self._history.redo())

    def _restore(self, layers: Optional[tuple[Layer, ...]]) -> bool:
        if layers is None:
            return False
        self._project = self._project.with_layers(layers)
        self._dirty = True
        if self._selection is not None and self._project.find(self._selection) is None:
            self._selection = None
        if self._capture is not None and self._project.find(self._capture.layer_id) is None:
            self._capture = None
        return True

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    # Brush strokes

    def begin_stroke(
        self,
        layer_id: Optional[str] = None,
        color: str = "#000000",
        size: float = 10.0,
        hardness: float = 100.0,
        opacity: float = 1.0,
        blend_mode: BlendMode = BlendMode.NORMAL,
    ) -> StrokeCapture:
        """
        Start capturing a stroke.

        Without ``layer_id`` the selected brush layer is used, then the first
        brush layer, and a new brush layer is created when there is none.
        Pass ``color="transparent"`` for the eraser.

        :raise ValidationError: if the layer is not an unlocked brush layer.
        """
        if layer_id is None:
            layer_id = self._brush_target()
        layer = self.get_layer(layer_id)
        if layer.kind is not LayerKind.BRUSH:
            raise ValidationError("Layer %s is not a brush layer" % layer_id)
        if layer.locked:
            raise ValidationError("Layer %s is locked" % layer_id)
        self._capture = StrokeCapture(
            layer_id, color, size, hardness, opacity, blend_mode
        )
        self._selection = layer_id
        return self._capture

    def _brush_target(self) -> str:
        selected = self.selected_layer
        if selected is not None and selected.kind is LayerKind.BRUSH:
            return selected.id
        for layer in self.layers:
            if layer.kind is LayerKind.BRUSH:
                return layer.id
        return self.add_layer({"type": "brush"})

    def add_stroke_point(self, x: float, y: float) -> None:
        """Add a surface point to the stroke being captured."""
        if self._capture is None:
            raise ValidationError("No stroke in progress")
        layer = self.get_layer(self._capture.layer_id)
        self._capture.add_point(*to_local(layer, x, y))

    def end_stroke(self) -> Optional[BrushStroke]:
        """
        Finish the captured stroke and commit it as one history entry.

        Strokes with fewer than two points are dropped and return None.
        """
        capture, self._capture = self._capture, None
        if capture is None:
            return None
        stroke = capture.to_stroke()
        if stroke is None:
            return None
        self.commit_stroke(capture.layer_id, stroke)
        return stroke

    def cancel_stroke(self) -> None:
        self._capture = None

    @property
    def capture(self) -> Optional[StrokeCapture]:
        return self._capture

    def commit_stroke(self, layer_id: str, stroke: Any) -> Layer:
        """
        Append a stroke to a brush layer.

        :raise ValidationError: if the stroke is invalid or the layer is not an
            unlocked brush layer.
        """
        stroke = BrushStroke.from_spec(stroke)
        index = self._project.index(layer_id)
        layer = self.layers[index]
        if layer.kind is not LayerKind.BRUSH:
            raise ValidationError("Layer %s is not a brush layer" % layer_id)
        if layer.locked:
            raise ValidationError("Layer %s is locked" % layer_id)
        updated = evolve(layer, data=layer.data.append(stroke))
        layers = list(self.layers)
        layers[index] = updated
        self._commit(self._project.with_layers(layers), "stroke %s" % layer_id)
        return updated

    # Async ingress

    def _next_generation(self, slot: str) -> int:
        generation = self._generations.get(slot, 0) + 1
        self._generations[slot] = generation
        return generation

    def _is_current(self, slot: str, generation: int) -> bool:
        if self._generations.get(slot) != generation:
            logger.debug("Discarding stale result for %s" % slot)
            return False
        return True

    async def add_image_layer_async(
        self,
        source: Source,
        kind: LayerKind = LayerKind.IMAGE,
        slot: str = "import",
        **fields: Any,
    ) -> Optional[str]:
        """
        Decode a bitmap off the event loop and add it as a new layer.

        A newer request for the same ``slot`` supersedes this one: the stale
        result is discarded and None is returned.

        :raise DecodeError: if the bitmap cannot be decoded.
        """
        kind = to_enum(LayerKind)(kind)
        if not kind.has_bitmap:
            raise ValidationError("%s layers have no bitmap" % kind.value)
        generation = self._next_generation(slot)
        entry = await asyncio.to_thread(decode_source, source)
        if not self._is_current(slot, generation):
            return None
        spec = dict(fields, type=kind)
        return self._add_layer(spec, entry)

    async def replace_source_async(self, layer_id: str, source: Source) -> Optional[Layer]:
        """
        Decode a bitmap off the event loop and swap it into a layer.

        Returns None when superseded by a newer request for the same layer or
        when the layer was removed meanwhile.

        :raise DecodeError: if the bitmap cannot be decoded; the layer keeps
            its previous bitmap.
        """
        layer = self.get_layer(layer_id)
        if not layer.kind.has_bitmap:
            raise ValidationError("Layer %s has no bitmap" % layer_id)
        generation = self._next_generation(layer_id)
        entry = await asyncio.to_thread(decode_source, source)
        if not self._is_current(layer_id, generation):
            return None
        if self._project.find(layer_id) is None:
            logger.debug("Layer %s is gone, dropping its bitmap" % layer_id)
            return None
        return self._update_layer(layer_id, {}, entry)

    # Overlays and rendering

    def set_cursor(self, x: float, y: float, radius: float = 5.0) -> None:
        self._cursor = (float(x), float(y), float(radius))

    def clear_cursor(self) -> None:
        self._cursor = None

    def overlay_visible(self, kind: OverlayKind) -> bool:
        return self._overlays[to_enum(OverlayKind)(kind)]

    def set_overlay_visible(self, kind: OverlayKind, visible: bool) -> None:
        self._overlays[to_enum(OverlayKind)(kind)] = bool(visible)

    @contextlib.contextmanager
    def suppress_overlays(self) -> Iterator[None]:
        """Hide every overlay for the duration of the block."""
        saved = dict(self._overlays)
        try:
            for kind in self._overlays:
                self._overlays[kind] = False
            yield
        finally:
            self._overlays.update(saved)

    def render_frame(self) -> Image.Image:
        """
        Render the interactive frame: the masked composite plus any visible
        overlays (in-progress stroke, selection box, brush cursor).
        """
        viewport = (0, 0, SURFACE_SIZE, SURFACE_SIZE)
        layers = self.layers
        preview = ()
        if self._capture is not None and self._overlays[OverlayKind.STROKE_PREVIEW]:
            preview = self._capture.preview()
        if preview:
            capture_id = self._capture.layer_id
            layers = tuple(
                evolve(layer, data=layer.data.append(preview[0]))
                if layer.id == capture_id
                else layer
                for layer in layers
            )

        overlays = []
        selected = self.selected_layer
        if self._overlays[OverlayKind.SELECTION] and selected is not None:
            overlays.append(draw_selection(viewport, selected, self.cache))
        if self._overlays[OverlayKind.CURSOR] and self._cursor is not None:
            overlays.append(draw_cursor(viewport, *self._cursor))

        return composite_pil(
            layers, self.cache, self.mask, self.base_color, viewport, overlays
        )

    def current_composite(self) -> Image.Image:
        """The exported 1024x1024 composite, for preview collaborators."""
        return export(self)


def _pop_source(fields: dict, required: bool = True) -> Any:
    found = [key for key in _SOURCE_KEYS if key in fields]
    values = [fields.pop(key) for key in found]
    if not values:
        if required:
            raise ValidationError("Bitmap layers need a 'src' image source")
        return None
    if len(values) > 1:
        raise ValidationError("Give only one of %s" % ", ".join(found))
    return values[0]
