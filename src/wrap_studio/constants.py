"""
Various constants for wrap_studio
"""

from enum import Enum

#: Side of the fixed square working surface, in pixels.
SURFACE_SIZE = 1024

#: Ceiling for a single embedded bitmap payload (0.95 MB).
MAX_EMBED_BYTES = 995328

#: Admissible lossy quality range for the bounded re-encoder.
MIN_QUALITY = 0.1
MAX_QUALITY = 0.95
QUALITY_TOLERANCE = 0.01

#: Margin added around brush ink for the interactive hit region.
HIT_PADDING = 10

#: Tension of the cardinal spline drawn through brush points.
STROKE_TENSION = 0.5

#: Long side imported images are fitted to.
IMPORT_TARGET_SIZE = 300

#: Color sentinel for eraser strokes.
ERASE_COLOR = "transparent"

#: Overlay colors of the interactive frame.
SELECTION_COLOR = "#00A0FF"
CURSOR_COLOR = "#FFFFFF"

DEFAULT_BASE_COLOR = "#F5F5F0"
DEFAULT_MODEL_ID = "model3"
DEFAULT_PROJECT_NAME = "Untitled Project"

FORMAT_NAME = "wrap-studio"
FORMAT_VERSION = 1
PROJECT_EXTENSION = ".twrap"


class LayerKind(str, Enum):
    """
    Layer variant discriminator.
    """

    TEXTURE = "texture"
    BRUSH = "brush"
    TEXT = "text"
    RECT = "rect"
    CIRCLE = "circle"
    LINE = "line"
    STAR = "star"
    IMAGE = "image"

    @property
    def has_bitmap(self) -> bool:
        return self in (LayerKind.TEXTURE, LayerKind.IMAGE)


class BlendMode(str, Enum):
    """
    Per-stroke blend mode.
    """

    NORMAL = "normal"
    MULTIPLY = "multiply"
    SCREEN = "screen"
    OVERLAY = "overlay"


class TextAlign(str, Enum):
    """
    Horizontal text alignment.
    """

    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class OverlayKind(str, Enum):
    """
    Transient UI elements drawn on the interactive frame only.
    """

    SELECTION = "selection"
    STROKE_PREVIEW = "stroke_preview"
    CURSOR = "cursor"
