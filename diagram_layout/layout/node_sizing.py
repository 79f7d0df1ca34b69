"""Node sizing from label text.

Sizes are derived from an approximate text measurement (average character
width for a sans-serif font), scaled by a per-type text bounds ratio, padded,
and clamped to a minimum size.

Sizing modes:
    adaptive: width and height follow the label
    uniform:  every node of a type gets the largest adaptive size of that type
    hybrid:   adaptive width, fixed default height
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Literal, Optional, Tuple

from diagram_layout.models.layout_metadata import LayoutNodeInfo

logger = logging.getLogger(__name__)

SizingMode = Literal["adaptive", "uniform", "hybrid"]

DEFAULT_FONT_SIZE = 12.0
DEFAULT_LINE_HEIGHT = 1.4
AVG_CHAR_WIDTH_RATIO = 0.6


@dataclass(frozen=True)
class ShapeSizing:
    """Geometry constraints for sizing one kind of node."""
    text_bounds_ratio: Tuple[float, float] = (1.0, 1.0)
    min_size: Tuple[float, float] = (60.0, 30.0)
    padding: Tuple[float, float] = (16.0, 12.0)
    default_size: Tuple[float, float] = (100.0, 60.0)


DEFAULT_SIZING = ShapeSizing()

# Text occupies ~70% of a diamond's bounding box
TYPE_SIZING: Dict[str, ShapeSizing] = {
    "decision": ShapeSizing(text_bounds_ratio=(1.45, 1.45), min_size=(80.0, 80.0), default_size=(120.0, 120.0)),
    "database": ShapeSizing(text_bounds_ratio=(1.0, 1.3), default_size=(100.0, 80.0)),
    "actor": ShapeSizing(min_size=(40.0, 60.0), default_size=(60.0, 90.0)),
}


@dataclass
class TextDimensions:
    width: float
    height: float
    lines: List[str] = field(default_factory=list)


def measure_text(
    text: str,
    font_size: float = DEFAULT_FONT_SIZE,
    max_width: Optional[float] = None,
    line_height: float = DEFAULT_LINE_HEIGHT,
) -> TextDimensions:
    """
    Approximate text dimensions with optional word wrapping.

    Args:
        text: Text to measure (explicit newlines start new lines)
        font_size: Font size in px
        max_width: Wrap width (None = no wrapping)
        line_height: Line height multiplier

    Returns:
        TextDimensions with rounded-up width/height and the wrapped lines
    """
    avg_char_width = font_size * AVG_CHAR_WIDTH_RATIO
    line_height_px = font_size * line_height
    paragraphs = text.split("\n")

    if not max_width:
        lines = paragraphs
    else:
        chars_per_line = max(1, math.floor(max_width / avg_char_width))
        lines = []
        for paragraph in paragraphs:
            if len(paragraph) <= chars_per_line:
                lines.append(paragraph)
                continue
            current = ""
            for word in re.split(r"\s+", paragraph):
                if not word:
                    continue
                candidate = f"{current} {word}" if current else word
                if len(candidate) <= chars_per_line:
                    current = candidate
                else:
                    if current:
                        lines.append(current)
                    current = word
            if current:
                lines.append(current)

    widest = max((len(line) * avg_char_width for line in lines), default=0)
    return TextDimensions(
        width=math.ceil(widest),
        height=math.ceil(len(lines) * line_height_px),
        lines=lines,
    )


def compute_node_size(
    text: str,
    node_type: str = "",
    sizing_mode: SizingMode = "hybrid",
    font_size: float = DEFAULT_FONT_SIZE,
    uniform_sizes: Optional[Dict[str, Tuple[float, float]]] = None,
) -> Tuple[float, float]:
    """
    Compute a node's (width, height) from its label.

    Args:
        text: Node label
        node_type: Node type, selects shape sizing constraints
        sizing_mode: 'adaptive', 'uniform' or 'hybrid'
        font_size: Font size in px
        uniform_sizes: Precomputed per-type sizes for 'uniform' mode

    Returns:
        (width, height), rounded up
    """
    sizing = TYPE_SIZING.get(node_type, DEFAULT_SIZING)

    if sizing_mode == "uniform" and uniform_sizes and node_type in uniform_sizes:
        return uniform_sizes[node_type]

    wrap_width = sizing.default_size[0] - sizing.padding[0] * 2
    dims = measure_text(text or "", font_size=font_size, max_width=wrap_width if wrap_width > 0 else None)

    content_width = dims.width * sizing.text_bounds_ratio[0] + sizing.padding[0] * 2
    content_height = dims.height * sizing.text_bounds_ratio[1] + sizing.padding[1] * 2

    width = max(content_width, sizing.min_size[0])
    if sizing_mode == "hybrid":
        height = max(sizing.min_size[1], sizing.default_size[1])
    else:
        height = max(content_height, sizing.min_size[1])

    return (math.ceil(width), math.ceil(height))


def compute_uniform_sizes(
    labelled_types: Iterable[Tuple[str, str]],
    font_size: float = DEFAULT_FONT_SIZE,
) -> Dict[str, Tuple[float, float]]:
    """
    Find the largest adaptive size per node type.

    Args:
        labelled_types: (label, node_type) pairs

    Returns:
        Dictionary of node_type -> (width, height)
    """
    sizes: Dict[str, Tuple[float, float]] = {}
    for label, node_type in labelled_types:
        width, height = compute_node_size(label, node_type, "adaptive", font_size)
        current = sizes.get(node_type, (0.0, 0.0))
        sizes[node_type] = (max(current[0], width), max(current[1], height))
    return sizes


def apply_sizing(
    nodes: Iterable[Tuple[LayoutNodeInfo, str, str, bool]],
    sizing_mode: SizingMode,
    font_size: float = DEFAULT_FONT_SIZE,
) -> List[LayoutNodeInfo]:
    """
    Size layout nodes from their labels.

    Args:
        nodes: (info, label, node_type, has_explicit_size) tuples; nodes with
            explicit sizes are returned unchanged
        sizing_mode: Sizing mode to apply

    Returns:
        LayoutNodeInfo list with updated width/height
    """
    nodes = list(nodes)
    uniform_sizes = None
    if sizing_mode == "uniform":
        uniform_sizes = compute_uniform_sizes(
            ((label, node_type) for _, label, node_type, explicit in nodes if not explicit),
            font_size,
        )

    sized = []
    for info, label, node_type, explicit in nodes:
        if explicit:
            sized.append(info)
            continue
        width, height = compute_node_size(label, node_type, sizing_mode, font_size, uniform_sizes)
        sized.append(info.model_copy(update={"width": width, "height": height}))
    return sized
