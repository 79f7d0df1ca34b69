"""Schemas for graph revisions, positions and layout results.

Graph revisions (``graph``) are the input from the parsing collaborator;
layout metadata (``layout_metadata``) covers everything spatial: positions,
provenance, snapshots and layout requests/results.
"""

from .graph import (
    DiffableNode,
    DiffableEdge,
    DiffableGraph,
    GraphDiff,
)
from .layout_metadata import (
    NodePosition,
    BoundingBox,
    PositionSource,
    PositionResolution,
    PositionSnapshot,
    LayoutNodeInfo,
    LayoutEdgeInfo,
    LayoutOptions,
    LayoutMetadata,
    DiagramNode,
)

__all__ = [
    # Graph revisions
    "DiffableNode",
    "DiffableEdge",
    "DiffableGraph",
    "GraphDiff",

    # Positions and provenance
    "NodePosition",
    "BoundingBox",
    "PositionSource",
    "PositionResolution",
    "PositionSnapshot",

    # Layout requests/results
    "LayoutNodeInfo",
    "LayoutEdgeInfo",
    "LayoutOptions",
    "LayoutMetadata",
    "DiagramNode",
]
