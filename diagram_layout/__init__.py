"""Position stability and incremental layout for diagram editing.

Keeps node coordinates stable across graph edits, delegates placement of new
nodes to an external layout engine (ELK), and provides undo/redo over
position state.

    from diagram_layout import DiagramStateOrchestrator, DiffableGraph
"""

from diagram_layout.core import diff_graphs, resolve_positions
from diagram_layout.layout import (
    ELKLayoutEngine,
    IncrementalLayoutEngine,
    LayoutEngine,
    LayoutServiceError,
)
from diagram_layout.managers import (
    DiagramStateError,
    DiagramStateOrchestrator,
    LayoutHistory,
    UnknownNodeError,
)
from diagram_layout.models import (
    DiagramNode,
    DiffableEdge,
    DiffableGraph,
    DiffableNode,
    GraphDiff,
    LayoutEdgeInfo,
    LayoutNodeInfo,
    LayoutOptions,
    NodePosition,
    PositionResolution,
    PositionSnapshot,
    PositionSource,
)

__version__ = "0.1.0"

__all__ = [
    "diff_graphs",
    "resolve_positions",
    "ELKLayoutEngine",
    "IncrementalLayoutEngine",
    "LayoutEngine",
    "LayoutServiceError",
    "DiagramStateError",
    "DiagramStateOrchestrator",
    "LayoutHistory",
    "UnknownNodeError",
    "DiagramNode",
    "DiffableEdge",
    "DiffableGraph",
    "DiffableNode",
    "GraphDiff",
    "LayoutEdgeInfo",
    "LayoutNodeInfo",
    "LayoutOptions",
    "NodePosition",
    "PositionResolution",
    "PositionSnapshot",
    "PositionSource",
]
