"""Position resolver - decide which positions to keep and which nodes need layout."""

from typing import Mapping

from diagram_layout.core.graph_differ import diff_graphs
from diagram_layout.models.graph import DiffableGraph
from diagram_layout.models.layout_metadata import (
    ORIGIN,
    NodePosition,
    PositionResolution,
)


def resolve_positions(
    old_graph: DiffableGraph,
    new_graph: DiffableGraph,
    current_positions: Mapping[str, NodePosition],
) -> PositionResolution:
    """
    Resolve positions for the nodes of a new graph revision.

    - Unchanged and modified nodes keep their current positions
    - Nodes without a recorded position, and all added nodes, get a (0, 0)
      placeholder and are marked as needing layout
    - Removed nodes are dropped

    Args:
        old_graph: The previous graph revision
        new_graph: The new graph revision
        current_positions: Node id -> currently known position

    Returns:
        PositionResolution with resolved positions and nodes needing layout
    """
    diff = diff_graphs(old_graph, new_graph)
    resolution = PositionResolution()

    for node_id in [*diff.unchanged, *diff.modified]:
        position = current_positions.get(node_id)
        if position is not None:
            resolution.positions[node_id] = position
        else:
            resolution.needs_layout.append(node_id)
            resolution.positions[node_id] = ORIGIN

    for node_id in diff.added:
        resolution.needs_layout.append(node_id)
        resolution.positions[node_id] = ORIGIN

    return resolution
