"""Graph differ - classify nodes of a new revision against a prior one.

A node is "modified" when its ``type`` or ``label`` changed. Dimensions,
positions and edges never affect classification.
"""

import logging

from diagram_layout.models.graph import DiffableGraph, GraphDiff

logger = logging.getLogger(__name__)


def diff_graphs(old_graph: DiffableGraph, new_graph: DiffableGraph) -> GraphDiff:
    """
    Compare two graph revisions.

    Args:
        old_graph: The previous graph revision
        new_graph: The new graph revision

    Returns:
        GraphDiff with node ids categorized in input iteration order
    """
    old_nodes = old_graph.node_index()
    new_nodes = new_graph.node_index()

    diff = GraphDiff()

    for node_id, node in new_nodes.items():
        old_node = old_nodes.get(node_id)
        if old_node is None:
            diff.added.append(node_id)
        elif old_node.type != node.type or old_node.label != node.label:
            diff.modified.append(node_id)
        else:
            diff.unchanged.append(node_id)

    for node_id in old_nodes:
        if node_id not in new_nodes:
            diff.removed.append(node_id)

    logger.debug(
        f"Graph diff: {len(diff.added)} added, {len(diff.removed)} removed, "
        f"{len(diff.modified)} modified, {len(diff.unchanged)} unchanged"
    )

    return diff
