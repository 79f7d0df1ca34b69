"""Graph revision schemas consumed by the position-stability layer.

A graph revision is the immutable snapshot of nodes and edges produced by the
import/parsing collaborator for one edit. Only node identity, ``type`` and
``label`` take part in diffing; dimensions and hierarchy are carried through
to layout.
"""

import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class DiffableNode(BaseModel):
    """A node of one graph revision.

    Attributes:
        id: Stable node identity across revisions
        type: Notation-specific node type (e.g., 'service', 'database')
        label: Display label
        width: Explicit width (None means size automatically)
        height: Explicit height (None means size automatically)
        parent_id: Enclosing group node, if nested
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Node identity")
    type: str = Field(default="", description="Node type")
    label: str = Field(default="", description="Node label")
    width: Optional[float] = Field(default=None, description="Explicit width")
    height: Optional[float] = Field(default=None, description="Explicit height")
    parent_id: Optional[str] = Field(default=None, description="Parent group node ID")


class DiffableEdge(BaseModel):
    """An edge of one graph revision. Ignored by the differ."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Edge identity")
    source: str = Field(..., description="Source node ID")
    target: str = Field(..., description="Target node ID")
    label: Optional[str] = Field(default=None, description="Edge label")


class DiffableGraph(BaseModel):
    """One graph revision: ordered nodes plus edges."""

    model_config = ConfigDict(frozen=True)

    nodes: List[DiffableNode] = Field(default_factory=list)
    edges: List[DiffableEdge] = Field(default_factory=list)

    def node_index(self) -> Dict[str, DiffableNode]:
        """Index nodes by id.

        Duplicate ids are collapsed last-write-wins: the last occurrence's
        attributes are kept, at the position of the first occurrence.

        Returns:
            Dictionary of node_id -> DiffableNode in first-seen order
        """
        index: Dict[str, DiffableNode] = {}
        for node in self.nodes:
            if node.id in index:
                logger.warning(f"Duplicate node id {node.id!r} in graph revision; last occurrence wins")
            index[node.id] = node
        return index

    @property
    def node_ids(self) -> List[str]:
        """Node ids in revision order, duplicates collapsed."""
        return list(self.node_index().keys())


class GraphDiff(BaseModel):
    """Classification of a new revision's nodes against a prior revision.

    Every id of the new revision appears in exactly one of ``added``,
    ``modified`` or ``unchanged``; ids only in the old revision appear in
    ``removed``. Lists follow input iteration order.
    """

    added: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)
    modified: List[str] = Field(default_factory=list)
    unchanged: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        """Check if diff has any changes."""
        return not (self.added or self.removed or self.modified)


__all__ = [
    "DiffableNode",
    "DiffableEdge",
    "DiffableGraph",
    "GraphDiff",
]
