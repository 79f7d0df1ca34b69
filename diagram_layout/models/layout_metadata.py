"""Layout metadata for node positions, provenance and history snapshots.

This module provides schemas for:
- Node positions (x, y coordinates) and bounding boxes
- Position provenance (who placed a node where it is)
- Position resolutions (positions to keep + nodes needing layout)
- Position snapshots (the unit of undo/redo)
- Layout request shapes (node/edge info, layout options)
- Layout results returned by layout engines

Coordinates are ELK-native: top-left origin, children relative to their
parent's origin.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class NodePosition(BaseModel):
    """Position of a single node in 2D layout space.

    Immutable, so position tables can be copied shallowly without aliasing
    coordinates.

    Attributes:
        x: Horizontal coordinate
        y: Vertical coordinate
    """

    model_config = ConfigDict(frozen=True)

    x: float = Field(..., description="Horizontal coordinate")
    y: float = Field(..., description="Vertical coordinate")

    @classmethod
    def from_list(cls, pos: List[float]) -> "NodePosition":
        """Create NodePosition from [x, y] list.

        Raises:
            ValueError: If pos doesn't have exactly 2 elements
        """
        if len(pos) != 2:
            raise ValueError(f"Position must be [x, y], got {len(pos)} elements")
        return cls(x=pos[0], y=pos[1])

    def to_list(self) -> List[float]:
        """Convert to list format [x, y]."""
        return [self.x, self.y]


ORIGIN = NodePosition(x=0, y=0)


class BoundingBox(BaseModel):
    """Bounding box of a set of node positions.

    Attributes:
        min_x: Minimum x coordinate
        max_x: Maximum x coordinate
        min_y: Minimum y coordinate
        max_y: Maximum y coordinate
    """

    min_x: float = Field(..., description="Minimum x coordinate")
    max_x: float = Field(..., description="Maximum x coordinate")
    min_y: float = Field(..., description="Minimum y coordinate")
    max_y: float = Field(..., description="Maximum y coordinate")

    @property
    def width(self) -> float:
        """Computed width of bounding box."""
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        """Computed height of bounding box."""
        return self.max_y - self.min_y

    @classmethod
    def from_positions(cls, positions: Mapping[str, NodePosition]) -> "BoundingBox":
        """Compute bounding box from node positions.

        Raises:
            ValueError: If positions is empty
        """
        if not positions:
            raise ValueError("Cannot compute bounding box from empty positions")

        x_coords = [pos.x for pos in positions.values()]
        y_coords = [pos.y for pos in positions.values()]

        return cls(
            min_x=min(x_coords),
            max_x=max(x_coords),
            min_y=min(y_coords),
            max_y=max(y_coords)
        )


class PositionSource(Enum):
    """Provenance of a node's current coordinates."""
    USER_DRAGGED = "user-dragged"
    ELK_COMPUTED = "elk-computed"
    LOADED = "loaded"
    DEFAULT = "default"
    HISTORY = "history"        # Restored by undo/redo


class PositionResolution(BaseModel):
    """Positions to use next, and the node ids that still need placement.

    Ids in ``needs_layout`` carry a (0, 0) placeholder in ``positions``.
    """

    positions: Dict[str, NodePosition] = Field(default_factory=dict)
    needs_layout: List[str] = Field(default_factory=list)


class PositionSnapshot(BaseModel):
    """One saved position table plus provenance. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    positions: Dict[str, NodePosition] = Field(..., description="Position table copy")
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        description="ISO 8601 creation timestamp",
    )
    source: str = Field(default="manual", description="What caused this snapshot")

    @classmethod
    def capture(cls, positions: Mapping[str, NodePosition], source: str = "manual") -> "PositionSnapshot":
        """Create a snapshot holding its own copy of ``positions``."""
        return cls(positions=dict(positions), source=source)

    def matches(self, positions: Mapping[str, NodePosition]) -> bool:
        """Whether this snapshot records exactly ``positions``."""
        return self.positions == dict(positions)


class LayoutNodeInfo(BaseModel):
    """Minimal node shape needed by the layout engine."""

    id: str
    width: float = 150.0
    height: float = 50.0
    parent_id: Optional[str] = None


class LayoutEdgeInfo(BaseModel):
    """Minimal edge shape needed by the layout engine."""

    id: str
    source: str
    target: str
    label: Optional[str] = None


# Graph-level algorithm names -> ELK algorithm ids
ALGORITHM_MAP = {
    "layered": "layered",
    "force": "force",
    "radial": "radial",
    "tree": "mrtree",
    "fixed": "fixed",
}


class LayoutOptions(BaseModel):
    """Direction, algorithm and spacing options for one layout call."""

    algorithm: str = Field(default="layered", description="Layout algorithm name")
    direction: Literal["DOWN", "UP", "LEFT", "RIGHT"] = Field(default="DOWN")
    spacing: float = Field(default=50.0, description="Node-node spacing")
    layer_spacing: float = Field(default=70.0, description="Spacing between layers")

    @field_validator("direction", mode="before")
    @classmethod
    def normalize_direction(cls, v: Any) -> Any:
        """Accept lower-case directions."""
        return v.upper() if isinstance(v, str) else v

    def to_elk_options(self) -> Dict[str, str]:
        """Convert to ELK layoutOptions (ELK expects string values)."""
        return {
            "elk.algorithm": ALGORITHM_MAP.get(self.algorithm, "layered"),
            "elk.direction": self.direction,
            "elk.spacing.nodeNode": str(self.spacing),
            "elk.layered.spacing.nodeNodeBetweenLayers": str(self.layer_spacing),
        }


class LayoutMetadata(BaseModel):
    """Result of one layout engine call.

    Attributes:
        algorithm: Layout algorithm used (e.g., 'elk')
        layout_options: Algorithm-specific options sent with the request
        positions: Dictionary of node_id -> NodePosition (children relative to parent)
        bounding_box: Overall bounding box (auto-computed)
        created_at: ISO 8601 timestamp
    """

    algorithm: str = Field(..., description="Layout algorithm used")
    layout_options: Dict[str, Any] = Field(default_factory=dict)
    positions: Dict[str, NodePosition] = Field(..., description="Node positions keyed by node ID")
    bounding_box: Optional[BoundingBox] = Field(default=None)
    created_at: Optional[str] = Field(default=None)

    def model_post_init(self, __context) -> None:
        """Compute bounding box and timestamp if not provided."""
        if self.bounding_box is None and self.positions:
            object.__setattr__(
                self, "bounding_box", BoundingBox.from_positions(self.positions)
            )
        if self.created_at is None:
            object.__setattr__(self, "created_at", datetime.now(timezone.utc).isoformat())


class DiagramNode(BaseModel):
    """A live node owned by the diagram state orchestrator."""

    id: str
    type: str = ""
    label: str = ""
    width: float = 150.0
    height: float = 50.0
    parent_id: Optional[str] = None
    position: NodePosition = Field(default=ORIGIN)
    source: PositionSource = Field(default=PositionSource.DEFAULT)

    def to_layout_info(self) -> LayoutNodeInfo:
        return LayoutNodeInfo(
            id=self.id, width=self.width, height=self.height, parent_id=self.parent_id
        )


__all__ = [
    "NodePosition",
    "ORIGIN",
    "BoundingBox",
    "PositionSource",
    "PositionResolution",
    "PositionSnapshot",
    "LayoutNodeInfo",
    "LayoutEdgeInfo",
    "LayoutOptions",
    "ALGORITHM_MAP",
    "LayoutMetadata",
    "DiagramNode",
]
