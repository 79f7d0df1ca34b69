"""Incremental layout with pinned positions.

Strategy: run the layout engine on the full graph (so edge routing and
relative ordering stay consistent), sending pinned coordinates as initial
position hints, then restore every pinned node to its exact pinned position.
Only nodes in the needs-layout set take the engine's answer.

If the engine fails, nodes needing layout are stacked below the pinned ones.
"""

import logging
from typing import Dict, Iterable, Mapping, Optional, Sequence

import networkx as nx

from diagram_layout.config.settings import get_setting, is_enabled
from diagram_layout.layout.engines.base import LayoutEngine
from diagram_layout.models.layout_metadata import (
    ORIGIN,
    BoundingBox,
    LayoutEdgeInfo,
    LayoutNodeInfo,
    LayoutOptions,
    NodePosition,
)

logger = logging.getLogger(__name__)


class IncrementalLayoutEngine:
    """Wraps a LayoutEngine to compute coordinates only where required.

    Usage:
        engine = IncrementalLayoutEngine(ELKLayoutEngine())
        positions = await engine.layout(nodes, edges, pinned, ["new-node"])
    """

    def __init__(
        self,
        engine: Optional[LayoutEngine] = None,
        fallback_x: Optional[float] = None,
        fallback_margin: Optional[float] = None,
        fallback_margin_y: Optional[float] = None,
    ):
        """
        Args:
            engine: External layout engine (ELKLayoutEngine if None)
            fallback_x: x coordinate of the fallback stack
            fallback_margin: Gap between stacked fallback nodes
            fallback_margin_y: Gap between the lowest pinned node and the stack
        """
        if engine is None:
            from diagram_layout.layout.engines.elk import ELKLayoutEngine
            engine = ELKLayoutEngine()
        self._engine = engine
        self._fallback_x = fallback_x if fallback_x is not None else get_setting("fallback_x")
        self._fallback_margin = (
            fallback_margin if fallback_margin is not None else get_setting("fallback_margin")
        )
        self._fallback_margin_y = (
            fallback_margin_y if fallback_margin_y is not None else get_setting("fallback_margin_y")
        )
        self.fallback_count = 0

    async def layout(
        self,
        nodes: Sequence[LayoutNodeInfo],
        edges: Sequence[LayoutEdgeInfo],
        pinned_positions: Mapping[str, NodePosition],
        needs_layout: Iterable[str],
        options: Optional[LayoutOptions] = None,
    ) -> Dict[str, NodePosition]:
        """
        Compute positions for ``needs_layout`` while preserving pins.

        Args:
            nodes: All nodes to lay out (with dimensions)
            edges: All edges in the graph
            pinned_positions: Positions to preserve, keyed by node id
            needs_layout: Node ids that need engine positioning
            options: Layout options (defaults from settings if None)

        Returns:
            Dictionary of node_id -> NodePosition. Never raises on engine failure.
        """
        if not nodes:
            return {}

        needs = list(dict.fromkeys(needs_layout))
        if not needs:
            return {
                node.id: pinned_positions[node.id]
                for node in nodes
                if node.id in pinned_positions
            }

        needs_set = set(needs)
        pins = {
            node_id: pos
            for node_id, pos in pinned_positions.items()
            if node_id not in needs_set
        }

        options = options or default_layout_options()
        graph = self._build_graph(nodes, edges, pins)

        try:
            result = await self._engine.layout(graph, options.to_elk_options())
        except Exception as e:
            self.fallback_count += 1
            logger.warning(
                f"Incremental layout via {self._engine.name} failed ({e}); "
                f"placing {len(needs)} node(s) with fallback"
            )
            return self._fallback(nodes, pins)

        positions: Dict[str, NodePosition] = {}
        for node in nodes:
            if node.id in pins:
                positions[node.id] = pins[node.id]
            else:
                positions[node.id] = result.positions.get(node.id, ORIGIN)

        logger.debug(
            f"Incremental layout placed {len(needs)} node(s), kept {len(pins)} pinned"
        )
        return positions

    def _build_graph(
        self,
        nodes: Sequence[LayoutNodeInfo],
        edges: Sequence[LayoutEdgeInfo],
        pins: Mapping[str, NodePosition],
    ) -> nx.MultiDiGraph:
        """Build the full-graph layout request."""
        hints = is_enabled("elk_position_hints") and self._engine.supports_position_hints

        graph = nx.MultiDiGraph()
        for node in nodes:
            attrs = {"width": node.width, "height": node.height, "parent": node.parent_id}
            pin = pins.get(node.id)
            if hints and pin is not None:
                attrs["x"] = pin.x
                attrs["y"] = pin.y
            graph.add_node(node.id, **attrs)

        for edge in edges:
            if edge.source not in graph or edge.target not in graph:
                logger.debug(f"Skipping edge {edge.id}: endpoint not in layout request")
                continue
            graph.add_edge(edge.source, edge.target, id=edge.id)

        return graph

    def _fallback(
        self,
        nodes: Sequence[LayoutNodeInfo],
        pins: Mapping[str, NodePosition],
    ) -> Dict[str, NodePosition]:
        """Keep pins; stack every other node vertically below them."""
        fallback_y = 0.0
        if pins:
            fallback_y = BoundingBox.from_positions(pins).max_y + self._fallback_margin_y

        positions: Dict[str, NodePosition] = {}
        for node in nodes:
            pin = pins.get(node.id)
            if pin is not None:
                positions[node.id] = pin
            else:
                positions[node.id] = NodePosition(x=self._fallback_x, y=fallback_y)
                fallback_y += node.height + self._fallback_margin

        return positions


def default_layout_options() -> LayoutOptions:
    """Layout options from current settings."""
    return LayoutOptions(
        algorithm=get_setting("algorithm"),
        direction=get_setting("direction"),
        spacing=get_setting("spacing"),
        layer_spacing=get_setting("layer_spacing"),
    )


__all__ = [
    "IncrementalLayoutEngine",
    "default_layout_options",
]
