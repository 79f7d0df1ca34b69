"""
DiagramStateOrchestrator - owner of live diagram node/edge state.

Sequences GraphDiffer -> PositionResolver -> IncrementalLayoutEngine on every
graph update, applies drag and reflow operations, and records discrete
interaction boundaries in LayoutHistory.

Design decisions:
- Layout is the only suspension point. Every set_graph takes a new revision
  number; a layout result is applied only if its revision is still current
- Pinned positions are re-read from live state when a result is applied, so
  a drag made while layout was in flight survives
- Drag events update position and provenance only (no diff, layout or history)
- Before a history-eligible action, the pre-action table is saved as a
  "baseline" snapshot when it differs from the snapshot at the history cursor
- The history re-entrancy guard is cleared at the start of the next
  externally invoked operation; calls made from inside a state listener
  do not clear it
"""

import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set, Union

from diagram_layout.config.settings import get_setting
from diagram_layout.core.position_resolver import resolve_positions
from diagram_layout.layout.incremental import IncrementalLayoutEngine, default_layout_options
from diagram_layout.layout.node_sizing import SizingMode, apply_sizing
from diagram_layout.managers.layout_history import LayoutHistory
from diagram_layout.models.graph import DiffableGraph, DiffableNode
from diagram_layout.models.layout_metadata import (
    ORIGIN,
    DiagramNode,
    LayoutEdgeInfo,
    LayoutNodeInfo,
    LayoutOptions,
    NodePosition,
    PositionSource,
)

logger = logging.getLogger(__name__)

StateListener = Callable[["DiagramStateOrchestrator"], None]


# ============================================================================
# Exceptions
# ============================================================================

class DiagramStateError(Exception):
    """Base exception for diagram state errors."""
    pass


class UnknownNodeError(DiagramStateError):
    """Node id does not refer to a node of the diagram."""

    def __init__(self, node_id: str, detail: str = "is not in the diagram"):
        self.node_id = node_id
        super().__init__(f"Node {node_id!r} {detail}")


# ============================================================================
# DiagramStateOrchestrator
# ============================================================================

class DiagramStateOrchestrator:
    """
    Top-level owner of diagram position state.

    Usage:
        state = DiagramStateOrchestrator(IncrementalLayoutEngine(ELKLayoutEngine()))

        await state.set_graph(graph)          # layout new nodes only
        state.on_node_drag("a", NodePosition(x=500, y=500))
        state.on_drag_end()                   # one undoable step
        state.undo()
        await state.reflow()                  # full re-layout, undoable
    """

    def __init__(
        self,
        layout_engine: Optional[IncrementalLayoutEngine] = None,
        history: Optional[LayoutHistory] = None,
        options: Optional[LayoutOptions] = None,
        sizing_mode: Optional[SizingMode] = None,
    ):
        """
        Args:
            layout_engine: Incremental layout engine (ELK-backed if None)
            history: Undo/redo history (default size from settings if None)
            options: Layout options (defaults from settings if None)
            sizing_mode: Size nodes from labels ('adaptive', 'uniform',
                'hybrid'); None uses default dimensions
        """
        self._layout = layout_engine or IncrementalLayoutEngine()
        self._history = history or LayoutHistory()
        self._options = options or default_layout_options()
        self._sizing_mode = sizing_mode

        self._nodes: Dict[str, DiagramNode] = {}
        self._edges: List[LayoutEdgeInfo] = []
        self._previous_graph = DiffableGraph()
        self._known_ids: Set[str] = set()

        self._revision = 0
        self._applied_revision = 0
        self._pending_layouts = 0
        self._dragging = False
        self._listeners: List[StateListener] = []
        self._notify_depth = 0

        logger.info("DiagramStateOrchestrator initialized")

    # ========================================================================
    # Graph updates
    # ========================================================================

    async def set_graph(self, graph: DiffableGraph) -> bool:
        """
        Reconcile a new graph revision with the current positions.

        Nodes that keep their identity keep their positions; new nodes (and
        nodes without a recorded position) are placed by the layout engine
        and tagged ELK_COMPUTED. Does not record a history snapshot.

        Returns:
            True if the result was applied, False if a newer revision
            superseded it while layout was in flight
        """
        self._begin_operation()
        self._revision += 1
        revision = self._revision

        index = graph.node_index()
        self._known_ids.update(index)

        resolution = resolve_positions(self._previous_graph, graph, self.positions())
        infos = {info.id: info for info in self._layout_infos(index.values())}
        edges = [
            LayoutEdgeInfo(id=e.id, source=e.source, target=e.target, label=e.label)
            for e in graph.edges
        ]

        if resolution.needs_layout:
            self._pending_layouts += 1
            try:
                computed = await self._layout.layout(
                    list(infos.values()),
                    edges,
                    resolution.positions,
                    resolution.needs_layout,
                    self._options,
                )
            finally:
                self._pending_layouts -= 1
        else:
            computed = resolution.positions

        if revision != self._revision:
            logger.debug(f"Discarding layout for revision {revision} (current: {self._revision})")
            return False

        needs_layout = set(resolution.needs_layout)
        live = self.positions()
        nodes: Dict[str, DiagramNode] = {}
        for node_id, node in index.items():
            info = infos[node_id]
            existing = self._nodes.get(node_id)
            if node_id in needs_layout:
                position = computed.get(node_id, ORIGIN)
                source = PositionSource.ELK_COMPUTED
            else:
                position = live.get(node_id, computed.get(node_id, ORIGIN))
                source = existing.source if existing else PositionSource.DEFAULT

            nodes[node_id] = DiagramNode(
                id=node_id,
                type=node.type,
                label=node.label,
                width=info.width,
                height=info.height,
                parent_id=node.parent_id,
                position=position,
                source=source,
            )

        removed = [node_id for node_id in self._nodes if node_id not in nodes]
        self._nodes = nodes
        self._edges = edges
        self._previous_graph = graph
        self._applied_revision = revision

        logger.debug(
            f"Applied revision {revision}: {len(nodes)} node(s), "
            f"{len(needs_layout)} laid out, {len(removed)} removed"
        )
        self._notify()
        return True

    async def reflow(self) -> bool:
        """
        Re-layout every node, ignoring all pins.

        All nodes become ELK_COMPUTED and a "reflow" snapshot is recorded.
        A reflow requested while a graph update is still being laid out is
        refused, and one overtaken by a graph update or by undo/redo is
        discarded.

        Returns:
            True if applied, False if there was nothing to lay out, a graph
            update was pending, or the result went stale while in flight
        """
        self._begin_operation()
        if not self._nodes:
            return False
        if self._applied_revision != self._revision:
            logger.debug(f"Refusing reflow: revision {self._revision} is still being laid out")
            return False

        revision = self._revision
        self._save_baseline()
        cursor = self._history.current()

        node_ids = list(self._nodes)
        infos = [node.to_layout_info() for node in self._nodes.values()]

        self._pending_layouts += 1
        try:
            computed = await self._layout.layout(infos, self._edges, {}, node_ids, self._options)
        finally:
            self._pending_layouts -= 1

        if revision != self._revision:
            logger.debug(f"Discarding reflow for revision {revision} (current: {self._revision})")
            return False
        if self._history.current() is not cursor:
            logger.debug("Discarding reflow: history moved while layout was in flight")
            return False

        for node_id, position in computed.items():
            node = self._nodes.get(node_id)
            if node is not None:
                node.position = position
                node.source = PositionSource.ELK_COMPUTED

        self._history.save(self.positions(), "reflow")
        self._notify()
        return True

    # ========================================================================
    # Interaction
    # ========================================================================

    def on_node_drag(self, node_id: str, position: NodePosition) -> None:
        """
        Move a node during a drag gesture.

        Raises:
            UnknownNodeError: If node_id is not a live node
        """
        self._begin_operation()
        node = self._nodes.get(node_id)
        if node is None:
            raise UnknownNodeError(node_id)

        if not self._dragging:
            self._dragging = True
            self._save_baseline()

        node.position = position
        node.source = PositionSource.USER_DRAGGED
        self._notify()

    def on_drag_end(self) -> bool:
        """
        Record the current position table as one "drag" step.

        Returns:
            True if a snapshot was recorded
        """
        self._dragging = False
        return self._history.save(self.positions(), "drag")

    def set_node_positions(
        self,
        positions: Mapping[str, NodePosition],
        source: Union[PositionSource, str] = PositionSource.LOADED,
    ) -> bool:
        """
        Bulk-overwrite positions (e.g., from a loaded document).

        Ids seen in an earlier revision but no longer live are skipped.

        Args:
            positions: Node id -> position
            source: Provenance to tag the nodes with

        Returns:
            True if a snapshot was recorded

        Raises:
            UnknownNodeError: If an id never appeared in any graph revision
        """
        self._begin_operation()
        source = PositionSource(source)

        for node_id in positions:
            if node_id not in self._known_ids:
                raise UnknownNodeError(node_id, "never appeared in any graph revision")

        self._save_baseline()

        for node_id, position in positions.items():
            node = self._nodes.get(node_id)
            if node is None:
                logger.debug(f"Skipping position for removed node {node_id!r}")
                continue
            node.position = position
            node.source = source

        saved = self._history.save(self.positions(), source.value)
        self._notify()
        return saved

    def undo(self) -> bool:
        """
        Restore the previous snapshot without re-running diff or layout.

        Returns:
            True if a snapshot was applied
        """
        self._begin_operation()
        positions = self._history.undo()
        if positions is None:
            return False
        self._apply_snapshot(positions)
        return True

    def redo(self) -> bool:
        """
        Re-apply the next snapshot after an undo.

        Returns:
            True if a snapshot was applied
        """
        self._begin_operation()
        positions = self._history.redo()
        if positions is None:
            return False
        self._apply_snapshot(positions)
        return True

    def clear_history(self) -> None:
        self._history.clear()

    # ========================================================================
    # Read access
    # ========================================================================

    def get_position_source(self, node_id: str) -> PositionSource:
        """Provenance of a node's position (DEFAULT for unknown ids)."""
        node = self._nodes.get(node_id)
        return node.source if node is not None else PositionSource.DEFAULT

    def positions(self) -> Dict[str, NodePosition]:
        """Current position table."""
        return {node_id: node.position for node_id, node in self._nodes.items()}

    @property
    def nodes(self) -> List[DiagramNode]:
        return [node.model_copy() for node in self._nodes.values()]

    @property
    def edges(self) -> List[LayoutEdgeInfo]:
        return list(self._edges)

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def is_loading(self) -> bool:
        return self._pending_layouts > 0

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    @property
    def undo_count(self) -> int:
        return self._history.undo_count

    @property
    def redo_count(self) -> int:
        return self._history.redo_count

    @property
    def history_depth(self) -> int:
        return self._history.depth

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a listener called after every state change.

        Returns:
            Callable that unregisters the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ========================================================================
    # Private Helpers
    # ========================================================================

    def _begin_operation(self) -> None:
        # Calls from inside a listener belong to the operation that notified
        if self._notify_depth == 0:
            self._history.settle()

    def _notify(self) -> None:
        self._notify_depth += 1
        try:
            for listener in list(self._listeners):
                listener(self)
        finally:
            self._notify_depth -= 1

    def _save_baseline(self) -> None:
        positions = self.positions()
        if not positions:
            return
        current = self._history.current()
        if current is None or not current.matches(positions):
            self._history.save(positions, "baseline")

    def _apply_snapshot(self, positions: Mapping[str, NodePosition]) -> None:
        self._dragging = False
        for node_id, position in positions.items():
            node = self._nodes.get(node_id)
            if node is None or node.position == position:
                continue
            node.position = position
            node.source = PositionSource.HISTORY
        self._notify()

    def _layout_infos(self, nodes: Iterable[DiffableNode]) -> List[LayoutNodeInfo]:
        default_width = get_setting("default_node_width")
        default_height = get_setting("default_node_height")

        entries = [
            (
                LayoutNodeInfo(
                    id=node.id,
                    width=default_width if node.width is None else node.width,
                    height=default_height if node.height is None else node.height,
                    parent_id=node.parent_id,
                ),
                node.label,
                node.type,
                node.width is not None and node.height is not None,
            )
            for node in nodes
        ]

        if self._sizing_mode is None:
            return [info for info, _, _, _ in entries]
        return apply_sizing(entries, self._sizing_mode)


__all__ = [
    "DiagramStateOrchestrator",
    "DiagramStateError",
    "UnknownNodeError",
    "StateListener",
]
