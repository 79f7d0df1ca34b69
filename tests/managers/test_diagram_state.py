"""
Test suite for DiagramStateOrchestrator.

Tests cover:
- Graph updates with position stability
- Drag, drag end and undo/redo
- Reflow
- Loaded positions and provenance
- Stale layout results (revision matching)
- Re-entrancy from state listeners
"""

import asyncio

import pytest

from diagram_layout.layout.incremental import IncrementalLayoutEngine
from diagram_layout.managers.diagram_state import (
    DiagramStateError,
    DiagramStateOrchestrator,
    UnknownNodeError,
)
from diagram_layout.managers.layout_history import LayoutHistory
from diagram_layout.models.graph import DiffableGraph, DiffableNode
from diagram_layout.models.layout_metadata import NodePosition, PositionSource


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def state(grid_engine):
    return DiagramStateOrchestrator(IncrementalLayoutEngine(grid_engine))


@pytest.fixture
def two_services(graph_factory):
    return graph_factory(("a", "service", "A"), ("b", "service", "B"), edges=[("a", "b")])


def position_of(state, node_id):
    return next(n.position for n in state.nodes if n.id == node_id)


# ============================================================================
# Graph updates
# ============================================================================

class TestSetGraph:

    @pytest.mark.asyncio
    async def test_initial_graph_is_laid_out(self, state, two_services):
        applied = await state.set_graph(two_services)

        assert applied is True
        assert [n.id for n in state.nodes] == ["a", "b"]
        for node_id in ("a", "b"):
            assert state.get_position_source(node_id) == PositionSource.ELK_COMPUTED
            assert position_of(state, node_id) != NodePosition(x=0, y=0)
        assert [e.id for e in state.edges] == ["a->b"]

    @pytest.mark.asyncio
    async def test_set_graph_does_not_record_history(self, state, two_services):
        await state.set_graph(two_services)

        assert state.history_depth == 0
        assert not state.can_undo

    @pytest.mark.asyncio
    async def test_adding_node_keeps_existing_position(self, state, graph_factory):
        await state.set_graph(graph_factory(("a", "service", "A")))
        before = position_of(state, "a")

        await state.set_graph(
            graph_factory(("a", "service", "A"), ("b", "service", "B"), edges=[("a", "b")])
        )

        assert position_of(state, "a") == before
        placed = position_of(state, "b")
        assert placed != NodePosition(x=0, y=0)
        assert state.get_position_source("b") == PositionSource.ELK_COMPUTED

    @pytest.mark.asyncio
    async def test_removing_node(self, state, two_services, graph_factory):
        await state.set_graph(two_services)

        await state.set_graph(graph_factory(("a", "service", "A")))

        assert [n.id for n in state.nodes] == ["a"]
        assert state.get_position_source("b") == PositionSource.DEFAULT
        assert state.edges == []

    @pytest.mark.asyncio
    async def test_unchanged_graph_skips_layout(self, state, grid_engine, two_services):
        await state.set_graph(two_services)
        calls = len(grid_engine.calls)

        await state.set_graph(two_services)

        assert len(grid_engine.calls) == calls

    @pytest.mark.asyncio
    async def test_modified_node_keeps_position_and_source(self, state, two_services, graph_factory):
        await state.set_graph(two_services)
        state.on_node_drag("a", NodePosition(x=5, y=5))
        state.on_drag_end()

        await state.set_graph(
            graph_factory(("a", "database", "A renamed"), ("b", "service", "B"), edges=[("a", "b")])
        )

        node = next(n for n in state.nodes if n.id == "a")
        assert node.position == NodePosition(x=5, y=5)
        assert node.type == "database"
        assert node.label == "A renamed"
        assert state.get_position_source("a") == PositionSource.USER_DRAGGED

    @pytest.mark.asyncio
    async def test_explicit_dimensions_are_used(self, state):
        graph = DiffableGraph(nodes=[DiffableNode(id="a", type="service", label="A", width=300, height=80)])

        await state.set_graph(graph)

        node = state.nodes[0]
        assert (node.width, node.height) == (300, 80)

    @pytest.mark.asyncio
    async def test_explicit_zero_dimensions_are_kept(self, state):
        graph = DiffableGraph(nodes=[DiffableNode(id="a", type="anchor", label="", width=0, height=0)])

        await state.set_graph(graph)

        node = state.nodes[0]
        assert (node.width, node.height) == (0, 0)

    @pytest.mark.asyncio
    async def test_sizing_mode_sizes_from_labels(self, grid_engine):
        state = DiagramStateOrchestrator(IncrementalLayoutEngine(grid_engine), sizing_mode="adaptive")
        graph = DiffableGraph(nodes=[
            DiffableNode(id="short", type="service", label="A"),
            DiffableNode(id="long", type="service", label="A much longer label for this service"),
        ])

        await state.set_graph(graph)

        widths = {n.id: n.width for n in state.nodes}
        assert widths["long"] > widths["short"]

    @pytest.mark.asyncio
    async def test_layout_failure_uses_fallback(self, failing_engine, graph_factory):
        state = DiagramStateOrchestrator(IncrementalLayoutEngine(failing_engine))

        applied = await state.set_graph(graph_factory(("a", "service", "A"), ("b", "service", "B")))

        assert applied is True
        assert position_of(state, "a") == NodePosition(x=100, y=0)
        assert position_of(state, "b") == NodePosition(x=100, y=100)

    @pytest.mark.asyncio
    async def test_empty_graph(self, state, grid_engine):
        assert await state.set_graph(DiffableGraph()) is True
        assert state.nodes == []
        assert grid_engine.calls == []


# ============================================================================
# Drag, undo and redo
# ============================================================================

class TestDragUndoRedo:

    @pytest.mark.asyncio
    async def test_drag_undo_redo_scenario(self, state, two_services):
        await state.set_graph(two_services)
        a_before = position_of(state, "a")
        b_before = position_of(state, "b")

        state.on_node_drag("a", NodePosition(x=500, y=500))
        assert state.get_position_source("a") == PositionSource.USER_DRAGGED
        state.on_drag_end()
        assert state.can_undo

        assert state.undo() is True
        assert position_of(state, "a") == a_before
        assert position_of(state, "b") == b_before
        assert state.get_position_source("b") == PositionSource.ELK_COMPUTED
        assert state.get_position_source("a") == PositionSource.HISTORY
        assert state.can_redo

        assert state.redo() is True
        assert position_of(state, "a") == NodePosition(x=500, y=500)
        assert not state.can_redo

    @pytest.mark.asyncio
    async def test_drag_events_do_not_touch_history(self, state, two_services):
        await state.set_graph(two_services)

        for i in range(20):
            state.on_node_drag("a", NodePosition(x=i, y=i))

        # Only the pre-drag baseline
        assert state.history_depth == 1
        state.on_drag_end()
        assert state.history_depth == 2

    @pytest.mark.asyncio
    async def test_consecutive_drags_are_separate_steps(self, state, two_services):
        await state.set_graph(two_services)
        state.on_node_drag("a", NodePosition(x=1, y=1))
        state.on_drag_end()
        state.on_node_drag("b", NodePosition(x=2, y=2))
        state.on_drag_end()

        assert state.undo_count == 2

        state.undo()
        assert position_of(state, "a") == NodePosition(x=1, y=1)
        assert position_of(state, "b") != NodePosition(x=2, y=2)

    @pytest.mark.asyncio
    async def test_drag_after_undo_prunes_redo(self, state, two_services):
        await state.set_graph(two_services)
        state.on_node_drag("a", NodePosition(x=1, y=1))
        state.on_drag_end()
        state.undo()

        state.on_node_drag("b", NodePosition(x=9, y=9))
        state.on_drag_end()

        assert not state.can_redo
        assert state.history_depth == 2

    @pytest.mark.asyncio
    async def test_clear_history(self, state, two_services):
        await state.set_graph(two_services)
        state.on_node_drag("a", NodePosition(x=1, y=1))
        state.on_drag_end()

        state.clear_history()

        assert state.history_depth == 0
        assert state.undo_count == 0
        assert state.redo_count == 0
        assert position_of(state, "a") == NodePosition(x=1, y=1)

    def test_undo_redo_without_history(self, state):
        assert state.undo() is False
        assert state.redo() is False

    @pytest.mark.asyncio
    async def test_undo_does_not_rerun_layout(self, state, grid_engine, two_services):
        await state.set_graph(two_services)
        state.on_node_drag("a", NodePosition(x=1, y=1))
        state.on_drag_end()
        calls = len(grid_engine.calls)

        state.undo()
        state.redo()

        assert len(grid_engine.calls) == calls

    @pytest.mark.asyncio
    async def test_undo_ignores_nodes_missing_from_snapshot(self, state, graph_factory):
        await state.set_graph(graph_factory(("a", "service", "A")))
        state.on_node_drag("a", NodePosition(x=1, y=1))
        state.on_drag_end()
        await state.set_graph(graph_factory(("a", "service", "A"), ("c", "service", "C")))
        c_position = position_of(state, "c")

        state.undo()

        assert position_of(state, "c") == c_position
        assert state.get_position_source("c") == PositionSource.ELK_COMPUTED

    @pytest.mark.asyncio
    async def test_drag_unknown_node_rejected(self, state, two_services):
        await state.set_graph(two_services)

        with pytest.raises(UnknownNodeError) as exc_info:
            state.on_node_drag("ghost", NodePosition(x=0, y=0))

        assert exc_info.value.node_id == "ghost"
        assert isinstance(exc_info.value, DiagramStateError)


# ============================================================================
# Reflow
# ============================================================================

class TestReflow:

    @pytest.mark.asyncio
    async def test_reflow_relayouts_everything(self, state, grid_engine, two_services):
        await state.set_graph(two_services)
        state.on_node_drag("a", NodePosition(x=500, y=500))
        state.on_drag_end()

        assert await state.reflow() is True

        assert position_of(state, "a") == NodePosition(x=10, y=20)
        assert state.get_position_source("a") == PositionSource.ELK_COMPUTED
        # Pins are ignored: no position hints in the request
        assert "x" not in grid_engine.calls[-1]["graph"].nodes["a"]

    @pytest.mark.asyncio
    async def test_reflow_is_undoable(self, state, two_services):
        await state.set_graph(two_services)
        state.on_node_drag("a", NodePosition(x=500, y=500))
        state.on_drag_end()

        await state.reflow()
        assert state.undo_count == 2
        state.undo()

        assert position_of(state, "a") == NodePosition(x=500, y=500)

    @pytest.mark.asyncio
    async def test_reflow_from_fresh_graph_records_baseline(self, state, two_services):
        await state.set_graph(two_services)

        await state.reflow()

        assert state.history_depth == 2
        assert state.can_undo

    @pytest.mark.asyncio
    async def test_reflow_empty_diagram(self, state):
        assert await state.reflow() is False


# ============================================================================
# Loaded positions and provenance
# ============================================================================

class TestSetNodePositions:

    @pytest.mark.asyncio
    async def test_loaded_positions_are_tagged_and_undoable(self, state, two_services):
        await state.set_graph(two_services)
        a_before = position_of(state, "a")

        saved = state.set_node_positions({"a": NodePosition(x=7, y=8)}, PositionSource.LOADED)

        assert saved is True
        assert position_of(state, "a") == NodePosition(x=7, y=8)
        assert state.get_position_source("a") == PositionSource.LOADED
        assert state.can_undo

        state.undo()
        assert position_of(state, "a") == a_before

    @pytest.mark.asyncio
    async def test_source_accepts_value_string(self, state, two_services):
        await state.set_graph(two_services)

        state.set_node_positions({"b": NodePosition(x=1, y=1)}, "loaded")

        assert state.get_position_source("b") == PositionSource.LOADED

    @pytest.mark.asyncio
    async def test_loaded_positions_survive_graph_update(self, state, two_services, graph_factory):
        await state.set_graph(two_services)
        state.set_node_positions({"a": NodePosition(x=7, y=8)})

        await state.set_graph(
            graph_factory(("a", "service", "A"), ("b", "service", "B"), ("c", "service", "C"))
        )

        assert position_of(state, "a") == NodePosition(x=7, y=8)
        assert state.get_position_source("a") == PositionSource.LOADED

    @pytest.mark.asyncio
    async def test_never_seen_id_rejected(self, state, two_services):
        await state.set_graph(two_services)

        with pytest.raises(UnknownNodeError):
            state.set_node_positions({"zzz": NodePosition(x=0, y=0)})

        assert state.history_depth == 0

    @pytest.mark.asyncio
    async def test_removed_id_skipped(self, state, two_services, graph_factory):
        await state.set_graph(two_services)
        await state.set_graph(graph_factory(("a", "service", "A")))

        state.set_node_positions({"a": NodePosition(x=3, y=3), "b": NodePosition(x=4, y=4)})

        assert [n.id for n in state.nodes] == ["a"]
        assert position_of(state, "a") == NodePosition(x=3, y=3)

    def test_unknown_source_defaults(self, state):
        assert state.get_position_source("nope") == PositionSource.DEFAULT


# ============================================================================
# Concurrency
# ============================================================================

class TestRevisionMatching:

    @pytest.mark.asyncio
    async def test_stale_set_graph_result_is_dropped(self, gated_engine, graph_factory):
        state = DiagramStateOrchestrator(IncrementalLayoutEngine(gated_engine))

        first = asyncio.ensure_future(state.set_graph(graph_factory(("a", "service", "A"))))
        await gated_engine.wait_for_requests(1)
        second = asyncio.ensure_future(
            state.set_graph(graph_factory(("x", "service", "X"), ("y", "service", "Y")))
        )
        await gated_engine.wait_for_requests(2)
        assert state.is_loading

        gated_engine.release(1)
        assert await second is True
        gated_engine.release(0)
        assert await first is False

        assert [n.id for n in state.nodes] == ["x", "y"]
        assert state.revision == 2
        assert not state.is_loading

    @pytest.mark.asyncio
    async def test_reflow_superseded_by_set_graph(self, gated_engine, graph_factory):
        state = DiagramStateOrchestrator(IncrementalLayoutEngine(gated_engine))
        initial = asyncio.ensure_future(state.set_graph(graph_factory(("a", "service", "A"))))
        await gated_engine.wait_for_requests(1)
        gated_engine.release(0)
        await initial

        reflow = asyncio.ensure_future(state.reflow())
        await gated_engine.wait_for_requests(2)
        update = asyncio.ensure_future(
            state.set_graph(graph_factory(("a", "service", "A"), ("b", "service", "B")))
        )
        await gated_engine.wait_for_requests(3)

        gated_engine.release(2)
        assert await update is True
        gated_engine.release(1)
        assert await reflow is False

        assert state.get_position_source("a") == PositionSource.ELK_COMPUTED
        assert [n.id for n in state.nodes] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_reflow_refused_while_graph_update_pending(self, gated_engine, graph_factory):
        state = DiagramStateOrchestrator(IncrementalLayoutEngine(gated_engine))
        initial = asyncio.ensure_future(state.set_graph(graph_factory(("a", "service", "A"))))
        await gated_engine.wait_for_requests(1)
        gated_engine.release(0)
        await initial

        update = asyncio.ensure_future(
            state.set_graph(graph_factory(("a", "service", "A"), ("b", "service", "B")))
        )
        await gated_engine.wait_for_requests(2)

        assert await state.reflow() is False
        assert state.history_depth == 0

        gated_engine.release(1)
        assert await update is True
        assert len(gated_engine.calls) == 2
        assert [n.id for n in state.nodes] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_reflow_discarded_after_undo_in_flight(self, gated_engine, graph_factory):
        state = DiagramStateOrchestrator(IncrementalLayoutEngine(gated_engine))
        initial = asyncio.ensure_future(
            state.set_graph(graph_factory(("a", "service", "A"), ("b", "service", "B")))
        )
        await gated_engine.wait_for_requests(1)
        gated_engine.release(0)
        await initial
        a_before = position_of(state, "a")
        state.on_node_drag("a", NodePosition(x=500, y=500))
        state.on_drag_end()

        reflow = asyncio.ensure_future(state.reflow())
        await gated_engine.wait_for_requests(2)
        assert state.undo() is True
        gated_engine.release(1)

        assert await reflow is False
        assert position_of(state, "a") == a_before
        assert state.get_position_source("a") == PositionSource.HISTORY
        assert state.can_redo

    @pytest.mark.asyncio
    async def test_drag_during_layout_is_kept(self, gated_engine, graph_factory):
        state = DiagramStateOrchestrator(IncrementalLayoutEngine(gated_engine))
        initial = asyncio.ensure_future(state.set_graph(graph_factory(("a", "service", "A"))))
        await gated_engine.wait_for_requests(1)
        gated_engine.release(0)
        await initial

        update = asyncio.ensure_future(
            state.set_graph(graph_factory(("a", "service", "A"), ("b", "service", "B")))
        )
        await gated_engine.wait_for_requests(2)
        state.on_node_drag("a", NodePosition(x=321, y=123))
        gated_engine.release(1)
        await update

        assert position_of(state, "a") == NodePosition(x=321, y=123)
        assert state.get_position_source("a") == PositionSource.USER_DRAGGED


# ============================================================================
# Listeners and re-entrancy
# ============================================================================

class TestListeners:

    @pytest.mark.asyncio
    async def test_listeners_notified(self, state, two_services):
        events = []
        unsubscribe = state.subscribe(lambda s: events.append(len(s.nodes)))

        await state.set_graph(two_services)
        state.on_node_drag("a", NodePosition(x=1, y=1))
        unsubscribe()
        state.on_node_drag("a", NodePosition(x=2, y=2))

        assert events == [2, 2]

    @pytest.mark.asyncio
    async def test_listener_echo_during_undo_is_not_recorded(self, grid_engine, two_services):
        history = LayoutHistory(max_history=10)
        state = DiagramStateOrchestrator(IncrementalLayoutEngine(grid_engine), history=history)
        await state.set_graph(two_services)
        state.on_node_drag("a", NodePosition(x=500, y=500))
        state.on_drag_end()

        # A UI that reports every position change back as a finished drag
        state.subscribe(lambda s: s.on_drag_end())
        state.undo()

        assert history.depth == 2
        assert state.can_redo

        # The next external operation ends the guard
        state.on_node_drag("b", NodePosition(x=1, y=1))
        assert not history.is_applying
