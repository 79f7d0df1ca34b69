"""Shared fixtures: in-memory stand-ins for the external layout service."""

import asyncio
from typing import Any, Dict, List, Optional

import networkx as nx
import pytest

from diagram_layout.config import settings
from diagram_layout.layout.engines.base import LayoutEngine, LayoutServiceError
from diagram_layout.models.graph import DiffableEdge, DiffableGraph, DiffableNode
from diagram_layout.models.layout_metadata import LayoutMetadata, NodePosition


class GridLayoutEngine(LayoutEngine):
    """Places nodes on a diagonal grid in request order, ignoring hints.

    Every call is recorded so tests can inspect the request.
    """

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []

    @property
    def name(self) -> str:
        return "grid"

    @property
    def supports_position_hints(self) -> bool:
        return True

    async def layout(self, graph: nx.DiGraph, options: Optional[Dict[str, Any]] = None) -> LayoutMetadata:
        self.calls.append({"graph": graph, "options": options})
        positions = {
            node_id: NodePosition(x=10 + 200 * i, y=20 + 100 * i)
            for i, node_id in enumerate(graph.nodes)
        }
        return LayoutMetadata(algorithm="grid", layout_options=options or {}, positions=positions)

    async def is_available(self) -> bool:
        return True


class FailingLayoutEngine(GridLayoutEngine):
    """Rejects every request."""

    @property
    def name(self) -> str:
        return "failing"

    async def layout(self, graph: nx.DiGraph, options: Optional[Dict[str, Any]] = None) -> LayoutMetadata:
        self.calls.append({"graph": graph, "options": options})
        raise LayoutServiceError("layout service unavailable")


class GatedLayoutEngine(GridLayoutEngine):
    """Blocks each request until ``release()`` is called, in FIFO order."""

    def __init__(self):
        super().__init__()
        self._gates: List[asyncio.Event] = []

    @property
    def name(self) -> str:
        return "gated"

    async def layout(self, graph: nx.DiGraph, options: Optional[Dict[str, Any]] = None) -> LayoutMetadata:
        gate = asyncio.Event()
        self._gates.append(gate)
        await gate.wait()
        return await super().layout(graph, options)

    async def wait_for_requests(self, count: int) -> None:
        while len(self._gates) < count:
            await asyncio.sleep(0)

    def release(self, index: int) -> None:
        self._gates[index].set()


def make_graph(*nodes, edges=()) -> DiffableGraph:
    """Build a graph from (id, type, label) tuples and (source, target) pairs."""
    return DiffableGraph(
        nodes=[DiffableNode(id=n[0], type=n[1], label=n[2]) for n in nodes],
        edges=[
            DiffableEdge(id=f"{source}->{target}", source=source, target=target)
            for source, target in edges
        ],
    )


@pytest.fixture
def grid_engine():
    return GridLayoutEngine()


@pytest.fixture
def failing_engine():
    return FailingLayoutEngine()


@pytest.fixture
def gated_engine():
    return GatedLayoutEngine()


@pytest.fixture
def graph_factory():
    return make_graph


@pytest.fixture(autouse=True)
def restore_settings():
    """Undo set_setting/set_flag calls made by a test."""
    saved_settings = dict(settings.LAYOUT_SETTINGS)
    saved_flags = dict(settings.FEATURE_FLAGS)
    yield
    settings.LAYOUT_SETTINGS.clear()
    settings.LAYOUT_SETTINGS.update(saved_settings)
    settings.FEATURE_FLAGS.clear()
    settings.FEATURE_FLAGS.update(saved_flags)
