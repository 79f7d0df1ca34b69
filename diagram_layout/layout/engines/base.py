"""Base layout engine protocol.

Defines the contract of the external layout algorithm service. The
incremental layout layer consumes engines only through this interface.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import networkx as nx

from diagram_layout.models.layout_metadata import LayoutMetadata


class LayoutServiceError(RuntimeError):
    """Raised when the external layout service fails or rejects a request."""
    pass


class LayoutEngine(ABC):
    """Abstract base class for layout engines.

    Layout engines convert graph topology (a networkx DiGraph whose nodes
    carry ``width``/``height`` and optional ``parent``/``x``/``y`` attributes)
    into positioned layouts.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Engine name (e.g., 'elk')."""
        ...

    @property
    @abstractmethod
    def supports_position_hints(self) -> bool:
        """Whether engine accepts initial x/y hints on nodes."""
        ...

    @abstractmethod
    async def layout(
        self,
        graph: nx.DiGraph,
        options: Optional[Dict[str, Any]] = None,
    ) -> LayoutMetadata:
        """Compute layout for a graph.

        Args:
            graph: NetworkX DiGraph with node sizes and hints
            options: Engine-specific layout options

        Returns:
            LayoutMetadata with positions (children relative to parent)

        Raises:
            LayoutServiceError: If the service fails
        """
        ...

    @abstractmethod
    async def is_available(self) -> bool:
        """Check if engine is available (dependencies installed)."""
        ...
