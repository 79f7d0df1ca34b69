"""
Core Layer - pure, total functions over graph revisions.

Modules:
- graph_differ: classify nodes as added/removed/modified/unchanged
- position_resolver: positions to keep + nodes needing layout
"""

from .graph_differ import diff_graphs
from .position_resolver import resolve_positions

__all__ = [
    'diff_graphs',
    'resolve_positions',
]
