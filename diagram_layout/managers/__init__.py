"""
Manager components for diagram position state.
"""

from .layout_history import LayoutHistory
from .diagram_state import (
    DiagramStateOrchestrator,
    StateListener,
    # Exceptions
    DiagramStateError,
    UnknownNodeError,
)

__all__ = [
    'LayoutHistory',
    'DiagramStateOrchestrator',
    'StateListener',
    # Exceptions
    'DiagramStateError',
    'UnknownNodeError',
]
