"""
LayoutHistory - bounded undo/redo over position tables.

Design decisions:
- Cursor semantics rather than a plain stack: the cursor is either at the
  live edge (None) or a concrete index, so redo works after undo
- Saving while the cursor is behind the live edge prunes the redo branch
- Oldest snapshots are evicted beyond ``max_history``
- undo/redo enter an "applying" phase; saves are ignored until ``settle()``
  is called at the start of the next externally invoked operation
"""

import logging
from typing import Dict, List, Mapping, Optional

from diagram_layout.config.settings import get_setting
from diagram_layout.models.layout_metadata import NodePosition, PositionSnapshot

logger = logging.getLogger(__name__)


class LayoutHistory:
    """
    Linear, branch-truncating history of PositionSnapshot.

    Usage:
        history = LayoutHistory(max_history=50)
        history.save(positions, "drag")
        ...
        previous = history.undo()   # None if nothing to undo
        history.settle()            # next externally invoked operation
        history.redo()
    """

    def __init__(self, max_history: Optional[int] = None):
        """
        Args:
            max_history: Maximum snapshots kept (DIAGRAM_MAX_HISTORY if None)
        """
        self.max_history = max_history if max_history is not None else get_setting("max_history")
        if self.max_history < 1:
            raise ValueError(f"max_history must be at least 1, got {self.max_history}")
        self._snapshots: List[PositionSnapshot] = []
        self._cursor: Optional[int] = None  # None = live edge
        self._applying = False

    # ========================================================================
    # Public API
    # ========================================================================

    def save(self, positions: Mapping[str, NodePosition], source: str = "manual") -> bool:
        """
        Push a snapshot of ``positions``.

        Ignored while an undo/redo application is in progress.

        Returns:
            True if a snapshot was stored
        """
        if self._applying:
            logger.debug(f"Ignoring {source!r} snapshot during undo/redo application")
            return False

        if self._cursor is not None:
            discarded = len(self._snapshots) - self._cursor - 1
            del self._snapshots[self._cursor + 1:]
            if discarded:
                logger.debug(f"Pruned {discarded} redo snapshot(s)")

        self._snapshots.append(PositionSnapshot.capture(positions, source))

        overflow = len(self._snapshots) - self.max_history
        if overflow > 0:
            del self._snapshots[:overflow]

        self._cursor = None
        return True

    def undo(self) -> Optional[Dict[str, NodePosition]]:
        """
        Step back one snapshot.

        Returns:
            Positions of the previous snapshot, or None if nothing to undo
        """
        index = self._current_index()
        if index <= 0:
            return None

        self._cursor = index - 1
        self._applying = True
        return dict(self._snapshots[self._cursor].positions)

    def redo(self) -> Optional[Dict[str, NodePosition]]:
        """
        Step forward one snapshot.

        Returns:
            Positions of the next snapshot, or None if nothing to redo
        """
        if self._cursor is None or self._cursor >= len(self._snapshots) - 1:
            return None

        self._cursor += 1
        self._applying = True
        return dict(self._snapshots[self._cursor].positions)

    def clear(self) -> None:
        """Drop all snapshots and return to the live edge."""
        self._snapshots.clear()
        self._cursor = None

    def settle(self) -> None:
        """End the undo/redo application phase so saves take effect again."""
        self._applying = False

    def current(self) -> Optional[PositionSnapshot]:
        """Snapshot at the effective cursor, or None if history is empty."""
        index = self._current_index()
        return self._snapshots[index] if index >= 0 else None

    # ========================================================================
    # Derived state
    # ========================================================================

    @property
    def is_applying(self) -> bool:
        return self._applying

    @property
    def can_undo(self) -> bool:
        return self._current_index() > 0

    @property
    def can_redo(self) -> bool:
        return self._cursor is not None and self._cursor < len(self._snapshots) - 1

    @property
    def undo_count(self) -> int:
        return max(self._current_index(), 0)

    @property
    def redo_count(self) -> int:
        if self._cursor is None:
            return 0
        return len(self._snapshots) - 1 - self._cursor

    @property
    def depth(self) -> int:
        return len(self._snapshots)

    @property
    def snapshots(self) -> List[PositionSnapshot]:
        return list(self._snapshots)

    def _current_index(self) -> int:
        return len(self._snapshots) - 1 if self._cursor is None else self._cursor
