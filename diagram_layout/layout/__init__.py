"""Layout module for automatic graph positioning.

This module provides:
- Layout engine abstraction (LayoutEngine)
- ELK integration via elkjs (persistent Node.js worker)
- Incremental layout that preserves pinned positions
- Label-driven node sizing
"""

from diagram_layout.layout.engines.base import LayoutEngine, LayoutServiceError
from diagram_layout.layout.engines.elk import ELKLayoutEngine, DEFAULT_ELK_OPTIONS
from diagram_layout.layout.incremental import IncrementalLayoutEngine, default_layout_options

__all__ = [
    "LayoutEngine",
    "LayoutServiceError",
    "ELKLayoutEngine",
    "DEFAULT_ELK_OPTIONS",
    "IncrementalLayoutEngine",
    "default_layout_options",
]
