"""Layout engines registry.

Available engines:
- elk: ELK via elkjs (layered, position hints, nested groups)
"""

from diagram_layout.layout.engines.base import LayoutEngine, LayoutServiceError
from diagram_layout.layout.engines.elk import ELKLayoutEngine, DEFAULT_ELK_OPTIONS

# Engine registry
ENGINES = {
    "elk": ELKLayoutEngine,
}


def get_engine(name: str) -> type:
    """Get layout engine class by name.

    Raises:
        ValueError: If engine not found
    """
    if name not in ENGINES:
        raise ValueError(f"Unknown layout engine: {name}. Available: {list(ENGINES.keys())}")
    return ENGINES[name]


__all__ = [
    "LayoutEngine",
    "LayoutServiceError",
    "ELKLayoutEngine",
    "DEFAULT_ELK_OPTIONS",
    "ENGINES",
    "get_engine",
]
