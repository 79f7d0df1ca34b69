"""
Configuration and Feature Flags for the Layout Engine

This module provides layout settings and feature flags. Values are controlled
via environment variables so defaults can be tuned without code changes.

Usage:
    from diagram_layout.config.settings import get_setting, is_enabled

    max_history = get_setting('max_history')

    if is_enabled('elk_position_hints'):
        # Send pinned coordinates to ELK as initial positions
        ...

Environment Variables:
    DIAGRAM_MAX_HISTORY=50           - Undo/redo snapshots kept
    DIAGRAM_LAYOUT_DIRECTION=DOWN    - Default layout direction
    DIAGRAM_LAYOUT_SPACING=50        - Default node-node spacing
    ELK_TIMEOUT=30                   - Seconds before an ELK request is abandoned
    ELK_POSITION_HINTS=true/false    - Toggle initial-position hints
"""

import os
from typing import Any, Dict


# Layout settings with environment variable overrides
LAYOUT_SETTINGS: Dict[str, Any] = {
    # History
    'max_history': int(os.getenv('DIAGRAM_MAX_HISTORY', '50')),

    # ELK defaults
    'algorithm': os.getenv('DIAGRAM_LAYOUT_ALGORITHM', 'layered'),
    'direction': os.getenv('DIAGRAM_LAYOUT_DIRECTION', 'DOWN').upper(),
    'spacing': float(os.getenv('DIAGRAM_LAYOUT_SPACING', '50')),
    'layer_spacing': float(os.getenv('DIAGRAM_LAYER_SPACING', '70')),
    'elk_timeout': int(os.getenv('ELK_TIMEOUT', '30')),

    # Fallback placement when the layout service fails
    'fallback_x': 100.0,
    'fallback_margin': 50.0,
    'fallback_margin_y': 100.0,

    # Node geometry
    'default_node_width': 150.0,
    'default_node_height': 50.0,
    'group_padding': 20,
}


# Feature flags with environment variable overrides
FEATURE_FLAGS: Dict[str, bool] = {
    # Pass pinned coordinates to ELK as initial x/y hints
    'elk_position_hints': os.getenv('ELK_POSITION_HINTS', 'true').lower() == 'true',
}


def get_setting(name: str) -> Any:
    """
    Get a layout setting.

    Args:
        name: Setting name (e.g., 'max_history')

    Returns:
        Current setting value

    Raises:
        KeyError: If setting name is not recognized
    """
    if name not in LAYOUT_SETTINGS:
        available = ', '.join(LAYOUT_SETTINGS.keys())
        raise KeyError(
            f"Unknown layout setting: '{name}'. "
            f"Available settings: {available}"
        )

    return LAYOUT_SETTINGS[name]


def set_setting(name: str, value: Any) -> None:
    """
    Programmatically override a layout setting (for testing only).

    Raises:
        KeyError: If setting name is not recognized
    """
    if name not in LAYOUT_SETTINGS:
        available = ', '.join(LAYOUT_SETTINGS.keys())
        raise KeyError(
            f"Unknown layout setting: '{name}'. "
            f"Available settings: {available}"
        )

    LAYOUT_SETTINGS[name] = value


def is_enabled(flag: str) -> bool:
    """
    Check if a feature flag is enabled.

    Args:
        flag: Feature flag name (e.g., 'elk_position_hints')

    Returns:
        True if flag is enabled, False otherwise

    Raises:
        KeyError: If flag name is not recognized

    Example:
        >>> is_enabled('elk_position_hints')
        True  # Default
    """
    if flag not in FEATURE_FLAGS:
        available = ', '.join(FEATURE_FLAGS.keys())
        raise KeyError(
            f"Unknown feature flag: '{flag}'. "
            f"Available flags: {available}"
        )

    return FEATURE_FLAGS[flag]


def get_all_flags() -> Dict[str, bool]:
    """Get all feature flags and their current state."""
    return FEATURE_FLAGS.copy()


def set_flag(flag: str, enabled: bool) -> None:
    """
    Programmatically set a feature flag (for testing only).

    Warning:
        This is for testing only. In production, use environment variables.
    """
    if flag not in FEATURE_FLAGS:
        available = ', '.join(FEATURE_FLAGS.keys())
        raise KeyError(
            f"Unknown feature flag: '{flag}'. "
            f"Available flags: {available}"
        )

    FEATURE_FLAGS[flag] = enabled
