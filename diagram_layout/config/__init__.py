"""Runtime configuration for the layout engine."""

from .settings import (
    FEATURE_FLAGS,
    LAYOUT_SETTINGS,
    get_all_flags,
    get_setting,
    is_enabled,
    set_flag,
    set_setting,
)

__all__ = [
    'FEATURE_FLAGS',
    'LAYOUT_SETTINGS',
    'get_all_flags',
    'get_setting',
    'is_enabled',
    'set_flag',
    'set_setting',
]
