"""Database module."""

from .session import (
    Base,
    create_engine_from_settings,
    create_session_maker,
    get_session_context,
    init_db,
    close_db,
)

__all__ = [
    "Base",
    "create_engine_from_settings",
    "create_session_maker",
    "get_session_context",
    "init_db",
    "close_db",
]
