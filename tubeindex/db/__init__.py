"""Database utilities and session management."""

from tubeindex.db.base import (
    Base,
    BaseModel,
    String20,
    String50,
    String100,
    String200,
    String500,
    utc_now,
)
from tubeindex.db.session import (
    check_db_health,
    close_db,
    create_engine,
    create_session_factory,
    init_db,
    session_scope,
)

__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    "utc_now",
    # String types
    "String20",
    "String50",
    "String100",
    "String200",
    "String500",
    # Session management
    "create_engine",
    "create_session_factory",
    "session_scope",
    "init_db",
    "close_db",
    "check_db_health",
]
