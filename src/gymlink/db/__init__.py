"""
Database module for gymlink.

Provides SQLAlchemy ORM models, session management and the storage
adapters the engine reads and writes through.

Usage:
    from gymlink.db import get_session, SourceGymStore

    with get_session() as session:
        gym = SourceGymStore(session).get(Org.JJWL, "1234")
"""

from gymlink.db.models import (
    Base,
    MasterGym,
    PendingMatch,
    SourceGym,
)
from gymlink.db.session import get_db, get_engine, get_session, SessionLocal
from gymlink.db.store import (
    MasterGymStore,
    Page,
    SourceGymStore,
    fetch_page,
    with_storage_retry,
)

__all__ = [
    # Base
    "Base",
    # Models
    "MasterGym",
    "PendingMatch",
    "SourceGym",
    # Session
    "get_db",
    "get_engine",
    "get_session",
    "SessionLocal",
    # Storage
    "MasterGymStore",
    "Page",
    "SourceGymStore",
    "fetch_page",
    "with_storage_retry",
]
