"""
Database session management for gymlink.

Provides the SQLAlchemy engine and session factory with connection
pooling configured from config.py. The engine is created on first use,
so importing this module never opens a connection.

Usage:
    # As a context manager (recommended for scripts)
    from gymlink.db import get_session

    with get_session() as session:
        stats = run_matching_pass(session)
        # Commits automatically on exit, rolls back on exception

    # As a dependency (for FastAPI)
    @app.get("/gyms/{master_gym_id}")
    async def master_gym_detail(master_gym_id: str, db: Session = Depends(get_db)):
        ...
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from gymlink.config import settings


def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create SQLAlchemy engine with connection pooling.

    The engine is configured with:
    - Connection pool for efficient reuse
    - Echo mode only when LOG_LEVEL=DEBUG
    - Pre-ping to verify connections before use (handles stale connections)
    """
    return create_engine(
        database_url or settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
        echo=settings.log_level == "DEBUG",
    )


_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """Get or create the singleton engine instance."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


# Unbound factory; each session is bound to the lazily created engine
SessionLocal = sessionmaker(
    autoflush=False,  # Don't auto-flush before queries (more control)
    expire_on_commit=False,  # Matching pass keeps using loaded gyms across commits
)


def new_session() -> Session:
    return SessionLocal(bind=get_engine())


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Automatically commits on successful exit, rolls back on exception.
    This is the recommended way to use sessions in scripts.

    Raises:
        Any exception from the database operation (after rollback)
    """
    session = new_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency injection function for FastAPI.

    Use this with FastAPI's Depends() for request-scoped sessions.
    Admin operations commit or roll back explicitly.
    """
    db = new_session()
    try:
        yield db
    finally:
        db.close()
