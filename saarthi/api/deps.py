"""Dependency injection for API endpoints."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from saarthi.database import get_db
from saarthi.services.sessions import SessionStore, get_session_store

__all__ = [
    "get_db",
    "get_session",
    "get_store",
    "AsyncSession",
]


# Database session dependency
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session - alias for get_db."""
    async for session in get_db():
        yield session


def get_store() -> SessionStore:
    """Conversation session store shared by every request in this process."""
    return get_session_store()
