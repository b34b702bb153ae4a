from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.settings import AppSettings, get_app_settings
from src.db.session import get_async_session


# PUBLIC_INTERFACE
async def get_db_session(
    session_dep=Depends(get_async_session),
) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield an AsyncSession for a single request.

    Any transaction still open when the request finishes is rolled back; services
    commit explicitly once an operation has succeeded.
    """
    session: AsyncSession = session_dep
    try:
        yield session
    finally:
        if session.in_transaction():
            await session.rollback()


# PUBLIC_INTERFACE
def get_settings_dep() -> AppSettings:
    """Return application settings for injection into services."""
    return get_app_settings()
