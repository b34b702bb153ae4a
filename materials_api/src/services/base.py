from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.settings import AppSettings, get_app_settings


class BaseService:
    """
    Base class for services. Holds a session for use across multiple repositories.

    Services should keep business logic and orchestration, delegating data access
    to repositories. Tunables come from AppSettings, injected or read from the
    environment.
    """

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        self.session = session
        self.settings = settings or get_app_settings()
