from __future__ import annotations

import logging
from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.core.settings import AppSettings, get_app_settings
from tracker.db.session import get_async_session
from tracker.services.dashboard import DashboardService
from tracker.services.production import ProductionService

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
async def get_session(
    session: AsyncSession = Depends(get_async_session),
) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield the request's AsyncSession.

    Each request (each scan) gets its own session; services own commit/rollback.
    """
    yield session


# PUBLIC_INTERFACE
def get_settings_dep() -> AppSettings:
    """Application settings; overridable in tests."""
    return get_app_settings()


# PUBLIC_INTERFACE
def get_production_service(
    session: AsyncSession = Depends(get_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> ProductionService:
    """Build the shop-floor production service for one request."""
    return ProductionService(session, settings)


# PUBLIC_INTERFACE
def get_dashboard_service(
    session: AsyncSession = Depends(get_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> DashboardService:
    """Build the read-only dashboard service for one request."""
    return DashboardService(session, settings)
