from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from tracker.core.errors import ConsistencyFault, GuardError, InputError

logger = logging.getLogger(__name__)


class BaseService:
    """
    Base class for services. Holds a session for use across multiple repositories.

    Services keep business logic and orchestration, delegating data access to
    repositories, and own the transaction boundary through :meth:`unit_of_work`.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @asynccontextmanager
    async def unit_of_work(self, action: str) -> AsyncIterator[None]:
        """
        Commit on success; roll back and re-raise on any error.

        Guard and input rejections are expected traffic and log at INFO; consistency
        faults are defects and log at ERROR.
        """
        try:
            yield
            await self.session.commit()
        except (GuardError, InputError) as exc:
            await self.session.rollback()
            logger.info("%s rejected: %s %s", action, exc.code, exc.details)
            raise
        except ConsistencyFault as exc:
            await self.session.rollback()
            logger.error("%s aborted by consistency fault: %s %s", action, exc.message, exc.details)
            raise
        except Exception:
            await self.session.rollback()
            logger.exception("%s failed", action)
            raise
