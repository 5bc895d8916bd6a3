from __future__ import annotations

from typing import Optional

from sqlalchemy import select

from tracker.db.models.personnel import Operator
from .base import BaseRepository


class OperatorRepository(BaseRepository):
    """Repository for operators and badge lookups."""

    async def get_by_badge(self, badge_token: str) -> Optional[Operator]:
        stmt = select(Operator).where(Operator.badge_token == badge_token)
        return await self.scalar_one_or_none(stmt)
