from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.db.models.master_data import PartNumber, PartRouting, Process, WorkCenter
from .base import BaseRepository


@dataclass(frozen=True)
class RoutingStep:
    """Read-only view of one routing step joined with its process."""
    sequence_number: int
    process_id: UUID
    process_code: str
    process_name: str
    work_center_id: Optional[UUID]
    standard_time_minutes: Optional[float]


class PartNumberRepository(BaseRepository):
    """Repository for part numbers."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def get_part_number(self, part_number_id: UUID) -> Optional[PartNumber]:
        stmt = select(PartNumber).where(PartNumber.id == part_number_id)
        return await self.scalar_one_or_none(stmt)


class WorkCenterRepository(BaseRepository):
    """Repository for work centers."""

    async def list_work_centers(self) -> List[WorkCenter]:
        stmt = select(WorkCenter).order_by(WorkCenter.name.asc(), WorkCenter.code.asc())
        res = await self.scalars(stmt)
        return list(res)


class RoutingRepository(BaseRepository):
    """Read access to the routing catalog."""

    async def list_steps(self, part_number_id: UUID) -> List[RoutingStep]:
        stmt = (
            select(PartRouting, Process)
            .join(Process, Process.id == PartRouting.process_id)
            .where(PartRouting.part_number_id == part_number_id)
            .order_by(PartRouting.sequence_number.asc())
        )
        res = await self.execute(stmt)
        return [
            RoutingStep(
                sequence_number=routing.sequence_number,
                process_id=process.id,
                process_code=process.code,
                process_name=process.name,
                work_center_id=process.work_center_id,
                standard_time_minutes=routing.standard_time_minutes,
            )
            for routing, process in res.all()
        ]


class ProcessRepository(BaseRepository):
    """Repository for processes and their work centers."""

    async def get_process(self, process_id: UUID) -> Optional[Process]:
        stmt = select(Process).where(Process.id == process_id)
        return await self.scalar_one_or_none(stmt)

    async def get_names(self, process_ids: Iterable[UUID]) -> Dict[UUID, str]:
        ids = list(set(process_ids))
        if not ids:
            return {}
        stmt = select(Process.id, Process.name).where(Process.id.in_(ids))
        res = await self.execute(stmt)
        return {pid: name for pid, name in res.all()}
