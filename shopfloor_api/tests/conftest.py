"""
Shared fixtures: a throwaway SQLite database per test, settings, and a small
floor builder for parts, routings, operators and orders.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Iterable, Optional, Tuple

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from tracker.core.settings import AppSettings
from tracker.db import models  # noqa: F401
from tracker.db.base import Base
from tracker.db.models.master_data import PartNumber, PartRouting, Process, WorkCenter
from tracker.db.models.personnel import Operator
from tracker.db.session import build_session_maker
from tracker.schemas.production import ProductionOrderCreate, TravelSheetRead
from tracker.services.production import ProductionService


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tracker.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(_env_file=None, RUN_MIGRATIONS_ON_STARTUP=False, AUTO_SEED=False)


@pytest.fixture
def service(session_maker, settings):
    """Context manager yielding a ProductionService bound to a fresh session."""

    @asynccontextmanager
    async def _service(custom: Optional[AppSettings] = None) -> AsyncIterator[ProductionService]:
        async with session_maker() as session:
            yield ProductionService(session, custom or settings)

    return _service


class FloorBuilder:
    """Creates reference data through committed sessions, one call at a time."""

    def __init__(self, session_maker, service) -> None:
        self.session_maker = session_maker
        self.service = service
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    async def part(self, steps: Iterable[Tuple[int, Optional[float]]] = ((10, 1.0),)) -> PartNumber:
        """Part number whose routing has one step per (sequence_number, standard minutes)."""
        n = self._next()
        async with self.session_maker() as session:
            wc = WorkCenter(code=f"WC-{n}", name=f"Work center {n}")
            part = PartNumber(part_number=f"PN-{n}", description=f"Part {n}", is_active=True)
            session.add_all([wc, part])
            await session.flush()
            for seq, minutes in steps:
                process = Process(code=f"P{n}-{seq}", name=f"Process {seq}", work_center_id=wc.id)
                session.add(process)
                await session.flush()
                session.add(
                    PartRouting(
                        part_number_id=part.id,
                        process_id=process.id,
                        sequence_number=seq,
                        standard_time_minutes=minutes,
                    )
                )
            await session.commit()
            return part

    async def operator(self, badge: Optional[str] = None, *, active: bool = True) -> Operator:
        n = self._next()
        async with self.session_maker() as session:
            op = Operator(
                badge_token=badge or f"BADGE-{n}",
                full_name=f"Operator {n}",
                employee_number=f"E-{n}",
                is_active=active,
            )
            session.add(op)
            await session.commit()
            return op

    async def order(self, part: PartNumber, quantity: int, *, due_date: Optional[date] = None):
        async with self.service() as svc:
            return await svc.create_production_order(
                ProductionOrderCreate(
                    po_number=f"PO-{self._next()}",
                    part_number_id=part.id,
                    quantity=quantity,
                    due_date=due_date,
                )
            )

    async def released(
        self,
        quantity: int,
        steps: Iterable[Tuple[int, Optional[float]]] = ((10, 1.0),),
        *,
        due_date: Optional[date] = None,
    ) -> Tuple[object, TravelSheetRead]:
        """Order with a generated travel sheet."""
        part = await self.part(steps)
        order = await self.order(part, quantity, due_date=due_date)
        async with self.service() as svc:
            sheet = await svc.generate_travel_sheet(order.id)
        return order, sheet


@pytest.fixture
def floor(session_maker, service) -> FloorBuilder:
    return FloorBuilder(session_maker, service)