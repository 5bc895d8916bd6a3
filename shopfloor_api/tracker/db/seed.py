"""
Database seeding utilities for demo reference data.

Seeds:
- Work centers (cutting, press brake, welding, paint line)
- Processes bound to those work centers
- Two part numbers with their routings
- Three operators with badge tokens

Re-running is safe: rows are looked up by their natural key first.

Usage:
  python -m tracker.db.run_migrations upgrade head
  python -m tracker.db.seed
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.db.models.master_data import PartNumber, PartRouting, Process, WorkCenter
from tracker.db.models.personnel import Operator
from tracker.db.session import get_session_maker

logger = logging.getLogger(__name__)

WORK_CENTERS: List[Tuple[str, str]] = [
    ("WC-CUT", "Laser Cutting"),
    ("WC-BEND", "Press Brake"),
    ("WC-WELD", "Welding Cell"),
    ("WC-PAINT", "Paint Line"),
]

# (code, name, work center code)
PROCESSES: List[Tuple[str, str, str]] = [
    ("CUT", "Cutting", "WC-CUT"),
    ("BEND", "Bending", "WC-BEND"),
    ("WELD", "Welding", "WC-WELD"),
    ("PAINT", "Painting", "WC-PAINT"),
]

# part number -> (description, [(sequence_number, process code, standard minutes per unit)])
ROUTINGS: Dict[str, Tuple[str, List[Tuple[int, str, float]]]] = {
    "BRK-1001": ("Mounting bracket", [(10, "CUT", 1.5), (20, "BEND", 2.0), (30, "PAINT", 1.0)]),
    "FRM-2002": ("Welded frame", [(10, "CUT", 3.0), (20, "WELD", 12.0), (30, "PAINT", 4.0)]),
}

# (badge token, full name, employee number)
OPERATORS: List[Tuple[str, str, str]] = [
    ("BADGE-0001", "Ana Torres", "E-0001"),
    ("BADGE-0002", "Luis Romero", "E-0002"),
    ("BADGE-0003", "Maria Chen", "E-0003"),
]


# PUBLIC_INTERFACE
async def seed_all() -> None:
    """
    Seed the database with demo routing data and operators.

    Commits once at the end; an error leaves the database untouched.
    """
    async with get_session_maker()() as session:
        centers = await _seed_work_centers(session)
        processes = await _seed_processes(session, centers)
        await _seed_routings(session, processes)
        await _seed_operators(session)
        await session.commit()
    logger.info("Seeded %d part numbers and %d operators", len(ROUTINGS), len(OPERATORS))


async def _seed_work_centers(session: AsyncSession) -> Dict[str, WorkCenter]:
    out: Dict[str, WorkCenter] = {}
    for code, name in WORK_CENTERS:
        wc = (await session.execute(select(WorkCenter).where(WorkCenter.code == code))).scalar_one_or_none()
        if wc is None:
            wc = WorkCenter(code=code, name=name)
            session.add(wc)
        out[code] = wc
    await session.flush()
    return out


async def _seed_processes(session: AsyncSession, centers: Dict[str, WorkCenter]) -> Dict[str, Process]:
    out: Dict[str, Process] = {}
    for code, name, wc_code in PROCESSES:
        process = (await session.execute(select(Process).where(Process.code == code))).scalar_one_or_none()
        if process is None:
            process = Process(code=code, name=name, work_center_id=centers[wc_code].id)
            session.add(process)
        out[code] = process
    await session.flush()
    return out


async def _seed_routings(session: AsyncSession, processes: Dict[str, Process]) -> None:
    for part_code, (description, steps) in ROUTINGS.items():
        part = (
            await session.execute(select(PartNumber).where(PartNumber.part_number == part_code))
        ).scalar_one_or_none()
        if part is not None:
            continue
        part = PartNumber(part_number=part_code, description=description, is_active=True)
        session.add(part)
        await session.flush()
        session.add_all(
            PartRouting(
                part_number_id=part.id,
                process_id=processes[process_code].id,
                sequence_number=seq,
                standard_time_minutes=minutes,
            )
            for seq, process_code, minutes in steps
        )
    await session.flush()


async def _seed_operators(session: AsyncSession) -> None:
    for badge, full_name, employee_number in OPERATORS:
        existing = (
            await session.execute(select(Operator).where(Operator.badge_token == badge))
        ).scalar_one_or_none()
        if existing is None:
            session.add(
                Operator(badge_token=badge, full_name=full_name, employee_number=employee_number, is_active=True)
            )
    await session.flush()


if __name__ == "__main__":
    asyncio.run(seed_all())
