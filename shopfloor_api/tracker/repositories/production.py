from __future__ import annotations

from datetime import datetime
from typing import AsyncIterator, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.db.models.enums import OperationStatus, TravelSheetStatus
from tracker.db.models.production import (
    ProductionOrder,
    ProductionStatusEvent,
    TravelSheet,
    TravelSheetOperation,
)
from .base import BaseRepository
from tracker.schemas.production import ProductionOrderCreate


class ProductionOrderRepository(BaseRepository):
    """Repository for production orders and their rollup counters."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def list_orders(
        self,
        *,
        status: Optional[Sequence[str]] = None,
        po_number: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[ProductionOrder]:
        stmt = select(ProductionOrder)
        if status:
            stmt = stmt.where(ProductionOrder.status.in_(list(status)))
        if po_number:
            like = f"%{po_number}%"
            stmt = stmt.where(ProductionOrder.po_number.ilike(like))
        stmt = stmt.order_by(ProductionOrder.created_at.desc(), ProductionOrder.id).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def iter_orders(
        self, *, status: Optional[Sequence[str]] = None, batch_size: int = 500
    ) -> AsyncIterator[ProductionOrder]:
        """Walk every matching order, newest first, one page of ``batch_size`` at a time."""
        offset = 0
        while True:
            batch = await self.list_orders(status=status, limit=batch_size, offset=offset)
            for order in batch:
                yield order
            if len(batch) < batch_size:
                return
            offset += batch_size

    async def get_order(self, order_id: UUID, *, for_update: bool = False) -> Optional[ProductionOrder]:
        """Load an order; ``for_update`` re-reads current row values and row-locks where supported."""
        stmt = select(ProductionOrder).where(ProductionOrder.id == order_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return await self.scalar_one_or_none(stmt)

    async def create_order(self, payload: ProductionOrderCreate) -> ProductionOrder:
        order = ProductionOrder(
            po_number=payload.po_number,
            part_number_id=payload.part_number_id,
            sales_order_ref=payload.sales_order_ref,
            quantity=payload.quantity,
            quantity_completed=0,
            quantity_scrapped=0,
            priority=payload.priority.value,
            start_date=payload.start_date,
            due_date=payload.due_date,
        )
        await self.add(order)
        await self.flush()
        return order

    async def set_status(self, order_id: UUID, new_status: str, *, expected: Iterable[str]) -> bool:
        """Compare-and-swap the order status; False when the current status is not expected."""
        stmt = (
            update(ProductionOrder)
            .where(ProductionOrder.id == order_id, ProductionOrder.status.in_(list(expected)))
            .values(status=new_status)
            .execution_options(synchronize_session=False)
        )
        return await self.rowcount(stmt) == 1

    async def apply_rollup(self, order_id: UUID, *, completed_delta: int, scrapped_delta: int) -> bool:
        """
        Atomically add to the completed/scrapped counters.

        The WHERE clause re-checks ``completed + scrapped <= quantity`` against the row as
        stored, so concurrent writers can never push the order past its quantity.
        """
        stmt = (
            update(ProductionOrder)
            .where(
                ProductionOrder.id == order_id,
                ProductionOrder.quantity_completed
                + ProductionOrder.quantity_scrapped
                + completed_delta
                + scrapped_delta
                <= ProductionOrder.quantity,
            )
            .values(
                quantity_completed=ProductionOrder.quantity_completed + completed_delta,
                quantity_scrapped=ProductionOrder.quantity_scrapped + scrapped_delta,
            )
            .execution_options(synchronize_session=False)
        )
        return await self.rowcount(stmt) == 1

    async def get_by_po_number(self, po_number: str) -> Optional[ProductionOrder]:
        stmt = select(ProductionOrder).where(ProductionOrder.po_number == po_number)
        return await self.scalar_one_or_none(stmt)

    async def delete_order_tree(self, order_id: UUID) -> None:
        """Delete an order together with its travel sheets and their operations."""
        sheet_ids = select(TravelSheet.id).where(TravelSheet.production_order_id == order_id)
        await self.execute(
            delete(TravelSheetOperation)
            .where(TravelSheetOperation.travel_sheet_id.in_(sheet_ids))
            .execution_options(synchronize_session=False)
        )
        await self.execute(
            delete(TravelSheet)
            .where(TravelSheet.production_order_id == order_id)
            .execution_options(synchronize_session=False)
        )
        await self.execute(
            delete(ProductionOrder)
            .where(ProductionOrder.id == order_id)
            .execution_options(synchronize_session=False)
        )


class TravelSheetRepository(BaseRepository):
    """Repository for travel sheets."""

    async def list_for_order(self, order_id: UUID) -> List[TravelSheet]:
        stmt = (
            select(TravelSheet)
            .where(TravelSheet.production_order_id == order_id)
            .order_by(TravelSheet.travel_sheet_number.asc())
        )
        res = await self.scalars(stmt)
        return list(res)

    async def get_sheet(self, sheet_id: UUID, *, for_update: bool = False) -> Optional[TravelSheet]:
        stmt = select(TravelSheet).where(TravelSheet.id == sheet_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return await self.scalar_one_or_none(stmt)

    async def count_for_order(self, order_id: UUID) -> int:
        stmt = select(func.count(TravelSheet.id)).where(TravelSheet.production_order_id == order_id)
        res = await self.execute(stmt)
        return int(res.scalar_one())

    async def list_by_status(self, order_id: UUID, statuses: Iterable[str]) -> List[TravelSheet]:
        stmt = (
            select(TravelSheet)
            .where(TravelSheet.production_order_id == order_id, TravelSheet.status.in_(list(statuses)))
            .execution_options(populate_existing=True)
        )
        res = await self.scalars(stmt)
        return list(res)

    async def set_status(self, sheet_id: UUID, new_status: str, *, expected: Iterable[str]) -> bool:
        stmt = (
            update(TravelSheet)
            .where(TravelSheet.id == sheet_id, TravelSheet.status.in_(list(expected)))
            .values(status=new_status)
            .execution_options(synchronize_session=False)
        )
        return await self.rowcount(stmt) == 1


class OperationRepository(BaseRepository):
    """Repository for travel sheet operations and their state transitions."""

    async def get_operation(self, operation_id: UUID, *, for_update: bool = False) -> Optional[TravelSheetOperation]:
        stmt = select(TravelSheetOperation).where(TravelSheetOperation.id == operation_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return await self.scalar_one_or_none(stmt)

    async def get_by_checkpoint(self, checkpoint_token: str) -> Optional[TravelSheetOperation]:
        stmt = select(TravelSheetOperation).where(TravelSheetOperation.checkpoint_token == checkpoint_token)
        return await self.scalar_one_or_none(stmt)

    async def list_for_sheet(self, sheet_id: UUID) -> List[TravelSheetOperation]:
        stmt = (
            select(TravelSheetOperation)
            .where(TravelSheetOperation.travel_sheet_id == sheet_id)
            .order_by(TravelSheetOperation.sequence_number.asc())
            .execution_options(populate_existing=True)
        )
        res = await self.scalars(stmt)
        return list(res)

    async def list_open_for_active_sheets(self, order_id: UUID) -> List[TravelSheetOperation]:
        """Not-yet-completed operations on the order's Active sheets."""
        stmt = (
            select(TravelSheetOperation)
            .join(TravelSheet, TravelSheet.id == TravelSheetOperation.travel_sheet_id)
            .where(
                TravelSheet.production_order_id == order_id,
                TravelSheet.status == TravelSheetStatus.ACTIVE.value,
                TravelSheetOperation.status != OperationStatus.COMPLETED.value,
            )
        )
        res = await self.scalars(stmt)
        return list(res)

    async def count_in_progress(self, sheet_id: UUID) -> int:
        stmt = select(func.count(TravelSheetOperation.id)).where(
            TravelSheetOperation.travel_sheet_id == sheet_id,
            TravelSheetOperation.status == OperationStatus.IN_PROGRESS.value,
        )
        res = await self.execute(stmt)
        return int(res.scalar_one())

    async def count_by_work_center(self) -> List[Tuple[Optional[UUID], str, int]]:
        """(work_center_id, status, count) over the operations of Active travel sheets."""
        stmt = (
            select(
                TravelSheetOperation.work_center_id,
                TravelSheetOperation.status,
                func.count(TravelSheetOperation.id),
            )
            .join(TravelSheet, TravelSheet.id == TravelSheetOperation.travel_sheet_id)
            .where(TravelSheet.status == TravelSheetStatus.ACTIVE.value)
            .group_by(TravelSheetOperation.work_center_id, TravelSheetOperation.status)
        )
        res = await self.execute(stmt)
        return [(wc_id, status, int(n)) for wc_id, status, n in res.all()]

    async def list_completed_since(self, since: datetime) -> List[Tuple[datetime, int, int, bool]]:
        """
        (end_time, good, scrap, is_final) for operations completed at or after ``since``.

        ``is_final`` marks the highest sequence number of the operation's sheet.
        """
        last_seq = (
            select(
                TravelSheetOperation.travel_sheet_id.label("travel_sheet_id"),
                func.max(TravelSheetOperation.sequence_number).label("last_seq"),
            )
            .group_by(TravelSheetOperation.travel_sheet_id)
            .subquery()
        )
        stmt = (
            select(
                TravelSheetOperation.end_time,
                TravelSheetOperation.quantity_good,
                TravelSheetOperation.quantity_scrap,
                TravelSheetOperation.sequence_number,
                last_seq.c.last_seq,
            )
            .join(last_seq, last_seq.c.travel_sheet_id == TravelSheetOperation.travel_sheet_id)
            .where(
                TravelSheetOperation.status == OperationStatus.COMPLETED.value,
                TravelSheetOperation.end_time >= since,
            )
            .order_by(TravelSheetOperation.end_time.asc())
        )
        res = await self.execute(stmt)
        return [
            (end_time, int(good or 0), int(scrap or 0), seq == final_seq)
            for end_time, good, scrap, seq, final_seq in res.all()
        ]

    async def mark_started(self, operation_id: UUID, *, operator_id: UUID, at: datetime) -> bool:
        """Pending -> In Progress, only if still Pending."""
        stmt = (
            update(TravelSheetOperation)
            .where(
                TravelSheetOperation.id == operation_id,
                TravelSheetOperation.status == OperationStatus.PENDING.value,
            )
            .values(
                status=OperationStatus.IN_PROGRESS.value,
                operator_id=operator_id,
                start_time=at,
            )
            .execution_options(synchronize_session=False)
        )
        return await self.rowcount(stmt) == 1

    async def mark_completed(
        self,
        operation_id: UUID,
        *,
        operator_id: UUID,
        good: int,
        scrap: int,
        pending: int,
        at: datetime,
        duration_minutes: Optional[float],
        notes: Optional[str],
        machine_id: Optional[str],
    ) -> bool:
        """In Progress -> Completed, only if still In Progress and held by ``operator_id``."""
        stmt = (
            update(TravelSheetOperation)
            .where(
                TravelSheetOperation.id == operation_id,
                TravelSheetOperation.status == OperationStatus.IN_PROGRESS.value,
                TravelSheetOperation.operator_id == operator_id,
            )
            .values(
                status=OperationStatus.COMPLETED.value,
                quantity_good=good,
                quantity_scrap=scrap,
                quantity_pending=pending,
                end_time=at,
                duration_minutes=duration_minutes,
                operator_notes=notes,
                machine_id=machine_id,
            )
            .execution_options(synchronize_session=False)
        )
        return await self.rowcount(stmt) == 1


class StatusEventRepository(BaseRepository):
    """Append-only status change log, written in the same transaction as the change."""

    async def record(
        self,
        *,
        entity_type: str,
        entity_id: UUID,
        status: str,
        reason_code: Optional[str] = None,
        notes: Optional[str] = None,
        operator_id: Optional[UUID] = None,
    ) -> None:
        await self.add(
            ProductionStatusEvent(
                entity_type=entity_type,
                entity_id=entity_id,
                status=status,
                reason_code=reason_code,
                notes=notes,
                operator_id=operator_id,
            )
        )

    async def list_for_entity(self, entity_id: UUID) -> List[ProductionStatusEvent]:
        stmt = (
            select(ProductionStatusEvent)
            .where(ProductionStatusEvent.entity_id == entity_id)
            .order_by(ProductionStatusEvent.created_at.asc())
        )
        res = await self.scalars(stmt)
        return list(res)
