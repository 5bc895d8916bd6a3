from __future__ import annotations

import logging
from collections import defaultdict
from contextlib import aclosing
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tracker.core.errors import UnknownProductionOrderError
from tracker.core.settings import AppSettings
from tracker.db.base import as_utc, utcnow
from tracker.db.models.enums import OperationStatus, OrderStatus, RiskStatus
from tracker.db.models.production import ProductionOrder
from tracker.repositories.master_data import PartNumberRepository, RoutingRepository, WorkCenterRepository
from tracker.repositories.production import OperationRepository, ProductionOrderRepository
from tracker.schemas.dashboard import (
    DailyProductionItem,
    DashboardStats,
    ProductionDashboardItem,
    RiskAssessmentRead,
    WorkCenterLoadItem,
)
from tracker.services.base import BaseService
from tracker.services.risk import RiskAssessment, RiskPolicy, score_risk

logger = logging.getLogger(__name__)

_LISTED = [
    OrderStatus.CREATED.value,
    OrderStatus.RELEASED.value,
    OrderStatus.IN_PROGRESS.value,
    OrderStatus.COMPLETED.value,
]


class DashboardService(BaseService):
    """
    Read-only production overview: per-order risk and the headline counters.

    Nothing here mutates state, so no entity locks are taken. Orders are read in pages
    of ``page_size`` so the counters cover every order.
    """

    page_size = 500

    def __init__(self, session: AsyncSession, settings: AppSettings) -> None:
        super().__init__(session)
        self.policy = RiskPolicy.from_settings(settings)
        self.order_repo = ProductionOrderRepository(session)
        self.operation_repo = OperationRepository(session)
        self.routing_repo = RoutingRepository(session)
        self.part_repo = PartNumberRepository(session)
        self.work_center_repo = WorkCenterRepository(session)

    def _unit_minutes(self, value: Optional[float]) -> float:
        return self.policy.default_unit_minutes if value is None else float(value)

    async def remaining_unit_minutes(self, order: ProductionOrder) -> float:
        """
        Per-unit standard minutes still ahead of the order.

        Uses the slowest Active sheet's not-yet-completed operations; falls back to the
        full routing when no Active sheet has open work.
        """
        per_sheet: Dict[UUID, float] = defaultdict(float)
        for op in await self.operation_repo.list_open_for_active_sheets(order.id):
            per_sheet[op.travel_sheet_id] += self._unit_minutes(op.standard_time_minutes)
        if per_sheet:
            return max(per_sheet.values())
        steps = await self.routing_repo.list_steps(order.part_number_id)
        return sum(self._unit_minutes(s.standard_time_minutes) for s in steps)

    # PUBLIC_INTERFACE
    async def assess(self, order: ProductionOrder, today: Optional[date] = None) -> RiskAssessment:
        """Score one loaded order against the configured risk policy."""
        return score_risk(
            status=order.status,
            due_date=order.due_date,
            quantity=order.quantity,
            quantity_completed=order.quantity_completed,
            quantity_scrapped=order.quantity_scrapped,
            remaining_unit_minutes=await self.remaining_unit_minutes(order),
            today=today or utcnow().date(),
            policy=self.policy,
        )

    # PUBLIC_INTERFACE
    async def order_risk(self, production_order_id: UUID, today: Optional[date] = None) -> RiskAssessmentRead:
        order = await self.order_repo.get_order(production_order_id)
        if order is None:
            raise UnknownProductionOrderError(production_order_id)
        assessment = await self.assess(order, today)
        return RiskAssessmentRead(
            production_order_id=order.id,
            risk_status=assessment.status,
            completion_percentage=assessment.completion_percentage,
            remaining_quantity=assessment.remaining_quantity,
            days_until_due=assessment.days_until_due,
            load_ratio=assessment.load_ratio,
        )

    # PUBLIC_INTERFACE
    async def production_dashboard(
        self,
        risk_status: Optional[RiskStatus] = None,
        today: Optional[date] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[ProductionDashboardItem]:
        """
        Rows for the non-cancelled orders, newest first, optionally filtered by risk bucket.

        ``limit`` and ``offset`` page over the filtered rows.
        """
        items: List[ProductionDashboardItem] = []
        parts: Dict[UUID, object] = {}
        skipped = 0
        async with aclosing(self.order_repo.iter_orders(status=_LISTED, batch_size=self.page_size)) as orders:
            async for order in orders:
                if len(items) >= limit:
                    break
                assessment = await self.assess(order, today)
                if risk_status is not None and assessment.status != risk_status:
                    continue
                if skipped < offset:
                    skipped += 1
                    continue
                if order.part_number_id not in parts:
                    parts[order.part_number_id] = await self.part_repo.get_part_number(order.part_number_id)
                part = parts[order.part_number_id]
                items.append(
                    ProductionDashboardItem(
                        id=order.id,
                        po_number=order.po_number,
                        sales_order_ref=order.sales_order_ref,
                        part_number=part.part_number if part is not None else "",
                        part_description=part.description if part is not None else None,
                        quantity=order.quantity,
                        quantity_completed=order.quantity_completed,
                        quantity_scrapped=order.quantity_scrapped,
                        status=OrderStatus(order.status),
                        due_date=order.due_date,
                        risk_status=assessment.status,
                        completion_percentage=assessment.completion_percentage,
                    )
                )
        return items

    # PUBLIC_INTERFACE
    async def dashboard_stats(self, today: Optional[date] = None) -> DashboardStats:
        """Headline counters; the risk buckets are counted over open orders only."""
        stats = DashboardStats()
        counted = 0
        async for order in self.order_repo.iter_orders(status=_LISTED, batch_size=self.page_size):
            counted += 1
            status = OrderStatus(order.status)
            if status == OrderStatus.COMPLETED:
                stats.total_completed_orders += 1
                continue
            stats.total_open_orders += 1
            if status == OrderStatus.IN_PROGRESS:
                stats.total_in_production += 1
            assessment = await self.assess(order, today)
            if assessment.status == RiskStatus.GREEN:
                stats.total_on_time += 1
            elif assessment.status == RiskStatus.YELLOW:
                stats.total_at_risk += 1
            else:
                stats.total_delayed += 1
        logger.debug("Dashboard stats computed over %d orders", counted)
        return stats

    # PUBLIC_INTERFACE
    async def work_center_load(self) -> List[WorkCenterLoadItem]:
        """
        Pending, In Progress and Completed operation counts per work center, over the
        operations of Active travel sheets.

        Every work center gets a row, idle ones with zeros; operations without a work
        center are grouped in a trailing "Unassigned" row when there are any.
        """
        counts: Dict[Optional[UUID], Dict[str, int]] = defaultdict(dict)
        for wc_id, status, n in await self.operation_repo.count_by_work_center():
            counts[wc_id][status] = n

        def _row(wc_id: Optional[UUID], code: Optional[str], name: str) -> WorkCenterLoadItem:
            by_status = counts.get(wc_id, {})
            return WorkCenterLoadItem(
                work_center_id=wc_id,
                work_center_code=code,
                work_center_name=name,
                pending=by_status.get(OperationStatus.PENDING.value, 0),
                in_progress=by_status.get(OperationStatus.IN_PROGRESS.value, 0),
                completed=by_status.get(OperationStatus.COMPLETED.value, 0),
            )

        items = [_row(wc.id, wc.code, wc.name) for wc in await self.work_center_repo.list_work_centers()]
        if None in counts:
            items.append(_row(None, None, "Unassigned"))
        return items

    # PUBLIC_INTERFACE
    async def daily_production(self, days: int = 7, today: Optional[date] = None) -> List[DailyProductionItem]:
        """
        Good and scrap units per UTC day for the last ``days`` days, oldest first.

        Days without completions are reported with zeros. Good counts only final
        operations, matching what the order rollup credits; scrap counts every step.
        """
        if days < 1:
            raise ValueError("days must be >= 1")
        today = today or utcnow().date()
        first_day = today - timedelta(days=days - 1)
        totals: Dict[date, List[int]] = {first_day + timedelta(days=i): [0, 0] for i in range(days)}

        since = datetime.combine(first_day, time.min, tzinfo=timezone.utc)
        for end_time, good, scrap, is_final in await self.operation_repo.list_completed_since(since):
            bucket = totals.get(as_utc(end_time).date())
            if bucket is None:
                continue
            if is_final:
                bucket[0] += good
            bucket[1] += scrap
        return [DailyProductionItem(date=day, good=good, scrap=scrap) for day, (good, scrap) in totals.items()]
