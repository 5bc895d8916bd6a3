from __future__ import annotations

import logging
import secrets
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tracker.core.errors import (
    DuplicateGenerationError,
    InvalidQuantityError,
    InvalidRoutingError,
    OrderStateError,
    UnknownProductionOrderError,
)
from tracker.core.settings import AppSettings
from tracker.db.models.enums import OperationStatus, OrderStatus, TravelSheetStatus
from tracker.db.models.production import ProductionOrder, TravelSheet, TravelSheetOperation
from tracker.repositories.master_data import RoutingRepository, RoutingStep
from tracker.repositories.production import (
    ProductionOrderRepository,
    StatusEventRepository,
    TravelSheetRepository,
)
from tracker.services.base import BaseService

logger = logging.getLogger(__name__)

_GENERATABLE = (OrderStatus.CREATED.value, OrderStatus.RELEASED.value)


def mint_token() -> str:
    """Fresh opaque token with 128 bits of randomness."""
    return secrets.token_urlsafe(16)


def format_sheet_number(prefix: str, po_number: str, ordinal: int) -> str:
    return f"{prefix}-{po_number}-{ordinal:02d}"


def validate_routing(part_number_id: UUID, steps: List[RoutingStep]) -> None:
    if not steps:
        raise InvalidRoutingError(
            "Part number has no routing steps.", {"part_number_id": part_number_id}
        )
    sequences = [s.sequence_number for s in steps]
    if len(set(sequences)) != len(sequences):
        raise InvalidRoutingError(
            "Routing has duplicated sequence numbers.",
            {"part_number_id": part_number_id, "sequence_numbers": sorted(sequences)},
        )


class TravelSheetGenerator(BaseService):
    """
    Materializes a travel sheet from a production order and its part's routing.

    The caller owns the transaction and must hold the order lock.
    """

    def __init__(self, session: AsyncSession, settings: AppSettings) -> None:
        super().__init__(session)
        self.settings = settings
        self.order_repo = ProductionOrderRepository(session)
        self.sheet_repo = TravelSheetRepository(session)
        self.routing_repo = RoutingRepository(session)
        self.event_repo = StatusEventRepository(session)

    async def _allocatable_quantity(self, order: ProductionOrder) -> Tuple[int, List[TravelSheet]]:
        live = await self.sheet_repo.list_by_status(
            order.id, [TravelSheetStatus.ACTIVE.value, TravelSheetStatus.COMPLETED.value]
        )
        allocated = sum(s.quantity for s in live)
        unaccounted = order.quantity - order.quantity_completed - order.quantity_scrapped
        return max(0, min(order.quantity - allocated, unaccounted)), live

    # PUBLIC_INTERFACE
    async def generate(
        self,
        production_order_id: UUID,
        *,
        batch_number: Optional[str] = None,
        quantity: Optional[int] = None,
    ) -> TravelSheet:
        """
        Create one Active travel sheet with one Pending operation per routing step.

        Parameters:
            production_order_id: order to release
            batch_number: optional material lot reference
            quantity: units for this sheet; defaults to the unallocated remainder
        Returns:
            The new TravelSheet (flushed, not committed)
        Raises:
            UnknownProductionOrderError, OrderStateError, DuplicateGenerationError,
            InvalidRoutingError, InvalidQuantityError
        """
        order = await self.order_repo.get_order(production_order_id, for_update=True)
        if order is None:
            raise UnknownProductionOrderError(production_order_id)
        if order.status not in _GENERATABLE:
            raise OrderStateError(
                f"Travel sheets can only be generated for Created or Released orders (order is {order.status}).",
                {"production_order_id": order.id, "status": order.status},
            )

        remainder, live = await self._allocatable_quantity(order)
        active = [s for s in live if s.status == TravelSheetStatus.ACTIVE.value]
        if active and not self.settings.ALLOW_MULTIPLE_ACTIVE_SHEETS:
            raise DuplicateGenerationError(order.id, active[0].travel_sheet_number)
        if remainder == 0:
            raise OrderStateError(
                "Production order has no unallocated quantity left.",
                {"production_order_id": order.id, "quantity": order.quantity},
            )
        if quantity is None:
            quantity = remainder
        elif quantity <= 0 or quantity > remainder:
            raise InvalidQuantityError(
                f"Sheet quantity must be between 1 and {remainder}.",
                {"production_order_id": order.id, "expected_max": remainder, "received": quantity},
            )

        steps = await self.routing_repo.list_steps(order.part_number_id)
        validate_routing(order.part_number_id, steps)

        ordinal = await self.sheet_repo.count_for_order(order.id) + 1
        sheet = TravelSheet(
            travel_sheet_number=format_sheet_number(self.settings.TRAVEL_SHEET_PREFIX, order.po_number, ordinal),
            production_order_id=order.id,
            qr_code=mint_token(),
            batch_number=batch_number,
            quantity=quantity,
            status=TravelSheetStatus.ACTIVE.value,
        )
        await self.sheet_repo.add(sheet)
        await self.sheet_repo.flush()

        await self.sheet_repo.add_all(
            TravelSheetOperation(
                travel_sheet_id=sheet.id,
                process_id=step.process_id,
                work_center_id=step.work_center_id,
                sequence_number=step.sequence_number,
                standard_time_minutes=step.standard_time_minutes,
                checkpoint_token=mint_token(),
                status=OperationStatus.PENDING.value,
                quantity_good=0,
                quantity_scrap=0,
                quantity_pending=None,
            )
            for step in steps
        )
        await self.event_repo.record(
            entity_type="travel_sheet", entity_id=sheet.id, status=TravelSheetStatus.ACTIVE.value, reason_code="generated"
        )

        if order.status == OrderStatus.CREATED.value:
            await self.order_repo.set_status(
                order.id, OrderStatus.RELEASED.value, expected=[OrderStatus.CREATED.value]
            )
            await self.event_repo.record(
                entity_type="production_order", entity_id=order.id, status=OrderStatus.RELEASED.value,
                reason_code="travel_sheet_generated",
            )
        await self.sheet_repo.flush()

        logger.info(
            "Generated travel sheet %s for order %s: %d operations, quantity %d",
            sheet.travel_sheet_number, order.po_number, len(steps), quantity,
        )
        return sheet
