from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional
from sqlalchemy import CheckConstraint, Date, DateTime, Float, ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from tracker.db.base import Base, UUIDPkMixin, TimestampMixin
from tracker.db.models.enums import OperationStatus, OrderPriority, OrderStatus, TravelSheetStatus


class ProductionOrder(UUIDPkMixin, TimestampMixin, Base):
    """Manufacturing run for a quantity of one part number, with completion/scrap rollups."""
    __tablename__ = "production_orders"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="quantity_non_negative"),
        CheckConstraint("quantity_completed >= 0 AND quantity_scrapped >= 0", name="rollups_non_negative"),
        CheckConstraint("quantity_completed + quantity_scrapped <= quantity", name="rollup_within_quantity"),
    )

    po_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    part_number_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("part_numbers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    sales_order_ref: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quantity_scrapped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(Text, nullable=False, default=OrderStatus.CREATED.value, index=True)
    priority: Mapped[str] = mapped_column(Text, nullable=False, default=OrderPriority.NORMAL.value)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)


class TravelSheet(UUIDPkMixin, TimestampMixin, Base):
    """Execution document that accompanies a production order run through the shop floor."""
    __tablename__ = "travel_sheets"

    travel_sheet_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    production_order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("production_orders.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    qr_code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    batch_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default=TravelSheetStatus.ACTIVE.value, index=True)


class TravelSheetOperation(UUIDPkMixin, TimestampMixin, Base):
    """One routing step instance on a travel sheet, addressed by its checkpoint token."""
    __tablename__ = "travel_sheet_operations"
    __table_args__ = (
        UniqueConstraint("travel_sheet_id", "sequence_number", name="uq_travel_sheet_operations_sheet_seq"),
        CheckConstraint(
            "quantity_good >= 0 AND quantity_scrap >= 0 AND (quantity_pending IS NULL OR quantity_pending >= 0)",
            name="quantities_non_negative",
        ),
    )

    travel_sheet_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("travel_sheets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    process_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("processes.id", ondelete="RESTRICT"), nullable=False
    )
    work_center_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("work_centers.id", ondelete="SET NULL"), nullable=True
    )
    sequence_number: Mapped[int] = mapped_column(nullable=False)
    standard_time_minutes: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    checkpoint_token: Mapped[str] = mapped_column(Text, nullable=False, unique=True, index=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default=OperationStatus.PENDING.value)
    operator_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("operators.id", ondelete="RESTRICT"), nullable=True
    )
    machine_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    start_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_minutes: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    quantity_good: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quantity_scrap: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # NULL until the completion is submitted; never read as zero outside reconciliation.
    quantity_pending: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    operator_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class ProductionStatusEvent(UUIDPkMixin, TimestampMixin, Base):
    """Status change tracking for production entities."""
    __tablename__ = "production_status_events"

    entity_type: Mapped[str] = mapped_column(Text, nullable=False)  # production_order/travel_sheet/operation
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    reason_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    operator_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
