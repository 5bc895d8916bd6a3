from __future__ import annotations

import uuid
from typing import Optional
from sqlalchemy import Boolean, Float, ForeignKey, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from tracker.db.base import Base, UUIDPkMixin, TimestampMixin


class PartNumber(UUIDPkMixin, TimestampMixin, Base):
    """Part number master record (customer part being manufactured)."""
    __tablename__ = "part_numbers"

    part_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class WorkCenter(UUIDPkMixin, TimestampMixin, Base):
    """Work center or machine group where processes run."""
    __tablename__ = "work_centers"

    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)


class Process(UUIDPkMixin, TimestampMixin, Base):
    """A manufacturing process (cutting, bending, welding, ...) bound to a work center."""
    __tablename__ = "processes"

    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    work_center_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("work_centers.id", ondelete="SET NULL"), nullable=True
    )


class PartRouting(UUIDPkMixin, TimestampMixin, Base):
    """One routing step of a part number. Order is given by sequence_number only."""
    __tablename__ = "part_routings"
    __table_args__ = (
        UniqueConstraint("part_number_id", "sequence_number", name="uq_part_routings_part_seq"),
    )

    part_number_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("part_numbers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    process_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("processes.id", ondelete="RESTRICT"), nullable=False
    )
    sequence_number: Mapped[int] = mapped_column(nullable=False)
    standard_time_minutes: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
