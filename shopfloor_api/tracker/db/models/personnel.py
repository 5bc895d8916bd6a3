from __future__ import annotations

from typing import Optional
from sqlalchemy import Boolean, Text
from sqlalchemy.orm import Mapped, mapped_column

from tracker.db.base import Base, UUIDPkMixin, TimestampMixin


class Operator(UUIDPkMixin, TimestampMixin, Base):
    """Shop-floor operator, identified at stations by scanning a badge."""
    __tablename__ = "operators"

    badge_token: Mapped[str] = mapped_column(Text, nullable=False, unique=True, index=True)
    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    employee_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
