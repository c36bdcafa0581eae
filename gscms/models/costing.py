from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from gscms.core.id_utils import generate_shortuuid
from gscms.db.base import Base


class CostCalculation(Base):
    __tablename__ = "cost_calculations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    inquiry_item_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("inquiry_items.id"),
        nullable=False,
        index=True,
    )
    calculated_by_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_cost_calculations_calculator_approved", "calculated_by_id", "is_approved"),
    )


class Approval(Base):
    __tablename__ = "approvals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_shortuuid)
    cost_calculation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("cost_calculations.id"),
        nullable=False,
        index=True,
    )
    approver_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    comments: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
