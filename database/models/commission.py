"""Commission model - what an affiliate is owed for one sale."""
from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from database.base import Base
from database.types import BigIntegerType, MoneyType, RateType, utcnow


class CommissionStatus(str, Enum):
    """Commission status enum."""
    PENDING = "PENDING"  # Accrued, not yet paid out
    PAID = "PAID"  # Bound to a completed payout
    CANCELLED = "CANCELLED"  # Sale refunded before payout


class Commission(Base):
    """Commission accrued for a completed payment."""

    __tablename__ = "commissions"

    id: Mapped[int] = mapped_column(BigIntegerType, primary_key=True, autoincrement=True)

    affiliate_id: Mapped[int] = mapped_column(
        BigIntegerType,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    payment_id: Mapped[int] = mapped_column(
        BigIntegerType,
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        comment="One commission per payment"
    )
    student_id: Mapped[int] = mapped_column(
        BigIntegerType,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    course_id: Mapped[int] = mapped_column(
        BigIntegerType,
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False
    )
    coupon_id: Mapped[int | None] = mapped_column(
        BigIntegerType,
        ForeignKey("coupons.id", ondelete="SET NULL"),
        nullable=True
    )

    sale_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(
        RateType,
        nullable=False,
        comment="Affiliate rate snapshot at accrual, percent"
    )
    commission_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CommissionStatus.PENDING.value,
        index=True
    )
    payout_id: Mapped[int | None] = mapped_column(
        BigIntegerType,
        ForeignKey("payouts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Set exactly when status is PAID"
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False
    )

    __table_args__ = (
        Index("ix_commissions_affiliate_status_created", "affiliate_id", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Commission(id={self.id}, affiliate={self.affiliate_id}, "
            f"amount={self.commission_amount}, status='{self.status}')>"
        )
