"""Payment model - a course purchase, optionally through an affiliate coupon."""
from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from database.base import Base
from database.types import BigIntegerType, MoneyType, utcnow


class PaymentStatus(str, Enum):
    """Payment status enum."""
    PENDING = "PENDING"  # Order created, gateway not confirmed
    COMPLETED = "COMPLETED"  # Money received
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class Payment(Base):
    """Payment model."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(BigIntegerType, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        BigIntegerType,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Student who paid"
    )
    course_id: Mapped[int] = mapped_column(
        BigIntegerType,
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    coupon_id: Mapped[int | None] = mapped_column(
        BigIntegerType,
        ForeignKey("coupons.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Amounts
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False, comment="List price")
    discount_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False, default=Decimal("0"))
    final_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False, comment="Amount actually paid")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING.value,
        index=True
    )

    # Commission tracking
    affiliate_id: Mapped[int | None] = mapped_column(
        BigIntegerType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Affiliate credited with this sale"
    )
    commission_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False, default=Decimal("0"))
    commission_paid: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="True once the commission for this payment is PAID"
    )

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

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, amount={self.final_amount}, status='{self.status}')>"
