"""Payout model - money transferred to an affiliate."""
from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from database.base import Base
from database.types import BigIntegerType, JSONType, MoneyType, utcnow


class PayoutStatus(str, Enum):
    """Payout status enum."""
    PENDING = "PENDING"  # Requested by the affiliate
    PROCESSING = "PROCESSING"  # Approved by admin, transfer in progress
    COMPLETED = "COMPLETED"  # Commissions bound, money sent
    REJECTED = "REJECTED"


# Payout statuses that still reserve part of the affiliate's balance
OPEN_PAYOUT_STATUSES = (PayoutStatus.PENDING.value, PayoutStatus.PROCESSING.value)


class Payout(Base):
    """Payout to an affiliate.

    While open, `amount` mirrors `requested_amount` and no commission
    references the payout. Once COMPLETED, `amount` is the exact sum of
    the commissions bound to it.
    """

    __tablename__ = "payouts"

    id: Mapped[int] = mapped_column(BigIntegerType, primary_key=True, autoincrement=True)

    affiliate_id: Mapped[int] = mapped_column(
        BigIntegerType,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    requested_amount: Mapped[Decimal | None] = mapped_column(
        MoneyType,
        nullable=True,
        comment="Amount asked for by the affiliate, null for bulk payouts"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PayoutStatus.PENDING.value,
        index=True
    )

    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    transaction_proof: Mapped[str | None] = mapped_column(Text, nullable=True)
    bank_details: Mapped[dict | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="Bank details snapshot taken at request time"
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_by: Mapped[int | None] = mapped_column(
        BigIntegerType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        comment="Admin who approved, settled or rejected"
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

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
        Index("ix_payouts_affiliate_status", "affiliate_id", "status"),
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_PAYOUT_STATUSES

    def __repr__(self) -> str:
        return (
            f"<Payout(id={self.id}, affiliate={self.affiliate_id}, "
            f"amount={self.amount}, status='{self.status}')>"
        )
