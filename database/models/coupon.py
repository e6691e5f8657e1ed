"""Coupon models - coupon types and affiliate coupon codes."""
from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import String, Integer, DateTime, Boolean, Text, ForeignKey, Numeric
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from database.base import Base
from database.types import BigIntegerType, MoneyType, utcnow


class DiscountType(str, Enum):
    """Coupon discount type."""

    PERCENTAGE = "PERCENTAGE"  # e.g. 10.5% off
    FIXED_AMOUNT = "FIXED_AMOUNT"  # e.g. 500 off


class CouponType(Base):
    """Coupon type - a template coupons are issued from."""

    __tablename__ = "coupon_types"

    id: Mapped[int] = mapped_column(BigIntegerType, primary_key=True, autoincrement=True)

    type_code: Mapped[str] = mapped_column(
        String(2),
        unique=True,
        nullable=False,
        index=True,
        comment="Two-digit sequence 01-99"
    )
    type_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    discount_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="PERCENTAGE or FIXED_AMOUNT"
    )
    max_discount_limit: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        comment="Upper bound for discount_value of coupons of this type"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[int | None] = mapped_column(
        BigIntegerType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
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
        return f"<CouponType(id={self.id}, code='{self.type_code}', name='{self.type_name}')>"


class Coupon(Base):
    """Coupon issued by an affiliate. Sales through it accrue commission."""

    __tablename__ = "coupons"

    id: Mapped[int] = mapped_column(BigIntegerType, primary_key=True, autoincrement=True)

    code: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="Prefix + affiliate code + type code + discount, e.g. COUPAV0010110"
    )
    coupon_type_id: Mapped[int] = mapped_column(
        BigIntegerType,
        ForeignKey("coupon_types.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    created_by_affiliate_id: Mapped[int] = mapped_column(
        BigIntegerType,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    discount_type: Mapped[str] = mapped_column(String(20), nullable=False)
    discount_value: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    max_usage_count: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Max uses (NULL = unlimited)"
    )
    current_usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    valid_from: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )
    valid_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Expiry (NULL = never)"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

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
        return f"<Coupon(id={self.id}, code='{self.code}')>"
