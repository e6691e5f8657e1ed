"""User model - students, admins and affiliates (jyotishis)."""
from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import BigInteger, String, Text, Boolean, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from database.base import Base
from database.types import BigIntegerType, RateType, utcnow


class UserRole(str, Enum):
    """User role enum."""
    ADMIN = "ADMIN"
    USER = "USER"
    JYOTISHI = "JYOTISHI"  # Affiliate earning commission through coupons


# Fields a payout needs to reach the affiliate's bank account
REQUIRED_BANK_FIELDS = (
    "bank_account_number",
    "bank_ifsc_code",
    "bank_account_holder_name",
)


class User(Base):
    """Platform user. Affiliate-specific columns are null for other roles."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntegerType, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    mobile: Mapped[str | None] = mapped_column(String(20), nullable=True)
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=UserRole.USER.value,
        index=True,
        comment="ADMIN/USER/JYOTISHI"
    )

    # Affiliate program
    affiliate_code: Mapped[str | None] = mapped_column(
        String(10),
        unique=True,
        nullable=True,
        index=True,
        comment="Initials + 3-digit sequence, e.g. AV001"
    )
    commission_rate: Mapped[Decimal | None] = mapped_column(
        RateType,
        nullable=True,
        comment="Commission percent, 10.00 = 10%"
    )

    # Bank details
    bank_account_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    bank_ifsc_code: Mapped[str | None] = mapped_column(Text, nullable=True)
    bank_account_holder_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    bank_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    bank_branch_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    pan_number: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Notifications
    telegram_chat_id: Mapped[int | None] = mapped_column(
        BigInteger,
        nullable=True,
        comment="Telegram chat for payout notifications"
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Serialises money operations per affiliate
    last_payout_activity_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Last payout request or settlement touching this affiliate"
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

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_affiliate(self) -> bool:
        return self.role == UserRole.JYOTISHI.value

    @property
    def missing_bank_fields(self) -> list[str]:
        """Required bank fields that are empty."""
        return [
            field for field in REQUIRED_BANK_FIELDS
            if not (getattr(self, field) or "").strip()
        ]

    def bank_details_snapshot(self) -> dict:
        """Copy of the bank details, frozen into a payout at request time."""
        return {
            "account_number": self.bank_account_number,
            "ifsc_code": self.bank_ifsc_code,
            "account_holder_name": self.bank_account_holder_name,
            "bank_name": self.bank_name,
            "branch_name": self.bank_branch_name,
        }

    def __repr__(self) -> str:
        return f"<User(id={self.id}, role='{self.role}', code='{self.affiliate_code}')>"
