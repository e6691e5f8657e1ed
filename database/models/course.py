"""Course model - the thing being sold."""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from database.base import Base
from database.types import BigIntegerType, MoneyType, utcnow


class Course(Base):
    """Course in the catalog."""

    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(BigIntegerType, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Course(id={self.id}, title='{self.title}')>"
