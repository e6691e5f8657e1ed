import sys
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator

# Tests never touch the configured PostgreSQL database
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ADMIN_TELEGRAM_IDS", "5550001")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure project root is on sys.path so `import app` works
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from core.context import CallerContext, ROLE_ADMIN, ROLE_JYOTISHI
from database.base import Base
from database.models import (
    Commission,
    CommissionStatus,
    Course,
    Payment,
    PaymentStatus,
    User,
    UserRole,
)

ADMIN_TELEGRAM_ID = 5550001
AFFILIATE_CHAT_ID = 7770001

BASE_TIME = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_maker(async_engine) -> async_sessionmaker:
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests."""
    async with session_maker() as session:
        yield session
        await session.rollback()


async def create_user(session: AsyncSession, **kwargs) -> User:
    user = User(**kwargs)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def create_affiliate(session: AsyncSession, name: str = "Asha Verma", **kwargs) -> User:
    """Affiliate with complete bank details and a 10% rate."""
    slug = name.lower().replace(" ", ".")
    values = dict(
        name=name,
        email=f"{slug}@example.com",
        role=UserRole.JYOTISHI.value,
        commission_rate=Decimal("10.00"),
        bank_account_number="50100012345678",
        bank_ifsc_code="HDFC0001234",
        bank_account_holder_name=name,
        bank_name="HDFC Bank",
        telegram_chat_id=AFFILIATE_CHAT_ID,
    )
    values.update(kwargs)
    return await create_user(session, **values)


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await create_user(
        db_session,
        name="Platform Admin",
        email="admin@example.com",
        role=UserRole.ADMIN.value,
        telegram_chat_id=ADMIN_TELEGRAM_ID,
    )


@pytest_asyncio.fixture
async def affiliate(db_session: AsyncSession) -> User:
    return await create_affiliate(db_session)


@pytest_asyncio.fixture
async def student(db_session: AsyncSession) -> User:
    return await create_user(
        db_session,
        name="Ravi Student",
        email="ravi@example.com",
        role=UserRole.USER.value,
    )


@pytest_asyncio.fixture
async def course(db_session: AsyncSession) -> Course:
    course = Course(title="Vedic Astrology Basics", price=Decimal("4999.00"))
    db_session.add(course)
    await db_session.commit()
    await db_session.refresh(course)
    return course


@pytest.fixture
def admin_caller(admin: User) -> CallerContext:
    return CallerContext(actor_id=admin.id, role=ROLE_ADMIN)


@pytest.fixture
def affiliate_caller(affiliate: User) -> CallerContext:
    return CallerContext(actor_id=affiliate.id, role=ROLE_JYOTISHI)


@pytest.fixture
def make_payment(db_session: AsyncSession, student: User, course: Course):
    """Factory for payments by the sample student."""

    async def _make(
        final_amount="1000.00",
        status: PaymentStatus = PaymentStatus.COMPLETED,
        affiliate_id: int | None = None,
        coupon_id: int | None = None,
    ) -> Payment:
        amount = Decimal(str(final_amount))
        payment = Payment(
            user_id=student.id,
            course_id=course.id,
            coupon_id=coupon_id,
            amount=amount,
            discount_amount=Decimal("0"),
            final_amount=amount,
            status=status.value,
            affiliate_id=affiliate_id,
        )
        db_session.add(payment)
        await db_session.commit()
        await db_session.refresh(payment)
        return payment

    return _make


@pytest.fixture
def make_commission(db_session: AsyncSession, make_payment):
    """
    Factory for PENDING commissions with an exact amount.

    Each call is one minute after the previous one so oldest-first
    ordering is deterministic.
    """
    counter = {"n": 0}

    async def _make(affiliate: User, commission_amount, rate="10.00") -> Commission:
        amount = Decimal(str(commission_amount))
        rate = Decimal(str(rate))
        sale = (amount * 100 / rate).quantize(Decimal("0.01"))
        payment = await make_payment(sale, affiliate_id=affiliate.id)

        counter["n"] += 1
        commission = Commission(
            affiliate_id=affiliate.id,
            payment_id=payment.id,
            student_id=payment.user_id,
            course_id=payment.course_id,
            sale_amount=sale,
            commission_rate=rate,
            commission_amount=amount,
            status=CommissionStatus.PENDING.value,
            created_at=BASE_TIME + timedelta(minutes=counter["n"]),
        )
        payment.commission_amount = amount
        db_session.add(commission)
        await db_session.commit()
        await db_session.refresh(commission)
        return commission

    return _make


@pytest.fixture
def make_affiliate(db_session: AsyncSession):
    """Factory for additional affiliates."""

    async def _make(name: str, **kwargs) -> User:
        return await create_affiliate(db_session, name=name, **kwargs)

    return _make
