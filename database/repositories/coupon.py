"""Coupon and coupon type repositories."""
from typing import Optional, List

from sqlalchemy import select

from database.models import Coupon, CouponType
from database.repositories.base import BaseRepository


class CouponTypeRepository(BaseRepository[CouponType]):
    """Repository for CouponType model operations."""

    model_class = CouponType

    async def get_by_type_code(self, type_code: str) -> Optional[CouponType]:
        result = await self.session.execute(
            select(CouponType).where(CouponType.type_code == type_code)
        )
        return result.scalar_one_or_none()

    async def get_type_codes(self) -> List[str]:
        result = await self.session.execute(select(CouponType.type_code))
        return list(result.scalars().all())

    async def list_active(self) -> List[CouponType]:
        result = await self.session.execute(
            select(CouponType)
            .where(CouponType.is_active == True)  # noqa: E712
            .order_by(CouponType.type_code)
        )
        return list(result.scalars().all())


class CouponRepository(BaseRepository[Coupon]):
    """Repository for Coupon model operations."""

    model_class = Coupon

    async def get_by_code(self, code: str) -> Optional[Coupon]:
        result = await self.session.execute(
            select(Coupon).where(Coupon.code == code.upper())
        )
        return result.scalar_one_or_none()

    async def code_exists(self, code: str) -> bool:
        return await self.get_by_code(code) is not None

    async def list_for_affiliate(self, affiliate_id: int) -> List[Coupon]:
        """Coupons created by an affiliate, newest first."""
        result = await self.session.execute(
            select(Coupon)
            .where(Coupon.created_by_affiliate_id == affiliate_id)
            .order_by(Coupon.created_at.desc(), Coupon.id.desc())
        )
        return list(result.scalars().all())
