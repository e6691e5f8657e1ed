"""Payout repository."""
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import select, func, and_

from database.models import Payout, PayoutStatus, OPEN_PAYOUT_STATUSES
from database.repositories.base import BaseRepository


class PayoutRepository(BaseRepository[Payout]):
    """Repository for Payout model operations."""

    model_class = Payout

    async def list_open_for_affiliate(self, affiliate_id: int) -> List[Payout]:
        """PENDING and PROCESSING payouts of an affiliate, oldest first."""
        result = await self.session.execute(
            select(Payout)
            .where(
                and_(
                    Payout.affiliate_id == affiliate_id,
                    Payout.status.in_(OPEN_PAYOUT_STATUSES)
                )
            )
            .order_by(Payout.requested_at, Payout.id)
        )
        return list(result.scalars().all())

    async def sum_reserved_for_affiliate(self, affiliate_id: int, exclude_payout_id: Optional[int] = None) -> Decimal:
        """Requested amounts of an affiliate's open payouts, optionally leaving one out."""
        query = (
            select(func.coalesce(func.sum(func.coalesce(Payout.requested_amount, Payout.amount)), 0))
            .where(
                and_(
                    Payout.affiliate_id == affiliate_id,
                    Payout.status.in_(OPEN_PAYOUT_STATUSES)
                )
            )
        )
        if exclude_payout_id is not None:
            query = query.where(Payout.id != exclude_payout_id)
        result = await self.session.execute(query)
        return Decimal(str(result.scalar() or 0))

    async def list_by_status(
        self,
        status: Optional[PayoutStatus] = None,
        limit: Optional[int] = None
    ) -> List[Payout]:
        """Payouts filtered by status, newest first."""
        query = select(Payout)
        if status:
            query = query.where(Payout.status == status.value)
        query = query.order_by(Payout.requested_at.desc(), Payout.id.desc())
        if limit:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_for_affiliate(self, affiliate_id: int, limit: Optional[int] = None) -> List[Payout]:
        query = (
            select(Payout)
            .where(Payout.affiliate_id == affiliate_id)
            .order_by(Payout.requested_at.desc(), Payout.id.desc())
        )
        if limit:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_for_affiliate(self, affiliate_id: int, status: Optional[PayoutStatus] = None) -> int:
        query = select(func.count(Payout.id)).where(Payout.affiliate_id == affiliate_id)
        if status:
            query = query.where(Payout.status == status.value)
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def count_by_status(self) -> dict[str, int]:
        result = await self.session.execute(
            select(Payout.status, func.count(Payout.id)).group_by(Payout.status)
        )
        return {status: count for status, count in result}
