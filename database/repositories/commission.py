"""Commission repository - pending balances and settlement selection."""
from decimal import Decimal
from typing import Optional, List, Dict, Tuple

from sqlalchemy import select, func, and_, desc

from database.models import Commission, CommissionStatus
from database.repositories.base import BaseRepository


class CommissionRepository(BaseRepository[Commission]):
    """Repository for Commission model operations."""

    model_class = Commission

    async def get_by_payment_id(self, payment_id: int, lock: bool = False) -> Optional[Commission]:
        query = select(Commission).where(Commission.payment_id == payment_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_pending_for_affiliate(
        self,
        affiliate_id: int,
        lock: bool = False
    ) -> List[Commission]:
        """
        PENDING commissions of an affiliate, oldest first.

        Ties on created_at are broken by id so the order is reproducible.
        """
        query = (
            select(Commission)
            .where(
                and_(
                    Commission.affiliate_id == affiliate_id,
                    Commission.status == CommissionStatus.PENDING.value
                )
            )
            .order_by(Commission.created_at, Commission.id)
        )
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def sum_pending(self, affiliate_id: int) -> Decimal:
        """Sum of PENDING commission amounts in a single statement."""
        result = await self.session.execute(
            select(func.coalesce(func.sum(Commission.commission_amount), 0)).where(
                and_(
                    Commission.affiliate_id == affiliate_id,
                    Commission.status == CommissionStatus.PENDING.value
                )
            )
        )
        return Decimal(result.scalar() or 0)

    async def totals_by_status(self, affiliate_id: Optional[int] = None) -> Dict[str, Tuple[Decimal, int]]:
        """Map of status -> (sum, count), optionally for one affiliate."""
        query = select(
            Commission.status,
            func.coalesce(func.sum(Commission.commission_amount), 0),
            func.count(Commission.id)
        ).group_by(Commission.status)
        if affiliate_id is not None:
            query = query.where(Commission.affiliate_id == affiliate_id)

        result = await self.session.execute(query)
        return {
            status: (Decimal(total or 0), count)
            for status, total, count in result
        }

    async def pending_by_affiliate(self, limit: Optional[int] = None) -> List[Tuple[int, Decimal, int]]:
        """
        (affiliate_id, pending_total, pending_count) for every affiliate with
        pending commissions, largest total first, then lowest affiliate id.
        """
        total = func.sum(Commission.commission_amount).label("total")
        query = (
            select(Commission.affiliate_id, total, func.count(Commission.id))
            .where(Commission.status == CommissionStatus.PENDING.value)
            .group_by(Commission.affiliate_id)
            .order_by(desc(total), Commission.affiliate_id)
        )
        if limit:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return [
            (affiliate_id, Decimal(amount or 0), count)
            for affiliate_id, amount, count in result
        ]

    async def top_earners(self, limit: int = 10) -> List[Tuple[int, Decimal, int]]:
        """(affiliate_id, total_commission, sales) over PENDING and PAID commissions."""
        total = func.sum(Commission.commission_amount).label("total")
        query = (
            select(Commission.affiliate_id, total, func.count(Commission.id))
            .where(Commission.status != CommissionStatus.CANCELLED.value)
            .group_by(Commission.affiliate_id)
            .order_by(desc(total), Commission.affiliate_id)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [
            (affiliate_id, Decimal(amount or 0), count)
            for affiliate_id, amount, count in result
        ]

    async def list_for_payout(self, payout_id: int) -> List[Commission]:
        result = await self.session.execute(
            select(Commission)
            .where(Commission.payout_id == payout_id)
            .order_by(Commission.created_at, Commission.id)
        )
        return list(result.scalars().all())

    async def sum_for_payout(self, payout_id: int) -> Decimal:
        result = await self.session.execute(
            select(func.coalesce(func.sum(Commission.commission_amount), 0)).where(
                Commission.payout_id == payout_id
            )
        )
        return Decimal(result.scalar() or 0)

    async def list_for_affiliate(
        self,
        affiliate_id: int,
        status: Optional[CommissionStatus] = None,
        limit: Optional[int] = None
    ) -> List[Commission]:
        """Commissions of an affiliate, newest first."""
        query = select(Commission).where(Commission.affiliate_id == affiliate_id)
        if status:
            query = query.where(Commission.status == status.value)
        query = query.order_by(Commission.created_at.desc(), Commission.id.desc())
        if limit:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())
