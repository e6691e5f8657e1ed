"""Payout aggregator - read-only balances and commission statistics."""
import logging
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import AffiliateNotFoundError
from core.money import ZERO, to_money
from database.models import (
    Commission,
    CommissionStatus,
    OPEN_PAYOUT_STATUSES,
    Payout,
    PayoutStatus,
)
from database.repositories import CommissionRepository, PayoutRepository, UserRepository

logger = logging.getLogger(__name__)


class PayoutAggregator:
    """Computes what each affiliate is owed. Never writes."""

    TOP_AFFILIATES_LIMIT = 10

    def __init__(self, session: AsyncSession):
        self.session = session
        self.commission_repo = CommissionRepository(session)
        self.payout_repo = PayoutRepository(session)
        self.user_repo = UserRepository(session)

    async def _require_affiliate(self, affiliate_id: int) -> None:
        if not await self.user_repo.get_affiliate(affiliate_id):
            raise AffiliateNotFoundError(affiliate_id)

    async def get_pending_balance(self, affiliate_id: int) -> Decimal:
        """
        Sum of PENDING commission amounts for an affiliate.

        Computed by one aggregate statement, so a commission moving to PAID
        concurrently is counted either fully before or not at all.
        """
        await self._require_affiliate(affiliate_id)
        return to_money(await self.commission_repo.sum_pending(affiliate_id))

    async def balance_snapshot(self, affiliate_id: int) -> tuple[Decimal, Decimal]:
        """(pending, reserved) for an affiliate from a single statement."""
        pending = (
            select(func.coalesce(func.sum(Commission.commission_amount), 0))
            .where(
                and_(
                    Commission.affiliate_id == affiliate_id,
                    Commission.status == CommissionStatus.PENDING.value
                )
            )
            .scalar_subquery()
        )
        reserved = (
            select(
                func.coalesce(
                    func.sum(func.coalesce(Payout.requested_amount, Payout.amount)), 0
                )
            )
            .where(
                and_(
                    Payout.affiliate_id == affiliate_id,
                    Payout.status.in_(OPEN_PAYOUT_STATUSES)
                )
            )
            .scalar_subquery()
        )
        row = (await self.session.execute(select(pending, reserved))).one()
        return to_money(row[0]), to_money(row[1])

    async def get_available_balance(self, affiliate_id: int) -> Decimal:
        """Pending balance not yet reserved by open payout requests."""
        await self._require_affiliate(affiliate_id)
        pending, reserved = await self.balance_snapshot(affiliate_id)
        return max(ZERO, pending - reserved)

    async def pending_balance_by_affiliate(self, limit: Optional[int] = None) -> List[Dict]:
        """
        Pending balance of every affiliate that has one.

        Ordered by total descending, then affiliate id, so the "top
        affiliates" view is stable between calls.
        """
        rows = await self.commission_repo.pending_by_affiliate(limit)
        users = await self.user_repo.get_by_ids([affiliate_id for affiliate_id, _, _ in rows])

        result = []
        for affiliate_id, total, count in rows:
            user = users.get(affiliate_id)
            result.append({
                'affiliate_id': affiliate_id,
                'name': user.name if user else None,
                'affiliate_code': user.affiliate_code if user else None,
                'pending_amount': to_money(total),
                'pending_count': count,
            })
        return result

    async def commission_stats(self, top: int = TOP_AFFILIATES_LIMIT) -> Dict:
        """Programme-wide totals plus the top affiliates by commission earned."""
        by_status = await self.commission_repo.totals_by_status()

        pending_amount, pending_count = by_status.get(CommissionStatus.PENDING.value, (ZERO, 0))
        paid_amount, paid_count = by_status.get(CommissionStatus.PAID.value, (ZERO, 0))
        cancelled_amount, cancelled_count = by_status.get(CommissionStatus.CANCELLED.value, (ZERO, 0))

        top_rows = await self.commission_repo.top_earners(top)
        users = await self.user_repo.get_by_ids([affiliate_id for affiliate_id, _, _ in top_rows])
        top_affiliates = [
            {
                'affiliate_id': affiliate_id,
                'name': users[affiliate_id].name if affiliate_id in users else None,
                'affiliate_code': users[affiliate_id].affiliate_code if affiliate_id in users else None,
                'total_commission': to_money(total),
                'total_sales': sales,
            }
            for affiliate_id, total, sales in top_rows
        ]

        payouts = await self.payout_repo.count_by_status()

        return {
            'total_commission': to_money(pending_amount + paid_amount),
            'pending_commission': to_money(pending_amount),
            'paid_commission': to_money(paid_amount),
            'cancelled_commission': to_money(cancelled_amount),
            'total_sales': pending_count + paid_count,
            'pending_count': pending_count,
            'paid_count': paid_count,
            'cancelled_count': cancelled_count,
            'payouts_by_status': {status.value: payouts.get(status.value, 0) for status in PayoutStatus},
            'top_affiliates': top_affiliates,
        }

    async def affiliate_earnings(self, affiliate_id: int) -> Dict:
        """Earnings summary for one affiliate's dashboard."""
        await self._require_affiliate(affiliate_id)
        by_status = await self.commission_repo.totals_by_status(affiliate_id)

        pending_amount, pending_count = by_status.get(CommissionStatus.PENDING.value, (ZERO, 0))
        paid_amount, paid_count = by_status.get(CommissionStatus.PAID.value, (ZERO, 0))
        cancelled_amount, _ = by_status.get(CommissionStatus.CANCELLED.value, (ZERO, 0))

        pending, reserved = await self.balance_snapshot(affiliate_id)

        return {
            'affiliate_id': affiliate_id,
            'total_earned': to_money(pending_amount + paid_amount),
            'pending': pending,
            'paid': to_money(paid_amount),
            'cancelled': to_money(cancelled_amount),
            'reserved': reserved,
            'available': max(ZERO, pending - reserved),
            'total_sales': pending_count + paid_count,
            'payout_count': await self.payout_repo.count_for_affiliate(
                affiliate_id, PayoutStatus.COMPLETED
            ),
        }
