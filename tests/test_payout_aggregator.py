"""Tests for balances and commission statistics."""
from decimal import Decimal

import pytest

from core.exceptions import AffiliateNotFoundError
from database.models import CommissionStatus, Payout, PayoutStatus
from services.payout_aggregator import PayoutAggregator


async def add_open_request(session, affiliate, amount, status=PayoutStatus.PENDING) -> Payout:
    payout = Payout(
        affiliate_id=affiliate.id,
        amount=Decimal(amount),
        requested_amount=Decimal(amount),
        status=status.value,
        payment_method="Bank Transfer",
    )
    session.add(payout)
    await session.commit()
    return payout


class TestBalances:
    """Pending, reserved and available balances."""

    async def test_pending_balance_counts_only_pending(self, db_session, affiliate, make_commission):
        await make_commission(affiliate, "100.00")
        await make_commission(affiliate, "150.00")
        paid = await make_commission(affiliate, "75.00")
        cancelled = await make_commission(affiliate, "20.00")
        paid.status = CommissionStatus.PAID.value
        cancelled.status = CommissionStatus.CANCELLED.value
        await db_session.commit()

        balance = await PayoutAggregator(db_session).get_pending_balance(affiliate.id)

        assert balance == Decimal("250.00")

    async def test_no_commissions_is_zero(self, db_session, affiliate):
        assert await PayoutAggregator(db_session).get_pending_balance(affiliate.id) == Decimal("0.00")

    async def test_unknown_affiliate(self, db_session, student):
        with pytest.raises(AffiliateNotFoundError):
            await PayoutAggregator(db_session).get_pending_balance(student.id)

    async def test_open_requests_reserve_balance(self, db_session, affiliate, make_commission):
        await make_commission(affiliate, "300.00")
        await make_commission(affiliate, "150.00")
        await add_open_request(db_session, affiliate, "200.00")
        await add_open_request(db_session, affiliate, "50.00", status=PayoutStatus.PROCESSING)
        await add_open_request(db_session, affiliate, "400.00", status=PayoutStatus.REJECTED)

        aggregator = PayoutAggregator(db_session)
        pending, reserved = await aggregator.balance_snapshot(affiliate.id)

        assert pending == Decimal("450.00")
        assert reserved == Decimal("250.00")
        assert await aggregator.get_available_balance(affiliate.id) == Decimal("200.00")


class TestPendingByAffiliate:
    """Admin overview of who is owed what."""

    async def test_ordered_by_amount_then_id(self, db_session, affiliate, make_affiliate, make_commission):
        second = await make_affiliate("Mohan Das")
        third = await make_affiliate("Priya")

        await make_commission(affiliate, "100.00")
        await make_commission(second, "300.00")
        await make_commission(third, "60.00")
        await make_commission(third, "40.00")

        rows = await PayoutAggregator(db_session).pending_balance_by_affiliate()

        assert [row['affiliate_id'] for row in rows] == [second.id, affiliate.id, third.id]
        assert rows[0]['pending_amount'] == Decimal("300.00")
        assert rows[0]['name'] == "Mohan Das"
        assert rows[2]['pending_count'] == 2

    async def test_limit(self, db_session, affiliate, make_affiliate, make_commission):
        second = await make_affiliate("Mohan Das")
        await make_commission(affiliate, "100.00")
        await make_commission(second, "300.00")

        rows = await PayoutAggregator(db_session).pending_balance_by_affiliate(limit=1)

        assert len(rows) == 1
        assert rows[0]['affiliate_id'] == second.id


class TestCommissionStats:
    """Programme-wide statistics."""

    async def test_totals_and_top_affiliates(self, db_session, affiliate, make_affiliate, make_commission):
        second = await make_affiliate("Mohan Das")
        await make_commission(affiliate, "100.00")
        paid = await make_commission(affiliate, "50.00")
        await make_commission(second, "400.00")
        cancelled = await make_commission(second, "999.00")
        paid.status = CommissionStatus.PAID.value
        cancelled.status = CommissionStatus.CANCELLED.value
        await db_session.commit()
        await add_open_request(db_session, affiliate, "80.00")

        stats = await PayoutAggregator(db_session).commission_stats()

        assert stats['total_commission'] == Decimal("550.00")
        assert stats['pending_commission'] == Decimal("500.00")
        assert stats['paid_commission'] == Decimal("50.00")
        assert stats['cancelled_commission'] == Decimal("999.00")
        assert stats['total_sales'] == 3
        assert stats['cancelled_count'] == 1
        assert stats['payouts_by_status']['PENDING'] == 1
        assert stats['payouts_by_status']['COMPLETED'] == 0
        assert [row['affiliate_id'] for row in stats['top_affiliates']] == [second.id, affiliate.id]
        assert stats['top_affiliates'][1]['total_sales'] == 2

    async def test_empty_programme(self, db_session):
        stats = await PayoutAggregator(db_session).commission_stats()

        assert stats['total_commission'] == Decimal("0.00")
        assert stats['total_sales'] == 0
        assert stats['top_affiliates'] == []


class TestAffiliateEarnings:
    """Dashboard summary for one affiliate."""

    async def test_earnings(self, db_session, affiliate, make_commission):
        await make_commission(affiliate, "100.00")
        paid = await make_commission(affiliate, "250.00")
        paid.status = CommissionStatus.PAID.value
        await db_session.commit()
        await add_open_request(db_session, affiliate, "40.00")

        earnings = await PayoutAggregator(db_session).affiliate_earnings(affiliate.id)

        assert earnings['total_earned'] == Decimal("350.00")
        assert earnings['pending'] == Decimal("100.00")
        assert earnings['paid'] == Decimal("250.00")
        assert earnings['reserved'] == Decimal("40.00")
        assert earnings['available'] == Decimal("60.00")
        assert earnings['total_sales'] == 2
        assert earnings['payout_count'] == 0
