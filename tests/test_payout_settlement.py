"""Tests for payout settlement."""
import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, Mock, patch

import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from core.exceptions import (
    ConcurrentModificationError,
    InsufficientFundsError,
    NoPendingCommissionsError,
    PayoutStatusError,
    PermissionDeniedError,
    TransactionFailureError,
    ValidationError,
)
from database.models import Commission, CommissionStatus, Payment, Payout, PayoutStatus
from database.repositories import (
    CommissionRepository,
    PaymentRepository,
    PayoutRepository,
    UserRepository,
)
from services.commission_accrual import CommissionAccrualService
from services.notifications import wait_for_notifications
from services.payout_request import PayoutRequestService
from services.payout_settlement import PayoutSettlementService, select_covering_commissions


def commission_stub(amount: str) -> Mock:
    stub = Mock(spec=Commission)
    stub.commission_amount = Decimal(amount)
    return stub


class TestSelectCoveringCommissions:
    """Oldest-first selection without splitting."""

    def test_stops_once_covered(self):
        commissions = [commission_stub("100.00"), commission_stub("150.00"), commission_stub("200.00")]

        selected, total = select_covering_commissions(commissions, Decimal("200.00"))

        assert selected == commissions[:2]
        assert total == Decimal("250.00")

    def test_exact_cover(self):
        commissions = [commission_stub("100.00"), commission_stub("100.00"), commission_stub("5.00")]

        selected, total = select_covering_commissions(commissions, Decimal("200.00"))

        assert len(selected) == 2
        assert total == Decimal("200.00")

    def test_not_enough(self):
        commissions = [commission_stub("10.00"), commission_stub("20.00")]

        selected, total = select_covering_commissions(commissions, Decimal("100.00"))

        assert selected == commissions
        assert total == Decimal("30.00")


async def fresh_state(session_maker, affiliate_id):
    """Commission statuses and payout count as another connection sees them."""
    async with session_maker() as session:
        commissions = (
            await session.execute(
                select(Commission)
                .where(Commission.affiliate_id == affiliate_id)
                .order_by(Commission.created_at, Commission.id)
            )
        ).scalars().all()
        payments = (
            await session.execute(select(Payment).order_by(Payment.id))
        ).scalars().all()
        payout_count = await session.scalar(
            select(func.count(Payout.id)).where(Payout.status == PayoutStatus.COMPLETED.value)
        )
    return commissions, payments, payout_count


class TestSettleRequestedPayout:
    """Settling an affiliate's request."""

    async def test_over_coverage_keeps_requested_amount(
        self, db_session, session_maker, affiliate, affiliate_caller, admin_caller, make_commission
    ):
        c1 = await make_commission(affiliate, "100.00")
        c2 = await make_commission(affiliate, "150.00")
        c3 = await make_commission(affiliate, "200.00")
        request = await PayoutRequestService(db_session).request_payout(affiliate_caller, "200.00")

        payout = await PayoutSettlementService(db_session).settle_requested_payout(
            admin_caller, request.id, "UTR0001"
        )

        assert payout.status == PayoutStatus.COMPLETED.value
        assert payout.amount == Decimal("250.00")
        assert payout.requested_amount == Decimal("200.00")
        assert payout.transaction_id == "UTR0001"
        assert payout.processed_by == admin_caller.actor_id
        assert payout.processed_at is not None

        commissions, payments, _ = await fresh_state(session_maker, affiliate.id)
        by_id = {c.id: c for c in commissions}
        assert by_id[c1.id].status == CommissionStatus.PAID.value
        assert by_id[c1.id].payout_id == payout.id
        assert by_id[c2.id].status == CommissionStatus.PAID.value
        assert by_id[c3.id].status == CommissionStatus.PENDING.value
        assert by_id[c3.id].payout_id is None
        paid_flags = {p.id: p.commission_paid for p in payments}
        assert paid_flags == {c1.payment_id: True, c2.payment_id: True, c3.payment_id: False}

    async def test_insufficient_pending(
        self, db_session, affiliate, affiliate_caller, admin_caller, make_commission
    ):
        c1 = await make_commission(affiliate, "300.00")
        request = await PayoutRequestService(db_session).request_payout(affiliate_caller, "300.00")
        c1.status = CommissionStatus.CANCELLED.value
        await db_session.commit()

        with pytest.raises(InsufficientFundsError):
            await PayoutSettlementService(db_session).settle_requested_payout(
                admin_caller, request.id, "UTR0002"
            )

        await db_session.refresh(request)
        assert request.status == PayoutStatus.PENDING.value

    async def test_same_transaction_is_idempotent(
        self, db_session, affiliate, affiliate_caller, admin_caller, make_commission
    ):
        await make_commission(affiliate, "100.00")
        await make_commission(affiliate, "100.00")
        request = await PayoutRequestService(db_session).request_payout(affiliate_caller, "100.00")
        service = PayoutSettlementService(db_session)

        first = await service.settle_requested_payout(admin_caller, request.id, "UTR0003")
        again = await service.settle_requested_payout(admin_caller, request.id, "UTR0003")

        assert again.id == first.id
        assert again.amount == Decimal("100.00")
        paid = await db_session.scalar(
            select(func.count(Commission.id)).where(Commission.status == CommissionStatus.PAID.value)
        )
        assert paid == 1

    async def test_completed_payout_cannot_be_settled_again(
        self, db_session, affiliate, affiliate_caller, admin_caller, make_commission
    ):
        await make_commission(affiliate, "100.00")
        request = await PayoutRequestService(db_session).request_payout(affiliate_caller, "100.00")
        service = PayoutSettlementService(db_session)
        await service.settle_requested_payout(admin_caller, request.id, "UTR0004")

        with pytest.raises(PayoutStatusError):
            await service.settle_requested_payout(admin_caller, request.id, "UTR9999")

    async def test_store_failure_leaves_nothing_behind(
        self, db_session, session_maker, affiliate, affiliate_caller, admin_caller, make_commission
    ):
        await make_commission(affiliate, "100.00")
        await make_commission(affiliate, "150.00")
        request = await PayoutRequestService(db_session).request_payout(affiliate_caller, "200.00")
        affiliate_id = affiliate.id

        failure = OperationalError("UPDATE payments", {}, Exception("disk I/O error"))
        with patch.object(PaymentRepository, "mark_commission_paid", AsyncMock(side_effect=failure)):
            with pytest.raises(TransactionFailureError):
                await PayoutSettlementService(db_session).settle_requested_payout(
                    admin_caller, request.id, "UTR0005"
                )

        commissions, payments, completed = await fresh_state(session_maker, affiliate_id)
        assert all(c.status == CommissionStatus.PENDING.value for c in commissions)
        assert all(c.payout_id is None for c in commissions)
        assert not any(p.commission_paid for p in payments)
        assert completed == 0

        await db_session.refresh(request)
        assert request.status == PayoutStatus.PENDING.value
        assert request.transaction_id is None

    async def test_stale_version_is_a_conflict(
        self, db_session, affiliate, affiliate_caller, admin_caller, make_commission
    ):
        await make_commission(affiliate, "100.00")
        request = await PayoutRequestService(db_session).request_payout(affiliate_caller, "100.00")

        stale = StaleDataError("UPDATE statement on table 'payouts' expected to update 1 row(s); 0 were matched.")
        with patch.object(CommissionRepository, "flush", AsyncMock(side_effect=stale)):
            with pytest.raises(ConcurrentModificationError):
                await PayoutSettlementService(db_session).settle_requested_payout(
                    admin_caller, request.id, "UTR0006"
                )

        await db_session.refresh(request)
        assert request.status == PayoutStatus.PENDING.value

    async def test_bound_sum_mismatch_is_a_conflict(
        self, db_session, affiliate, affiliate_caller, admin_caller, make_commission
    ):
        await make_commission(affiliate, "100.00")
        request = await PayoutRequestService(db_session).request_payout(affiliate_caller, "100.00")

        with patch.object(CommissionRepository, "sum_for_payout", AsyncMock(return_value=Decimal("90.00"))):
            with pytest.raises(ConcurrentModificationError):
                await PayoutSettlementService(db_session).settle_requested_payout(
                    admin_caller, request.id, "UTR0007"
                )

        pending = await db_session.scalar(
            select(func.count(Commission.id)).where(Commission.status == CommissionStatus.PENDING.value)
        )
        assert pending == 1

    async def test_affiliate_cannot_settle(self, db_session, affiliate_caller):
        with pytest.raises(PermissionDeniedError):
            await PayoutSettlementService(db_session).settle_requested_payout(affiliate_caller, 1, "UTR")

    async def test_notifies_after_commit(
        self, db_session, affiliate, affiliate_caller, admin_caller, make_commission
    ):
        await make_commission(affiliate, "100.00")
        request = await PayoutRequestService(db_session).request_payout(affiliate_caller, "100.00")
        notifier = AsyncMock()

        payout = await PayoutSettlementService(db_session, notifier=notifier).settle_requested_payout(
            admin_caller, request.id, "UTR0008"
        )

        await wait_for_notifications()
        notifier.payout_completed.assert_awaited_once()
        notified_affiliate, notified_payout = notifier.payout_completed.await_args.args
        assert notified_affiliate.id == affiliate.id
        assert notified_payout.id == payout.id


class TestBulkSettle:
    """Paying out everything pending."""

    async def test_pays_all_pending(self, db_session, session_maker, affiliate, admin_caller, make_commission):
        await make_commission(affiliate, "100.00")
        await make_commission(affiliate, "150.50")
        cancelled = await make_commission(affiliate, "999.00")
        cancelled.status = CommissionStatus.CANCELLED.value
        await db_session.commit()

        payout = await PayoutSettlementService(db_session).bulk_settle(
            admin_caller, affiliate.id, "UTR1001", notes="Monthly run"
        )

        assert payout.status == PayoutStatus.COMPLETED.value
        assert payout.amount == Decimal("250.50")
        assert payout.requested_amount is None
        assert payout.processed_by == admin_caller.actor_id

        commissions, _, completed = await fresh_state(session_maker, affiliate.id)
        statuses = sorted(c.status for c in commissions)
        assert statuses == ["CANCELLED", "PAID", "PAID"]
        assert completed == 1

    async def test_nothing_pending(self, db_session, affiliate, admin_caller):
        with pytest.raises(NoPendingCommissionsError):
            await PayoutSettlementService(db_session).bulk_settle(admin_caller, affiliate.id, "UTR1002")

        count = await db_session.scalar(select(func.count(Payout.id)))
        assert count == 0

    async def test_supersedes_open_requests(
        self, db_session, affiliate, affiliate_caller, admin_caller, make_commission
    ):
        await make_commission(affiliate, "300.00")
        request = await PayoutRequestService(db_session).request_payout(affiliate_caller, "200.00")

        payout = await PayoutSettlementService(db_session).bulk_settle(admin_caller, affiliate.id, "UTR1003")

        await db_session.refresh(request)
        assert request.status == PayoutStatus.REJECTED.value
        assert request.rejection_reason == f"Superseded by bulk payout #{payout.id}"
        assert payout.amount == Decimal("300.00")

    async def test_failure_rolls_back(
        self, db_session, session_maker, affiliate, admin_caller, make_commission
    ):
        await make_commission(affiliate, "100.00")
        await make_commission(affiliate, "200.00")
        affiliate_id = affiliate.id

        failure = OperationalError("UPDATE payments", {}, Exception("connection lost"))
        with patch.object(PaymentRepository, "mark_commission_paid", AsyncMock(side_effect=failure)):
            with pytest.raises(TransactionFailureError):
                await PayoutSettlementService(db_session).bulk_settle(admin_caller, affiliate_id, "UTR1004")

        commissions, payments, completed = await fresh_state(session_maker, affiliate_id)
        assert [c.status for c in commissions] == ["PENDING", "PENDING"]
        assert not any(p.commission_paid for p in payments)
        assert completed == 0


class TestApproveAndReject:
    """Payout lifecycle transitions."""

    async def test_approve(self, db_session, affiliate, affiliate_caller, admin_caller, make_commission):
        await make_commission(affiliate, "100.00")
        request = await PayoutRequestService(db_session).request_payout(affiliate_caller, "100.00")
        payout_id = request.id
        service = PayoutSettlementService(db_session)

        payout = await service.approve_payout(admin_caller, payout_id)
        assert payout.status == PayoutStatus.PROCESSING.value
        assert payout.approved_at is not None

        with pytest.raises(PayoutStatusError):
            await service.approve_payout(admin_caller, payout_id)

        # Processing payouts still settle
        settled = await service.settle_requested_payout(admin_caller, payout_id, "UTR2001")
        assert settled.status == PayoutStatus.COMPLETED.value

    async def test_reject_keeps_commissions_pending(
        self, db_session, affiliate, affiliate_caller, admin_caller, make_commission
    ):
        commission = await make_commission(affiliate, "100.00")
        request = await PayoutRequestService(db_session).request_payout(affiliate_caller, "100.00")
        notifier = AsyncMock()

        payout = await PayoutSettlementService(db_session, notifier=notifier).reject_payout(
            admin_caller, request.id, "Bank details do not match PAN"
        )

        assert payout.status == PayoutStatus.REJECTED.value
        assert payout.rejection_reason == "Bank details do not match PAN"
        await db_session.refresh(commission)
        assert commission.status == CommissionStatus.PENDING.value
        await wait_for_notifications()
        notifier.payout_rejected.assert_awaited_once()

        # Balance is free again
        balance = await PayoutRequestService(db_session).get_balance(affiliate_caller)
        assert balance['available'] == Decimal("100.00")

    async def test_reject_requires_reason(self, db_session, admin_caller):
        with pytest.raises(ValidationError):
            await PayoutSettlementService(db_session).reject_payout(admin_caller, 1, "   ")

    async def test_cannot_reject_completed(
        self, db_session, affiliate, affiliate_caller, admin_caller, make_commission
    ):
        await make_commission(affiliate, "100.00")
        request = await PayoutRequestService(db_session).request_payout(affiliate_caller, "100.00")
        service = PayoutSettlementService(db_session)
        await service.settle_requested_payout(admin_caller, request.id, "UTR2002")

        with pytest.raises(PayoutStatusError):
            await service.reject_payout(admin_caller, request.id, "Too late")


class TestPreviewAndDetail:
    """Read-only views."""

    async def test_preview_does_not_write(
        self, db_session, affiliate, affiliate_caller, admin_caller, make_commission
    ):
        c1 = await make_commission(affiliate, "100.00")
        c2 = await make_commission(affiliate, "150.00")
        await make_commission(affiliate, "200.00")
        request = await PayoutRequestService(db_session).request_payout(affiliate_caller, "200.00")

        preview = await PayoutSettlementService(db_session).preview_settlement(request.id)

        assert preview['covered'] is True
        assert preview['settle_amount'] == Decimal("250.00")
        assert preview['excess'] == Decimal("50.00")
        assert preview['pending_total'] == Decimal("450.00")
        assert preview['remaining_pending'] == Decimal("200.00")
        assert [c.id for c in preview['commissions']] == [c1.id, c2.id]

        pending = await db_session.scalar(
            select(func.count(Commission.id)).where(Commission.status == CommissionStatus.PENDING.value)
        )
        assert pending == 3

    async def test_detail_lists_bound_commissions(
        self, db_session, affiliate, admin_caller, make_commission
    ):
        await make_commission(affiliate, "100.00")
        await make_commission(affiliate, "50.00")
        service = PayoutSettlementService(db_session)
        payout = await service.bulk_settle(admin_caller, affiliate.id, "UTR3001")

        detail, commissions = await service.get_payout_detail(payout.id)

        assert detail.id == payout.id
        assert sum(c.commission_amount for c in commissions) == payout.amount

    async def test_list_payouts_by_status(
        self, db_session, affiliate, affiliate_caller, admin_caller, make_commission
    ):
        await make_commission(affiliate, "500.00")
        requests = PayoutRequestService(db_session)
        first = await requests.request_payout(affiliate_caller, "100.00")
        await requests.request_payout(affiliate_caller, "100.00")
        service = PayoutSettlementService(db_session)
        await service.reject_payout(admin_caller, first.id, "Duplicate")

        pending = await service.list_payouts(PayoutStatus.PENDING)
        rejected = await service.list_payouts(PayoutStatus.REJECTED)

        assert len(pending) == 1
        assert [p.id for p in rejected] == [first.id]
        assert len(await service.list_payouts()) == 2


class TestOtherRequestsReservations:
    """Settling one request never strands another open request."""

    async def test_cannot_bind_what_another_request_reserved(
        self, db_session, affiliate, affiliate_caller, admin_caller, make_commission
    ):
        await make_commission(affiliate, "100.00")
        await make_commission(affiliate, "150.00")
        requests = PayoutRequestService(db_session)
        first = await requests.request_payout(affiliate_caller, "120.00")
        second = await requests.request_payout(affiliate_caller, "130.00")
        first_id, second_id = first.id, second.id
        service = PayoutSettlementService(db_session)

        preview = await service.preview_settlement(first_id)
        assert preview['covered'] is False
        assert preview['reserved_by_other_requests'] == Decimal("130.00")

        # Covering 120 binds both commissions (250), eating the other 130
        with pytest.raises(InsufficientFundsError) as exc_info:
            await service.settle_requested_payout(admin_caller, first_id, "UTR4001")

        assert exc_info.value.required == Decimal("250.00")
        assert exc_info.value.available == Decimal("120.00")
        assert exc_info.value.reserved == Decimal("130.00")

        balance = await requests.get_balance(affiliate_caller)
        assert balance == {
            'pending': Decimal("250.00"),
            'reserved': Decimal("250.00"),
            'available': Decimal("0.00"),
        }
        statuses = await db_session.scalars(
            select(Payout.status).where(Payout.id.in_([first_id, second_id]))
        )
        assert set(statuses) == {PayoutStatus.PENDING.value}

    async def test_requests_settle_one_after_another(
        self, db_session, affiliate, affiliate_caller, admin_caller, make_commission
    ):
        await make_commission(affiliate, "100.00")
        await make_commission(affiliate, "150.00")
        await make_commission(affiliate, "200.00")
        requests = PayoutRequestService(db_session)
        first = await requests.request_payout(affiliate_caller, "100.00")
        second = await requests.request_payout(affiliate_caller, "200.00")
        service = PayoutSettlementService(db_session)

        settled_first = await service.settle_requested_payout(admin_caller, first.id, "UTR4002")
        settled_second = await service.settle_requested_payout(admin_caller, second.id, "UTR4003")

        assert settled_first.amount == Decimal("100.00")
        assert settled_second.amount == Decimal("350.00")
        assert settled_second.requested_amount == Decimal("200.00")
        balance = await requests.get_balance(affiliate_caller)
        assert balance['pending'] == Decimal("0.00")
        assert balance['reserved'] == Decimal("0.00")


def recording_lock(order: list, label: str, original, only_locked: bool = False):
    """Wrap a repository read so the lock it takes is recorded in order."""
    async def read(repo, *args, **kwargs):
        if not only_locked or kwargs.get("lock"):
            order.append(label)
        return await original(repo, *args, **kwargs)
    return read


class TestLockOrder:
    """The affiliate row is always locked before payout and commission rows."""

    async def test_settle_locks_affiliate_first(
        self, db_session, affiliate, affiliate_caller, admin_caller, make_commission
    ):
        await make_commission(affiliate, "100.00")
        request = await PayoutRequestService(db_session).request_payout(affiliate_caller, "100.00")
        order = []

        with patch.object(
            UserRepository, "get_for_update",
            recording_lock(order, "affiliate", UserRepository.get_for_update)
        ), patch.object(
            PayoutRepository, "get_for_update",
            recording_lock(order, "payout", PayoutRepository.get_for_update)
        ), patch.object(
            CommissionRepository, "get_pending_for_affiliate",
            recording_lock(order, "commissions", CommissionRepository.get_pending_for_affiliate, only_locked=True)
        ):
            await PayoutSettlementService(db_session).settle_requested_payout(
                admin_caller, request.id, "UTR5001"
            )

        assert order == ["affiliate", "payout", "commissions"]

    async def test_reject_locks_affiliate_first(
        self, db_session, affiliate, affiliate_caller, admin_caller, make_commission
    ):
        await make_commission(affiliate, "100.00")
        request = await PayoutRequestService(db_session).request_payout(affiliate_caller, "100.00")
        order = []

        with patch.object(
            UserRepository, "get_for_update",
            recording_lock(order, "affiliate", UserRepository.get_for_update)
        ), patch.object(
            PayoutRepository, "get_for_update",
            recording_lock(order, "payout", PayoutRepository.get_for_update)
        ):
            await PayoutSettlementService(db_session).reject_payout(admin_caller, request.id, "Wrong IFSC")

        assert order == ["affiliate", "payout"]

    async def test_cancel_commission_locks_affiliate_first(self, db_session, affiliate, make_commission):
        commission = await make_commission(affiliate, "100.00")
        order = []

        with patch.object(
            UserRepository, "get_for_update",
            recording_lock(order, "affiliate", UserRepository.get_for_update)
        ), patch.object(
            CommissionRepository, "get_by_payment_id",
            recording_lock(order, "commission", CommissionRepository.get_by_payment_id, only_locked=True)
        ):
            await CommissionAccrualService(db_session).cancel_commission(commission.payment_id, "Refunded")

        assert order == ["affiliate", "commission"]


class TestBackgroundNotifications:
    """Notifications do not hold up the settlement."""

    async def test_settle_returns_before_delivery(
        self, db_session, affiliate, affiliate_caller, admin_caller, make_commission
    ):
        await make_commission(affiliate, "100.00")
        request = await PayoutRequestService(db_session).request_payout(affiliate_caller, "100.00")
        telegram_reachable = asyncio.Event()
        delivered = []

        async def slow_send(notified_affiliate, payout):
            await telegram_reachable.wait()
            delivered.append(payout.id)
            return True

        notifier = Mock()
        notifier.payout_completed = slow_send

        payout = await PayoutSettlementService(db_session, notifier=notifier).settle_requested_payout(
            admin_caller, request.id, "UTR6001"
        )

        assert payout.status == PayoutStatus.COMPLETED.value
        assert delivered == []

        telegram_reachable.set()
        await wait_for_notifications()
        assert delivered == [payout.id]
