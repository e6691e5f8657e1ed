"""Tests for admin bot payout commands and the bot error middleware."""
from unittest.mock import AsyncMock, Mock

import pytest
from aiogram.types import Message
from sqlalchemy import select

from app.config import settings
from app.handlers.admin_payouts import (
    cmd_admin_bulk_pay,
    cmd_admin_payout_stats,
    cmd_admin_pending,
)
from app.messages import ErrorMessages, PayoutMessages
from app.middlewares.error_handler import ErrorHandlerMiddleware
from core.exceptions import NoPendingCommissionsError, TransactionFailureError
from database.models import CommissionStatus, Payout, PayoutStatus
from services.notifications import wait_for_notifications

ADMIN_TELEGRAM_ID = 5550001


def make_message(text: str, telegram_id: int = ADMIN_TELEGRAM_ID) -> Mock:
    message = Mock(spec=Message)
    message.text = text
    message.from_user = Mock(id=telegram_id)
    message.answer = AsyncMock()
    return message


@pytest.fixture(autouse=True)
def admin_ids(monkeypatch):
    monkeypatch.setattr(settings, "admin_telegram_ids", [ADMIN_TELEGRAM_ID])


class TestAdminAccess:
    async def test_unknown_telegram_user(self, session_maker, admin):
        message = make_message("/admin_pending", telegram_id=42)

        await cmd_admin_pending(message, session_maker)

        message.answer.assert_awaited_once_with(ErrorMessages.ADMIN_ONLY)

    async def test_listed_id_without_admin_record(self, session_maker, student):
        message = make_message("/admin_pending")

        await cmd_admin_pending(message, session_maker)

        message.answer.assert_awaited_once_with(ErrorMessages.ADMIN_ONLY)


class TestPendingAndStats:
    async def test_pending_overview(self, session_maker, admin, affiliate, make_commission):
        await make_commission(affiliate, "120.00")
        await make_commission(affiliate, "80.00")
        message = make_message("/admin_pending")

        await cmd_admin_pending(message, session_maker)

        text = message.answer.await_args.args[0]
        assert "Asha Verma" in text
        assert "₹200.00" in text
        assert "2 commission(s)" in text

    async def test_nothing_pending(self, session_maker, admin):
        message = make_message("/admin_pending")

        await cmd_admin_pending(message, session_maker)

        message.answer.assert_awaited_once_with(PayoutMessages.NO_PENDING)

    async def test_stats(self, session_maker, admin, affiliate, make_commission):
        await make_commission(affiliate, "1250.50")
        message = make_message("/admin_payout_stats")

        await cmd_admin_payout_stats(message, session_maker)

        text = message.answer.await_args.args[0]
        assert "₹1,250.50" in text
        assert "Top affiliates" in text


class TestBulkPay:
    async def test_usage(self, session_maker, admin):
        message = make_message("/admin_bulk_pay 5")

        await cmd_admin_bulk_pay(message, session_maker)

        message.answer.assert_awaited_once_with(PayoutMessages.BULK_PAY_USAGE, parse_mode="HTML")

    async def test_invalid_affiliate_id(self, session_maker, admin):
        message = make_message("/admin_bulk_pay abc UTR1")

        await cmd_admin_bulk_pay(message, session_maker)

        message.answer.assert_awaited_once_with(PayoutMessages.INVALID_AFFILIATE_ID)

    async def test_settles_and_notifies(self, db_session, session_maker, admin, affiliate, make_commission):
        commission = await make_commission(affiliate, "300.00")
        notifier = AsyncMock()
        message = make_message(f"/admin_bulk_pay {affiliate.id} UTR777")

        await cmd_admin_bulk_pay(message, session_maker, notifier)

        text = message.answer.await_args.args[0]
        assert "₹300.00" in text
        assert "1 commission(s)" in text
        await wait_for_notifications()
        notifier.payout_completed.assert_awaited_once()

        payout = (await db_session.execute(select(Payout))).scalar_one()
        assert payout.status == PayoutStatus.COMPLETED.value
        assert payout.transaction_id == "UTR777"
        assert payout.processed_by == admin.id
        await db_session.refresh(commission)
        assert commission.status == CommissionStatus.PAID.value
        assert commission.payout_id == payout.id

    async def test_nothing_to_pay_propagates(self, session_maker, admin, affiliate):
        message = make_message(f"/admin_bulk_pay {affiliate.id} UTR778")

        with pytest.raises(NoPendingCommissionsError):
            await cmd_admin_bulk_pay(message, session_maker)


class TestErrorHandlerMiddleware:
    async def test_ledger_error_is_shown(self):
        message = make_message("/admin_bulk_pay 1 UTR")
        handler = AsyncMock(side_effect=NoPendingCommissionsError(1))

        result = await ErrorHandlerMiddleware()(handler, message, {})

        assert result is None
        message.answer.assert_awaited_once_with(ErrorMessages.ledger_error("No pending commissions found"))

    async def test_store_failure(self):
        message = make_message("/admin_bulk_pay 1 UTR")
        handler = AsyncMock(side_effect=TransactionFailureError())

        await ErrorHandlerMiddleware()(handler, message, {})

        message.answer.assert_awaited_once_with(ErrorMessages.SERVICE_UNAVAILABLE)

    async def test_unexpected_error(self):
        message = make_message("/admin_pending")
        handler = AsyncMock(side_effect=KeyError("boom"))

        await ErrorHandlerMiddleware()(handler, message, {})

        message.answer.assert_awaited_once_with(ErrorMessages.GENERIC_ERROR)

    async def test_passes_result_through(self):
        message = make_message("/admin_pending")
        handler = AsyncMock(return_value="ok")

        assert await ErrorHandlerMiddleware()(handler, message, {}) == "ok"
        message.answer.assert_not_awaited()
