"""Admin bot commands for affiliate commissions and payouts."""
import logging

from aiogram import Router
from aiogram.types import Message
from aiogram.filters import Command
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.messages import ErrorMessages, PayoutMessages
from core.context import CallerContext, ROLE_ADMIN
from database.repositories import CommissionRepository, UserRepository
from services.notifications import PayoutNotifier
from services.payout_aggregator import PayoutAggregator
from services.payout_settlement import PayoutSettlementService

logger = logging.getLogger(__name__)

router = Router(name="admin_payouts")


async def resolve_admin(message: Message, session: AsyncSession) -> CallerContext | None:
    """Caller context for a configured admin, or None after replying."""
    telegram_id = message.from_user.id if message.from_user else None
    if telegram_id is None or telegram_id not in settings.admin_telegram_ids:
        await message.answer(ErrorMessages.ADMIN_ONLY)
        return None

    admin = await UserRepository(session).get_admin_by_telegram_id(telegram_id)
    if not admin:
        logger.warning(f"Admin telegram id {telegram_id} has no ADMIN user record")
        await message.answer(ErrorMessages.ADMIN_ONLY)
        return None
    return CallerContext(actor_id=admin.id, role=ROLE_ADMIN)


@router.message(Command("admin_pending"))
async def cmd_admin_pending(message: Message, session_maker: async_sessionmaker):
    """Show pending commission balances, largest first."""
    async with session_maker() as session:
        if not await resolve_admin(message, session):
            return
        rows = await PayoutAggregator(session).pending_balance_by_affiliate()

    if not rows:
        await message.answer(PayoutMessages.NO_PENDING)
        return
    await message.answer(PayoutMessages.pending_overview(rows), parse_mode="HTML")


@router.message(Command("admin_payout_stats"))
async def cmd_admin_payout_stats(message: Message, session_maker: async_sessionmaker):
    """Show commission and payout statistics."""
    async with session_maker() as session:
        if not await resolve_admin(message, session):
            return
        stats = await PayoutAggregator(session).commission_stats()

    await message.answer(PayoutMessages.stats(stats), parse_mode="HTML")


@router.message(Command("admin_bulk_pay"))
async def cmd_admin_bulk_pay(
    message: Message,
    session_maker: async_sessionmaker,
    notifier: PayoutNotifier | None = None
):
    """Settle everything pending for one affiliate: /admin_bulk_pay <affiliate_id> <transaction_id>"""
    parts = (message.text or "").split()
    if len(parts) != 3:
        await message.answer(PayoutMessages.BULK_PAY_USAGE, parse_mode="HTML")
        return

    try:
        affiliate_id = int(parts[1])
    except ValueError:
        await message.answer(PayoutMessages.INVALID_AFFILIATE_ID)
        return
    transaction_id = parts[2]

    async with session_maker() as session:
        caller = await resolve_admin(message, session)
        if not caller:
            return

        payout = await PayoutSettlementService(session, notifier=notifier).bulk_settle(
            caller,
            affiliate_id,
            transaction_id,
            notes="Settled from admin bot"
        )
        affiliate = await UserRepository(session).get_by_id(affiliate_id)
        commission_count = len(await CommissionRepository(session).list_for_payout(payout.id))

    await message.answer(
        PayoutMessages.bulk_paid(
            payout.id,
            affiliate.name if affiliate else str(affiliate_id),
            payout.amount,
            commission_count
        ),
        parse_mode="HTML"
    )
