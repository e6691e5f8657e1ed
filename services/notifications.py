"""Affiliate payout notifications over Telegram."""
import asyncio
import logging
from typing import Awaitable, Optional, Set

from aiogram import Bot

from app.messages import PayoutMessages
from database.models import Payout, User

logger = logging.getLogger(__name__)

# Strong references keep scheduled sends alive until they finish
_pending_sends: Set[asyncio.Task] = set()


def send_in_background(send: Awaitable) -> asyncio.Task:
    """Schedule a notification without holding up the caller."""
    task = asyncio.ensure_future(send)
    _pending_sends.add(task)
    task.add_done_callback(_pending_sends.discard)
    return task


async def wait_for_notifications() -> None:
    """Wait for scheduled notifications, e.g. before closing the bot session."""
    if _pending_sends:
        await asyncio.gather(*list(_pending_sends), return_exceptions=True)


class PayoutNotifier:
    """
    Tells affiliates about settled and rejected payouts.

    Sending is best effort: scheduled with send_in_background only after the
    ledger transaction has committed, and a delivery failure is logged,
    never raised.
    """

    def __init__(self, bot: Optional[Bot]):
        self.bot = bot

    async def _send(self, affiliate: User, text: str, payout_id: int) -> bool:
        if self.bot is None or not affiliate.telegram_chat_id:
            return False
        try:
            await self.bot.send_message(
                affiliate.telegram_chat_id,
                text,
                parse_mode="HTML"
            )
            return True
        except Exception as e:
            logger.error(
                f"Failed to notify affiliate {affiliate.id} about payout {payout_id}: {e}",
                exc_info=True,
                extra={"affiliate_id": affiliate.id, "payout_id": payout_id}
            )
            return False

    async def payout_completed(self, affiliate: User, payout: Payout) -> bool:
        return await self._send(
            affiliate,
            PayoutMessages.payout_completed(
                payout.id, payout.amount, payout.transaction_id, payout.processed_at
            ),
            payout.id
        )

    async def payout_rejected(self, affiliate: User, payout: Payout) -> bool:
        return await self._send(
            affiliate,
            PayoutMessages.payout_rejected(
                payout.id,
                payout.requested_amount or payout.amount,
                payout.rejection_reason or "-"
            ),
            payout.id
        )
