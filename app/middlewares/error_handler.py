"""
Error handler middleware for the admin bot.

Ledger rejections are shown to the admin as-is; anything else is logged and
answered with a generic message.
"""

import logging
from aiogram import BaseMiddleware
from aiogram.types import Message, CallbackQuery

from app.messages import ErrorMessages
from core.exceptions import LedgerError, TransactionFailureError

logger = logging.getLogger(__name__)


class ErrorHandlerMiddleware(BaseMiddleware):
    """Handle all errors gracefully."""

    async def __call__(self, handler, event, data):
        """
        Catch and handle all exceptions.

        Args:
            handler: Next handler in chain
            event: Incoming event
            data: Additional data

        Returns:
            Handler result or None on error
        """
        try:
            return await handler(event, data)
        except LedgerError as e:
            if isinstance(e, TransactionFailureError):
                text = ErrorMessages.SERVICE_UNAVAILABLE
            else:
                text = ErrorMessages.ledger_error(e.message)
            await self._reply(event, text)
            return None
        except Exception as e:
            user = getattr(event, "from_user", None)
            logger.error(
                f"Unhandled error: {e}",
                exc_info=True,
                extra={
                    "actor_id": user.id if user else None,
                    "event_type": type(event).__name__
                }
            )
            await self._reply(event, ErrorMessages.GENERIC_ERROR)
            return None

    @staticmethod
    async def _reply(event, text: str) -> None:
        try:
            if isinstance(event, Message):
                await event.answer(text)
            elif isinstance(event, CallbackQuery):
                await event.answer(ErrorMessages.GENERIC_ERROR_SHORT, show_alert=True)
        except Exception as send_error:
            logger.error(f"Failed to send error message: {send_error}")
