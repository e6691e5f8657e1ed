"""
Middlewares package initialization.

- caller.py: Caller identity for the JSON API (aiohttp)
- errors.py: Ledger exceptions to JSON responses (aiohttp)
- error_handler.py: Centralized error handling for the admin bot (aiogram)
"""

from aiogram import Dispatcher


def setup_middlewares(dp: Dispatcher):
    """
    Setup bot middlewares.

    Args:
        dp: Aiogram Dispatcher instance
    """
    from .error_handler import ErrorHandlerMiddleware

    dp.message.middleware(ErrorHandlerMiddleware())
    dp.callback_query.middleware(ErrorHandlerMiddleware())


__all__ = ['setup_middlewares']
