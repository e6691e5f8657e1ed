"""Service entrypoint: JSON API (aiohttp) + admin bot polling (aiogram).

Note: For production, prefer webhook + HTTPS for the bot. Polling is fine for
development and for low-traffic admin use.
"""
import asyncio
import logging
from typing import Optional

from aiohttp import web
from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.config import settings
from app.handlers import admin_payouts_router, setup_routes
from app.logging_config import setup_logging
from app.middlewares import setup_middlewares
from app.middlewares.caller import caller_context_middleware
from app.middlewares.errors import error_middleware
from database.base import async_session_maker, close_db, init_db
from services.notifications import PayoutNotifier, wait_for_notifications

logger = logging.getLogger(__name__)


def build_app(
    session_maker: Optional[async_sessionmaker] = None,
    notifier: Optional[PayoutNotifier] = None
) -> web.Application:
    """JSON API application. Error mapping wraps the caller check."""
    app = web.Application(middlewares=[error_middleware, caller_context_middleware])
    app['session_maker'] = session_maker or async_session_maker
    app['notifier'] = notifier
    setup_routes(app)
    return app


def build_dispatcher(session_maker: async_sessionmaker, notifier: Optional[PayoutNotifier]) -> Dispatcher:
    """Admin bot dispatcher; handlers receive session_maker and notifier."""
    dp = Dispatcher(session_maker=session_maker, notifier=notifier)
    setup_middlewares(dp)
    dp.include_router(admin_payouts_router)
    return dp


async def main():
    setup_logging()

    if settings.environment == "development":
        # Elsewhere the schema comes from Alembic migrations
        await init_db()

    bot = None
    if settings.bot_token:
        bot = Bot(
            token=settings.bot_token,
            default=DefaultBotProperties(parse_mode=ParseMode.HTML)
        )
    notifier = PayoutNotifier(bot)

    app = build_app(async_session_maker, notifier)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, settings.api_host, settings.api_port)
    await site.start()
    logger.info(f"JSON API listening on {settings.api_host}:{settings.api_port}")

    try:
        if bot:
            dp = build_dispatcher(async_session_maker, notifier)
            logger.info("Admin bot polling started")
            await dp.start_polling(bot)
        else:
            logger.warning("BOT_TOKEN not set: admin bot and notifications disabled")
            await asyncio.Event().wait()
    finally:
        await runner.cleanup()
        await wait_for_notifications()
        if bot:
            await bot.session.close()
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
