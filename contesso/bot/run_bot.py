# bot/run_bot.py
import asyncio
import logging

from aiogram.client.session.aiohttp import AiohttpSession
from aiogram.client.telegram import TelegramAPIServer
from aiogram import Bot, Dispatcher
from aiogram.enums import ParseMode
from aiogram.client.default import DefaultBotProperties

from contesso.config import Settings
from contesso.bot.middlewares.user import UserMiddleware
from contesso.bot.routers.core import router as CoreRouter
from contesso.bot.routers.contests import router as ContestRouter
from contesso.bot.routers.bookmarks import router as BookmarkRouter
from contesso.bot.routers.admin import router as AdminRouter
from contesso.bot.services.contest import ContestService
from contesso.bot.services.playlist import PlaylistService
from contesso.bot.services.session import SessionService
from contesso.db.database import DataBase
from contesso.utils import scheduler as jobs


def setup_dispatcher(dp: Dispatcher) -> None:
    dp.update.outer_middleware(UserMiddleware())

def setup_routers(dp: Dispatcher) -> None:
    dp.include_router(CoreRouter)
    dp.include_router(ContestRouter)
    dp.include_router(BookmarkRouter)
    dp.include_router(AdminRouter)

def build_session(settings: Settings) -> AiohttpSession:
    if settings.telegram_api_url:
        return AiohttpSession(api=TelegramAPIServer.from_base(settings.telegram_api_url, is_local=True))
    return AiohttpSession()

async def main() -> None:
    settings = Settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    BOT_TOKEN = settings.bot_token

    if not BOT_TOKEN:
        raise RuntimeError("Bot token is not set.")

    bot = Bot(
        BOT_TOKEN,
        session=build_session(settings),
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )

    dp = Dispatcher()
    setup_dispatcher(dp)
    setup_routers(dp)

    await DataBase().create_all()

    scheduler = jobs.build_scheduler(ContestService().refresh, PlaylistService().sync_all, settings)
    jobs.start(scheduler)
    try:
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        jobs.shutdown(scheduler)
        SessionService().close()
        await bot.session.close()


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
