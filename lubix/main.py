from __future__ import annotations

import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.types import BotCommand

from lubix.bot.handlers import init_handlers, router
from lubix.core.config import get_settings
from lubix.core.container import build_hub
from lubix.core.logging import setup_logging

logger = logging.getLogger(__name__)

BOT_COMMANDS = [
    BotCommand(command="start", description="🏠 Dashboard"),
    BotCommand(command="kripto", description="🪙 Crypto price"),
    BotCommand(command="saham", description="🕌 Sharia stock screener"),
    BotCommand(command="solana", description="⚡ Solana token"),
    BotCommand(command="sentiment", description="🌡 Fear & Greed / pulse"),
    BotCommand(command="sim", description="📈 Paper trading"),
    BotCommand(command="realbuy", description="💠 Real buy (premium)"),
    BotCommand(command="help", description="❓ Help"),
]


async def run() -> None:
    settings = get_settings()
    setup_logging(settings.log_level)
    if not settings.bot_token:
        raise SystemExit("BOT_TOKEN is not set")

    bot = Bot(token=settings.bot_token)
    hub = build_hub(settings, bot)
    init_handlers(hub)

    dp = Dispatcher()
    dp.include_router(router)
    try:
        await bot.set_my_commands(BOT_COMMANDS)
    except Exception as exc:  # noqa: BLE001
        logger.warning("set_commands_failed", extra={"event": "set_commands_failed", "error": str(exc)})

    logger.info("bot_started", extra={"event": "bot_started"})
    try:
        await dp.start_polling(bot)
    finally:
        await hub.close()
        await bot.session.close()


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
