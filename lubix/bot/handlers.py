from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from datetime import datetime, timezone

from aiogram import F, Router
from aiogram.enums import ChatAction
from aiogram.exceptions import TelegramAPIError
from aiogram.types import CallbackQuery, Message

from lubix.bot.templates import render
from lubix.core.container import ServiceHub
from lubix.services.intents import Hint, InboundEvent

router = Router()
_hub: ServiceHub | None = None
logger = logging.getLogger(__name__)


def init_handlers(hub: ServiceHub) -> None:
    global _hub
    _hub = hub


def _require_hub() -> ServiceHub:
    if _hub is None:
        raise RuntimeError("Handlers are not initialized")
    return _hub


async def _typing_loop(bot, chat_id: int, stop: asyncio.Event) -> None:
    while not stop.is_set():
        with suppress(Exception):
            await bot.send_chat_action(chat_id=chat_id, action=ChatAction.TYPING)
        try:
            await asyncio.wait_for(stop.wait(), timeout=4.0)
        except asyncio.TimeoutError:
            pass


async def _check_req_limit(chat_id: int) -> bool:
    hub = _require_hub()
    try:
        return (await hub.rate_limiter.check(chat_id)).allowed
    except Exception:  # noqa: BLE001
        logger.exception("rate_limit_check_error", extra={"event": "rate_limit_check_error", "chat_id": chat_id})
        return True


async def _acquire_callback_once(callback: CallbackQuery, ttl: int = 60 * 30) -> bool:
    hub = _require_hub()
    cb_id = (callback.id or "").strip()
    if not cb_id:
        return True
    return await hub.cache.set_if_absent(f"seen:callback:{cb_id}", ttl=ttl)


async def _dispatch(message: Message, event: InboundEvent) -> None:
    hub = _require_hub()
    start_ts = datetime.now(timezone.utc)
    stop = asyncio.Event()
    typing_task = asyncio.create_task(_typing_loop(message.bot, message.chat.id, stop))
    try:
        intent = await hub.engine.handle(event)
    except Exception:  # noqa: BLE001
        logger.exception(
            "dispatch_failed",
            extra={"event": "dispatch_failed", "chat_id": event.chat_id, "user_id": event.user_id},
        )
        await message.answer("⚠️ Something went wrong. Tap /start to reset.")
        return
    finally:
        # stop wakes the loop and it exits on its own
        stop.set()
        with suppress(Exception):
            await typing_task

    if intent is None:
        return
    # idle chatter in groups is not ours to answer
    if isinstance(intent, Hint) and message.chat.type in ("group", "supergroup"):
        return

    text, markup = render(intent, hub.settings.usd_idr_rate)
    try:
        await message.answer(text, reply_markup=markup, parse_mode="HTML", disable_web_page_preview=True)
    except TelegramAPIError as exc:
        logger.warning("reply_failed", extra={"event": "reply_failed", "chat_id": event.chat_id, "error": str(exc)})
    latency_ms = int((datetime.now(timezone.utc) - start_ts).total_seconds() * 1000)
    logger.info(
        "event_handled",
        extra={"event": type(intent).__name__, "chat_id": event.chat_id, "user_id": event.user_id, "latency_ms": latency_ms},
    )


@router.callback_query(F.data)
async def button_callback(callback: CallbackQuery) -> None:
    if not await _acquire_callback_once(callback):
        with suppress(Exception):
            await callback.answer()
        return
    message = callback.message
    if message is not None and not await _check_req_limit(message.chat.id):
        await callback.answer("⏳ Slow down, rate limit hit.")
        return
    if not isinstance(message, Message):
        # inaccessible (too old) message; nothing to reply to
        await callback.answer()
        return
    await callback.answer()
    event = InboundEvent(
        chat_id=message.chat.id,
        user_id=callback.from_user.id,
        callback_data=callback.data,
        first_name=callback.from_user.first_name or "",
    )
    await _dispatch(message, event)


@router.message(F.text)
async def route_text(message: Message) -> None:
    chat_id = message.chat.id
    user = message.from_user
    if user is None:
        return
    if not await _check_req_limit(chat_id):
        await message.answer("⏳ Slow down, rate limit hit. It resets within a minute.")
        return
    event = InboundEvent(
        chat_id=chat_id,
        user_id=user.id,
        text=message.text,
        first_name=user.first_name or "",
    )
    await _dispatch(message, event)
