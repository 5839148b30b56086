from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from lubix.bot import handlers
from lubix.core.rate_limit import LimitResult
from lubix.services import intents as it


class DummyBot:
    def __init__(self) -> None:
        self.actions: list[int] = []

    async def send_chat_action(self, chat_id: int, action) -> None:
        self.actions.append(chat_id)


class DummyMessage:
    def __init__(self, text: str, chat_type: str = "private", chat_id: int = 1, user_id: int = 1) -> None:
        self.text = text
        self.bot = DummyBot()
        self.chat = SimpleNamespace(id=chat_id, type=chat_type)
        self.from_user = SimpleNamespace(id=user_id, first_name="Dina")
        self.answers: list[tuple[str, object]] = []

    async def answer(self, text: str, reply_markup=None, **kwargs) -> None:
        self.answers.append((text, reply_markup))


class DummyEngine:
    def __init__(self, intent) -> None:
        self.intent = intent
        self.events: list[it.InboundEvent] = []

    async def handle(self, event: it.InboundEvent):
        self.events.append(event)
        return self.intent


class DummyLimiter:
    def __init__(self, allowed: bool = True) -> None:
        self.allowed = allowed

    async def check(self, chat_id: int) -> LimitResult:
        return LimitResult(allowed=self.allowed, remaining=0, reset_seconds=30)


class DummyCache:
    def __init__(self) -> None:
        self.seen: set[str] = set()

    async def set_if_absent(self, key: str, ttl: int) -> bool:
        if key in self.seen:
            return False
        self.seen.add(key)
        return True


class DummyCallback:
    def __init__(self, data: str, message: DummyMessage, callback_id: str = "cb-1") -> None:
        self.id = callback_id
        self.data = data
        self.message = message
        self.from_user = message.from_user
        self.answers: list[str | None] = []

    async def answer(self, text: str | None = None, **kwargs) -> None:
        self.answers.append(text)


def _install(intent, allowed: bool = True) -> DummyEngine:
    engine = DummyEngine(intent)
    handlers.init_handlers(
        SimpleNamespace(
            engine=engine,
            rate_limiter=DummyLimiter(allowed),
            cache=DummyCache(),
            settings=SimpleNamespace(usd_idr_rate=16_000),
        )
    )
    return engine


@pytest.mark.asyncio
async def test_text_is_forwarded_and_rendered() -> None:
    engine = _install(it.Help())
    message = DummyMessage("/help")
    await handlers.route_text(message)
    assert engine.events == [it.InboundEvent(chat_id=1, user_id=1, text="/help", first_name="Dina")]
    assert len(message.answers) == 1


@pytest.mark.asyncio
async def test_hint_is_silent_in_groups() -> None:
    _install(it.Hint())
    group = DummyMessage("gm all", chat_type="supergroup", chat_id=-100)
    await handlers.route_text(group)
    assert group.answers == []

    private = DummyMessage("gm")
    await handlers.route_text(private)
    assert len(private.answers) == 1


@pytest.mark.asyncio
async def test_rate_limited_chat_skips_the_engine() -> None:
    engine = _install(it.Help(), allowed=False)
    message = DummyMessage("/help")
    await handlers.route_text(message)
    assert engine.events == []
    assert "rate limit" in message.answers[0][0]


@pytest.mark.asyncio
async def test_dropped_event_sends_nothing() -> None:
    _install(None)
    message = DummyMessage("btc")
    await handlers.route_text(message)
    assert message.answers == []


@pytest.mark.asyncio
async def test_reply_is_sent_after_a_slow_engine_call() -> None:
    class SlowEngine(DummyEngine):
        async def handle(self, event: it.InboundEvent):
            await asyncio.sleep(0.01)
            return await super().handle(event)

    _install(it.Help())
    engine = SlowEngine(it.Help())
    handlers._require_hub().engine = engine
    message = DummyMessage("/help")
    await handlers.route_text(message)
    assert len(engine.events) == 1
    assert len(message.answers) == 1
    assert message.bot.actions == [1]


@pytest.mark.asyncio
async def test_button_press_is_rate_limited() -> None:
    engine = _install(it.Help(), allowed=False)
    callback = DummyCallback("menu_help", DummyMessage(""))
    await handlers.button_callback(callback)
    assert engine.events == []
    assert callback.answers and "rate limit" in callback.answers[0]
    assert callback.message.answers == []


@pytest.mark.asyncio
async def test_repeated_button_press_is_ignored() -> None:
    engine = _install(it.Help(), allowed=False)
    first = DummyCallback("menu_help", DummyMessage(""))
    second = DummyCallback("menu_help", DummyMessage(""))
    await handlers.button_callback(first)
    await handlers.button_callback(second)
    assert second.answers == [None]
    assert engine.events == []
