from __future__ import annotations

import asyncio

import pytest

from lubix.core.errors import QuoteNotFoundError, UpstreamError
from lubix.core.models import ConversationState, CryptoQuote, SentimentReading, SessionKey
from lubix.services import intents as it
from lubix.services.engine import ConversationEngine, parse_command, parse_direct_message, parse_gift
from lubix.services.portfolio import PortfolioService
from lubix.services.session_store import SessionStore

ADMIN = 999


def _quote(symbol: str, price: float = 100.0) -> CryptoQuote:
    return CryptoQuote(symbol, symbol, price, None, 1.0, None, None, None)


class DummyGateway:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.prices = {"BTC": 50_000.0}
        self.release: asyncio.Event | None = None

    async def fetch_crypto(self, symbol: str) -> CryptoQuote:
        self.calls.append(("crypto", symbol))
        if self.release is not None:
            await self.release.wait()
        base = symbol.strip().upper()
        if base not in self.prices:
            raise QuoteNotFoundError(base)
        return _quote(base, self.prices[base])

    async def fetch_equity(self, code: str):
        self.calls.append(("equity", code))
        raise UpstreamError("down", query=code)

    async def fetch_onchain_token(self, query: str):
        self.calls.append(("onchain", query))
        raise QuoteNotFoundError(query)

    async def fetch_momentum(self, query: str):
        self.calls.append(("momentum", query))
        raise QuoteNotFoundError(query)

    async def fetch_sentiment(self) -> SentimentReading:
        self.calls.append(("sentiment", ""))
        return SentimentReading(score=64, classification="Greed")

    async def fetch_multi_crypto_snapshot(self, symbols: list[str]) -> dict[str, CryptoQuote]:
        self.calls.append(("pulse", ",".join(symbols)))
        return {"BTC": _quote("BTC")}

    async def get_crypto_price(self, symbol: str) -> float:
        return (await self.fetch_crypto(symbol)).price_usd


class DummySender:
    def __init__(self, failing: set[int] | None = None) -> None:
        self.failing = failing or set()
        self.sent: list[tuple[int, str]] = []

    async def __call__(self, chat_id: int, text: str) -> None:
        await asyncio.sleep(0)
        if chat_id in self.failing:
            raise RuntimeError("Forbidden: bot was blocked by the user")
        self.sent.append((chat_id, text))


def _engine(sender: DummySender | None = None):
    store = SessionStore()
    gateway = DummyGateway()
    portfolio = PortfolioService(store, gateway, order_notional=1_000)
    engine = ConversationEngine(
        store=store,
        gateway=gateway,
        portfolio=portfolio,
        sender=sender or DummySender(),
        admin_chat_id=ADMIN,
        pulse_symbols=["BTC", "ETH"],
        broadcast_concurrency=2,
    )
    return engine, store, gateway


def text(chat_id: int, body: str, user_id: int | None = None) -> it.InboundEvent:
    return it.InboundEvent(chat_id=chat_id, user_id=user_id if user_id is not None else chat_id, text=body)


def tap(chat_id: int, data: str, user_id: int | None = None) -> it.InboundEvent:
    return it.InboundEvent(chat_id=chat_id, user_id=user_id if user_id is not None else chat_id, callback_data=data)


def test_parsers() -> None:
    assert parse_command("/Kripto@LubixBot btc") == "kripto"
    assert parse_gift("42 1,500") == (42, 1500.0)
    assert parse_direct_message("42| hi there ") == (42, "hi there")


@pytest.mark.asyncio
async def test_crypto_prompt_then_lookup_returns_to_idle() -> None:
    engine, store, _ = _engine()
    intro = await engine.handle(text(1, "/kripto"))
    assert intro == it.ModuleIntro("crypto")
    assert store.get_state(SessionKey(1, 1)) is ConversationState.AWAITING_CRYPTO

    result = await engine.handle(text(1, "btc"))
    assert isinstance(result, it.ShowQuote)
    assert result.quote.symbol == "BTC"
    assert store.get_state(SessionKey(1, 1)) is ConversationState.IDLE


@pytest.mark.asyncio
async def test_lookup_failure_is_an_error_intent_and_idle() -> None:
    engine, store, _ = _engine()
    await engine.handle(tap(1, "menu_sharia"))
    result = await engine.handle(text(1, "TLKM"))
    assert isinstance(result, it.ShowLookupError)
    assert isinstance(result.error, UpstreamError)
    assert store.get_state(SessionKey(1, 1)) is ConversationState.IDLE


@pytest.mark.asyncio
async def test_free_text_while_idle_is_a_hint() -> None:
    engine, _, gateway = _engine()
    assert await engine.handle(text(1, "btc")) == it.Hint()
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_unknown_command_and_button_are_ignored() -> None:
    engine, _, _ = _engine()
    assert await engine.handle(text(1, "/nope")) is None
    assert await engine.handle(tap(1, "menu_nope")) is None


@pytest.mark.asyncio
async def test_new_command_replaces_pending_prompt() -> None:
    engine, store, gateway = _engine()
    await engine.handle(text(1, "/kripto"))
    await engine.handle(text(1, "/saham"))
    assert store.get_state(SessionKey(1, 1)) is ConversationState.AWAITING_STOCK
    await engine.handle(text(1, "BBCA"))
    assert gateway.calls == [("equity", "BBCA")]


@pytest.mark.asyncio
async def test_command_during_lookup_is_not_clobbered() -> None:
    engine, store, gateway = _engine()
    gateway.release = asyncio.Event()
    await engine.handle(text(1, "/kripto"))
    lookup = asyncio.create_task(engine.handle(text(1, "btc")))
    await asyncio.sleep(0)
    await engine.handle(text(1, "/solana"))
    gateway.release.set()
    assert isinstance(await lookup, it.ShowQuote)
    assert store.get_state(SessionKey(1, 1)) is ConversationState.AWAITING_SOLANA


@pytest.mark.asyncio
async def test_sessions_are_per_user_in_groups() -> None:
    engine, store, _ = _engine()
    await engine.handle(text(-100, "/kripto", user_id=1))
    assert await engine.handle(text(-100, "btc", user_id=2)) == it.Hint()
    assert store.get_state(SessionKey(-100, 1)) is ConversationState.AWAITING_CRYPTO


@pytest.mark.asyncio
async def test_banned_user_is_dropped_before_gateway() -> None:
    engine, store, gateway = _engine()
    await engine.handle(text(5, "/kripto"))
    store.ban(5)
    assert await engine.handle(text(5, "btc")) is None
    assert gateway.calls == []
    assert store.get_state(SessionKey(5, 5)) is ConversationState.AWAITING_CRYPTO


@pytest.mark.asyncio
async def test_banned_user_is_dropped_in_groups_too() -> None:
    engine, store, _ = _engine()
    store.ban(5)
    assert await engine.handle(text(-100, "/start", user_id=5)) is None


@pytest.mark.asyncio
async def test_panel_is_admin_only() -> None:
    engine, _, _ = _engine()
    assert await engine.handle(text(1, "/panel")) == it.Denied()
    panel = await engine.handle(text(ADMIN, "/panel"))
    assert isinstance(panel, it.AdminPanel)
    assert panel.stats["users"] == 2


@pytest.mark.asyncio
async def test_admin_prompts_are_denied_for_others() -> None:
    engine, store, _ = _engine()
    assert await engine.handle(tap(1, "admin_ban")) == it.Denied()
    assert store.get_state(SessionKey(1, 1)) is ConversationState.IDLE

    store.set_state(SessionKey(1, 1), ConversationState.AWAITING_ADMIN_BAN)
    assert await engine.handle(text(1, "2")) == it.Denied()
    assert not store.is_banned(2)


@pytest.mark.asyncio
async def test_admin_ban_flow_drops_the_target() -> None:
    engine, store, _ = _engine()
    assert await engine.handle(tap(ADMIN, "admin_ban")) == it.AdminPrompt("admin_ban")
    result = await engine.handle(text(ADMIN, "42"))
    assert result == it.AdminResult(action="ban", ok=True, detail="42")
    assert store.is_banned(42)
    assert await engine.handle(text(42, "/start")) is None

    await engine.handle(tap(ADMIN, "admin_unban"))
    await engine.handle(text(ADMIN, "42"))
    assert isinstance(await engine.handle(text(42, "/start")), it.Welcome)


@pytest.mark.asyncio
async def test_malformed_admin_id_is_rejected() -> None:
    engine, store, _ = _engine()
    await engine.handle(tap(ADMIN, "admin_ban"))
    result = await engine.handle(text(ADMIN, "not-a-number"))
    assert isinstance(result, it.AdminResult)
    assert result.ok is False
    assert store.stats()["banned"] == 0
    assert store.get_state(SessionKey(ADMIN, ADMIN)) is ConversationState.IDLE


@pytest.mark.asyncio
async def test_gift_grants_premium_and_cash() -> None:
    engine, store, _ = _engine()
    assert await engine.handle(text(7, "/realbuy")) == it.Denied("premium_required")
    await engine.handle(tap(ADMIN, "admin_gift"))
    result = await engine.handle(text(ADMIN, "7 2500"))
    assert result.ok is True
    assert store.is_premium(7)
    assert await store.with_portfolio(7, lambda p: p.cash_balance) == pytest.approx(12_500)
    assert await engine.handle(text(7, "/realbuy")) == it.ModuleIntro("realbuy")


@pytest.mark.asyncio
async def test_direct_message_reports_delivery() -> None:
    sender = DummySender(failing={13})
    engine, _, _ = _engine(sender)
    await engine.handle(tap(ADMIN, "admin_dm"))
    assert (await engine.handle(text(ADMIN, "12|hello"))).ok is True
    await engine.handle(tap(ADMIN, "admin_dm"))
    assert (await engine.handle(text(ADMIN, "13|hello"))).ok is False
    await engine.handle(tap(ADMIN, "admin_dm"))
    assert (await engine.handle(text(ADMIN, "no pipe here"))).ok is False
    assert sender.sent == [(12, "hello")]


@pytest.mark.asyncio
async def test_broadcast_isolates_failures_and_skips_banned() -> None:
    sender = DummySender(failing={2})
    engine, store, _ = _engine(sender)
    for chat_id in (1, 2, 3, 4):
        await engine.handle(text(chat_id, "/start"))
    store.ban(4)

    await engine.handle(tap(ADMIN, "admin_broadcast"))
    report = await engine.handle(text(ADMIN, "maintenance at 22:00"))
    assert report == it.BroadcastReport(recipients=4, delivered=3, failed=1)
    assert sorted(chat_id for chat_id, _ in sender.sent) == [1, 3, ADMIN]


@pytest.mark.asyncio
async def test_watchlist_keeps_insertion_order() -> None:
    engine, _, _ = _engine()
    for symbol in ("btc", "eth", "btc"):
        await engine.handle(tap(1, "add_watchlist"))
        await engine.handle(text(1, symbol))
    result = await engine.handle(tap(1, "menu_watchlist"))
    assert result == it.ShowWatchlist(symbols=["BTC", "ETH", "BTC"])


@pytest.mark.asyncio
async def test_buy_sell_through_prompts() -> None:
    engine, _, _ = _engine()
    await engine.handle(tap(1, "menu_buy"))
    bought = await engine.handle(text(1, "btc"))
    assert isinstance(bought, it.ShowTrade)
    assert bought.receipt.side == "buy"

    await engine.handle(tap(1, "menu_sell"))
    missing = await engine.handle(text(1, "eth"))
    assert isinstance(missing, it.ShowTradeError)

    portfolio = await engine.handle(tap(1, "menu_portfolio"))
    assert isinstance(portfolio, it.ShowPortfolio)
    assert portfolio.snapshot.cash_balance == pytest.approx(9_000)


@pytest.mark.asyncio
async def test_sentiment_buttons() -> None:
    engine, _, gateway = _engine()
    assert await engine.handle(text(1, "/sentiment")) == it.ModuleIntro("sentiment")
    fng = await engine.handle(tap(1, "menu_fng"))
    assert fng == it.ShowQuote(SentimentReading(64, "Greed"))
    pulse = await engine.handle(tap(1, "menu_pulse"))
    assert isinstance(pulse, it.ShowSnapshot)
    assert pulse.requested == ["BTC", "ETH"]
    assert ("pulse", "BTC,ETH") in gateway.calls


@pytest.mark.asyncio
async def test_start_marks_first_visit() -> None:
    engine, _, _ = _engine()
    first = await engine.handle(it.InboundEvent(chat_id=1, user_id=1, text="/start", first_name="Dina"))
    second = await engine.handle(text(1, "/start"))
    assert first == it.Welcome(first_name="Dina", is_new=True)
    assert second.is_new is False
