"""Conversation engine: one inbound event in, at most one render intent out.

Dispatch is table driven. Commands and buttons resolve to an *action*; an
action either opens a prompt (sets an awaiting state), or runs an immediate
handler and leaves the session idle. Free text is routed by the session's
pending state through ``AWAITING_HANDLERS``. Adding a module means adding a
row to these tables.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Awaitable, Callable

from lubix.core.errors import QuoteLookupError, TradeError, ValidationError
from lubix.core.models import ConversationState as S
from lubix.core.models import SessionKey
from lubix.services.gateway import ProviderGateway
from lubix.services.intents import (
    AdminPanel,
    AdminPrompt,
    AdminResult,
    BroadcastReport,
    Denied,
    Help,
    Hint,
    InboundEvent,
    Intent,
    ModuleIntro,
    ShowLookupError,
    ShowPortfolio,
    ShowQuote,
    ShowSnapshot,
    ShowTrade,
    ShowTradeError,
    ShowWatchlist,
    Welcome,
)
from lubix.services.portfolio import PortfolioService
from lubix.services.session_store import SessionStore

logger = logging.getLogger(__name__)

Sender = Callable[[int, str], Awaitable[None]]

COMMANDS = {
    "start": "home",
    "help": "help",
    "kripto": "crypto",
    "saham": "stock",
    "solana": "solana",
    "sentiment": "sentiment",
    "sim": "sim",
    "panel": "panel",
    "realbuy": "realbuy",
}

BUTTONS = {
    "back_to_main": "home",
    "menu_help": "help",
    "menu_crypto": "crypto",
    "menu_sharia": "stock",
    "menu_solana": "solana",
    "menu_sentiment": "sentiment",
    "menu_fng": "fear_greed",
    "menu_pulse": "pulse",
    "menu_momentum": "momentum",
    "menu_sim": "sim",
    "menu_buy": "buy",
    "menu_sell": "sell",
    "menu_portfolio": "portfolio",
    "menu_watchlist": "watchlist",
    "add_watchlist": "add_watchlist",
    "admin_stats": "panel",
    "admin_broadcast": "admin_broadcast",
    "admin_ban": "admin_ban",
    "admin_unban": "admin_unban",
    "admin_gift": "admin_gift",
    "admin_dm": "admin_dm",
    "admin_add_group": "admin_add_group",
    "admin_remove_group": "admin_remove_group",
}

# action -> state that waits for the follow-up text
PROMPTS = {
    "crypto": S.AWAITING_CRYPTO,
    "stock": S.AWAITING_STOCK,
    "solana": S.AWAITING_SOLANA,
    "momentum": S.AWAITING_MOMENTUM,
    "buy": S.AWAITING_BUY_TICKER,
    "sell": S.AWAITING_SELL_TICKER,
    "add_watchlist": S.AWAITING_ADD_WATCHLIST,
}

ADMIN_PROMPTS = {
    "admin_broadcast": S.AWAITING_ADMIN_BROADCAST,
    "admin_ban": S.AWAITING_ADMIN_BAN,
    "admin_unban": S.AWAITING_ADMIN_UNBAN,
    "admin_gift": S.AWAITING_ADMIN_GIFT,
    "admin_dm": S.AWAITING_ADMIN_DM,
    "admin_add_group": S.AWAITING_ADMIN_ADD_GROUP,
    "admin_remove_group": S.AWAITING_ADMIN_REMOVE_GROUP,
}

# action -> handler that answers immediately; the session ends idle
ACTIONS = {
    "home": "_on_home",
    "help": "_on_help",
    "sentiment": "_on_sentiment_menu",
    "sim": "_on_sim",
    "panel": "_on_panel",
    "realbuy": "_on_realbuy",
    "fear_greed": "_on_fear_greed",
    "pulse": "_on_pulse",
    "portfolio": "_on_portfolio",
    "watchlist": "_on_watchlist",
}

AWAITING_HANDLERS = {
    S.AWAITING_CRYPTO: "_reply_crypto",
    S.AWAITING_STOCK: "_reply_stock",
    S.AWAITING_SOLANA: "_reply_solana",
    S.AWAITING_MOMENTUM: "_reply_momentum",
    S.AWAITING_BUY_TICKER: "_reply_buy",
    S.AWAITING_SELL_TICKER: "_reply_sell",
    S.AWAITING_ADD_WATCHLIST: "_reply_add_watchlist",
    S.AWAITING_ADMIN_BROADCAST: "_admin_broadcast",
    S.AWAITING_ADMIN_BAN: "_admin_ban",
    S.AWAITING_ADMIN_UNBAN: "_admin_unban",
    S.AWAITING_ADMIN_GIFT: "_admin_gift",
    S.AWAITING_ADMIN_DM: "_admin_dm",
    S.AWAITING_ADMIN_ADD_GROUP: "_admin_add_group",
    S.AWAITING_ADMIN_REMOVE_GROUP: "_admin_remove_group",
}


def parse_command(text: str) -> str:
    """'/Kripto@LubixBot btc' -> 'kripto'"""
    head = text.strip().split(maxsplit=1)[0]
    return head.lstrip("/").split("@", 1)[0].lower()


def parse_chat_id(raw: str) -> int:
    token = raw.strip()
    try:
        return int(token)
    except ValueError as exc:
        raise ValidationError(f"not a chat id: {token[:32]!r}") from exc


def parse_gift(raw: str) -> tuple[int, float]:
    parts = raw.split()
    if len(parts) != 2:
        raise ValidationError("expected '<chat_id> <amount>'")
    chat_id = parse_chat_id(parts[0])
    try:
        amount = float(parts[1].replace(",", ""))
    except ValueError as exc:
        raise ValidationError(f"not an amount: {parts[1][:32]!r}") from exc
    if not math.isfinite(amount) or amount <= 0:
        raise ValidationError("amount must be positive")
    return chat_id, amount


def parse_direct_message(raw: str) -> tuple[int, str]:
    if "|" not in raw:
        raise ValidationError("expected '<chat_id>|<message>'")
    target, body = raw.split("|", 1)
    body = body.strip()
    if not body:
        raise ValidationError("message is empty")
    return parse_chat_id(target), body


class ConversationEngine:
    def __init__(
        self,
        store: SessionStore,
        gateway: ProviderGateway,
        portfolio: PortfolioService,
        sender: Sender,
        admin_chat_id: int,
        pulse_symbols: list[str],
        broadcast_concurrency: int = 10,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.portfolio = portfolio
        self.sender = sender
        self.admin_chat_id = admin_chat_id
        self.pulse_symbols = pulse_symbols
        self.broadcast_concurrency = max(1, broadcast_concurrency)

    def is_admin(self, event: InboundEvent) -> bool:
        return bool(self.admin_chat_id) and event.user_id == self.admin_chat_id

    def _is_dropped(self, event: InboundEvent) -> bool:
        if self.is_admin(event):
            return False
        return self.store.is_banned(event.chat_id) or self.store.is_banned(event.user_id)

    async def handle(self, event: InboundEvent) -> Intent | None:
        if self._is_dropped(event):
            logger.info(
                "banned_event_dropped",
                extra={"event": "banned_event_dropped", "chat_id": event.chat_id, "user_id": event.user_id},
            )
            return None

        key = SessionKey(event.chat_id, event.user_id)
        is_new = self.store.register_user(event.chat_id)

        if event.is_callback:
            action = BUTTONS.get(event.callback_data or "")
            return await self._enter(action, event, key, is_new) if action else None

        text = (event.text or "").strip()
        if not text:
            return None
        if text.startswith("/"):
            action = COMMANDS.get(parse_command(text))
            return await self._enter(action, event, key, is_new) if action else None

        state = self.store.consume_state(key)
        handler = AWAITING_HANDLERS.get(state)
        if handler is None:
            return Hint()
        if state.is_admin_only and not self.is_admin(event):
            logger.warning(
                "admin_reply_rejected",
                extra={"event": "admin_reply_rejected", "chat_id": event.chat_id, "user_id": event.user_id, "state": state.value},
            )
            return Denied()
        return await getattr(self, handler)(event, text)

    async def _enter(self, action: str, event: InboundEvent, key: SessionKey, is_new: bool) -> Intent:
        if action in PROMPTS:
            self.store.set_state(key, PROMPTS[action])
            return ModuleIntro(action)
        if action in ADMIN_PROMPTS:
            if not self.is_admin(event):
                return Denied()
            self.store.set_state(key, ADMIN_PROMPTS[action])
            return AdminPrompt(action)
        self.store.set_state(key, S.IDLE)
        return await getattr(self, ACTIONS[action])(event, is_new)

    # --- immediate actions ---

    async def _on_home(self, event: InboundEvent, is_new: bool) -> Intent:
        return Welcome(first_name=event.first_name, is_new=is_new)

    async def _on_help(self, event: InboundEvent, is_new: bool) -> Intent:
        return Help()

    async def _on_sentiment_menu(self, event: InboundEvent, is_new: bool) -> Intent:
        return ModuleIntro("sentiment")

    async def _on_sim(self, event: InboundEvent, is_new: bool) -> Intent:
        return ModuleIntro("sim")

    async def _on_realbuy(self, event: InboundEvent, is_new: bool) -> Intent:
        if self.is_admin(event) or self.store.is_premium(event.chat_id, event.user_id):
            return ModuleIntro("realbuy")
        return Denied("premium_required")

    async def _on_panel(self, event: InboundEvent, is_new: bool) -> Intent:
        if not self.is_admin(event):
            logger.warning(
                "panel_denied",
                extra={"event": "panel_denied", "chat_id": event.chat_id, "user_id": event.user_id},
            )
            return Denied()
        return AdminPanel(stats=self.store.stats())

    async def _on_fear_greed(self, event: InboundEvent, is_new: bool) -> Intent:
        try:
            return ShowQuote(await self.gateway.fetch_sentiment())
        except QuoteLookupError as exc:
            return ShowLookupError(exc)

    async def _on_pulse(self, event: InboundEvent, is_new: bool) -> Intent:
        try:
            quotes = await self.gateway.fetch_multi_crypto_snapshot(self.pulse_symbols)
        except QuoteLookupError as exc:
            return ShowLookupError(exc)
        return ShowSnapshot(quotes=quotes, requested=list(self.pulse_symbols))

    async def _on_portfolio(self, event: InboundEvent, is_new: bool) -> Intent:
        snapshot = await self.portfolio.valuation(event.chat_id)
        return ShowPortfolio(snapshot=snapshot, order_notional=self.portfolio.order_notional)

    async def _on_watchlist(self, event: InboundEvent, is_new: bool) -> Intent:
        symbols = await self.store.with_watchlist(event.chat_id, list)
        return ShowWatchlist(symbols=symbols)

    # --- replies to a pending prompt; the state is already back to IDLE ---

    async def _lookup(self, fetch: Callable[[str], Awaitable], text: str) -> Intent:
        try:
            return ShowQuote(await fetch(text))
        except QuoteLookupError as exc:
            return ShowLookupError(exc)

    async def _reply_crypto(self, event: InboundEvent, text: str) -> Intent:
        return await self._lookup(self.gateway.fetch_crypto, text)

    async def _reply_stock(self, event: InboundEvent, text: str) -> Intent:
        return await self._lookup(self.gateway.fetch_equity, text)

    async def _reply_solana(self, event: InboundEvent, text: str) -> Intent:
        return await self._lookup(self.gateway.fetch_onchain_token, text)

    async def _reply_momentum(self, event: InboundEvent, text: str) -> Intent:
        return await self._lookup(self.gateway.fetch_momentum, text)

    async def _reply_buy(self, event: InboundEvent, text: str) -> Intent:
        try:
            return ShowTrade(await self.portfolio.buy(event.chat_id, text))
        except TradeError as exc:
            return ShowTradeError(exc)

    async def _reply_sell(self, event: InboundEvent, text: str) -> Intent:
        try:
            return ShowTrade(await self.portfolio.sell(event.chat_id, text))
        except TradeError as exc:
            return ShowTradeError(exc)

    async def _reply_add_watchlist(self, event: InboundEvent, text: str) -> Intent:
        symbol = text.upper()

        def _append(items: list[str]) -> list[str]:
            items.append(symbol)
            return list(items)

        symbols = await self.store.with_watchlist(event.chat_id, _append)
        return ShowWatchlist(symbols=symbols, added=symbol)

    # --- admin replies; the caller has verified the sender ---

    def _admin_log(self, action: str, ok: bool, detail: str) -> None:
        extra = {"event": f"admin_{action}", "detail": detail}
        if ok:
            logger.info("admin_action", extra=extra)
        else:
            logger.warning("admin_action_rejected", extra=extra)

    async def _admin_single_id(self, action: str, text: str, apply: Callable[[int], bool]) -> Intent:
        try:
            target = parse_chat_id(text)
        except ValidationError as exc:
            self._admin_log(action, False, str(exc))
            return AdminResult(action=action, ok=False, detail=str(exc))
        changed = apply(target)
        self._admin_log(action, True, str(target))
        return AdminResult(action=action, ok=True, detail=str(target) if changed else f"{target} (unchanged)")

    async def _admin_ban(self, event: InboundEvent, text: str) -> Intent:
        return await self._admin_single_id("ban", text, self.store.ban)

    async def _admin_unban(self, event: InboundEvent, text: str) -> Intent:
        return await self._admin_single_id("unban", text, self.store.unban)

    async def _admin_add_group(self, event: InboundEvent, text: str) -> Intent:
        return await self._admin_single_id("add_group", text, self.store.add_premium_group)

    async def _admin_remove_group(self, event: InboundEvent, text: str) -> Intent:
        return await self._admin_single_id("remove_group", text, self.store.remove_premium_group)

    async def _admin_gift(self, event: InboundEvent, text: str) -> Intent:
        try:
            target, amount = parse_gift(text)
        except ValidationError as exc:
            self._admin_log("gift", False, str(exc))
            return AdminResult(action="gift", ok=False, detail=str(exc))
        self.store.grant_premium(target)
        balance = await self.portfolio.credit(target, amount)
        self._admin_log("gift", True, str(target))
        return AdminResult(action="gift", ok=True, detail=f"{target} +${amount:,.2f} (balance ${balance:,.2f})")

    async def _admin_dm(self, event: InboundEvent, text: str) -> Intent:
        try:
            target, body = parse_direct_message(text)
        except ValidationError as exc:
            self._admin_log("dm", False, str(exc))
            return AdminResult(action="dm", ok=False, detail=str(exc))
        try:
            await self.sender(target, body)
        except Exception as exc:  # noqa: BLE001
            logger.warning("admin_dm_failed", extra={"event": "admin_dm_failed", "chat_id": target, "error": str(exc)})
            return AdminResult(action="dm", ok=False, detail=f"{target}: {exc}")
        self._admin_log("dm", True, str(target))
        return AdminResult(action="dm", ok=True, detail=str(target))

    async def _admin_broadcast(self, event: InboundEvent, text: str) -> Intent:
        recipients = [cid for cid in self.store.all_user_ids() if not self.store.is_banned(cid)]
        semaphore = asyncio.Semaphore(self.broadcast_concurrency)

        async def _deliver(chat_id: int) -> bool:
            async with semaphore:
                try:
                    await self.sender(chat_id, text)
                    return True
                except Exception as exc:  # noqa: BLE001
                    logger.warning(
                        "broadcast_send_failed",
                        extra={"event": "broadcast_send_failed", "chat_id": chat_id, "error": str(exc)},
                    )
                    return False

        results = await asyncio.gather(*(_deliver(cid) for cid in recipients))
        delivered = sum(1 for ok in results if ok)
        logger.info(
            "broadcast_done",
            extra={"event": "broadcast_done", "chat_id": event.chat_id, "detail": f"{delivered}/{len(recipients)}"},
        )
        return BroadcastReport(recipients=len(recipients), delivered=delivered, failed=len(recipients) - delivered)
