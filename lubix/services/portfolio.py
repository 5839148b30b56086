# Paper trading: fixed-notional buys, full-position sells, marked-to-market valuation
from __future__ import annotations

import asyncio
import logging
import math
from typing import Protocol

from lubix.adapters.symbols import normalize_symbol
from lubix.core.errors import (
    InsufficientFundsError,
    NoPositionError,
    QuoteLookupError,
    QuoteUnavailableError,
)
from lubix.core.models import (
    Holding,
    Portfolio,
    PortfolioSnapshot,
    PositionValue,
    TradeReceipt,
)
from lubix.services.session_store import SessionStore

logger = logging.getLogger(__name__)


class PriceSource(Protocol):
    async def get_crypto_price(self, symbol: str) -> float: ...


class PortfolioService:
    def __init__(self, store: SessionStore, prices: PriceSource, order_notional: float = 1_000.0) -> None:
        self.store = store
        self.prices = prices
        self.order_notional = order_notional

    async def _live_price(self, symbol: str) -> float:
        try:
            price = float(await self.prices.get_crypto_price(symbol))
        except QuoteLookupError as exc:
            raise QuoteUnavailableError(str(exc), symbol=symbol) from exc
        if not math.isfinite(price) or price <= 0:
            raise QuoteUnavailableError(f"Unusable price {price!r}", symbol=symbol)
        return price

    async def buy(self, chat_id: int, symbol: str) -> TradeReceipt:
        symbol = normalize_symbol(symbol).base
        price = await self._live_price(symbol)
        notional = self.order_notional

        def _apply(p: Portfolio) -> TradeReceipt:
            if p.cash_balance < notional:
                raise InsufficientFundsError(symbol, p.cash_balance, notional)
            quantity = notional / price
            holding = p.holdings.get(symbol)
            if holding is None:
                holding = Holding(symbol=symbol, quantity=quantity, average_cost=price)
                p.holdings[symbol] = holding
            else:
                total_quantity = holding.quantity + quantity
                holding.average_cost = (holding.cost_basis + notional) / total_quantity
                holding.quantity = total_quantity
            p.cash_balance -= notional
            return TradeReceipt(
                side="buy",
                symbol=symbol,
                quantity=quantity,
                price=price,
                notional=notional,
                cash_balance=p.cash_balance,
                average_cost=holding.average_cost,
            )

        receipt = await self.store.with_portfolio(chat_id, _apply)
        logger.info(
            "paper_buy",
            extra={"event": "paper_buy", "chat_id": chat_id, "symbol": symbol},
        )
        return receipt

    async def sell(self, chat_id: int, symbol: str) -> TradeReceipt:
        symbol = normalize_symbol(symbol).base
        held = await self.store.with_portfolio(chat_id, lambda p: symbol in p.holdings)
        if not held:
            raise NoPositionError(symbol)
        price = await self._live_price(symbol)

        def _apply(p: Portfolio) -> TradeReceipt:
            # re-checked: another sell may have closed it while we fetched the price
            holding = p.holdings.pop(symbol, None)
            if holding is None:
                raise NoPositionError(symbol)
            proceeds = holding.quantity * price
            p.cash_balance += proceeds
            return TradeReceipt(
                side="sell",
                symbol=symbol,
                quantity=holding.quantity,
                price=price,
                notional=proceeds,
                cash_balance=p.cash_balance,
                average_cost=holding.average_cost,
                realized_pnl=proceeds - holding.cost_basis,
            )

        receipt = await self.store.with_portfolio(chat_id, _apply)
        logger.info(
            "paper_sell",
            extra={"event": "paper_sell", "chat_id": chat_id, "symbol": symbol},
        )
        return receipt

    async def valuation(self, chat_id: int) -> PortfolioSnapshot:
        portfolio = await self.store.with_portfolio(chat_id, lambda p: p.copy())
        holdings = sorted(portfolio.holdings.values(), key=lambda h: h.symbol)

        async def _price_or_none(symbol: str) -> float | None:
            try:
                return await self._live_price(symbol)
            except QuoteUnavailableError:
                logger.warning("valuation_price_missing", extra={"event": "valuation_price_missing", "symbol": symbol})
                return None

        prices = await asyncio.gather(*(_price_or_none(h.symbol) for h in holdings))

        positions = []
        for h, price in zip(holdings, prices):
            market_value = h.quantity * price if price is not None else h.cost_basis
            positions.append(
                PositionValue(
                    symbol=h.symbol,
                    quantity=h.quantity,
                    average_cost=h.average_cost,
                    price=price,
                    market_value=market_value,
                    unrealized_pnl=market_value - h.cost_basis,
                )
            )
        return PortfolioSnapshot(
            cash_balance=portfolio.cash_balance,
            positions=positions,
            total_value=portfolio.cash_balance + sum(p.market_value for p in positions),
        )

    async def credit(self, chat_id: int, amount: float) -> float:
        """Admin gift of virtual cash. Returns the new balance."""

        def _apply(p: Portfolio) -> float:
            p.cash_balance += amount
            return p.cash_balance

        return await self.store.with_portfolio(chat_id, _apply)
