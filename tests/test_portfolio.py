from __future__ import annotations

import asyncio

import pytest

from lubix.core.errors import (
    InsufficientFundsError,
    NoPositionError,
    QuoteNotFoundError,
    QuoteUnavailableError,
    UpstreamError,
)
from lubix.services.portfolio import PortfolioService
from lubix.services.session_store import SessionStore


class DummyPrices:
    def __init__(self, prices: dict[str, float]) -> None:
        self.prices = prices
        self.calls: list[str] = []

    async def get_crypto_price(self, symbol: str) -> float:
        self.calls.append(symbol)
        await asyncio.sleep(0)
        price = self.prices.get(symbol)
        if price is None:
            raise QuoteNotFoundError(symbol)
        if isinstance(price, Exception):
            raise price
        return price


def _service(prices: dict, starting_balance: float = 10_000, notional: float = 1_000):
    store = SessionStore(starting_balance=starting_balance)
    feed = DummyPrices(prices)
    return store, feed, PortfolioService(store, feed, order_notional=notional)


@pytest.mark.asyncio
async def test_buy_debits_notional_and_opens_position() -> None:
    store, _, service = _service({"BTC": 50_000})
    receipt = await service.buy(1, "btc")
    assert receipt.symbol == "BTC"
    assert receipt.quantity == pytest.approx(0.02)
    assert receipt.cash_balance == pytest.approx(9_000)
    holding = await store.with_portfolio(1, lambda p: p.holdings["BTC"])
    assert holding.average_cost == pytest.approx(50_000)


@pytest.mark.asyncio
async def test_second_buy_averages_cost() -> None:
    _, feed, service = _service({"ETH": 2_000})
    await service.buy(1, "ETH")
    feed.prices["ETH"] = 4_000
    receipt = await service.buy(1, "ETH")
    # 0.5 + 0.25 units for $2,000
    assert receipt.average_cost == pytest.approx(2_000 / 0.75)


@pytest.mark.asyncio
async def test_insufficient_funds_leaves_portfolio_unchanged() -> None:
    store, _, service = _service({"SOL": 150}, starting_balance=1_500)
    await service.buy(1, "SOL")
    before = await store.with_portfolio(1, lambda p: p.copy())
    with pytest.raises(InsufficientFundsError) as exc_info:
        await service.buy(1, "SOL")
    after = await store.with_portfolio(1, lambda p: p.copy())
    assert after == before
    assert exc_info.value.cash_balance == pytest.approx(500)


@pytest.mark.asyncio
async def test_sell_closes_position_and_realizes_pnl() -> None:
    store, feed, service = _service({"BTC": 50_000})
    await service.buy(1, "BTC")
    feed.prices["BTC"] = 60_000
    receipt = await service.sell(1, "btc")
    assert receipt.notional == pytest.approx(1_200)
    assert receipt.realized_pnl == pytest.approx(200)
    assert receipt.cash_balance == pytest.approx(10_200)
    assert await store.with_portfolio(1, lambda p: dict(p.holdings)) == {}
    with pytest.raises(NoPositionError):
        await service.sell(1, "BTC")


@pytest.mark.asyncio
async def test_sell_without_position_never_fetches_price() -> None:
    _, feed, service = _service({"BTC": 50_000})
    with pytest.raises(NoPositionError):
        await service.sell(1, "BTC")
    assert feed.calls == []


@pytest.mark.asyncio
async def test_unusable_price_blocks_the_trade() -> None:
    store, _, service = _service({"BAD": 0.0, "DOWN": UpstreamError("down")})
    with pytest.raises(QuoteUnavailableError):
        await service.buy(1, "BAD")
    with pytest.raises(QuoteUnavailableError):
        await service.buy(1, "DOWN")
    with pytest.raises(QuoteUnavailableError):
        await service.buy(1, "MISSING")
    assert await store.with_portfolio(1, lambda p: p.cash_balance) == 10_000


@pytest.mark.asyncio
async def test_cash_plus_cost_basis_is_conserved() -> None:
    store, feed, service = _service({"BTC": 40_000, "ETH": 2_500})
    await service.buy(1, "BTC")
    await service.buy(1, "ETH")
    await service.buy(1, "BTC")

    def invariant(p) -> float:
        return p.cash_balance + sum(h.cost_basis for h in p.holdings.values())

    assert await store.with_portfolio(1, invariant) == pytest.approx(10_000)
    feed.prices["ETH"] = 2_000
    receipt = await service.sell(1, "ETH")
    assert await store.with_portfolio(1, invariant) == pytest.approx(10_000 + receipt.realized_pnl)


@pytest.mark.asyncio
async def test_concurrent_buys_do_not_lose_updates() -> None:
    store, _, service = _service({"BTC": 25_000})
    await asyncio.gather(*(service.buy(1, "BTC") for _ in range(8)))
    cash, qty = await store.with_portfolio(1, lambda p: (p.cash_balance, p.holdings["BTC"].quantity))
    assert cash == pytest.approx(2_000)
    assert qty == pytest.approx(8 * 1_000 / 25_000)


@pytest.mark.asyncio
async def test_concurrent_buys_stop_at_zero_cash() -> None:
    store, _, service = _service({"BTC": 25_000}, starting_balance=3_000)
    results = await asyncio.gather(*(service.buy(1, "BTC") for _ in range(5)), return_exceptions=True)
    assert sum(1 for r in results if isinstance(r, InsufficientFundsError)) == 2
    assert await store.with_portfolio(1, lambda p: p.cash_balance) == pytest.approx(0)


@pytest.mark.asyncio
async def test_valuation_falls_back_to_cost_basis() -> None:
    _, feed, service = _service({"BTC": 50_000, "ETH": 2_000})
    await service.buy(1, "BTC")
    await service.buy(1, "ETH")
    feed.prices["BTC"] = 55_000
    del feed.prices["ETH"]

    snapshot = await service.valuation(1)
    by_symbol = {p.symbol: p for p in snapshot.positions}
    assert [p.symbol for p in snapshot.positions] == ["BTC", "ETH"]
    assert by_symbol["BTC"].unrealized_pnl == pytest.approx(100)
    assert by_symbol["ETH"].price is None
    assert by_symbol["ETH"].market_value == pytest.approx(1_000)
    assert snapshot.total_value == pytest.approx(8_000 + 1_100 + 1_000)


@pytest.mark.asyncio
async def test_credit_adds_cash() -> None:
    _, _, service = _service({})
    assert await service.credit(3, 250) == pytest.approx(10_250)
