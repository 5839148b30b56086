"""One entry point per upstream capability.

Every fetch returns a normalized record or raises a ``QuoteLookupError``
subclass. Nothing here touches session state, so callers can await these
freely before entering a store mutation.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from typing import Awaitable, Protocol, TypeVar

from lubix.adapters.alternative import AlternativeMeAdapter
from lubix.adapters.coinmarketcap import CoinMarketCapAdapter
from lubix.adapters.dexscreener import DexScreenerAdapter
from lubix.adapters.syariah import SyariahAdapter
from lubix.core.errors import QuoteLookupError, UpstreamError
from lubix.core.models import (
    CryptoQuote,
    EquityQuote,
    MomentumReading,
    OnChainTokenQuote,
    SentimentReading,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class JsonCache(Protocol):
    async def get_json(self, key: str): ...

    async def set_json(self, key: str, value, ttl: int) -> None: ...


class ProviderGateway:
    def __init__(
        self,
        syariah: SyariahAdapter,
        cmc: CoinMarketCapAdapter,
        dexscreener: DexScreenerAdapter,
        alternative: AlternativeMeAdapter,
        cache: JsonCache,
        deadline_sec: float = 30.0,
        fear_greed_ttl: int = 3600,
        pulse_ttl: int = 60,
    ) -> None:
        self.syariah = syariah
        self.cmc = cmc
        self.dexscreener = dexscreener
        self.alternative = alternative
        self.cache = cache
        self.deadline_sec = deadline_sec
        self.fear_greed_ttl = fear_greed_ttl
        self.pulse_ttl = pulse_ttl

    async def _bounded(self, provider: str, query: str, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.deadline_sec)
        except asyncio.TimeoutError as exc:
            raise UpstreamError(f"{provider} timed out", query=query) from exc
        except QuoteLookupError as exc:
            exc.query = exc.query or query
            logger.info(
                "lookup_failed",
                extra={"event": "lookup_failed", "provider": provider, "symbol": query, "error": type(exc).__name__},
            )
            raise

    async def fetch_equity(self, code: str) -> EquityQuote:
        return await self._bounded("syariah", code, self.syariah.get_emiten(code))

    async def fetch_crypto(self, symbol: str) -> CryptoQuote:
        return await self._bounded("coinmarketcap", symbol, self.cmc.get_quote(symbol))

    async def get_crypto_price(self, symbol: str) -> float:
        """Live USD price for trades. Never served from cache."""
        quote = await self.fetch_crypto(symbol)
        return quote.price_usd

    async def fetch_onchain_token(self, query: str) -> OnChainTokenQuote:
        return await self._bounded("dexscreener", query, self.dexscreener.find_token(query))

    async def fetch_momentum(self, query: str) -> MomentumReading:
        return await self._bounded("alternative", query, self.alternative.get_momentum(query))

    async def fetch_sentiment(self) -> SentimentReading:
        cached = await self.cache.get_json("fng")
        if isinstance(cached, dict):
            try:
                return SentimentReading(**cached)
            except TypeError:
                pass
        reading = await self._bounded("alternative", "fng", self.alternative.get_fear_greed())
        await self.cache.set_json("fng", asdict(reading), ttl=self.fear_greed_ttl)
        return reading

    async def fetch_multi_crypto_snapshot(self, symbols: list[str]) -> dict[str, CryptoQuote]:
        key = "pulse:" + ",".join(s.upper() for s in symbols)
        cached = await self.cache.get_json(key)
        if isinstance(cached, dict):
            try:
                return {sym: CryptoQuote(**row) for sym, row in cached.items()}
            except TypeError:
                pass
        quotes = await self._bounded("coinmarketcap", ",".join(symbols), self.cmc.get_quotes(symbols))
        if quotes:
            await self.cache.set_json(key, {sym: asdict(q) for sym, q in quotes.items()}, ttl=self.pulse_ttl)
        return quotes
