from __future__ import annotations

from lubix.adapters.normalize import crypto_from_cmc, snapshot_from_cmc
from lubix.adapters.symbols import normalize_symbol
from lubix.core.errors import QuoteNotFoundError
from lubix.core.http import ResilientHTTPClient, UpstreamStatusError
from lubix.core.models import CryptoQuote


class CoinMarketCapAdapter:
    def __init__(self, http: ResilientHTTPClient, base_url: str, api_key: str) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

    async def _quotes_latest(self, symbols: str) -> dict:
        try:
            return await self.http.get_json(
                f"{self.base_url}/v1/cryptocurrency/quotes/latest",
                params={"symbol": symbols, "convert": "USD"},
                headers={"X-CMC_PRO_API_KEY": self.api_key, "Accept": "application/json"},
            )
        except UpstreamStatusError as exc:
            # CMC answers 400 for unknown symbols; 401/403 are a key problem
            if exc.status_code == 400:
                raise QuoteNotFoundError(symbols) from exc
            raise

    async def get_quote(self, symbol: str) -> CryptoQuote:
        base = normalize_symbol(symbol).base
        if not base.isalnum():
            raise QuoteNotFoundError(base)
        payload = await self._quotes_latest(base)
        return crypto_from_cmc(payload, base)

    async def get_quotes(self, symbols: list[str]) -> dict[str, CryptoQuote]:
        bases = [normalize_symbol(s).base for s in symbols]
        try:
            payload = await self._quotes_latest(",".join(bases))
        except QuoteNotFoundError:
            return {}
        return snapshot_from_cmc(payload, bases)
