from __future__ import annotations

from lubix.adapters.normalize import momentum_from_alt_ticker, sentiment_from_fng
from lubix.adapters.symbols import alternative_slug_for, clean_query
from lubix.core.errors import QuoteNotFoundError
from lubix.core.http import ResilientHTTPClient, UpstreamStatusError
from lubix.core.models import MomentumReading, SentimentReading


class AlternativeMeAdapter:
    """Fear & Greed index and the v2 ticker used for momentum pulses."""

    def __init__(self, http: ResilientHTTPClient, base_url: str) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")

    async def get_fear_greed(self) -> SentimentReading:
        payload = await self.http.get_json(f"{self.base_url}/fng/")
        return sentiment_from_fng(payload)

    async def get_momentum(self, query: str) -> MomentumReading:
        query = clean_query(query)
        slug = alternative_slug_for(query)
        if not slug or "/" in slug:
            raise QuoteNotFoundError(query)
        try:
            payload = await self.http.get_json(f"{self.base_url}/v2/ticker/{slug}/")
        except UpstreamStatusError as exc:
            if exc.is_client_error:
                raise QuoteNotFoundError(query) from exc
            raise
        return momentum_from_alt_ticker(payload, query.upper())
