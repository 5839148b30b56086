from __future__ import annotations

from lubix.adapters.normalize import onchain_from_dexscreener
from lubix.adapters.symbols import clean_query, looks_like_contract_address
from lubix.core.errors import QuoteNotFoundError
from lubix.core.http import ResilientHTTPClient, UpstreamStatusError
from lubix.core.models import OnChainTokenQuote


class DexScreenerAdapter:
    def __init__(self, http: ResilientHTTPClient, base_url: str) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")

    async def find_token(self, query: str) -> OnChainTokenQuote:
        query = clean_query(query)
        if not query:
            raise QuoteNotFoundError(query)
        try:
            if looks_like_contract_address(query):
                payload = await self.http.get_json(f"{self.base_url}/latest/dex/tokens/{query}")
            else:
                payload = await self.http.get_json(f"{self.base_url}/latest/dex/search", params={"q": query})
        except UpstreamStatusError as exc:
            if exc.is_client_error:
                raise QuoteNotFoundError(query) from exc
            raise
        return onchain_from_dexscreener(payload, query)
