from __future__ import annotations

from lubix.adapters.normalize import equity_from_syariah
from lubix.adapters.symbols import normalize_stock_code
from lubix.core.errors import QuoteNotFoundError
from lubix.core.http import ResilientHTTPClient, UpstreamStatusError
from lubix.core.models import EquityQuote


class SyariahAdapter:
    """IDX emiten detail with ISSI screening data."""

    def __init__(self, http: ResilientHTTPClient, base_url: str) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")

    async def get_emiten(self, code: str) -> EquityQuote:
        code = normalize_stock_code(code)
        if not code.isalnum():
            raise QuoteNotFoundError(code)
        try:
            payload = await self.http.get_json(f"{self.base_url}/emiten/{code}")
        except UpstreamStatusError as exc:
            if exc.is_client_error:
                raise QuoteNotFoundError(code) from exc
            raise
        return equity_from_syariah(payload, code)
