"""Map each provider's raw JSON onto the normalized quote records.

One function per upstream schema. Functions are pure: they take the decoded
payload plus the user's query and either return a record or raise
``QuoteNotFoundError`` / ``MalformedResponseError``. Optional upstream fields
become ``None``; nothing missing is ever turned into a zero.
"""

from __future__ import annotations

import math
from typing import Any, Iterable

from lubix.core.errors import MalformedResponseError, QuoteNotFoundError
from lubix.core.models import (
    CryptoQuote,
    EquityQuote,
    MomentumReading,
    OnChainTokenQuote,
    SentimentReading,
)


def _opt_float(value: Any) -> float | None:
    """Number-ish upstream value -> float, or None when absent/unusable.

    NaN and infinities are never a real quote, so they fail the whole record.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(out):
        raise MalformedResponseError(f"Non-finite number {value!r}")
    return out


def _req_float(value: Any, field: str, query: str) -> float:
    out = _opt_float(value)
    if out is None:
        raise MalformedResponseError(f"Missing or invalid {field}", query=query)
    return out


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _as_dict(payload: Any, query: str) -> dict:
    if not isinstance(payload, dict):
        raise MalformedResponseError("Expected a JSON object", query=query)
    return payload


def _opt_dict(value: Any, field: str, query: str) -> dict:
    """Nested block: absent -> {}, anything but an object -> malformed."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MalformedResponseError(f"{field} is not an object", query=query)
    return value


# --- SyariahSaham -----------------------------------------------------------


def equity_from_syariah(payload: Any, code: str) -> EquityQuote:
    data = _as_dict(payload, code)
    if not data.get("code"):
        raise QuoteNotFoundError(code)
    harga = _opt_dict(data.get("harga"), "harga", code)
    indicator = _opt_dict(data.get("syariahIndicator"), "syariahIndicator", code)
    return EquityQuote(
        code=str(data["code"]).upper(),
        name=_opt_str(data.get("name")) or str(data["code"]).upper(),
        sector=_opt_str(data.get("sector")),
        price=_opt_float(harga.get("now")),
        price_change=_opt_float(harga.get("deltaPrice")),
        market_cap=_opt_float(data.get("marketCap")),
        sharia_compliant=bool(data.get("issi")),
        debt_ratio=_opt_float(indicator.get("hutangBunga")),
        non_halal_revenue_ratio=_opt_float(indicator.get("nonHalal")),
        board=_opt_str(data.get("papan")),
        index=_opt_str(data.get("index")),
    )


# --- CoinMarketCap -----------------------------------------------------------


def _cmc_entry(entry: Any, symbol: str) -> CryptoQuote:
    # v1 quotes/latest returns one object per symbol, v2 a list of them
    if isinstance(entry, list):
        if not entry:
            raise QuoteNotFoundError(symbol)
        entry = entry[0]
    entry = _as_dict(entry, symbol)
    usd = _opt_dict(entry.get("quote"), "quote", symbol).get("USD")
    if not isinstance(usd, dict):
        raise MalformedResponseError("No USD quote", query=symbol)
    return CryptoQuote(
        symbol=str(entry.get("symbol") or symbol).upper(),
        name=_opt_str(entry.get("name")) or symbol,
        price_usd=_req_float(usd.get("price"), "price", symbol),
        change_1h=_opt_float(usd.get("percent_change_1h")),
        change_24h=_opt_float(usd.get("percent_change_24h")),
        change_7d=_opt_float(usd.get("percent_change_7d")),
        market_cap=_opt_float(usd.get("market_cap")),
        volume_24h=_opt_float(usd.get("volume_24h")),
    )


def _cmc_data(payload: Any, query: str) -> dict:
    data = _as_dict(payload, query).get("data")
    if data is None:
        raise QuoteNotFoundError(query)
    if not isinstance(data, dict):
        raise MalformedResponseError("CMC data is not an object", query=query)
    return data


def crypto_from_cmc(payload: Any, symbol: str) -> CryptoQuote:
    data = _cmc_data(payload, symbol)
    entry = data.get(symbol.upper())
    if entry is None:
        raise QuoteNotFoundError(symbol)
    return _cmc_entry(entry, symbol.upper())


def snapshot_from_cmc(payload: Any, symbols: Iterable[str]) -> dict[str, CryptoQuote]:
    """Partial map: symbols the upstream omits, or sends broken, are left out."""
    wanted = [s.upper() for s in symbols]
    data = _cmc_data(payload, ",".join(wanted))
    out: dict[str, CryptoQuote] = {}
    for symbol in wanted:
        entry = data.get(symbol)
        if entry is None:
            continue
        try:
            out[symbol] = _cmc_entry(entry, symbol)
        except (MalformedResponseError, QuoteNotFoundError):
            continue
    return out


# --- DexScreener -------------------------------------------------------------


def _pair_matches(pair: dict, query: str) -> bool:
    token = _opt_dict(pair.get("baseToken"), "baseToken", query)
    symbol = str(token.get("symbol") or "").upper()
    address = str(token.get("address") or "")
    return query.upper() in symbol or query.lower() in address.lower()


def onchain_from_dexscreener(payload: Any, query: str) -> OnChainTokenQuote:
    pairs = _as_dict(payload, query).get("pairs")
    if not pairs:
        raise QuoteNotFoundError(query)
    if not isinstance(pairs, list):
        raise MalformedResponseError("pairs is not a list", query=query)

    pair = next((p for p in pairs if isinstance(p, dict) and _pair_matches(p, query)), None)
    if pair is None:
        raise QuoteNotFoundError(query)

    token = _opt_dict(pair.get("baseToken"), "baseToken", query)
    if not token.get("symbol") or not token.get("address"):
        raise MalformedResponseError("baseToken incomplete", query=query)
    change = _opt_dict(pair.get("priceChange"), "priceChange", query)
    return OnChainTokenQuote(
        symbol=str(token["symbol"]),
        name=_opt_str(token.get("name")) or str(token["symbol"]),
        contract_address=str(token["address"]),
        price_usd=_opt_float(pair.get("priceUsd")),
        liquidity_usd=_opt_float(_opt_dict(pair.get("liquidity"), "liquidity", query).get("usd")),
        volume_24h=_opt_float(_opt_dict(pair.get("volume"), "volume", query).get("h24")),
        change_1h=_opt_float(change.get("h1")),
        change_24h=_opt_float(change.get("h24")),
        url=_opt_str(pair.get("url")),
    )


# --- alternative.me ----------------------------------------------------------


def sentiment_from_fng(payload: Any) -> SentimentReading:
    data = _as_dict(payload, "fng").get("data")
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        raise MalformedResponseError("Fear & Greed payload has no data", query="fng")
    first = data[0]
    try:
        score = int(str(first.get("value")).strip())
    except ValueError as exc:
        raise MalformedResponseError("Fear & Greed value is not an integer", query="fng") from exc
    if not 0 <= score <= 100:
        raise MalformedResponseError(f"Fear & Greed value out of range: {score}", query="fng")
    return SentimentReading(
        score=score,
        classification=_opt_str(first.get("value_classification")) or "Unknown",
    )


def momentum_from_alt_ticker(payload: Any, query: str) -> MomentumReading:
    data = _as_dict(payload, query).get("data")
    if not data or not isinstance(data, dict):
        raise QuoteNotFoundError(query)
    entry = next(iter(data.values()))
    if not isinstance(entry, dict):
        raise MalformedResponseError("ticker entry is not an object", query=query)
    usd = _opt_dict(entry.get("quotes"), "quotes", query).get("USD")
    if not isinstance(usd, dict):
        raise MalformedResponseError("No USD quote", query=query)
    return MomentumReading(
        symbol=str(entry.get("symbol") or query).upper(),
        name=_opt_str(entry.get("name")) or query,
        change_1h=_opt_float(usd.get("percentage_change_1h")),
        change_24h=_opt_float(usd.get("percentage_change_24h")),
        change_7d=_opt_float(usd.get("percentage_change_7d")),
    )
