from __future__ import annotations

from dataclasses import dataclass

# alternative.me v2 ticker slugs that differ from the lower-cased symbol
ALTERNATIVE_SLUGS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "BNB": "binance-coin",
    "XRP": "ripple",
    "DOGE": "dogecoin",
    "ADA": "cardano",
}

ALIASES = {
    "XBT": "BTC",
    "BITCOIN": "BTC",
    "ETHEREUM": "ETH",
    "SOLANA": "SOL",
}

# Solana base58 addresses are 32-44 chars; tickers and names are far shorter
CONTRACT_ADDRESS_MIN_LEN = 31


@dataclass
class SymbolMeta:
    input_symbol: str
    base: str


def clean_query(raw: str) -> str:
    return (raw or "").strip().lstrip("$").strip()


def normalize_symbol(symbol: str) -> SymbolMeta:
    s = clean_query(symbol).upper()
    s = ALIASES.get(s, s)
    if s.endswith("USDT") and len(s) > 4:
        s = s[:-4]
    return SymbolMeta(input_symbol=symbol, base=s)


def normalize_stock_code(code: str) -> str:
    return clean_query(code).upper()


def alternative_slug_for(symbol: str) -> str:
    base = normalize_symbol(symbol).base
    return ALTERNATIVE_SLUGS.get(base, clean_query(symbol).lower())


def looks_like_contract_address(query: str) -> bool:
    return len(clean_query(query)) >= CONTRACT_ADDRESS_MIN_LEN
