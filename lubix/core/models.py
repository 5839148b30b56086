"""Records shared by the gateway, the session store and the engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class SessionKey:
    chat_id: int
    user_id: int


class ConversationState(str, Enum):
    IDLE = "idle"
    AWAITING_CRYPTO = "awaiting_crypto"
    AWAITING_STOCK = "awaiting_stock"
    AWAITING_SOLANA = "awaiting_solana"
    AWAITING_MOMENTUM = "awaiting_momentum"
    AWAITING_BUY_TICKER = "awaiting_buy_ticker"
    AWAITING_SELL_TICKER = "awaiting_sell_ticker"
    AWAITING_ADD_WATCHLIST = "awaiting_add_watchlist"
    AWAITING_ADMIN_BROADCAST = "awaiting_admin_broadcast"
    AWAITING_ADMIN_BAN = "awaiting_admin_ban"
    AWAITING_ADMIN_UNBAN = "awaiting_admin_unban"
    AWAITING_ADMIN_GIFT = "awaiting_admin_gift"
    AWAITING_ADMIN_DM = "awaiting_admin_dm"
    AWAITING_ADMIN_ADD_GROUP = "awaiting_admin_add_group"
    AWAITING_ADMIN_REMOVE_GROUP = "awaiting_admin_remove_group"

    @property
    def is_admin_only(self) -> bool:
        return self.value.startswith("awaiting_admin_")


# --- portfolio -------------------------------------------------------------


@dataclass
class Holding:
    symbol: str
    quantity: float
    average_cost: float

    @property
    def cost_basis(self) -> float:
        return self.quantity * self.average_cost


@dataclass
class Portfolio:
    cash_balance: float
    holdings: dict[str, Holding] = field(default_factory=dict)

    def copy(self) -> "Portfolio":
        return Portfolio(
            cash_balance=self.cash_balance,
            holdings={k: Holding(h.symbol, h.quantity, h.average_cost) for k, h in self.holdings.items()},
        )


@dataclass(frozen=True)
class TradeReceipt:
    side: str
    symbol: str
    quantity: float
    price: float
    notional: float
    cash_balance: float
    average_cost: float
    realized_pnl: float | None = None


@dataclass(frozen=True)
class PositionValue:
    symbol: str
    quantity: float
    average_cost: float
    price: float | None
    market_value: float
    unrealized_pnl: float


@dataclass(frozen=True)
class PortfolioSnapshot:
    cash_balance: float
    positions: list[PositionValue]
    total_value: float


# --- normalized quotes -----------------------------------------------------
# None means the upstream did not provide the field.


@dataclass(frozen=True)
class EquityQuote:
    code: str
    name: str
    sector: str | None
    price: float | None
    price_change: float | None
    market_cap: float | None
    sharia_compliant: bool
    debt_ratio: float | None = None
    non_halal_revenue_ratio: float | None = None
    board: str | None = None
    index: str | None = None


@dataclass(frozen=True)
class CryptoQuote:
    symbol: str
    name: str
    price_usd: float
    change_1h: float | None
    change_24h: float | None
    change_7d: float | None
    market_cap: float | None
    volume_24h: float | None


@dataclass(frozen=True)
class OnChainTokenQuote:
    symbol: str
    name: str
    contract_address: str
    price_usd: float | None
    liquidity_usd: float | None
    volume_24h: float | None
    change_1h: float | None = None
    change_24h: float | None = None
    url: str | None = None


@dataclass(frozen=True)
class SentimentReading:
    score: int
    classification: str


@dataclass(frozen=True)
class MomentumReading:
    symbol: str
    name: str
    change_1h: float | None
    change_24h: float | None
    change_7d: float | None
