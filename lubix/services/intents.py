"""Render intents: what the engine wants shown, with no markup attached."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from lubix.core.errors import QuoteLookupError, TradeError
from lubix.core.models import (
    CryptoQuote,
    EquityQuote,
    MomentumReading,
    OnChainTokenQuote,
    PortfolioSnapshot,
    SentimentReading,
    TradeReceipt,
)

Quote = Union[EquityQuote, CryptoQuote, OnChainTokenQuote, SentimentReading, MomentumReading]


@dataclass(frozen=True)
class InboundEvent:
    chat_id: int
    user_id: int
    text: str | None = None
    callback_data: str | None = None
    first_name: str = ""

    @property
    def is_callback(self) -> bool:
        return self.callback_data is not None


@dataclass(frozen=True)
class Welcome:
    first_name: str
    is_new: bool = False


@dataclass(frozen=True)
class Help:
    pass


@dataclass(frozen=True)
class ModuleIntro:
    module: str


@dataclass(frozen=True)
class Hint:
    pass


@dataclass(frozen=True)
class ShowQuote:
    quote: Quote


@dataclass(frozen=True)
class ShowSnapshot:
    quotes: dict[str, CryptoQuote]
    requested: list[str]


@dataclass(frozen=True)
class ShowLookupError:
    error: QuoteLookupError


@dataclass(frozen=True)
class ShowTrade:
    receipt: TradeReceipt


@dataclass(frozen=True)
class ShowTradeError:
    error: TradeError


@dataclass(frozen=True)
class ShowPortfolio:
    snapshot: PortfolioSnapshot
    order_notional: float


@dataclass(frozen=True)
class ShowWatchlist:
    symbols: list[str]
    added: str | None = None


@dataclass(frozen=True)
class Denied:
    reason: str = "admin_only"


@dataclass(frozen=True)
class AdminPanel:
    stats: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class AdminPrompt:
    action: str


@dataclass(frozen=True)
class AdminResult:
    action: str
    ok: bool
    detail: str = ""


@dataclass(frozen=True)
class BroadcastReport:
    recipients: int
    delivered: int
    failed: int


Intent = Union[
    Welcome,
    Help,
    ModuleIntro,
    Hint,
    ShowQuote,
    ShowSnapshot,
    ShowLookupError,
    ShowTrade,
    ShowTradeError,
    ShowPortfolio,
    ShowWatchlist,
    Denied,
    AdminPanel,
    AdminPrompt,
    AdminResult,
    BroadcastReport,
]
