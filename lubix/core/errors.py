class BotError(Exception):
    """Base bot error."""


class ValidationError(BotError):
    """Raised for invalid user or admin input."""


class QuoteLookupError(BotError):
    """Raised when a provider lookup cannot produce a normalized quote."""

    def __init__(self, message: str, query: str = "") -> None:
        super().__init__(message)
        self.query = query


class QuoteNotFoundError(QuoteLookupError):
    """The provider answered but has nothing for the query."""

    def __init__(self, query: str) -> None:
        super().__init__(f"{query} not found", query=query)


class UpstreamError(QuoteLookupError):
    """Raised when an upstream API is unavailable."""


class MalformedResponseError(QuoteLookupError):
    """The provider answered with a payload that does not fit its schema."""


class TradeError(BotError):
    """Base error for simulated trades."""

    def __init__(self, message: str, symbol: str = "") -> None:
        super().__init__(message)
        self.symbol = symbol


class InsufficientFundsError(TradeError):
    def __init__(self, symbol: str, cash_balance: float, required: float) -> None:
        super().__init__(f"Need ${required:,.2f}, have ${cash_balance:,.2f}", symbol=symbol)
        self.cash_balance = cash_balance
        self.required = required


class NoPositionError(TradeError):
    def __init__(self, symbol: str) -> None:
        super().__init__(f"No open position in {symbol}", symbol=symbol)


class QuoteUnavailableError(TradeError):
    """No usable live price at execution time."""
