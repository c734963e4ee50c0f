"""Error types raised by the trading core."""


class TradingError(Exception):
    """Base class for failures surfaced to the caller of a user request."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TokenNotFoundError(TradingError):
    """No configured source had data for the token."""


class TokenVerificationFailedError(TradingError):
    """A buy could not start because the token could not be resolved."""


class InvalidAddressError(TradingError, ValueError):
    """Token address is not a valid Solana mint address."""


class InvalidAmountError(TradingError, ValueError):
    """Amount or percentage is out of the accepted range."""


class InvalidQuoteError(TradingError):
    """Quote cannot be traded against (e.g. zero price)."""


class InsufficientFundsError(TradingError):
    """Account balance is lower than the requested amount."""


class AnalysisFailedError(TradingError):
    """A token analysis could not be produced because the token did not resolve."""


class NoPendingBuyError(TradingError):
    """Buy confirmation arrived without a preceding quote."""


class PositionNotFoundError(TradingError):
    """No open position exists for the token."""


class SourceError(Exception):
    """Transport or parse failure inside a source adapter."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
