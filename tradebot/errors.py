"""Error taxonomy for the trading bot.

Every failure that can reach the trading engine belongs to one of two kinds:

    TRANSIENT: the exchange is expected to recover on its own (connection
               reset, timeout, gateway error, tolerated maintenance window).
               The engine skips the current market and carries on.
    FATAL:     anything else. The engine shuts down and alerts an operator.

Adapters and strategies tag errors by raising the right exception type; the
engine reads the ``kind`` attribute via ``classify_error()`` and never looks
at message text.
"""
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """How the engine should react to a failure."""

    TRANSIENT = "transient"
    FATAL = "fatal"


class TradebotError(Exception):
    """Base class for all tradebot errors."""


class ConfigurationError(TradebotError, ValueError):
    """Raised when configuration is missing or invalid."""


class EngineAlreadyRunningError(TradebotError, RuntimeError):
    """Raised by TradingEngine.start() when the engine is not STOPPED."""


class TradingApiError(TradebotError):
    """Exchange call failed in a way the bot cannot recover from.

    Malformed responses, authentication failures, insufficient funds and any
    error not recognised as transient.
    """

    kind = ErrorKind.FATAL

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ExchangeNetworkError(TradingApiError):
    """Temporary network problem talking to the exchange."""

    kind = ErrorKind.TRANSIENT


class ExchangeMaintenanceError(ExchangeNetworkError):
    """Exchange reported it is undergoing maintenance.

    Only raised when the operator opted to keep the bot alive during
    maintenance; otherwise adapters raise a plain TradingApiError.
    """


class StrategyError(TradebotError):
    """Raised by a strategy that cannot safely continue. Always fatal."""

    kind = ErrorKind.FATAL


def classify_error(exc: BaseException) -> ErrorKind:
    """Return the ErrorKind for an exception raised during a trade cycle.

    Unrecognised exceptions are FATAL: the bot fails closed.
    """
    if isinstance(exc, (TradingApiError, StrategyError)):
        return exc.kind
    return ErrorKind.FATAL
