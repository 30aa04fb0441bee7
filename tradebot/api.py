"""
Trading API capability.

The engine and strategies talk to an exchange only through TradingApi.
Each exchange gets its own independent implementation; shared plumbing
(HTTP, signing, error classification) lives in http_transport and is
composed in, not inherited.

Every method fails with one of:
    ExchangeNetworkError: transient, the caller may carry on
    TradingApiError: fatal, the bot must stop

A REST adapter composes an HttpTransport built from the exchange config and
registers itself for exchange.yaml:

    >>> class MyExchangeAdapter(ExchangeAdapter):
    ...     def init(self, exchange_config):
    ...         self.http = HttpTransport("https://api.example.com", exchange_config.network)
    ...     def get_balance_info(self):
    ...         payload = require_fields(self.http.get("/balances"), ["available"], "balances")
    ...         ...
    >>> register_adapter("my-exchange", lambda config: MyExchangeAdapter())
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List

from .config import ExchangeConfig
from .models import BalanceInfo, MarketOrderBook, OpenOrder, OrderSide


class TradingApi(ABC):
    """Normalised trading operations for one exchange.

    All price/qty values use Decimal. Implementations are not required to be
    thread-safe; the engine calls them from one thread at a time.
    """

    @abstractmethod
    def get_implementation_name(self) -> str:
        """Human readable name of the adapter, used in logs and alerts."""

    @abstractmethod
    def get_market_orders(self, market_id: str) -> MarketOrderBook:
        """Fetch the current order book for a market."""

    @abstractmethod
    def get_your_open_orders(self, market_id: str) -> List[OpenOrder]:
        """Fetch the bot's own open orders for a market."""

    @abstractmethod
    def create_order(
        self, market_id: str, side: OrderSide, quantity: Decimal, price: Decimal
    ) -> str:
        """Place a limit order.

        Args:
            market_id: Market to trade on
            side: BUY or SELL
            quantity: Amount of base currency
            price: Limit price in counter currency

        Returns:
            Exchange order ID
        """

    @abstractmethod
    def cancel_order(self, order_id: str, market_id: str) -> bool:
        """Cancel an open order.

        Returns:
            True if cancelled, False if the exchange no longer knows the order
        """

    @abstractmethod
    def get_latest_market_price(self, market_id: str) -> Decimal:
        """Last traded price for a market."""

    @abstractmethod
    def get_balance_info(self) -> BalanceInfo:
        """Available and on-hold wallet balances."""

    @abstractmethod
    def get_percentage_fee(self, market_id: str, side: OrderSide) -> Decimal:
        """Exchange fee for an order side as a fraction, e.g. 0.0025 for 0.25%."""


class ExchangeAdapter(TradingApi):
    """A TradingApi that is configured from exchange.yaml at startup."""

    @abstractmethod
    def init(self, exchange_config: ExchangeConfig) -> None:
        """Apply exchange configuration. Called once before first use."""
