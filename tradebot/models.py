"""
Market data types exchanged between adapters, strategies and the engine.

All price and quantity values use Decimal.

Examples:
    >>> from decimal import Decimal
    >>> book = MarketOrderBook(
    ...     market_id="btcusd",
    ...     buy_orders=[MarketOrder(OrderSide.BUY, Decimal("100"), Decimal("2"))],
    ...     sell_orders=[MarketOrder(OrderSide.SELL, Decimal("101"), Decimal("1"))],
    ... )
    >>> book.best_bid().price
    Decimal('100')
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional


class OrderSide(Enum):
    """Order side: BUY or SELL."""

    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class Market:
    """A tradable currency pair on the exchange.

    Attributes:
        id: Market id as the exchange knows it, e.g. ``btcusd``
        name: Friendly name, e.g. ``BTC/USD``
        base_currency: Currency being bought or sold, e.g. ``BTC``
        counter_currency: Quote currency, e.g. ``USD``
        enabled: Whether the engine trades this market
        trading_strategy_id: Id of the strategy bound to this market
    """

    id: str
    name: str
    base_currency: str
    counter_currency: str
    enabled: bool = True
    trading_strategy_id: str = ""


@dataclass(frozen=True)
class MarketOrder:
    """A single order in the market order book."""

    side: OrderSide
    price: Decimal
    quantity: Decimal
    total: Optional[Decimal] = None

    def __post_init__(self):
        if self.total is None:
            object.__setattr__(self, "total", self.price * self.quantity)


@dataclass
class MarketOrderBook:
    """Order book for one market.

    buy_orders are sorted by descending price (best bid first) and
    sell_orders by ascending price (best ask first).
    """

    market_id: str
    buy_orders: List[MarketOrder] = field(default_factory=list)
    sell_orders: List[MarketOrder] = field(default_factory=list)

    def __post_init__(self):
        self.buy_orders = sorted(self.buy_orders, key=lambda o: o.price, reverse=True)
        self.sell_orders = sorted(self.sell_orders, key=lambda o: o.price)

    def best_bid(self) -> Optional[MarketOrder]:
        return self.buy_orders[0] if self.buy_orders else None

    def best_ask(self) -> Optional[MarketOrder]:
        return self.sell_orders[0] if self.sell_orders else None


@dataclass
class OpenOrder:
    """One of the bot's own orders still open on the exchange.

    Attributes:
        id: Exchange-assigned order id
        creation_date: When the exchange accepted the order
        market_id: Market the order was placed on
        side: BUY or SELL
        price: Limit price
        quantity: Quantity still unfilled
        original_quantity: Quantity when the order was placed
        total: price * original_quantity
    """

    id: str
    creation_date: datetime
    market_id: str
    side: OrderSide
    price: Decimal
    quantity: Decimal
    original_quantity: Decimal
    total: Decimal


@dataclass
class BalanceInfo:
    """Wallet balances keyed by currency code."""

    available: Dict[str, Decimal] = field(default_factory=dict)
    on_hold: Dict[str, Decimal] = field(default_factory=dict)

    def available_balance(self, currency: str) -> Optional[Decimal]:
        """Return the available balance for currency, or None if absent."""
        return self.available.get(currency)
