"""In-memory simulated exchange for dry runs and tests.

PaperTradingApi keeps balances, an order book per market and the bot's open
orders. Nothing leaves the process. Fills are driven explicitly through
fill_order(), or by set_order_book() crossing resting orders when
auto_fill is on.

Adapter settings come from exchange.yaml otherConfig:

    buy-fee / sell-fee               percent, e.g. 0.25
    price-precision                  decimal places for prices (default 8)
    quantity-precision               decimal places for quantities (default 8)
    keep-alive-during-maintenance    tolerate maintenance windows
    initial-balances                 mapping of currency -> amount
"""
import threading
from datetime import datetime, timezone
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Dict, List, Optional

from .api import ExchangeAdapter
from .config import ExchangeConfig
from .errors import ExchangeMaintenanceError, TradingApiError
from .logging_setup import logger
from .models import BalanceInfo, Market, MarketOrder, MarketOrderBook, OpenOrder, OrderSide

DEFAULT_PRECISION = 8


def round_half_even(value: Decimal, places: int) -> Decimal:
    """Round to a fixed number of decimal places with banker's rounding."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_EVEN)


class PaperTradingApi(ExchangeAdapter):
    """A simulated exchange that records calls and lets callers drive fills."""

    def __init__(self, markets: Optional[List[Market]] = None, *, auto_fill: bool = True):
        self.markets: Dict[str, Market] = {m.id: m for m in (markets or [])}
        self.auto_fill = auto_fill
        self.available: Dict[str, Decimal] = {}
        self.on_hold: Dict[str, Decimal] = {}
        self.order_books: Dict[str, MarketOrderBook] = {}
        self.orders: Dict[str, OpenOrder] = {}
        self.filled_orders: List[OpenOrder] = []
        self.next_id = 1
        self.buy_fee = Decimal("0")
        self.sell_fee = Decimal("0")
        self.price_precision = DEFAULT_PRECISION
        self.quantity_precision = DEFAULT_PRECISION
        self.keep_alive_during_maintenance = False
        self.under_maintenance = False
        self._lock = threading.Lock()

    def init(self, exchange_config: ExchangeConfig) -> None:
        other = exchange_config.other
        self.buy_fee = Decimal(str(other.get("buy-fee", 0))) / Decimal(100)
        self.sell_fee = Decimal(str(other.get("sell-fee", 0))) / Decimal(100)
        self.price_precision = int(other.get("price-precision", DEFAULT_PRECISION))
        self.quantity_precision = int(other.get("quantity-precision", DEFAULT_PRECISION))
        self.keep_alive_during_maintenance = bool(
            other.get("keep-alive-during-maintenance", False)
        )
        for currency, amount in (other.get("initial-balances") or {}).items():
            self.set_balance(str(currency), Decimal(str(amount)))
        logger.info(
            f"Paper exchange initialised | buy_fee={self.buy_fee} sell_fee={self.sell_fee} "
            f"price_precision={self.price_precision} quantity_precision={self.quantity_precision}"
        )

    def get_implementation_name(self) -> str:
        return "Paper Trading Exchange"

    # -- test/demo controls --------------------------------------------------

    def register_market(self, market: Market) -> None:
        self.markets[market.id] = market

    def set_balance(self, currency: str, amount: Decimal) -> None:
        with self._lock:
            self.available[currency] = amount
            self.on_hold.setdefault(currency, Decimal("0"))

    def set_order_book(
        self,
        market_id: str,
        bids: List[tuple],
        asks: List[tuple],
    ) -> None:
        """Replace a market's order book.

        Args:
            market_id: Market id
            bids: (price, quantity) pairs
            asks: (price, quantity) pairs
        """
        book = MarketOrderBook(
            market_id=market_id,
            buy_orders=[MarketOrder(OrderSide.BUY, Decimal(str(p)), Decimal(str(q))) for p, q in bids],
            sell_orders=[MarketOrder(OrderSide.SELL, Decimal(str(p)), Decimal(str(q))) for p, q in asks],
        )
        with self._lock:
            self.order_books[market_id] = book
        if self.auto_fill:
            self._cross_resting_orders(market_id)

    def set_under_maintenance(self, under_maintenance: bool = True) -> None:
        self.under_maintenance = under_maintenance

    def fill_order(self, order_id: str, quantity: Optional[Decimal] = None) -> None:
        """Fill an open order fully, or partially when quantity is given."""
        with self._lock:
            order = self.orders.get(order_id)
            if order is None:
                raise KeyError(f"Unknown order id: {order_id}")
            fill_qty = order.quantity if quantity is None else min(quantity, order.quantity)
            self._apply_fill(order, fill_qty)

    # -- TradingApi ---------------------------------------------------------

    def get_market_orders(self, market_id: str) -> MarketOrderBook:
        self._check_available()
        with self._lock:
            book = self.order_books.get(market_id)
            if book is None:
                self._market(market_id)
                return MarketOrderBook(market_id=market_id)
            return MarketOrderBook(
                market_id=market_id,
                buy_orders=list(book.buy_orders),
                sell_orders=list(book.sell_orders),
            )

    def get_your_open_orders(self, market_id: str) -> List[OpenOrder]:
        self._check_available()
        with self._lock:
            return [o for o in self.orders.values() if o.market_id == market_id]

    def create_order(
        self, market_id: str, side: OrderSide, quantity: Decimal, price: Decimal
    ) -> str:
        self._check_available()
        market = self._market(market_id)
        price = round_half_even(price, self.price_precision)
        quantity = round_half_even(quantity, self.quantity_precision)
        if price <= 0 or quantity <= 0:
            raise TradingApiError(
                f"Invalid order for {market_id}: price={price} quantity={quantity}"
            )

        with self._lock:
            if side is OrderSide.BUY:
                currency, amount = market.counter_currency, price * quantity
            else:
                currency, amount = market.base_currency, quantity
            available = self.available.get(currency, Decimal("0"))
            if available < amount:
                raise TradingApiError(
                    f"Insufficient funds: need {amount} {currency}, have {available}"
                )
            self.available[currency] = available - amount
            self.on_hold[currency] = self.on_hold.get(currency, Decimal("0")) + amount

            oid = f"p{self.next_id}"
            self.next_id += 1
            self.orders[oid] = OpenOrder(
                id=oid,
                creation_date=datetime.now(timezone.utc),
                market_id=market_id,
                side=side,
                price=price,
                quantity=quantity,
                original_quantity=quantity,
                total=price * quantity,
            )
        logger.debug(f"Paper order placed | id={oid} {side.value} {quantity} @ {price} on {market_id}")
        if self.auto_fill:
            self._cross_resting_orders(market_id)
        return oid

    def cancel_order(self, order_id: str, market_id: str) -> bool:
        self._check_available()
        with self._lock:
            order = self.orders.get(order_id)
            if order is None or order.market_id != market_id:
                return False
            del self.orders[order_id]
            self._release_hold(order, order.quantity)
        return True

    def get_latest_market_price(self, market_id: str) -> Decimal:
        self._check_available()
        with self._lock:
            book = self.order_books.get(market_id)
        if book is None or not book.buy_orders or not book.sell_orders:
            raise TradingApiError(f"No market price available for {market_id}")
        mid = (book.buy_orders[0].price + book.sell_orders[0].price) / 2
        return round_half_even(mid, self.price_precision)

    def get_balance_info(self) -> BalanceInfo:
        self._check_available()
        with self._lock:
            return BalanceInfo(available=dict(self.available), on_hold=dict(self.on_hold))

    def get_percentage_fee(self, market_id: str, side: OrderSide) -> Decimal:
        self._check_available()
        self._market(market_id)
        return self.buy_fee if side is OrderSide.BUY else self.sell_fee

    # -- internals ----------------------------------------------------------

    def _check_available(self) -> None:
        if not self.under_maintenance:
            return
        if self.keep_alive_during_maintenance:
            raise ExchangeMaintenanceError("Paper exchange is undergoing maintenance")
        raise TradingApiError("Paper exchange is undergoing maintenance")

    def _market(self, market_id: str) -> Market:
        market = self.markets.get(market_id)
        if market is None:
            raise TradingApiError(f"Unknown market id: {market_id}")
        return market

    def _release_hold(self, order: OpenOrder, quantity: Decimal) -> None:
        market = self.markets[order.market_id]
        if order.side is OrderSide.BUY:
            currency, amount = market.counter_currency, order.price * quantity
        else:
            currency, amount = market.base_currency, quantity
        self.on_hold[currency] = self.on_hold.get(currency, Decimal("0")) - amount
        self.available[currency] = self.available.get(currency, Decimal("0")) + amount

    def _apply_fill(self, order: OpenOrder, quantity: Decimal) -> None:
        """Settle a fill. Caller holds the lock."""
        market = self.markets[order.market_id]
        base, counter = market.base_currency, market.counter_currency
        zero = Decimal("0")
        if order.side is OrderSide.BUY:
            cost = order.price * quantity
            self.on_hold[counter] = self.on_hold.get(counter, zero) - cost
            received = round_half_even(quantity * (1 - self.buy_fee), self.quantity_precision)
            self.available[base] = self.available.get(base, zero) + received
        else:
            self.on_hold[base] = self.on_hold.get(base, zero) - quantity
            proceeds = order.price * quantity * (1 - self.sell_fee)
            self.available[counter] = self.available.get(counter, zero) + proceeds

        order.quantity -= quantity
        if order.quantity <= 0:
            del self.orders[order.id]
            self.filled_orders.append(order)
        logger.debug(f"Paper order filled | id={order.id} qty={quantity} remaining={order.quantity}")

    def _cross_resting_orders(self, market_id: str) -> None:
        """Fill open orders that the current book price has crossed."""
        with self._lock:
            book = self.order_books.get(market_id)
            if book is None:
                return
            best_bid = book.best_bid()
            best_ask = book.best_ask()
            for order in list(self.orders.values()):
                if order.market_id != market_id:
                    continue
                if order.side is OrderSide.BUY and best_ask and best_ask.price <= order.price:
                    self._apply_fill(order, order.quantity)
                elif order.side is OrderSide.SELL and best_bid and best_bid.price >= order.price:
                    self._apply_fill(order, order.quantity)
