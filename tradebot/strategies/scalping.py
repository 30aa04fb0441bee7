"""
Simple trend following scalper.

Buys at the current BID price, holds until the market price has reached a
configurable minimum percentage gain, then sells, taking profit from the
spread. Remember to factor in the exchange fees when choosing the gain.

Config items (strategies.yaml configItems):
    counter-currency-buy-order-amount: amount of counter currency to spend
        on each buy, e.g. 20 (USD) in a BTC/USD market
    minimum-percentage-gain: percent above the buy price to sell at, e.g. 2

Order lifecycle:
    no last order          -> BUY at current bid
    last BUY still open    -> hold
    last BUY filled        -> SELL at buy price * (1 + gain)
    last SELL still open   -> hold
    last SELL filled       -> BUY at current bid
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Optional

from ..api import TradingApi
from ..config import StrategyConfig
from ..errors import ExchangeNetworkError, StrategyError, TradingApiError
from ..logging_setup import logger
from ..models import Market, OrderSide
from ..strategy import TradingStrategy, register_strategy

BUY_AMOUNT_ITEM = "counter-currency-buy-order-amount"
MINIMUM_GAIN_ITEM = "minimum-percentage-gain"
QUANTITY_PLACES = Decimal("0.00000001")


@dataclass
class LastOrder:
    """The most recent order this strategy placed."""
    id: str
    side: OrderSide
    price: Decimal
    quantity: Decimal


@register_strategy("scalping")
class ExampleScalpingStrategy(TradingStrategy):

    def __init__(self):
        self.trading_api: Optional[TradingApi] = None
        self.market: Optional[Market] = None
        self.last_order: Optional[LastOrder] = None
        self.counter_currency_buy_order_amount = Decimal("0")
        self.minimum_percentage_gain = Decimal("0")

    def init(self, trading_api: TradingApi, market: Market, config: StrategyConfig) -> None:
        logger.info(f"Initialising scalping strategy for {market.name}")
        self.trading_api = trading_api
        self.market = market
        self.counter_currency_buy_order_amount = _decimal_item(config, BUY_AMOUNT_ITEM)
        self.minimum_percentage_gain = _decimal_item(config, MINIMUM_GAIN_ITEM) / Decimal(100)
        logger.info(
            f"Scalping strategy initialised | market={market.id} "
            f"buy_amount={self.counter_currency_buy_order_amount} {market.counter_currency} "
            f"minimum_gain={self.minimum_percentage_gain}"
        )

    def execute(self) -> None:
        name = self.market.name
        logger.info(f"{name} Checking order status...")
        try:
            order_book = self.trading_api.get_market_orders(self.market.id)

            best_bid = order_book.best_bid()
            if best_bid is None:
                logger.warning(f"{name} Exchange returned empty buy orders. Ignoring this trade window.")
                return
            best_ask = order_book.best_ask()
            if best_ask is None:
                logger.warning(f"{name} Exchange returned empty sell orders. Ignoring this trade window.")
                return

            logger.info(f"{name} Current BID price={best_bid.price} ASK price={best_ask.price}")

            if self.last_order is None:
                self._buy(best_bid.price)
            elif self.last_order.side is OrderSide.BUY:
                self._when_last_order_was_buy()
            else:
                self._when_last_order_was_sell(best_bid.price)

        except ExchangeNetworkError:
            # Transient: let the engine skip this market until the next cycle.
            raise
        except TradingApiError as e:
            logger.error(f"{name} Trading API error, shutting down strategy: {e}")
            raise StrategyError(f"{name} scalping strategy failed: {e}") from e

    def _buy(self, bid_price: Decimal) -> None:
        quantity = (self.counter_currency_buy_order_amount / bid_price).quantize(
            QUANTITY_PLACES, rounding=ROUND_HALF_EVEN
        )
        logger.info(
            f"{self.market.name} Placing BUY order | quantity={quantity} "
            f"{self.market.base_currency} price={bid_price}"
        )
        order_id = self.trading_api.create_order(self.market.id, OrderSide.BUY, quantity, bid_price)
        self.last_order = LastOrder(order_id, OrderSide.BUY, bid_price, quantity)
        logger.info(f"{self.market.name} BUY order placed | order_id={order_id}")

    def _is_still_open(self) -> bool:
        open_orders = self.trading_api.get_your_open_orders(self.market.id)
        return any(o.id == self.last_order.id for o in open_orders)

    def _when_last_order_was_buy(self) -> None:
        if self._is_still_open():
            logger.info(
                f"{self.market.name} BUY order {self.last_order.id} still open at "
                f"{self.last_order.price}; holding"
            )
            return

        sell_price = self.last_order.price * (1 + self.minimum_percentage_gain)
        buy_fee = self.trading_api.get_percentage_fee(self.market.id, OrderSide.BUY)
        sell_fee = self.trading_api.get_percentage_fee(self.market.id, OrderSide.SELL)
        logger.info(
            f"{self.market.name} BUY order {self.last_order.id} filled | "
            f"placing SELL at {sell_price} (fees buy={buy_fee} sell={sell_fee})"
        )
        quantity = self.last_order.quantity * (1 - buy_fee)
        quantity = quantity.quantize(QUANTITY_PLACES, rounding=ROUND_HALF_EVEN)
        order_id = self.trading_api.create_order(self.market.id, OrderSide.SELL, quantity, sell_price)
        self.last_order = LastOrder(order_id, OrderSide.SELL, sell_price, quantity)
        logger.info(f"{self.market.name} SELL order placed | order_id={order_id}")

    def _when_last_order_was_sell(self, bid_price: Decimal) -> None:
        if self._is_still_open():
            logger.info(
                f"{self.market.name} SELL order {self.last_order.id} still open at "
                f"{self.last_order.price}; holding"
            )
            return
        logger.info(f"{self.market.name} SELL order {self.last_order.id} filled; buying again")
        self._buy(bid_price)


def _decimal_item(config: StrategyConfig, key: str) -> Decimal:
    raw = config.get_item(key)
    if raw is None:
        raise StrategyError(f"Strategy '{config.id}' is missing config item '{key}'")
    try:
        value = Decimal(raw)
    except InvalidOperation as e:
        raise StrategyError(f"Strategy '{config.id}' config item '{key}' is not a number: {raw!r}") from e
    if value <= 0:
        raise StrategyError(f"Strategy '{config.id}' config item '{key}' must be > 0, got {value}")
    return value
