from decimal import Decimal

import pytest

from tradebot.config import ExchangeConfig
from tradebot.errors import ExchangeMaintenanceError, ExchangeNetworkError, TradingApiError
from tradebot.models import Market, OrderSide
from tradebot.paper import PaperTradingApi, round_half_even

BTCUSD = Market(
    id="btcusd",
    name="BTC/USD",
    base_currency="BTC",
    counter_currency="USD",
    trading_strategy_id="s",
)


def make_exchange(auto_fill=False, **other):
    other.setdefault("initial-balances", {"BTC": 1, "USD": 1000})
    exchange = PaperTradingApi(markets=[BTCUSD], auto_fill=auto_fill)
    exchange.init(ExchangeConfig(name="Paper", adapter="paper", other=other))
    return exchange


def test_initial_balances_from_config():
    info = make_exchange().get_balance_info()

    assert info.available == {"BTC": Decimal("1"), "USD": Decimal("1000")}
    assert info.on_hold == {"BTC": Decimal("0"), "USD": Decimal("0")}


def test_order_book_sorted_best_first():
    exchange = make_exchange()
    exchange.set_order_book("btcusd", bids=[(99, 1), (100, 2)], asks=[(102, 1), (101, 3)])

    book = exchange.get_market_orders("btcusd")

    assert [o.price for o in book.buy_orders] == [Decimal("100"), Decimal("99")]
    assert [o.price for o in book.sell_orders] == [Decimal("101"), Decimal("102")]
    assert book.buy_orders[0].total == Decimal("200")


def test_buy_order_reserves_counter_currency():
    exchange = make_exchange()

    oid = exchange.create_order("btcusd", OrderSide.BUY, Decimal("2"), Decimal("100"))

    info = exchange.get_balance_info()
    assert info.available["USD"] == Decimal("800")
    assert info.on_hold["USD"] == Decimal("200")
    [order] = exchange.get_your_open_orders("btcusd")
    assert order.id == oid
    assert order.original_quantity == Decimal("2")


def test_insufficient_funds_is_fatal():
    exchange = make_exchange()

    with pytest.raises(TradingApiError, match="Insufficient funds"):
        exchange.create_order("btcusd", OrderSide.SELL, Decimal("5"), Decimal("100"))


def test_cancel_order_releases_hold():
    exchange = make_exchange()
    oid = exchange.create_order("btcusd", OrderSide.SELL, Decimal("0.5"), Decimal("100"))

    assert exchange.cancel_order(oid, "btcusd") is True
    assert exchange.cancel_order(oid, "btcusd") is False
    info = exchange.get_balance_info()
    assert info.available["BTC"] == Decimal("1")
    assert info.on_hold["BTC"] == Decimal("0")


def test_fill_order_settles_with_fees():
    exchange = make_exchange(**{"buy-fee": 1, "sell-fee": 1})
    oid = exchange.create_order("btcusd", OrderSide.BUY, Decimal("1"), Decimal("100"))

    exchange.fill_order(oid)

    info = exchange.get_balance_info()
    assert info.available["BTC"] == Decimal("1.99")
    assert info.available["USD"] == Decimal("900")
    assert info.on_hold["USD"] == Decimal("0")
    assert exchange.get_your_open_orders("btcusd") == []


def test_partial_fill_keeps_order_open():
    exchange = make_exchange()
    oid = exchange.create_order("btcusd", OrderSide.BUY, Decimal("2"), Decimal("100"))

    exchange.fill_order(oid, Decimal("0.5"))

    [order] = exchange.get_your_open_orders("btcusd")
    assert order.quantity == Decimal("1.5")
    assert order.original_quantity == Decimal("2")


def test_auto_fill_when_book_crosses_order():
    exchange = make_exchange(auto_fill=True)
    exchange.create_order("btcusd", OrderSide.BUY, Decimal("1"), Decimal("100"))
    assert len(exchange.get_your_open_orders("btcusd")) == 1

    exchange.set_order_book("btcusd", bids=[(98, 1)], asks=[(99.5, 1)])

    assert exchange.get_your_open_orders("btcusd") == []
    assert exchange.get_balance_info().available["BTC"] == Decimal("2")


def test_prices_rounded_half_even_to_configured_precision():
    exchange = make_exchange(**{"price-precision": 2})

    exchange.create_order("btcusd", OrderSide.BUY, Decimal("1"), Decimal("100.125"))

    [order] = exchange.get_your_open_orders("btcusd")
    assert order.price == Decimal("100.12")


def test_round_half_even():
    assert round_half_even(Decimal("0.125"), 2) == Decimal("0.12")
    assert round_half_even(Decimal("0.135"), 2) == Decimal("0.14")


def test_latest_price_is_mid_of_best_bid_and_ask():
    exchange = make_exchange()
    exchange.set_order_book("btcusd", bids=[(100, 1)], asks=[(102, 1)])

    assert exchange.get_latest_market_price("btcusd") == Decimal("101")


def test_fees_returned_as_fraction():
    exchange = make_exchange(**{"buy-fee": 0.25, "sell-fee": 0.5})

    assert exchange.get_percentage_fee("btcusd", OrderSide.BUY) == Decimal("0.0025")
    assert exchange.get_percentage_fee("btcusd", OrderSide.SELL) == Decimal("0.005")


def test_unknown_market_is_fatal():
    with pytest.raises(TradingApiError, match="Unknown market"):
        make_exchange().get_market_orders("dogeusd")


def test_maintenance_is_transient_when_kept_alive():
    exchange = make_exchange(**{"keep-alive-during-maintenance": True})
    exchange.set_under_maintenance()

    with pytest.raises(ExchangeMaintenanceError):
        exchange.get_balance_info()


def test_maintenance_is_fatal_by_default():
    exchange = make_exchange()
    exchange.set_under_maintenance()

    with pytest.raises(TradingApiError) as excinfo:
        exchange.get_balance_info()
    assert not isinstance(excinfo.value, ExchangeNetworkError)
