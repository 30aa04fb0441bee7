from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from tradebot.api import TradingApi
from tradebot.config import EngineConfig
from tradebot.models import BalanceInfo

from fakes import RecordingAlerter


@pytest.fixture
def engine_config():
    return EngineConfig(
        bot_id="test-bot",
        bot_name="Test Bot",
        emergency_stop_currency="BTC",
        emergency_stop_balance=Decimal("0.5"),
        trade_cycle_interval=0.01,
    )


@pytest.fixture
def trading_api():
    api = MagicMock(spec=TradingApi)
    api.get_implementation_name.return_value = "Mock Exchange"
    api.get_balance_info.return_value = BalanceInfo(
        available={"BTC": Decimal("1.0"), "USD": Decimal("100")},
        on_hold={"BTC": Decimal("0"), "USD": Decimal("0")},
    )
    return api


@pytest.fixture
def alerter():
    return RecordingAlerter()
