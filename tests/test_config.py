from decimal import Decimal
from pathlib import Path

import pytest

from tradebot.config import BotConfig, EngineConfig
from tradebot.errors import ConfigurationError

SAMPLE_CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"

ENGINE_YAML = """
engine:
  botId: bot-1
  botName: Unit Test Bot
  emergencyStopCurrency: BTC
  emergencyStopBalance: 0.5
  tradeCycleInterval: 30
"""

EXCHANGE_YAML = """
exchange:
  name: Paper
  adapter: paper
  authenticationConfig:
    key: ${TEST_EXCHANGE_KEY}
    secret: plain-secret
  networkConfig:
    connectionTimeout: 15
    nonFatalErrorCodes: [502, 503]
  otherConfig:
    buy-fee: 0.2
"""

MARKETS_YAML = """
markets:
  - id: btcusd
    name: BTC/USD
    baseCurrency: BTC
    counterCurrency: USD
    enabled: true
    tradingStrategyId: scalper
  - id: ltcbtc
    name: LTC/BTC
    baseCurrency: LTC
    counterCurrency: BTC
    enabled: false
    tradingStrategyId: scalper
  - id: ethusd
    name: ETH/USD
    baseCurrency: ETH
    counterCurrency: USD
    enabled: true
    tradingStrategyId: scalper
"""

STRATEGIES_YAML = """
strategies:
  - id: scalper
    name: Scalper
    description: >
      Buys low, sells high.
    implementation: scalping
    configItems:
      counter-currency-buy-order-amount: 20
      minimum-percentage-gain: 2
"""


def write_config(tmp_path, **overrides):
    files = {
        "engine.yaml": ENGINE_YAML,
        "exchange.yaml": EXCHANGE_YAML,
        "markets.yaml": MARKETS_YAML,
        "strategies.yaml": STRATEGIES_YAML,
    }
    files.update(overrides)
    for name, content in files.items():
        if content is not None:
            (tmp_path / name).write_text(content)
    return tmp_path


def test_load_full_config(tmp_path, monkeypatch):
    monkeypatch.setenv("TEST_EXCHANGE_KEY", "key-from-env")
    config = BotConfig.from_directory(str(write_config(tmp_path)))

    assert config.engine == EngineConfig(
        bot_id="bot-1",
        bot_name="Unit Test Bot",
        emergency_stop_currency="BTC",
        emergency_stop_balance=Decimal("0.5"),
        trade_cycle_interval=30,
    )
    assert config.exchange.adapter == "paper"
    assert config.exchange.authentication == {"key": "key-from-env", "secret": "plain-secret"}
    assert config.exchange.network.connection_timeout == 15
    assert config.exchange.network.non_fatal_error_codes == (502, 503)
    assert config.exchange.other["buy-fee"] == 0.2
    assert config.strategies["scalper"].config_items == {
        "counter-currency-buy-order-amount": "20",
        "minimum-percentage-gain": "2",
    }
    assert config.strategies["scalper"].description == "Buys low, sells high."
    assert config.email_alerts.enabled is False


def test_markets_keep_declared_order(tmp_path):
    config = BotConfig.from_directory(str(write_config(tmp_path)))

    assert [m.id for m in config.markets] == ["btcusd", "ltcbtc", "ethusd"]
    assert [m.id for m in config.enabled_markets()] == ["btcusd", "ethusd"]


def test_emergency_stop_balance_is_exact_decimal(tmp_path):
    engine = ENGINE_YAML.replace("0.5", "0.1")
    config = BotConfig.from_directory(str(write_config(tmp_path, **{"engine.yaml": engine})))

    assert config.engine.emergency_stop_balance == Decimal("0.1")


def test_missing_file_raises(tmp_path):
    write_config(tmp_path, **{"markets.yaml": None})

    with pytest.raises(FileNotFoundError, match="markets.yaml"):
        BotConfig.from_directory(str(tmp_path))


@pytest.mark.parametrize(
    "engine_yaml, message",
    [
        (ENGINE_YAML.replace("emergencyStopCurrency: BTC", "emergencyStopCurrency: ''"), "emergencyStopCurrency"),
        (ENGINE_YAML.replace("0.5", "-1"), "emergencyStopBalance"),
        (ENGINE_YAML.replace("tradeCycleInterval: 30", "tradeCycleInterval: 0"), "tradeCycleInterval"),
        (ENGINE_YAML.replace("0.5", "lots"), "emergencyStopBalance"),
    ],
)
def test_invalid_engine_config_rejected(tmp_path, engine_yaml, message):
    write_config(tmp_path, **{"engine.yaml": engine_yaml})

    with pytest.raises(ConfigurationError, match=message):
        BotConfig.from_directory(str(tmp_path))


def test_unknown_strategy_reference_rejected(tmp_path):
    markets = MARKETS_YAML.replace("tradingStrategyId: scalper\n  - id: ltcbtc", "tradingStrategyId: nope\n  - id: ltcbtc")
    write_config(tmp_path, **{"markets.yaml": markets})

    with pytest.raises(ConfigurationError, match="unknown strategy 'nope'"):
        BotConfig.from_directory(str(tmp_path))


def test_duplicate_market_rejected(tmp_path):
    markets = MARKETS_YAML.replace("id: ethusd", "id: btcusd")
    write_config(tmp_path, **{"markets.yaml": markets})

    with pytest.raises(ConfigurationError, match="Duplicate market id"):
        BotConfig.from_directory(str(tmp_path))


def test_invalid_yaml_rejected(tmp_path):
    write_config(tmp_path, **{"engine.yaml": "engine: [unclosed"})

    with pytest.raises(ConfigurationError, match="Invalid YAML"):
        BotConfig.from_directory(str(tmp_path))


def test_enabled_email_alerts_require_addresses(tmp_path):
    email = """
emailAlerts:
  enabled: true
  smtpConfig:
    host: smtp.example.com
    tlsPort: 587
    fromAddress: bot@example.com
"""
    write_config(tmp_path, **{"email-alerts.yaml": email})

    with pytest.raises(ConfigurationError, match="to_address"):
        BotConfig.from_directory(str(tmp_path))


def test_email_alerts_loaded(tmp_path):
    email = """
emailAlerts:
  enabled: true
  smtpConfig:
    host: smtp.example.com
    tlsPort: 2525
    accountUsername: user
    accountPassword: pass
    fromAddress: bot@example.com
    toAddress: ops@example.com
"""
    config = BotConfig.from_directory(str(write_config(tmp_path, **{"email-alerts.yaml": email})))

    assert config.email_alerts.enabled
    assert config.email_alerts.tls_port == 2525
    assert config.email_alerts.to_address == "ops@example.com"


def test_sample_config_directory_is_valid():
    config = BotConfig.from_directory(str(SAMPLE_CONFIG_DIR))

    assert config.exchange.adapter == "paper"
    assert [m.id for m in config.enabled_markets()] == ["btcusd"]
