"""Configuration loader for the trading bot.

Reads a directory of YAML files with environment variable interpolation:

    engine.yaml        bot identity, emergency stop, trade cycle interval
    exchange.yaml      adapter id, credentials, network and adapter settings
    markets.yaml       markets to trade, each bound to one strategy
    strategies.yaml    strategy definitions and their config items
    email-alerts.yaml  optional SMTP settings for critical alerts

The snapshot is loaded once at startup; changes need a restart.
"""
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .errors import ConfigurationError
from .models import Market

ENGINE_FILE = "engine.yaml"
EXCHANGE_FILE = "exchange.yaml"
MARKETS_FILE = "markets.yaml"
STRATEGIES_FILE = "strategies.yaml"
EMAIL_ALERTS_FILE = "email-alerts.yaml"


@dataclass(frozen=True)
class EngineConfig:
    """Trading engine settings."""
    bot_id: str
    bot_name: str
    emergency_stop_currency: str
    emergency_stop_balance: Decimal
    trade_cycle_interval: float  # seconds

    def validate(self) -> None:
        if not self.emergency_stop_currency:
            raise ConfigurationError("engine.emergencyStopCurrency must be set")
        if self.emergency_stop_balance is None or self.emergency_stop_balance < 0:
            raise ConfigurationError(
                f"engine.emergencyStopBalance must be >= 0, got {self.emergency_stop_balance}"
            )
        if self.trade_cycle_interval <= 0:
            raise ConfigurationError(
                f"engine.tradeCycleInterval must be > 0, got {self.trade_cycle_interval}"
            )


@dataclass(frozen=True)
class NetworkConfig:
    """Transport settings passed to the exchange adapter."""
    connection_timeout: int = 30
    non_fatal_error_codes: Tuple[int, ...] = (502, 503, 504, 520, 522, 525)


@dataclass(frozen=True)
class ExchangeConfig:
    """Exchange adapter settings."""
    name: str
    adapter: str
    authentication: Dict[str, str] = field(default_factory=dict)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    other: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StrategyConfig:
    """A strategy definition and its free-form config items."""
    id: str
    name: str
    implementation: str
    description: str = ""
    config_items: Dict[str, str] = field(default_factory=dict)

    def get_item(self, key: str) -> Optional[str]:
        return self.config_items.get(key)


@dataclass(frozen=True)
class EmailAlertsConfig:
    """SMTP settings for critical alerts."""
    enabled: bool = False
    host: str = ""
    tls_port: int = 587
    account_username: str = ""
    account_password: str = ""
    from_address: str = ""
    to_address: str = ""


@dataclass(frozen=True)
class BotConfig:
    """Complete bot configuration snapshot."""
    engine: EngineConfig
    exchange: ExchangeConfig
    markets: List[Market]
    strategies: Dict[str, StrategyConfig]
    email_alerts: EmailAlertsConfig = field(default_factory=EmailAlertsConfig)

    def enabled_markets(self) -> List[Market]:
        """Enabled markets in the order they are declared."""
        return [m for m in self.markets if m.enabled]

    def validate(self) -> None:
        self.engine.validate()
        if not self.exchange.adapter:
            raise ConfigurationError("exchange.adapter must be set")

        seen = set()
        for market in self.markets:
            if market.id in seen:
                raise ConfigurationError(f"Duplicate market id: {market.id}")
            seen.add(market.id)
            if market.trading_strategy_id not in self.strategies:
                raise ConfigurationError(
                    f"Market {market.id} references unknown strategy "
                    f"'{market.trading_strategy_id}'"
                )

        if self.email_alerts.enabled:
            for attr in ("host", "from_address", "to_address"):
                if not getattr(self.email_alerts, attr):
                    raise ConfigurationError(f"emailAlerts.smtpConfig.{attr} must be set")

    @classmethod
    def from_directory(cls, config_dir: str) -> "BotConfig":
        """Load and validate configuration from a directory of YAML files.

        Args:
            config_dir: Directory holding engine.yaml, exchange.yaml,
                markets.yaml, strategies.yaml and optionally email-alerts.yaml

        Returns:
            Validated BotConfig

        Raises:
            FileNotFoundError: If a mandatory file is missing
            ConfigurationError: If a file is malformed or fails validation
        """
        base = Path(config_dir)
        engine_data = _load_yaml(base / ENGINE_FILE).get("engine") or {}
        exchange_data = _load_yaml(base / EXCHANGE_FILE).get("exchange") or {}
        markets_data = _load_yaml(base / MARKETS_FILE).get("markets") or []
        strategies_data = _load_yaml(base / STRATEGIES_FILE).get("strategies") or []

        email_file = base / EMAIL_ALERTS_FILE
        email_data = {}
        if email_file.exists():
            email_data = _load_yaml(email_file).get("emailAlerts") or {}

        strategies = {}
        for item in strategies_data:
            strategy = _parse_strategy(item)
            if strategy.id in strategies:
                raise ConfigurationError(f"Duplicate strategy id: {strategy.id}")
            strategies[strategy.id] = strategy

        config = cls(
            engine=_parse_engine(engine_data),
            exchange=_parse_exchange(exchange_data),
            markets=[_parse_market(item) for item in markets_data],
            strategies=strategies,
            email_alerts=_parse_email_alerts(email_data),
        )
        config.validate()
        return config


def _load_yaml(path: Path) -> dict:
    """Read a YAML file, interpolating ${VAR_NAME} from the environment."""
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("r") as f:
        raw = f.read()

    for key, value in os.environ.items():
        raw = raw.replace(f"${{{key}}}", value)

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a mapping at top level of {path}")
    return data


def _require(data: dict, key: str, section: str) -> Any:
    value = data.get(key)
    if value is None or value == "":
        raise ConfigurationError(f"{section}.{key} is mandatory")
    return value


def _to_decimal(value: Any, name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ConfigurationError(f"{name} is not a valid decimal: {value!r}") from e


def _to_float(value: Any, name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} is not a valid number: {value!r}") from e


def _to_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} is not a valid integer: {value!r}") from e


def _parse_engine(data: dict) -> EngineConfig:
    return EngineConfig(
        bot_id=str(_require(data, "botId", "engine")),
        bot_name=str(_require(data, "botName", "engine")),
        emergency_stop_currency=str(_require(data, "emergencyStopCurrency", "engine")),
        emergency_stop_balance=_to_decimal(
            _require(data, "emergencyStopBalance", "engine"), "engine.emergencyStopBalance"
        ),
        trade_cycle_interval=_to_float(
            _require(data, "tradeCycleInterval", "engine"), "engine.tradeCycleInterval"
        ),
    )


def _parse_exchange(data: dict) -> ExchangeConfig:
    network_data = data.get("networkConfig") or {}
    network = NetworkConfig()
    if network_data:
        codes = network_data.get("nonFatalErrorCodes")
        network = NetworkConfig(
            connection_timeout=_to_int(
                network_data.get("connectionTimeout", network.connection_timeout),
                "exchange.networkConfig.connectionTimeout",
            ),
            non_fatal_error_codes=tuple(
                _to_int(c, "exchange.networkConfig.nonFatalErrorCodes") for c in codes
            ) if codes is not None else network.non_fatal_error_codes,
        )
    return ExchangeConfig(
        name=str(_require(data, "name", "exchange")),
        adapter=str(_require(data, "adapter", "exchange")),
        authentication={
            k: str(v) for k, v in (data.get("authenticationConfig") or {}).items()
        },
        network=network,
        other=dict(data.get("otherConfig") or {}),
    )


def _parse_market(data: dict) -> Market:
    return Market(
        id=str(_require(data, "id", "markets")),
        name=str(_require(data, "name", "markets")),
        base_currency=str(_require(data, "baseCurrency", "markets")),
        counter_currency=str(_require(data, "counterCurrency", "markets")),
        enabled=bool(data.get("enabled", False)),
        trading_strategy_id=str(_require(data, "tradingStrategyId", "markets")),
    )


def _parse_strategy(data: dict) -> StrategyConfig:
    return StrategyConfig(
        id=str(_require(data, "id", "strategies")),
        name=str(_require(data, "name", "strategies")),
        implementation=str(_require(data, "implementation", "strategies")),
        description=str(data.get("description") or "").strip(),
        config_items={
            str(k): str(v) for k, v in (data.get("configItems") or {}).items()
        },
    )


def _parse_email_alerts(data: dict) -> EmailAlertsConfig:
    if not data:
        return EmailAlertsConfig()
    smtp = data.get("smtpConfig") or {}
    return EmailAlertsConfig(
        enabled=bool(data.get("enabled", False)),
        host=str(smtp.get("host", "")),
        tls_port=_to_int(smtp.get("tlsPort", 587), "emailAlerts.smtpConfig.tlsPort"),
        account_username=str(smtp.get("accountUsername", "")),
        account_password=str(smtp.get("accountPassword", "")),
        from_address=str(smtp.get("fromAddress", "")),
        to_address=str(smtp.get("toAddress", "")),
    )
