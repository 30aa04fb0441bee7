"""Assemble a runnable bot from configuration."""
from dataclasses import dataclass
from typing import List, Optional

from .adapters import create_adapter
from .alerts import Alerter, build_alerter
from .api import ExchangeAdapter
from .config import BotConfig
from .engine import StateListener, TradingEngine, TradingUnit
from .logging_setup import logger
from .strategy import create_strategy


@dataclass
class Bot:
    """Everything needed to run one trading bot process."""
    config: BotConfig
    adapter: ExchangeAdapter
    alerter: Alerter
    engine: TradingEngine


def build_trading_units(config: BotConfig, adapter: ExchangeAdapter) -> List[TradingUnit]:
    """Create and initialise one strategy instance per enabled market.

    Markets keep their configured order. A strategy instance is never shared
    between markets.
    """
    units: List[TradingUnit] = []
    for market in config.markets:
        if not market.enabled:
            logger.info(f"Skipping disabled market {market.id}")
            continue
        strategy_config = config.strategies[market.trading_strategy_id]
        strategy = create_strategy(strategy_config.implementation)
        strategy.init(adapter, market, strategy_config)
        logger.info(
            f"Market {market.id} bound to strategy '{strategy_config.id}' "
            f"({strategy_config.implementation})"
        )
        units.append((market, strategy))
    if not units:
        logger.warning("No enabled markets configured; the engine will only run emergency stop checks")
    return units


def build_bot(
    config: BotConfig,
    *,
    adapter: Optional[ExchangeAdapter] = None,
    alerter: Optional[Alerter] = None,
    on_state_change: Optional[StateListener] = None,
) -> Bot:
    """Wire config -> adapter -> strategies -> alerter -> engine.

    Args:
        config: Validated bot configuration
        adapter: Use this adapter instead of the one named in exchange.yaml
        alerter: Use this alerter instead of one built from email-alerts.yaml
        on_state_change: Forwarded to TradingEngine
    """
    adapter = adapter or create_adapter(config)
    alerter = alerter or build_alerter(config.email_alerts)
    units = build_trading_units(config, adapter)
    engine = TradingEngine(
        config.engine,
        adapter,
        units,
        alerter,
        on_state_change=on_state_change,
    )
    return Bot(config=config, adapter=adapter, alerter=alerter, engine=engine)
