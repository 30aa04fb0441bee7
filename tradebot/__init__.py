"""
Automated cryptocurrency trading bot.

Polls one exchange through a normalised trading API, runs a pluggable
strategy for every enabled market once per trade cycle, and halts safely
when an emergency stop balance is breached or a fatal error occurs:
- Single-threaded trade cycle loop with cooperative stop
- Emergency stop check on a configured wallet balance every cycle
- Transient vs fatal error classification by exception type
- Critical alerts by email (or log) on every fatal shutdown
- Strategy and exchange adapter registries resolved from configuration
- Structured logging via loguru
- Configuration-driven (YAML)

Core Modules:
    engine: Trade cycle loop and engine state machine
    emergency_stop: Wallet balance floor check
    errors: Error kinds and exception hierarchy
    api: TradingApi capability implemented per exchange
    http_transport: Shared HTTP plumbing for exchange adapters
    paper: In-memory simulated exchange
    strategy: TradingStrategy capability and registry
    strategies: Built-in strategies
    alerts: Operator alerting
    config: Configuration loading and validation
    bot: Wiring configuration into a runnable engine

Example:
    >>> from tradebot.bot import build_bot
    >>> from tradebot.config import BotConfig
    >>> from tradebot.logging_setup import setup_logging
    >>>
    >>> setup_logging()
    >>> bot = build_bot(BotConfig.from_directory("config"))
    >>> bot.engine.start()
"""

__version__ = "0.1.0"
__all__ = [
    "engine",
    "emergency_stop",
    "errors",
    "api",
    "http_transport",
    "paper",
    "strategy",
    "strategies",
    "alerts",
    "adapters",
    "config",
    "bot",
    "cli",
]
