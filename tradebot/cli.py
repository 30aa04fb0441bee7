"""tradebot command line.

Usage:
    tradebot run --config-dir config
    tradebot run --config-dir config --log-file logs/bot.log --log-level DEBUG
    tradebot check-config --config-dir config
"""
import argparse
import signal
import sys
from typing import List, Optional

from .bot import build_bot
from .config import BotConfig
from .errors import ConfigurationError, StrategyError
from .logging_setup import bind_bot_id, logger, setup_logging

EXIT_OK = 0
EXIT_FATAL_SHUTDOWN = 1
EXIT_CONFIG_ERROR = 2

SIGNAL_POLL_SECONDS = 0.2


def load_config(config_dir: str) -> Optional[BotConfig]:
    try:
        return BotConfig.from_directory(config_dir)
    except (FileNotFoundError, ConfigurationError) as e:
        logger.error(f"Invalid configuration in {config_dir}: {e}")
        return None


def cmd_check_config(args) -> int:
    config = load_config(args.config_dir)
    if config is None:
        return EXIT_CONFIG_ERROR

    engine = config.engine
    print(f"Bot:             {engine.bot_name} ({engine.bot_id})")
    print(f"Exchange:        {config.exchange.name} (adapter: {config.exchange.adapter})")
    print(f"Emergency stop:  {engine.emergency_stop_balance} {engine.emergency_stop_currency}")
    print(f"Cycle interval:  {engine.trade_cycle_interval}s")
    print(f"Email alerts:    {'enabled' if config.email_alerts.enabled else 'disabled'}")
    print(f"\n{'Market':<12} {'Name':<12} {'Enabled':<8} {'Strategy':<20}")
    print("-" * 54)
    for market in config.markets:
        print(
            f"{market.id:<12} {market.name:<12} {str(market.enabled):<8} "
            f"{market.trading_strategy_id:<20}"
        )
    return EXIT_OK


def cmd_run(args) -> int:
    setup_logging(log_file=args.log_file, level=args.log_level, enable_console=not args.quiet)

    config = load_config(args.config_dir)
    if config is None:
        return EXIT_CONFIG_ERROR
    bind_bot_id(config.engine.bot_id)

    try:
        bot = build_bot(config)
    except (ConfigurationError, StrategyError, ValueError) as e:
        logger.error(f"Failed to start bot: {e}")
        return EXIT_CONFIG_ERROR

    engine = bot.engine

    # Handlers only record the signal; the poll loop below stops the engine.
    received: List[int] = []

    def handle_signal(signum, frame):
        received.append(signum)

    previous_handlers = {
        sig: signal.signal(sig, handle_signal) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        engine.start()
        stop_sent = False
        while not engine.wait_until_stopped(timeout=SIGNAL_POLL_SECONDS):
            if received and not stop_sent:
                logger.info(
                    f"Received signal {signal.Signals(received[0]).name}; stopping trading engine"
                )
                engine.stop(wait=False)
                stop_sent = True
    finally:
        for sig, handler in previous_handlers.items():
            signal.signal(sig, handler)

    reason = engine.shutdown_reason
    if reason is not None and reason.is_fatal:
        logger.error(f"Bot stopped on fatal condition: {reason.message}. Manual restart required.")
        return EXIT_FATAL_SHUTDOWN
    logger.info("Bot stopped")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tradebot", description="Automated crypto trading bot")
    sub = parser.add_subparsers(dest="cmd")

    run = sub.add_parser("run", help="Run the trading engine until stopped")
    run.add_argument("--config-dir", default="config", help="Directory of YAML config files")
    run.add_argument("--log-file", default="logs/tradebot.log", help="Log file path ('' to disable)")
    run.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING, ERROR")
    run.add_argument("--quiet", action="store_true", help="Do not log to console")
    run.set_defaults(func=cmd_run)

    check = sub.add_parser("check-config", help="Validate configuration and print a summary")
    check.add_argument("--config-dir", default="config", help="Directory of YAML config files")
    check.set_defaults(func=cmd_check_config)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return EXIT_CONFIG_ERROR
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
