"""End-to-end demo of the trading bot against the paper exchange.

Shows:
1. Loading the sample YAML configuration
2. Building the bot (adapter, strategies, alerter, engine)
3. Running trade cycles on a background thread
4. Moving the simulated market so orders fill
5. Stopping the engine and printing its status
"""
import sys
import time
from dataclasses import replace
from pathlib import Path

# Add parent directory to path so we can import tradebot module
sys.path.insert(0, str(Path(__file__).parent.parent))

from tradebot.bot import build_bot
from tradebot.config import BotConfig
from tradebot.logging_setup import setup_logging, logger


def main():
    """Run the demo trading bot for a few cycles."""
    # Step 1: Setup logging
    setup_logging(log_file="", level="INFO", enable_console=True)
    logger.info("=== Paper Trading Demo ===")

    # Step 2: Load configuration, with a short cycle interval for the demo
    config_dir = Path(__file__).parent.parent / "config"
    config = BotConfig.from_directory(str(config_dir))
    config = replace(config, engine=replace(config.engine, trade_cycle_interval=0.5))
    logger.info(f"Loaded config from {config_dir}")

    # Step 3: Build the bot
    bot = build_bot(config)
    exchange = bot.adapter
    exchange.set_order_book("btcusd", bids=[(30000, 1)], asks=[(30010, 1)])

    # Step 4: Start trading on the engine thread
    bot.engine.start()

    # Step 5: Walk the market up so the BUY fills, then the SELL fills
    for bid, ask in [(29990, 29995), (30700, 30710), (30000, 30010)]:
        time.sleep(1.2)
        logger.info(f"Market moves | bid={bid} ask={ask}")
        exchange.set_order_book("btcusd", bids=[(bid, 1)], asks=[(ask, 1)])

    time.sleep(1.0)

    # Step 6: Stop and report
    bot.engine.stop(timeout=5)
    status = bot.engine.status()
    logger.info(f"Engine status: {status}")

    balances = exchange.get_balance_info()
    print("\n=== Summary ===")
    print(f"Cycles run:      {status['cycle_count']}")
    print(f"Orders filled:   {len(exchange.filled_orders)}")
    print(f"Open orders:     {len(exchange.get_your_open_orders('btcusd'))}")
    for currency, amount in sorted(balances.available.items()):
        print(f"Balance {currency:<8} {amount}")


if __name__ == "__main__":
    main()
