"""Structured logging setup using loguru.

Every record carries the bot id (``extra[bot_id]``) and the name of the
thread that logged it, so the engine thread and the main thread can be told
apart in a shared log file.
"""
import sys
from pathlib import Path
from loguru import logger as _logger

DEFAULT_BOT_ID = "-"

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[bot_id]}</magenta> | "
    "<cyan>{thread.name}</cyan> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def setup_logging(
    log_file: str = "logs/tradebot.log",
    level: str = "INFO",
    enable_console: bool = True,
    bot_id: str = DEFAULT_BOT_ID,
) -> None:
    """Configure logging sinks for the bot.

    Args:
        log_file: Path to the rotating log file, or empty to disable it
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_console: Whether to log to stdout as well
        bot_id: Bot id stamped on every record until bind_bot_id() changes it
    """
    _logger.remove()
    bind_bot_id(bot_id)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        _logger.add(
            str(log_path),
            format=LOG_FORMAT,
            level=level,
            rotation="100 MB",
            retention="7 days",
            enqueue=True,
        )

    if enable_console:
        _logger.add(sys.stdout, format=LOG_FORMAT, level=level, colorize=True)


def bind_bot_id(bot_id: str) -> None:
    """Stamp subsequent records with bot_id, e.g. once config is loaded."""
    _logger.configure(extra={"bot_id": bot_id})


logger = _logger
