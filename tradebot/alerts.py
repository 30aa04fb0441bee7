"""Operator alerts.

Alert delivery is best-effort: a failure to send is logged and never
propagates into the trading engine. Callers go through notify().
"""
import smtplib
import ssl
import traceback
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Optional

from .config import EmailAlertsConfig
from .logging_setup import logger

CRITICAL_ALERT_SUBJECT = "CRITICAL Alert message from {bot_name}"
SMTP_TIMEOUT_SECONDS = 30


class Alerter(ABC):
    """Sends a human readable notification to an operator."""

    @abstractmethod
    def send(self, subject: str, message: str) -> None:
        """Send an alert. May raise; use notify() for best-effort delivery."""


class LogAlerter(Alerter):
    """Writes alerts to the log. Used when no alert transport is configured."""

    def send(self, subject: str, message: str) -> None:
        logger.critical(f"ALERT: {subject}\n{message}")


class EmailAlerter(Alerter):
    """Sends alerts over SMTP with STARTTLS."""

    def __init__(self, config: EmailAlertsConfig):
        self.config = config

    def send(self, subject: str, message: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.config.from_address
        msg["To"] = self.config.to_address
        msg.set_content(message)

        with smtplib.SMTP(self.config.host, self.config.tls_port, timeout=SMTP_TIMEOUT_SECONDS) as smtp:
            smtp.starttls(context=ssl.create_default_context())
            if self.config.account_username:
                smtp.login(self.config.account_username, self.config.account_password)
            smtp.send_message(msg)
        logger.info(f"Email alert sent | to={self.config.to_address} subject={subject}")


def build_alerter(config: EmailAlertsConfig) -> Alerter:
    """EmailAlerter when email alerts are enabled, LogAlerter otherwise."""
    if config.enabled:
        return EmailAlerter(config)
    logger.info("Email alerts disabled; alerts will be logged only")
    return LogAlerter()


def notify(alerter: Optional[Alerter], subject: str, message: str) -> bool:
    """Send an alert, logging instead of raising on failure.

    Returns:
        True if the alerter accepted the message
    """
    if alerter is None:
        logger.warning(f"No alerter configured; dropping alert: {subject}")
        return False
    try:
        alerter.send(subject, message)
        return True
    except Exception as e:
        logger.error(f"Failed to send alert '{subject}': {e}")
        return False


def critical_subject(bot_name: str) -> str:
    return CRITICAL_ALERT_SUBJECT.format(bot_name=bot_name)


def build_critical_alert_message(
    reason: str,
    details: str = "",
    exc: Optional[BaseException] = None,
) -> str:
    """Compose the body of a critical alert.

    Args:
        reason: One line summary of the triggering condition
        details: Extra context, e.g. balances or the market being traded
        exc: Exception that caused the shutdown, included with its traceback
    """
    lines = [
        reason,
        "",
        f"Time: {datetime.now(timezone.utc).isoformat()}",
    ]
    if details:
        lines += ["", details]
    if exc is not None:
        lines += [
            "",
            f"Error: {type(exc).__name__}: {exc}",
            "",
            "Stack trace:",
            "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        ]
    lines += ["", "The bot has shut down and will not restart until an operator restarts it."]
    return "\n".join(lines)
