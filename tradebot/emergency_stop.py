"""Emergency stop check on wallet balance.

Guards against runaway losses from a misbehaving strategy, a buggy adapter
or corrupt exchange data by checking an independent signal: the balance of
one configured currency must not fall below a floor.
"""
from .alerts import Alerter, build_critical_alert_message, critical_subject, notify
from .api import TradingApi
from .config import EngineConfig
from .errors import ExchangeNetworkError, TradingApiError
from .logging_setup import logger


def is_emergency_stop_limit_breached(
    trading_api: TradingApi, engine_config: EngineConfig, alerter: Alerter
) -> bool:
    """Check whether the emergency stop currency balance is below the floor.

    A fatal error reading balances, a missing balance for the currency, or a
    balance strictly below the floor is a breach: one critical alert is sent
    and True is returned.

    Args:
        trading_api: Adapter for the exchange being traded
        engine_config: Supplies the currency and floor balance
        alerter: Receives the critical alert on breach

    Returns:
        True if breached, False otherwise

    Raises:
        ExchangeNetworkError: if balances could not be fetched due to a
            transient network problem. Not a breach; the caller decides.
    """
    currency = engine_config.emergency_stop_currency
    floor = engine_config.emergency_stop_balance
    logger.info(f"Performing Emergency Stop check | currency={currency} floor={floor}")

    try:
        balance_info = trading_api.get_balance_info()
    except ExchangeNetworkError:
        raise
    except TradingApiError as e:
        reason = f"Emergency stop check: unable to fetch balance info from exchange: {e}"
        logger.error(reason)
        _alert(alerter, engine_config, reason, f"Emergency stop floor: {floor} {currency}")
        return True

    balance = balance_info.available_balance(currency)
    if balance is None:
        reason = (
            f"Emergency stop check: emergency stop currency {currency} "
            f"not present in wallet balances returned from exchange"
        )
        logger.error(reason)
        _alert(
            alerter,
            engine_config,
            reason,
            f"Balances returned: {balance_info.available}\n"
            f"Emergency stop floor: {floor} {currency}",
        )
        return True

    if balance < floor:
        reason = (
            f"EMERGENCY STOP triggered! Current {currency} wallet balance [{balance}] "
            f"on exchange is lower than configured Emergency Stop balance [{floor}] {currency}"
        )
        logger.error(reason)
        _alert(alerter, engine_config, reason, f"Balances: {balance_info.available}")
        return True

    logger.info(f"Emergency Stop check passed | {currency} balance={balance} floor={floor}")
    return False


def _alert(alerter: Alerter, engine_config: EngineConfig, reason: str, details: str) -> None:
    notify(
        alerter,
        critical_subject(engine_config.bot_name),
        build_critical_alert_message(reason, details),
    )
