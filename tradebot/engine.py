"""
Trading engine cycle loop.

The engine drives one worker thread through repeated trade cycles:

    1. Stop if state is no longer RUNNING.
    2. Emergency stop check on the configured wallet balance. A breach
       shuts the bot down; a transient network error skips the cycle.
    3. Execute each enabled market's strategy in configured order.
       - transient exchange error: log, skip the market, carry on
       - anything else: log, alert, shut down, skip remaining markets
    4. Sleep for the trade cycle interval and repeat.

State Transitions:
    STOPPED -> RUNNING            start()
    RUNNING -> SHUTTING_DOWN      stop(), emergency stop breach, fatal error
    SHUTTING_DOWN -> STOPPED      worker thread exits

The engine never restarts itself after a fatal shutdown; an operator must
call start() again after reviewing the cause.

Examples:
    >>> engine = TradingEngine(engine_config, trading_api, units, alerter)
    >>> engine.start()          # returns immediately, loop runs in background
    >>> engine.stop()           # current cycle completes, then loop exits
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .alerts import Alerter, build_critical_alert_message, critical_subject, notify
from .api import TradingApi
from .config import EngineConfig
from .emergency_stop import is_emergency_stop_limit_breached
from .errors import EngineAlreadyRunningError, ErrorKind, ExchangeNetworkError, classify_error
from .logging_setup import logger
from .models import Market
from .strategy import TradingStrategy


class EngineState(Enum):
    """Engine lifecycle states."""

    STOPPED = auto()  # Not trading; initial and terminal state
    RUNNING = auto()  # Cycle loop active
    SHUTTING_DOWN = auto()  # Loop exits at the next cycle boundary


class ShutdownCause(Enum):
    """Why the engine left RUNNING."""

    OPERATOR_STOP = auto()
    EMERGENCY_STOP = auto()
    FATAL_ERROR = auto()


@dataclass(frozen=True)
class ShutdownReason:
    """The condition that triggered a shutdown.

    Attributes:
        cause: Category of the shutdown
        message: Human readable description, also used in alerts
        market_id: Market being processed when the error occurred, if any
        error: The exception that caused a FATAL_ERROR shutdown
    """

    cause: ShutdownCause
    message: str
    market_id: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def is_fatal(self) -> bool:
        return self.cause is not ShutdownCause.OPERATOR_STOP


TradingUnit = Tuple[Market, TradingStrategy]
StateListener = Callable[[EngineState, EngineState], None]


class TradingEngine:
    """Cycle scheduler and state machine.

    Responsibilities:
    - Own the run loop on a dedicated worker thread
    - Run the emergency stop check at the start of every cycle
    - Execute strategies strictly sequentially, in configured market order
    - Classify errors into skip-and-continue or shut-down-and-alert

    Attributes:
        engine_config: Bot identity, emergency stop and cycle interval
        trading_api: The single exchange adapter shared by all strategies
        trading_units: (market, strategy) pairs for enabled markets
        alerter: Receives critical alerts

    Note:
        State changes are atomic check-and-set under a lock so a start()
        cannot race a stop() or a second start(). Strategy and exchange
        calls only ever happen on the worker thread.
    """

    def __init__(
        self,
        engine_config: EngineConfig,
        trading_api: TradingApi,
        trading_units: Sequence[TradingUnit],
        alerter: Alerter,
        *,
        on_state_change: Optional[StateListener] = None,
        thread_name: str = "trading-engine",
    ) -> None:
        engine_config.validate()
        self.engine_config = engine_config
        self.trading_api = trading_api
        self.alerter = alerter
        self.exchange_name = trading_api.get_implementation_name()
        self.on_state_change = on_state_change
        self.thread_name = thread_name

        self.trading_units: List[TradingUnit] = []
        for market, strategy in trading_units:
            if not market.enabled:
                logger.info(f"Market {market.id} is disabled; it will not be traded")
                continue
            self.trading_units.append((market, strategy))

        self._lock = threading.Lock()
        self._state = EngineState.STOPPED
        self._stop_event = threading.Event()
        self._loop_exited = threading.Event()
        self._loop_exited.set()
        self._thread: Optional[threading.Thread] = None
        self._loop_thread_ident: Optional[int] = None
        self._shutdown_reason: Optional[ShutdownReason] = None
        self._cycle_count = 0
        self._last_cycle_started_at: Optional[datetime] = None

    # -- public API ---------------------------------------------------------

    @property
    def state(self) -> EngineState:
        with self._lock:
            return self._state

    @property
    def shutdown_reason(self) -> Optional[ShutdownReason]:
        with self._lock:
            return self._shutdown_reason

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    def is_running(self) -> bool:
        return self.state is EngineState.RUNNING

    def start(self, background: bool = True) -> None:
        """Start the cycle loop.

        Args:
            background: Run the loop on a new worker thread and return
                immediately. When False the loop runs on the calling thread
                and start() returns once the engine has stopped.

        Raises:
            EngineAlreadyRunningError: if the engine is not STOPPED
        """
        with self._lock:
            if self._state is not EngineState.STOPPED:
                raise EngineAlreadyRunningError(
                    f"Cannot start trading engine: state is {self._state.name}"
                )
            self._state = EngineState.RUNNING
            self._shutdown_reason = None
            self._cycle_count = 0
            self._stop_event.clear()
            self._loop_exited.clear()
            self._thread = (
                threading.Thread(target=self._run_loop, name=self.thread_name, daemon=True)
                if background
                else None
            )
            thread = self._thread

        logger.info(
            f"Starting trading engine | bot={self.engine_config.bot_name} "
            f"markets={[m.id for m, _ in self.trading_units]} "
            f"interval={self.engine_config.trade_cycle_interval}s"
        )
        self._notify_state_change(EngineState.STOPPED, EngineState.RUNNING)
        if thread is None:
            self._run_loop()
            return
        try:
            thread.start()
        except Exception:
            logger.exception("Failed to start trading engine thread")
            with self._lock:
                self._state = EngineState.STOPPED
                self._thread = None
                self._loop_exited.set()
            self._notify_state_change(EngineState.RUNNING, EngineState.STOPPED)
            raise

    def stop(self, wait: bool = True, timeout: Optional[float] = None) -> bool:
        """Request shutdown. The cycle in progress completes before the loop exits.

        Idempotent: stopping a stopping or stopped engine is a no-op.

        Args:
            wait: Block until the loop has exited
            timeout: Maximum seconds to wait

        Returns:
            True if the engine is STOPPED on return
        """
        transitioned = self._request_shutdown(
            ShutdownReason(ShutdownCause.OPERATOR_STOP, "Stop requested by operator")
        )
        if transitioned:
            logger.info("Trading engine stop requested; finishing current work")
        self._stop_event.set()

        on_loop_thread = threading.get_ident() == self._loop_thread_ident
        if wait and not on_loop_thread:
            self._loop_exited.wait(timeout)
        return self.state is EngineState.STOPPED

    def wait_until_stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until the loop exits. Returns True if it did within timeout."""
        return self._loop_exited.wait(timeout)

    def status(self) -> Dict[str, Any]:
        """Snapshot of engine state for operators."""
        with self._lock:
            reason = self._shutdown_reason
            state = self._state
            last_cycle = self._last_cycle_started_at
        return {
            "bot_id": self.engine_config.bot_id,
            "bot_name": self.engine_config.bot_name,
            "state": state.name,
            "cycle_count": self._cycle_count,
            "last_cycle_started_at": last_cycle.isoformat() if last_cycle else None,
            "trade_cycle_interval": self.engine_config.trade_cycle_interval,
            "markets": [m.id for m, _ in self.trading_units],
            "exchange": self.exchange_name,
            "shutdown_cause": reason.cause.name if reason else None,
            "shutdown_reason": reason.message if reason else None,
        }

    # -- loop ---------------------------------------------------------------

    def _run_loop(self) -> None:
        ident = threading.get_ident()
        with self._lock:
            self._loop_thread_ident = ident
        interval = self.engine_config.trade_cycle_interval
        try:
            while self.is_running():
                if not self._run_cycle():
                    break
                logger.info(f"*** Sleeping {interval}s until next trade cycle ***")
                self._stop_event.wait(interval)
        except Exception as e:
            self._shutdown_on_fatal_error("Unexpected error in trading engine loop", e)
        finally:
            with self._lock:
                previous = self._state
                self._state = EngineState.STOPPED
                reason = self._shutdown_reason
                if self._loop_thread_ident == ident:
                    self._loop_thread_ident = None
                self._loop_exited.set()
            if previous is not EngineState.STOPPED:
                self._notify_state_change(previous, EngineState.STOPPED)
            logger.info(
                f"Trading engine stopped after {self._cycle_count} cycle(s) | "
                f"reason={reason.message if reason else 'unknown'}"
            )

    def _run_cycle(self) -> bool:
        """Run one trade cycle. Returns True if the engine should keep running."""
        self._cycle_count += 1
        with self._lock:
            self._last_cycle_started_at = datetime.now(timezone.utc)
        logger.info(f"*** Starting trade cycle {self._cycle_count} ***")

        try:
            breached = is_emergency_stop_limit_breached(
                self.trading_api, self.engine_config, self.alerter
            )
        except ExchangeNetworkError as e:
            logger.warning(
                f"Emergency stop check hit a transient network error; "
                f"skipping trade cycle {self._cycle_count}: {e}"
            )
            return self.is_running()
        except Exception as e:
            self._shutdown_on_fatal_error("Emergency stop check failed", e)
            return False

        if breached:
            self._request_shutdown(
                ShutdownReason(
                    ShutdownCause.EMERGENCY_STOP,
                    f"Emergency stop limit breached for "
                    f"{self.engine_config.emergency_stop_currency} "
                    f"(floor {self.engine_config.emergency_stop_balance})",
                )
            )
            logger.error("Emergency stop limit breached; shutting down trading engine")
            return False

        # An operator stop lets the cycle finish; fatal conditions return early below.
        for market, strategy in self.trading_units:
            logger.info(f"Executing strategy for market {market.name} ({market.id})")
            try:
                strategy.execute()
            except Exception as e:
                if classify_error(e) is ErrorKind.TRANSIENT:
                    logger.warning(
                        f"Transient exchange error for market {market.id}; "
                        f"skipping it until next cycle: {e}"
                    )
                    continue
                self._shutdown_on_fatal_error(
                    f"Fatal error executing strategy for market {market.name} ({market.id})",
                    e,
                    market,
                )
                return False

        return self.is_running()

    # -- state helpers ------------------------------------------------------

    def _request_shutdown(self, reason: ShutdownReason) -> bool:
        """Move RUNNING -> SHUTTING_DOWN and record why.

        A fatal reason replaces an operator stop already recorded, so an
        error in the market being processed when stop() arrived is not lost.

        Returns:
            True if this call performed the transition
        """
        with self._lock:
            current = self._shutdown_reason
            if self._state is not EngineState.STOPPED and (
                current is None or (reason.is_fatal and not current.is_fatal)
            ):
                self._shutdown_reason = reason
            if self._state is not EngineState.RUNNING:
                return False
            self._state = EngineState.SHUTTING_DOWN
        self._stop_event.set()
        self._notify_state_change(EngineState.RUNNING, EngineState.SHUTTING_DOWN)
        return True

    def _shutdown_on_fatal_error(
        self, message: str, error: BaseException, market: Optional[Market] = None
    ) -> None:
        logger.opt(exception=error).error(f"{message}: {error}")
        details = (
            f"Bot: {self.engine_config.bot_name} ({self.engine_config.bot_id})\n"
            f"Exchange: {self.exchange_name}"
        )
        if market is not None:
            details += f"\nMarket: {market.name} ({market.id})"
        notify(
            self.alerter,
            critical_subject(self.engine_config.bot_name),
            build_critical_alert_message(message, details, error),
        )
        self._request_shutdown(
            ShutdownReason(
                ShutdownCause.FATAL_ERROR,
                message,
                market_id=market.id if market else None,
                error=error,
            )
        )

    def _notify_state_change(self, old: EngineState, new: EngineState) -> None:
        logger.info(f"Trading engine state {old.name} -> {new.name}")
        if self.on_state_change is None:
            return
        try:
            self.on_state_change(old, new)
        except Exception as e:
            logger.error(f"State change listener failed: {e}")
