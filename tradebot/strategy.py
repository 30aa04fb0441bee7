"""
Trading strategy capability and registry.

A strategy is bound to exactly one market for the life of the bot. It is
initialised once at startup and then executed once per trade cycle, always
from the engine thread and never concurrently with itself, so it may keep
state (e.g. its last order) between cycles.

Strategies are looked up by the ``implementation`` value in strategies.yaml:

    >>> @register_strategy("my-strategy")
    ... class MyStrategy(TradingStrategy):
    ...     ...
    >>> strategy = create_strategy("my-strategy")
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Type

from .api import TradingApi
from .config import StrategyConfig
from .errors import ConfigurationError
from .models import Market


class TradingStrategy(ABC):
    """Pluggable decision logic invoked once per cycle for one market."""

    @abstractmethod
    def init(self, trading_api: TradingApi, market: Market, config: StrategyConfig) -> None:
        """Bind the strategy to its market. Called once at startup.

        Raises:
            StrategyError: if config items are missing or invalid
        """

    @abstractmethod
    def execute(self) -> None:
        """Run one iteration of the strategy.

        Raises:
            ExchangeNetworkError: transient exchange problem; the engine
                skips this market for the current cycle
            TradingApiError: fatal exchange problem; the engine shuts down
            StrategyError: the strategy cannot safely continue; the engine
                shuts down
        """


_REGISTRY: Dict[str, Callable[[], TradingStrategy]] = {}


def register_strategy(name: str) -> Callable[[Type[TradingStrategy]], Type[TradingStrategy]]:
    """Class decorator registering a strategy under an implementation name."""

    def decorator(cls: Type[TradingStrategy]) -> Type[TradingStrategy]:
        if name in _REGISTRY and _REGISTRY[name] is not cls:
            raise ValueError(f"Strategy implementation already registered: {name}")
        _REGISTRY[name] = cls
        return cls

    return decorator


def create_strategy(name: str) -> TradingStrategy:
    """Instantiate a registered strategy.

    Raises:
        ConfigurationError: if nothing is registered under name
    """
    # Built-in strategies register themselves on import.
    from . import strategies  # noqa: F401

    factory = _REGISTRY.get(name)
    if factory is None:
        raise ConfigurationError(
            f"Unknown strategy implementation '{name}'. Registered: {sorted(_REGISTRY)}"
        )
    return factory()


def registered_strategies() -> Dict[str, Callable[[], TradingStrategy]]:
    from . import strategies  # noqa: F401

    return dict(_REGISTRY)
