"""Exchange adapter registry.

Maps the ``adapter`` value in exchange.yaml to a factory. Factories receive
the full bot configuration so simulated exchanges can learn the configured
markets; real adapters only need the exchange section, applied via init().
"""
from typing import TYPE_CHECKING, Callable, Dict

from .api import ExchangeAdapter
from .errors import ConfigurationError
from .logging_setup import logger
from .paper import PaperTradingApi

if TYPE_CHECKING:
    from .config import BotConfig

AdapterFactory = Callable[["BotConfig"], ExchangeAdapter]

_ADAPTERS: Dict[str, AdapterFactory] = {
    "paper": lambda config: PaperTradingApi(markets=config.markets),
}


def register_adapter(name: str, factory: AdapterFactory) -> None:
    """Make an adapter available under name for exchange.yaml."""
    if name in _ADAPTERS:
        raise ValueError(f"Exchange adapter already registered: {name}")
    _ADAPTERS[name] = factory


def create_adapter(config: "BotConfig") -> ExchangeAdapter:
    """Create and initialise the adapter named in the exchange config.

    Raises:
        ConfigurationError: if the adapter name is unknown
    """
    name = config.exchange.adapter
    factory = _ADAPTERS.get(name)
    if factory is None:
        raise ConfigurationError(
            f"Unknown exchange adapter '{name}'. Registered: {sorted(_ADAPTERS)}"
        )
    adapter = factory(config)
    adapter.init(config.exchange)
    logger.info(
        f"Exchange adapter created | exchange={config.exchange.name} "
        f"adapter={adapter.get_implementation_name()}"
    )
    return adapter
