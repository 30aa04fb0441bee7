"""Built-in trading strategies. Importing this package registers them."""
from .scalping import ExampleScalpingStrategy

__all__ = ["ExampleScalpingStrategy"]
