"""
Database strategy factory for database-specific operations.
"""
from functools import lru_cache

from simpledb.strategy.base import _STRATEGY_REGISTRY
from simpledb.strategy.base import DatabaseStrategy as DatabaseStrategy
from simpledb.strategy.base import register_strategy as register_strategy
from simpledb.strategy.postgres import PostgresStrategy as PostgresStrategy
from simpledb.strategy.sqlite import SQLiteStrategy as SQLiteStrategy


def get_available_dialects() -> list[str]:
    """Return list of registered dialect names."""
    return list(_STRATEGY_REGISTRY.keys())


def get_strategy_class(dialect: str) -> type['DatabaseStrategy']:
    """Get the strategy class for a dialect without instantiating.

    Raises
        ValueError: The dialect is not registered
    """
    if dialect not in _STRATEGY_REGISTRY:
        raise ValueError(f'Unsupported dialect: {dialect}. Available: {get_available_dialects()}')
    return _STRATEGY_REGISTRY[dialect]


@lru_cache(maxsize=8)
def get_strategy(dialect: str) -> DatabaseStrategy:
    """Get the cached strategy instance for a dialect name.
    """
    return get_strategy_class(dialect)()
