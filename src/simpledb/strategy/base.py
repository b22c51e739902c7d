"""
Base strategy interface for database operations.

Defines the abstract base class that all database-specific strategy implementations
must inherit from. The strategy pattern encapsulates the dialect-specific parts of
the connection lifecycle (URL building, autocommit toggling, placeholder style,
generated key retrieval) while presenting a consistent interface to the rest of
the package.
"""
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from simpledb.options import DatabaseOptions

# Registry of dialect name -> strategy class
# Defined here to avoid circular imports (concrete strategies import from base)
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}


def register_strategy(dialect: str):
    """Decorator to register a strategy class for a dialect.

    Usage:
        @register_strategy('postgresql')
        class PostgresStrategy(DatabaseStrategy):
            ...
    """
    def decorator(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return decorator


class DatabaseStrategy(ABC):
    """Base class for database-specific operations.
    """

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the dialect identifier (e.g., 'postgresql', 'sqlite')."""

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions') -> Any:
        """Build the database connection URL for this dialect.

        Args:
            options: DatabaseOptions containing connection parameters

        Returns
            URL string or sqlalchemy.URL suitable for create_engine
        """

    @abstractmethod
    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for this dialect.
        """

    @abstractmethod
    def configure_connection(self, raw_conn: Any) -> None:
        """Configure a freshly opened raw DBAPI connection.

        Leaves the connection in auto-commit mode.
        """

    @abstractmethod
    def enable_autocommit(self, raw_conn: Any) -> None:
        """Enable auto-commit mode on a raw database connection.

        Args:
            raw_conn: The raw DBAPI connection (not wrapped)
        """

    @abstractmethod
    def disable_autocommit(self, raw_conn: Any) -> None:
        """Disable auto-commit mode on a raw database connection.

        Args:
            raw_conn: The raw DBAPI connection (not wrapped)
        """

    @abstractmethod
    def standardize_sql(self, sql: str) -> str:
        """Rewrite SQL text into the form the driver expects.
        """

    def prepare_insert(self, sql: str) -> str:
        """Rewrite a standardized INSERT so the driver reports its generated keys.
        """
        return sql

    @abstractmethod
    def get_generated_key(self, cursor: Any) -> int | None:
        """Return the identity generated by the last INSERT on `cursor`.

        Returns
            The first generated key, or None when the statement produced none
        """

    @classmethod
    @abstractmethod
    def get_required_options(cls) -> list[str]:
        """Return list of required option field names for this dialect.
        """

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Validate options for this dialect.

        Raises
            ValueError: If any required field is None or 0
        """
        for field in cls.get_required_options():
            if not getattr(options, field):
                raise ValueError(f'field {field} cannot be None or 0')
