from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields, replace
from typing import Any

import pandas as pd
from simpledb.strategy import get_available_dialects, get_strategy_class
from simpledb.types import Column

__all__ = [
    'DatabaseOptions',
    'pandas_numpy_data_loader',
    'iterdict_data_loader',
]


def iterdict_data_loader(data, columns, **kwargs) -> list[dict]:
    """Minimal data loader.

    Accepts additional keyword arguments for compatibility with other data
    loaders, but doesn't use them.
    """
    if not data:
        return []
    return list(data)


def _empty_dataframe(columns) -> pd.DataFrame:
    """Create empty DataFrame with column metadata."""
    df = pd.DataFrame(columns=Column.get_names(columns))
    df.attrs['column_types'] = Column.get_column_types_dict(columns)
    return df


def pandas_numpy_data_loader(data, columns, **kwargs) -> pd.DataFrame:
    """Standard pandas DataFrame loader using NumPy.

    Always returns a DataFrame, never None, with columns preserved for empty results.
    Includes type information in the DataFrame.attrs attribute.
    """
    if not data:
        return _empty_dataframe(columns)

    df = pd.DataFrame.from_records(list(data), columns=Column.get_names(columns))
    df.attrs['column_types'] = Column.get_column_types_dict(columns)
    return df


@dataclass
class DatabaseOptions:
    """Options

    supported driver names: `postgresql`, `sqlite`

    Behaviour options:
    - dev_mode: Log every statement with its parameters substituted (default: False)
    - keep_connection: Keep a worker's connection open between statements
      (default: True); when False a statement outside a transaction closes
      its connection as soon as it completes
    - strict_mapping: Fail a typed row when a column cannot populate the
      record instead of skipping the column (default: False)
    - data_loader: Callable building the result of `select_frame`
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 5432
    timeout: int = 0
    appname: str = None
    dev_mode: bool = False
    keep_connection: bool = True
    strict_mapping: bool = False
    data_loader: Callable[..., Any] | None = None

    def __post_init__(self):
        if self.drivername not in get_available_dialects():
            raise ValueError(f'drivername must be one of: {get_available_dialects()}')
        get_strategy_class(self.drivername).validate_options(self)
        if self.data_loader is None:
            self.data_loader = pandas_numpy_data_loader

    def __str__(self) -> str:
        """Readable identity for logs; the password is left out."""
        return (f'{self.drivername}://{self.username or ""}@{self.hostname or ""}'
                f':{self.port}/{self.database}')

    @property
    def engine_key(self) -> tuple:
        """Every field that reaches the connection URL or the engine arguments.
        """
        return (self.drivername, self.hostname, self.port, self.username,
                self.password, self.database, self.timeout, self.appname)

    @classmethod
    def load(cls, options: 'DatabaseOptions | Mapping[str, Any] | None' = None,
             **kw: Any) -> 'DatabaseOptions':
        """Build options from an instance, a mapping, keyword arguments, or a mix.

        Keyword arguments override values from `options`. Unknown keys raise
        TypeError, as a dataclass constructor would.
        """
        if isinstance(options, DatabaseOptions):
            return replace(options, **kw) if kw else options

        merged = dict(options or {})
        merged.update(kw)
        known = {f.name for f in fields(cls)}
        unknown = set(merged) - known
        if unknown:
            raise TypeError(f'Unknown database options: {sorted(unknown)}')
        return cls(**merged)
