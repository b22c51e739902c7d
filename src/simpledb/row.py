"""Row materialization: generic dict rows and typed records.

Typed results are mapped through a `RecordShape`, a table of column name to
setter built once per class and cached. Column names are matched against
fields by, in order:

1. an explicit alias in the field metadata: ``field(metadata={'column': 'isBlind'})``
2. the exact field name
3. the field name ignoring case
4. the snake_case form of a camelCase column (``createdDate`` -> ``created_date``)
5. the boolean ``is`` prefix dropped (``isBlind`` / ``is_blind`` -> ``blind``)
"""
import dataclasses
import functools
import logging
import re
import types
import typing
from collections.abc import Callable
from typing import Any, Self

from simpledb.exceptions import MappingError, TypeConversionError
from simpledb.types import Column, coerce_value, get_coercer

__all__ = ['make_row', 'RecordShape', 'FieldSetter']

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])(?=[A-Z])')


def make_row(columns: list[Column], values: Any) -> dict[str, Any]:
    """Build an ordered row mapping, coercing each value by its column type.

    Duplicate labels overwrite in column order.
    """
    return {col.name: coerce_value(value, col.python_type)
            for col, value in zip(columns, values)}


def to_snake_case(name: str) -> str:
    """
    >>> to_snake_case('createdDate')
    'created_date'
    >>> to_snake_case('id')
    'id'
    """
    return _CAMEL_BOUNDARY.sub('_', name).lower()


def _strip_is_prefix(name: str) -> str | None:
    snake = to_snake_case(name)
    if snake.startswith('is_') and len(snake) > 3:
        return snake[3:]
    return None


def _unwrap_optional(annotation: Any) -> Any:
    """Return X for Optional[X] / X | None, else the annotation itself."""
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


@dataclasses.dataclass(frozen=True, slots=True)
class FieldSetter:
    """Assigns one coerced column value to one attribute."""
    name: str
    coerce: Callable[[Any], Any] | None = None

    def __call__(self, instance: Any, value: Any) -> None:
        if self.coerce is not None and value is not None:
            value = self.coerce(value)
        setattr(instance, self.name, value)


class RecordShape:
    """Column-to-field mapping table for one record class.
    """

    def __init__(self, cls: type, setters: dict[str, FieldSetter],
                 defaults: dict[str, Callable[[], Any]]) -> None:
        self.cls = cls
        self._setters = setters
        self._defaults = defaults

    def __repr__(self) -> str:
        return f'RecordShape({self.cls.__name__}, fields={sorted(set(s.name for s in self._setters.values()))})'

    @classmethod
    @functools.cache
    def for_class(cls, record_cls: type) -> Self:
        """Build, once per class, the mapping table for `record_cls`.
        """
        hints = typing.get_type_hints(record_cls)
        setters: dict[str, FieldSetter] = {}
        defaults: dict[str, Callable[[], Any]] = {}

        if dataclasses.is_dataclass(record_cls):
            declared = [(f.name, f.metadata.get('column')) for f in dataclasses.fields(record_cls)]
            for f in dataclasses.fields(record_cls):
                if f.default is not dataclasses.MISSING:
                    defaults[f.name] = lambda v=f.default: v
                elif f.default_factory is not dataclasses.MISSING:
                    defaults[f.name] = f.default_factory
                else:
                    defaults[f.name] = lambda: None
        else:
            declared = [(name, None) for name in hints]

        for name, alias in declared:
            annotation = _unwrap_optional(hints.get(name))
            setter = FieldSetter(name, get_coercer(annotation))
            keys = [name, name.lower(), to_snake_case(name)]
            if annotation is bool:
                keys.append(f'is_{to_snake_case(name)}')
            for key in keys:
                setters.setdefault(key, setter)
            if alias:
                setters[alias] = setter

        logger.debug(f'Built record shape for {record_cls.__name__} with {len(declared)} fields')
        return cls(record_cls, setters, defaults)

    def setter_for(self, column: str) -> FieldSetter | None:
        """Find the setter for a column label, or None.
        """
        for key in (column, column.lower(), to_snake_case(column), _strip_is_prefix(column)):
            if key is not None and key in self._setters:
                return self._setters[key]
        return None

    def new_instance(self) -> Any:
        """Create a zero-value instance of the record class.
        """
        if dataclasses.is_dataclass(self.cls):
            init_kwargs = {}
            for f in dataclasses.fields(self.cls):
                if f.init:
                    init_kwargs[f.name] = self._defaults[f.name]()
            return self.cls(**init_kwargs)
        return self.cls()

    def build(self, row: dict[str, Any], strict: bool = False) -> Any:
        """Populate a new instance from a row.

        Lenient mode skips columns that have no field or whose value cannot
        be coerced; strict mode raises MappingError for them.
        """
        instance = self.new_instance()
        for column, value in row.items():
            setter = self.setter_for(column)
            if setter is None:
                if strict:
                    raise MappingError(f'{self.cls.__name__} has no field for column {column!r}')
                logger.debug(f'Skipping column {column!r}: no field on {self.cls.__name__}')
                continue
            try:
                setter(instance, value)
            except (TypeConversionError, TypeError, ValueError, AttributeError) as err:
                if strict:
                    raise MappingError(
                        f'Cannot set {self.cls.__name__}.{setter.name} from column {column!r}: {err}'
                    ) from err
                logger.debug(f'Skipping column {column!r} on {self.cls.__name__}: {err}')
        return instance

