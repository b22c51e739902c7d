"""
SQL text processing for statement drafts.

Statement text is scanned with a single tokenizer that separates quoted
literals from SQL text, so placeholder markers inside literals are never
counted, expanded or rewritten:

    SQL → Tokenize → (count | expand first marker | standardize | render)

Main entry points:
- `count_placeholders()` - Number of positional markers in the text
- `expand_placeholder()` - Replace the first marker with N markers (IN lists)
- `standardize_placeholders()` - Convert %s ↔ ? for dialect
- `escape_percent_signs_in_literals()` - Escape % in string literals
- `render_sql()` - Human-readable SQL with parameters substituted (dev mode)
"""
import datetime
import decimal
import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

import numpy as np

# =============================================================================
# Data Structures
# =============================================================================


class TokenType(Enum):
    """Token types identified during SQL parsing."""
    SQL_TEXT = auto()
    STRING_LITERAL = auto()
    POSITIONAL_PH = auto()      # %s or ?


@dataclass(slots=True)
class Token:
    """Token from SQL parsing."""
    type: TokenType
    text: str
    start: int
    end: int


@dataclass(frozen=True, slots=True)
class Statement:
    """Finalized statement draft: SQL text plus its ordered parameters."""
    text: str
    params: tuple = ()

    @property
    def placeholder_count(self) -> int:
        return count_placeholders(self.text)


# =============================================================================
# Regex Patterns
# =============================================================================

_TOKENIZE = re.compile(r"""
    (?P<string>'(?:[^']|'')*'|"(?:[^"]|"")*")
    |(?P<percent_s>%s)
    |(?P<qmark>\?)
""", re.VERBOSE)

# Find unescaped percent signs in string content
_UNESCAPED_PERCENT = re.compile(r'(?<!%)%(?![%s(])')

# Quick placeholder check
_HAS_PLACEHOLDER = re.compile(r'%s|\?')

# Trailing VALUES (?) clause of an INSERT fragment
_VALUES_TAIL = re.compile(r'\bVALUES\s*\(\s*(\?|%s)\s*\)\s*;?\s*$', re.IGNORECASE)

_RETURNING = re.compile(r'\bRETURNING\b', re.IGNORECASE)


# =============================================================================
# Core Functions
# =============================================================================

def tokenize_sql(sql: str) -> list[Token]:
    """Parse SQL into tokens in a single pass.

    Parameters
        sql: SQL query string

    Returns
        List of tokens preserving all SQL text
    """
    tokens = []
    last_end = 0

    for match in _TOKENIZE.finditer(sql):
        start, end = match.span()

        if start > last_end:
            tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:start], last_end, start))

        if match.group('string'):
            ttype = TokenType.STRING_LITERAL
        else:
            ttype = TokenType.POSITIONAL_PH

        tokens.append(Token(ttype, match.group(0), start, end))
        last_end = end

    if last_end < len(sql):
        tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:], last_end, len(sql)))

    return tokens


def has_placeholders(sql: str | None) -> bool:
    """Check if SQL has any parameter placeholders outside literals.
    """
    if not sql or not _HAS_PLACEHOLDER.search(sql):
        return False
    return count_placeholders(sql) > 0


def count_placeholders(sql: str) -> int:
    """Count positional placeholder markers outside string literals.
    """
    return sum(1 for t in tokenize_sql(sql) if t.type == TokenType.POSITIONAL_PH)


def has_returning_clause(sql: str) -> bool:
    """Check for a RETURNING keyword outside string literals and quoted names.
    """
    return any(_RETURNING.search(t.text) for t in tokenize_sql(sql)
               if t.type == TokenType.SQL_TEXT)


def is_values_tail(sql: str) -> bool:
    """Check if a fragment ends with a single-placeholder VALUES clause.
    """
    return bool(_VALUES_TAIL.search(sql))


def expand_placeholder(sql: str, count: int, empty: str = 'NULL') -> str:
    """Replace the first placeholder marker with `count` markers.

    The expanded markers keep the style of the marker they replace. When
    `count` is zero the marker becomes `empty`, which makes ``IN (?)`` the
    always-false ``IN (NULL)``.

    >>> expand_placeholder('id IN (?)', 3)
    'id IN (?, ?, ?)'
    >>> expand_placeholder("name = '?' AND id IN (%s)", 2)
    "name = '?' AND id IN (%s, %s)"
    >>> expand_placeholder('id IN (?)', 0)
    'id IN (NULL)'
    """
    result = []
    expanded = False
    for token in tokenize_sql(sql):
        if token.type == TokenType.POSITIONAL_PH and not expanded:
            result.append(', '.join([token.text] * count) if count else empty)
            expanded = True
        else:
            result.append(token.text)
    return ''.join(result)


def expand_values_tail(sql: str, count: int) -> str:
    """Expand the trailing ``VALUES (?)`` of a fragment into `count` markers.

    >>> expand_values_tail('INSERT INTO t (a, b) VALUES (?)', 2)
    'INSERT INTO t (a, b) VALUES (?, ?)'
    """
    match = _VALUES_TAIL.search(sql)
    if match is None:
        raise ValueError(f'No VALUES (?) clause at the end of: {sql}')
    marker = match.group(1)
    start, end = match.span(1)
    return sql[:start] + ', '.join([marker] * count) + sql[end:]


def standardize_placeholders(sql: str, dialect: str = 'postgresql') -> str:
    """Convert placeholders between %s and ? based on dialect.

    Parameters
        sql: SQL query string
        dialect: Database dialect

    Returns
        SQL with standardized placeholders
    """
    if not sql:
        return sql

    source, target = ('%s', '?') if dialect == 'sqlite' else ('?', '%s')
    if source not in sql:
        return sql

    result = []
    for token in tokenize_sql(sql):
        if token.type == TokenType.POSITIONAL_PH and token.text == source:
            result.append(target)
        else:
            result.append(token.text)
    return ''.join(result)


def _escape_percent_in_literal(literal: str) -> str:
    """Escape unescaped percent signs in string literal."""
    quote = literal[0]
    content = literal[1:-1]
    escaped = _UNESCAPED_PERCENT.sub('%%', content)
    return f'{quote}{escaped}{quote}'


def escape_percent_signs_in_literals(sql: str) -> str:
    """Escape percent signs inside quoted literals for pyformat drivers.
    """
    if '%' not in sql:
        return sql
    return ''.join(
        _escape_percent_in_literal(t.text) if t.type == TokenType.STRING_LITERAL else t.text
        for t in tokenize_sql(sql))


# =============================================================================
# Parameter Helpers
# =============================================================================

def is_array_like(value: Any) -> bool:
    """Check if a value should be flattened into separate parameters.

    Strings, bytes and mappings are scalars here.
    """
    if isinstance(value, str | bytes | bytearray | memoryview | dict):
        return False
    return isinstance(value, Iterable)


def flatten_values(values: tuple) -> tuple:
    """Flatten a single array-like argument into its elements.

    >>> flatten_values(([1, 2, 3],))
    (1, 2, 3)
    >>> flatten_values((1, 2))
    (1, 2)
    """
    if len(values) == 1 and is_array_like(values[0]):
        return tuple(values[0])
    return tuple(values)


def _render_value(value: Any) -> str:
    """Render one parameter as a SQL literal for diagnostics."""
    if value is None:
        return 'NULL'
    if isinstance(value, bool):
        return 'TRUE' if value else 'FALSE'
    if isinstance(value, int | float | decimal.Decimal | np.number):
        return str(value)
    if isinstance(value, datetime.datetime):
        value = value.isoformat(sep=' ')
    elif isinstance(value, datetime.date):
        value = value.isoformat()
    text = str(value).replace("'", "''")
    return f"'{text}'"


def render_sql(sql: str, params: tuple | list) -> str:
    """Substitute parameters into placeholders in textual order.

    For diagnostics only: the output is never sent to the database. Extra
    placeholders are left as they are and extra parameters are ignored.

    >>> render_sql('SELECT * FROM t WHERE a = ? AND b = %s', ('x', 2))
    "SELECT * FROM t WHERE a = 'x' AND b = 2"
    """
    params = list(params or ())
    result = []
    idx = 0
    for token in tokenize_sql(sql):
        if token.type == TokenType.POSITIONAL_PH and idx < len(params):
            result.append(_render_value(params[idx]))
            idx += 1
        else:
            result.append(token.text)
    return ''.join(result)
