"""Tests for dialect strategies."""
import pytest
from simpledb.options import DatabaseOptions
from simpledb.strategy import PostgresStrategy, SQLiteStrategy, get_available_dialects
from simpledb.strategy import get_strategy, get_strategy_class


def test_registry():
    assert set(get_available_dialects()) == {'postgresql', 'sqlite'}
    assert get_strategy_class('sqlite') is SQLiteStrategy
    assert get_strategy('sqlite') is get_strategy('sqlite')
    with pytest.raises(ValueError, match='Unsupported dialect'):
        get_strategy('mssql')


class TestPostgresStrategy:

    @pytest.fixture
    def strategy(self):
        return PostgresStrategy()

    def test_url(self, strategy):
        options = DatabaseOptions(hostname='db', username='app', password='p@ss:word',
                                  database='blog', timeout=5, appname='report')
        url = strategy.build_connection_url(options)
        assert url.drivername == 'postgresql+psycopg'
        assert url.password == 'p@ss:word'
        assert url.query == {'connect_timeout': '5', 'application_name': 'report'}

    def test_standardize_sql(self, strategy):
        sql = "SELECT * FROM t WHERE name LIKE 'a%' AND id = ?"
        assert strategy.standardize_sql(sql) == "SELECT * FROM t WHERE name LIKE 'a%%' AND id = %s"

    def test_autocommit_toggle(self, strategy, mocker):
        raw = mocker.Mock()
        strategy.disable_autocommit(raw)
        assert raw.autocommit is False
        strategy.enable_autocommit(raw)
        assert raw.autocommit is True

    def test_generated_key_from_returning(self, strategy, mocker):
        cursor = mocker.Mock(description=[('id',)])
        cursor.fetchone.return_value = (42,)
        assert strategy.get_generated_key(cursor) == 42

    def test_no_result_set_no_key(self, strategy, mocker):
        cursor = mocker.Mock(description=None)
        assert strategy.get_generated_key(cursor) is None
        cursor.fetchone.assert_not_called()

    def test_non_integer_first_column_no_key(self, strategy, mocker):
        cursor = mocker.Mock(description=[('code',)])
        cursor.fetchone.return_value = ('abc',)
        assert strategy.get_generated_key(cursor) is None

    @pytest.mark.parametrize(('sql', 'expected'), [
        ('INSERT INTO article (title) VALUES (%s)',
         'INSERT INTO article (title) VALUES (%s) RETURNING *'),
        ('INSERT INTO article (title) VALUES (%s);  ',
         'INSERT INTO article (title) VALUES (%s) RETURNING *'),
        ('INSERT INTO article (title) VALUES (%s) RETURNING id',
         'INSERT INTO article (title) VALUES (%s) RETURNING id'),
        ("INSERT INTO article (title) VALUES ('returning')",
         "INSERT INTO article (title) VALUES ('returning') RETURNING *"),
    ], ids=['plain', 'semicolon', 'has_returning', 'keyword_in_literal'])
    def test_prepare_insert_requests_keys(self, strategy, sql, expected):
        assert strategy.prepare_insert(sql) == expected

    def test_insert_returns_generated_key(self, strategy, mocker):
        sql = strategy.prepare_insert(strategy.standardize_sql(
            'INSERT INTO article (title, body) VALUES (?, ?)'))
        cursor = mocker.Mock(description=[('id',), ('title',), ('body',)], rowcount=1)
        cursor.fetchone.return_value = (7, 'hello', 'world')
        assert sql.endswith('VALUES (%s, %s) RETURNING *')
        assert strategy.get_generated_key(cursor) == 7


class TestSQLiteStrategy:

    @pytest.fixture
    def strategy(self):
        return SQLiteStrategy()

    def test_url(self, strategy):
        options = DatabaseOptions(drivername='sqlite', database='/tmp/blog.db')
        assert strategy.build_connection_url(options) == 'sqlite:////tmp/blog.db'

    def test_standardize_sql(self, strategy):
        assert strategy.standardize_sql("a = %s AND b = '%s'") == "a = ? AND b = '%s'"

    def test_autocommit_toggle(self, strategy, mocker):
        raw = mocker.Mock()
        strategy.disable_autocommit(raw)
        assert raw.isolation_level == 'DEFERRED'
        strategy.enable_autocommit(raw)
        assert raw.isolation_level is None

    def test_generated_key(self, strategy, mocker):
        assert strategy.get_generated_key(mocker.Mock(rowcount=1, lastrowid=9)) == 9
        assert strategy.get_generated_key(mocker.Mock(rowcount=0, lastrowid=9)) is None

    def test_insert_left_unchanged(self, strategy):
        sql = 'INSERT INTO article (title) VALUES (?)'
        assert strategy.prepare_insert(sql) == sql
