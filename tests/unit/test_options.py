"""Tests for DatabaseOptions validation and loading."""
import pandas as pd
import pytest
from simpledb.options import DatabaseOptions, iterdict_data_loader
from simpledb.options import pandas_numpy_data_loader
from simpledb.types import Column

POSTGRES = {
    'hostname': 'localhost',
    'username': 'app',
    'password': 's3cret',
    'database': 'blog',
}


class TestValidation:

    def test_postgres_defaults(self):
        options = DatabaseOptions(**POSTGRES)
        assert options.drivername == 'postgresql'
        assert options.port == 5432
        assert options.keep_connection is True
        assert options.dev_mode is False
        assert options.strict_mapping is False
        assert options.data_loader is pandas_numpy_data_loader

    @pytest.mark.parametrize('missing', ['hostname', 'username', 'password', 'database'])
    def test_postgres_requires(self, missing):
        kwargs = {k: v for k, v in POSTGRES.items() if k != missing}
        with pytest.raises(ValueError, match=missing):
            DatabaseOptions(**kwargs)

    def test_sqlite_needs_only_database(self):
        options = DatabaseOptions(drivername='sqlite', database='blog.db')
        assert options.hostname is None

    def test_sqlite_requires_database(self):
        with pytest.raises(ValueError, match='database'):
            DatabaseOptions(drivername='sqlite')

    def test_unknown_driver(self):
        with pytest.raises(ValueError, match='drivername'):
            DatabaseOptions(drivername='oracle', database='x')

    def test_str_hides_password(self):
        text = str(DatabaseOptions(**POSTGRES))
        assert 's3cret' not in text
        assert text == 'postgresql://app@localhost:5432/blog'


class TestLoad:

    def test_from_mapping_with_overrides(self):
        options = DatabaseOptions.load(POSTGRES, port=6543, dev_mode=True)
        assert options.port == 6543
        assert options.dev_mode is True

    def test_from_instance(self):
        base = DatabaseOptions(drivername='sqlite', database='a.db')
        assert DatabaseOptions.load(base) is base
        changed = DatabaseOptions.load(base, database='b.db')
        assert changed.database == 'b.db'
        assert base.database == 'a.db'

    def test_from_keywords(self):
        options = DatabaseOptions.load(drivername='sqlite', database='a.db')
        assert options.drivername == 'sqlite'

    def test_unknown_keys(self):
        with pytest.raises(TypeError, match='use_pool'):
            DatabaseOptions.load(POSTGRES, use_pool=True)


class TestDataLoaders:

    def test_pandas_loader_keeps_columns_when_empty(self):
        columns = [Column('id', None, int), Column('title', None, str)]
        df = pandas_numpy_data_loader([], columns)
        assert isinstance(df, pd.DataFrame)
        assert list(df.columns) == ['id', 'title']
        assert df.attrs['column_types']['id']['python_type'] == 'int'

    def test_pandas_loader(self):
        columns = [Column('id', None), Column('title', None)]
        df = pandas_numpy_data_loader([{'id': 1, 'title': 'a'}, {'id': 2, 'title': 'b'}], columns)
        assert df['title'].tolist() == ['a', 'b']

    def test_iterdict_loader(self):
        rows = [{'id': 1}]
        assert iterdict_data_loader(rows, []) == rows
        assert iterdict_data_loader([], []) == []
