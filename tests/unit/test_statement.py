"""Tests for the fluent statement builder.

Terminal methods are checked with the query functions patched out, so no
database is involved.
"""
import pytest
from simpledb.exceptions import ValidationError
from simpledb.statement import Sql


@pytest.fixture
def draft(mocker):
    return Sql(mocker.Mock(name='session'))


class TestAppend:

    def test_joins_fragments_with_single_space(self, draft):
        draft.append('SELECT id').append('FROM article').append('WHERE id = ?', 3)
        assert draft.text == 'SELECT id FROM article WHERE id = ?'
        assert draft.params == (3,)

    def test_params_accumulate_in_order(self, draft):
        draft.append('a = ? AND b = ?', 1, 2).append('AND c = ?', 3)
        assert draft.params == (1, 2, 3)

    def test_no_validation_on_append(self, draft):
        draft.append('SELECT ?')
        assert draft.build().placeholder_count == 1
        assert draft.params == ()


class TestAppendIn:

    def test_expands_list_argument(self, draft):
        draft.append('SELECT * FROM article').append_in('WHERE id IN (?)', [1, 2, 3])
        assert draft.text == 'SELECT * FROM article WHERE id IN (?, ?, ?)'
        assert draft.params == (1, 2, 3)

    def test_expands_varargs(self, draft):
        draft.append_in('id IN (?)', 4, 5)
        assert draft.text == 'id IN (?, ?)'
        assert draft.params == (4, 5)

    def test_only_first_marker_expands(self, draft):
        draft.append_in('id IN (?) AND kind = ?', [1, 2])
        assert draft.text == 'id IN (?, ?) AND kind = ?'

    def test_values_tail(self, draft):
        draft.append_in('INSERT INTO article (title, body) VALUES (?)', 'hello', 'world')
        assert draft.text == 'INSERT INTO article (title, body) VALUES (?, ?)'
        assert draft.params == ('hello', 'world')

    def test_empty_in_list(self, draft):
        draft.append_in('WHERE id IN (?)', [])
        assert draft.text == 'WHERE id IN (NULL)'
        assert draft.params == ()

    def test_empty_values_tail_raises(self, draft):
        with pytest.raises(ValidationError):
            draft.append_in('INSERT INTO article (title) VALUES (?)', [])

    def test_fragment_without_placeholder_raises(self, draft):
        with pytest.raises(ValidationError):
            draft.append_in('WHERE id IN (1, 2)', [1])

    def test_string_is_one_value(self, draft):
        draft.append_in('title IN (?)', 'hello')
        assert draft.params == ('hello',)

    @pytest.mark.parametrize('values', [[], [1], [1, 2, 3], list(range(20))])
    def test_placeholder_count_matches_params(self, draft, values):
        draft.append('SELECT * FROM t WHERE a = ?', 'x').append_in('AND b IN (?)', values)
        stmt = draft.build()
        assert stmt.placeholder_count == len(stmt.params)


class TestTerminal:

    def test_insert_delegates_once(self, draft, mocker):
        insert = mocker.patch('simpledb.query.insert', return_value=7)
        draft.append('INSERT INTO article (title) VALUES (?)', 'x')
        assert draft.insert() == 7
        session, stmt = insert.call_args.args
        assert session is draft.session
        assert stmt.text == 'INSERT INTO article (title) VALUES (?)'
        assert stmt.params == ('x',)

    def test_second_execution_raises(self, draft, mocker):
        mocker.patch('simpledb.query.update', return_value=1)
        draft.append('UPDATE article SET title = ?', 'x')
        draft.update()
        with pytest.raises(ValidationError):
            draft.update()
        with pytest.raises(ValidationError):
            draft.append('WHERE id = ?', 1)

    def test_typed_select_routes_to_records(self, draft, mocker):
        records = mocker.patch('simpledb.query.select_records', return_value=[])
        rows = mocker.patch('simpledb.query.select_rows', return_value=[])
        draft.append('SELECT * FROM article').select_rows(dict, strict=True)
        records.assert_called_once()
        assert records.call_args.kwargs == {'strict': True}
        rows.assert_not_called()

    def test_build_is_repeatable(self, draft):
        draft.append('SELECT ?', 1)
        assert draft.build() == draft.build()
