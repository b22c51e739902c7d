"""Transactions, release policy and dev mode against file-backed SQLite."""
import logging

import pytest
from simpledb import SimpleDb, connect
from tests.fixtures.sqlite import ARTICLE_TABLE


def count_articles(db):
    return db.gen_sql().append('SELECT count(*) FROM article').select_long()


def other_connection_count(path):
    """Count rows through a separate SimpleDb so uncommitted work is invisible."""
    with SimpleDb(database=path, drivername='sqlite') as other:
        return count_articles(other)


def test_autocommit_by_default(sqlite_db, sqlite_path):
    sqlite_db.gen_sql().append('INSERT INTO article (title) VALUES (?)', 'a').insert()
    assert other_connection_count(sqlite_path) == 1


def test_commit(sqlite_db, sqlite_path):
    sqlite_db.start_transaction()
    sqlite_db.gen_sql().append('INSERT INTO article (title) VALUES (?)', 'a').insert()
    sqlite_db.gen_sql().append('INSERT INTO article (title) VALUES (?)', 'b').insert()
    assert count_articles(sqlite_db) == 2
    sqlite_db.commit()
    assert other_connection_count(sqlite_path) == 2
    assert sqlite_db.session().handle.autocommit_enabled


def test_rollback(sqlite_db):
    sqlite_db.start_transaction()
    sqlite_db.gen_sql().append('INSERT INTO article (title) VALUES (?)', 'a').insert()
    sqlite_db.rollback()
    assert count_articles(sqlite_db) == 0
    assert not sqlite_db.session().transaction_active


def test_commit_and_rollback_without_transaction(sqlite_db):
    sqlite_db.commit()
    sqlite_db.rollback()
    sqlite_db.gen_sql().append('INSERT INTO article (title) VALUES (?)', 'a').insert()
    sqlite_db.rollback()
    assert count_articles(sqlite_db) == 1


def test_transaction_block_rolls_back_on_error(sqlite_db):
    with pytest.raises(RuntimeError), sqlite_db.transaction() as session:
        session.gen_sql().append('INSERT INTO article (title) VALUES (?)', 'a').insert()
        raise RuntimeError('abort')
    assert count_articles(sqlite_db) == 0


def test_transaction_block_commits(sqlite_db, sqlite_path):
    with sqlite_db.transaction() as session:
        key = session.gen_sql().append('INSERT INTO article (title) VALUES (?)', 'a').insert()
        session.gen_sql().append('UPDATE article SET body = ? WHERE id = ?', 'b', key).update()
    assert other_connection_count(sqlite_path) == 1


def test_nested_start_transaction_warns(sqlite_db, caplog):
    sqlite_db.start_transaction()
    sqlite_db.start_transaction()
    assert 'nested transactions are not supported' in caplog.text
    sqlite_db.gen_sql().append('INSERT INTO article (title) VALUES (?)', 'a').insert()
    sqlite_db.rollback()
    assert count_articles(sqlite_db) == 0


def test_handle_persists_between_statements(sqlite_db):
    count_articles(sqlite_db)
    handle = sqlite_db.session().handle
    count_articles(sqlite_db)
    assert sqlite_db.session().handle is handle
    assert handle.calls >= 2


def test_release_after_each_statement(sqlite_path):
    db = connect(drivername='sqlite', database=sqlite_path, keep_connection=False)
    db.run(ARTICLE_TABLE)
    assert db.session().handle is None
    db.start_transaction()
    db.gen_sql().append('INSERT INTO article (title) VALUES (?)', 'a').insert()
    assert db.session().is_open
    db.commit()
    count_articles(db)
    assert db.session().handle is None
    assert other_connection_count(sqlite_path) == 1


def test_close_forgets_session(sqlite_db):
    count_articles(sqlite_db)
    session = sqlite_db.session()
    sqlite_db.close()
    assert session.handle is None
    assert sqlite_db.session() is not session


def test_dev_mode_logs_rendered_sql(sqlite_db, caplog):
    caplog.set_level(logging.INFO, logger='simpledb.query')
    sqlite_db.gen_sql().append('SELECT title FROM article WHERE title = ?', 'x').select_rows()
    assert 'SQL:' not in caplog.text
    sqlite_db.set_dev_mode(True)
    sqlite_db.gen_sql().append('SELECT title FROM article WHERE title = ?', "it's").select_rows()
    assert "SQL: SELECT title FROM article WHERE title = 'it''s'" in caplog.text
