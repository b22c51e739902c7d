"""Worker affinity with real threads on one shared SimpleDb."""
import threading

from simpledb.exceptions import AffinityError


def test_each_thread_gets_its_own_connection(sqlite_db):
    handles = {}
    errors = []

    def worker(n):
        try:
            for i in range(5):
                sqlite_db.gen_sql() \
                    .append('INSERT INTO article (title, view_count) VALUES (?, ?)', f'w{n}', i) \
                    .insert()
            handles[n] = sqlite_db.session().handle
            sqlite_db.close()
        except Exception as err:
            errors.append(err)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len({id(h) for h in handles.values()}) == 4
    assert all(h.closed for h in handles.values())
    assert sqlite_db.gen_sql().append('SELECT count(*) FROM article').select_long() == 20


def test_transactions_are_per_thread(sqlite_db):
    sqlite_db.start_transaction()
    seen = []

    def worker():
        seen.append(sqlite_db.session().transaction_active)
        sqlite_db.close()

    thread = threading.Thread(target=worker)
    thread.start()
    thread.join()
    sqlite_db.rollback()
    assert seen == [False]


def test_handle_used_from_another_thread_raises(sqlite_db):
    session = sqlite_db.session('job-1')
    session.gen_sql().append('SELECT 1').select_long()
    errors = []

    def worker():
        try:
            sqlite_db.session('job-1').gen_sql().append('SELECT 1').select_long()
        except AffinityError as err:
            errors.append(err)

    thread = threading.Thread(target=worker)
    thread.start()
    thread.join()
    assert len(errors) == 1
    assert session.is_open


def test_explicit_worker_token_reuses_session(sqlite_db):
    session = sqlite_db.session('job-2')
    assert sqlite_db.session('job-2') is session
    session.gen_sql().append('SELECT 1').select_long()
    handle = session.handle
    assert sqlite_db.session('job-2').gen_sql().append('SELECT 2').select_long() == 2
    assert session.handle is handle
    assert sqlite_db.session() is not session


def test_worker_exiting_inside_transaction_releases_lock(sqlite_db):
    def forgetful_worker():
        sqlite_db.start_transaction()
        sqlite_db.gen_sql().append('INSERT INTO article (title) VALUES (?)', 'never committed').insert()

    thread = threading.Thread(target=forgetful_worker)
    thread.start()
    thread.join()
    assert len(sqlite_db.registry.live_handles()) == 2

    sqlite_db.close_all()
    assert sqlite_db.registry.live_handles() == []
    key = sqlite_db.gen_sql().append('INSERT INTO article (title) VALUES (?)', 'after').insert()
    assert key is not None
    titles = sqlite_db.gen_sql().append('SELECT title FROM article').select_rows()
    assert titles == [{'title': 'after'}]


def test_new_thread_does_not_inherit_exited_session(sqlite_db):
    seen = []

    def worker():
        session = sqlite_db.session()
        seen.append((session, session.transaction_active))
        session.start_transaction()
        session.gen_sql().append('INSERT INTO article (title) VALUES (?)', 'abandoned').insert()

    for _ in range(2):
        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

    (first, _), (second, second_started_in_tx) = seen
    assert second is not first
    assert second_started_in_tx is False
    assert first.handle is None
    sqlite_db.close_all()
    assert sqlite_db.gen_sql().append('SELECT count(*) FROM article').select_long() == 0
