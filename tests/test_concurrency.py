import threading

import pytest

from lending.database import CollectionStore
from lending.errors import BookUnavailable
from lending.library import Library

pytestmark = pytest.mark.integration


def _run_in_threads(count, target):
    barrier = threading.Barrier(count)
    outcomes = [None] * count

    def worker(index):
        barrier.wait()
        try:
            outcomes[index] = target(index)
        except Exception as e:
            outcomes[index] = e

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return outcomes


def test_concurrent_borrows_of_one_book_lend_it_once(seeded_lib):
    data_dir = seeded_lib.store.data_dir

    # separate Library instances share the per-directory locks
    outcomes = _run_in_threads(8, lambda i: Library(data_dir).borrow(1, 5))

    successes = [o for o in outcomes if not isinstance(o, Exception)]
    failures = [o for o in outcomes if isinstance(o, Exception)]
    assert len(successes) == 1
    assert len(failures) == 7
    assert all(isinstance(e, BookUnavailable) for e in failures)

    open_records = [r for r in seeded_lib.ledger.list_all() if r.book_id == 5 and r.is_open]
    assert len(open_records) == 1
    assert seeded_lib.check_consistency() == []


def test_concurrent_borrows_of_different_books_get_unique_ids(seeded_lib):
    outcomes = _run_in_threads(5, lambda i: seeded_lib.borrow(1, i + 1))

    assert not [o for o in outcomes if isinstance(o, Exception)]
    ids = sorted(o.record.id for o in outcomes)
    assert ids == [1, 2, 3, 4, 5]
    assert len(seeded_lib.ledger.list_all()) == 5
    assert all(not b.available for b in seeded_lib.list_books())


def test_lock_is_shared_by_stores_on_the_same_directory(tmp_path):
    first = CollectionStore(tmp_path)
    second = CollectionStore(tmp_path)
    entered = threading.Event()

    def try_lock():
        with second.lock("books"):
            entered.set()

    with first.lock("books"):
        t = threading.Thread(target=try_lock)
        t.start()
        assert not entered.wait(timeout=0.2)

    t.join(timeout=5)
    assert entered.is_set()
