"""Lending transaction engine.

Borrow and return touch two collections (books and history) that have no
shared transaction. Both operations validate everything before the first
write and hold the collection locks for their whole read-modify-write span,
so within one process a book can never gain a second open record.

What the engine cannot guarantee is atomicity across the two files: when the
books write succeeds and the history write fails, the book is left with the
wrong availability. That case is raised as an inconsistent
:class:`~lending.errors.PersistenceFailure` and shows up in
:meth:`LendingEngine.check_consistency` until repaired.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from lending.book import Book
from lending.borrow_record import STATUS_BORROWED, BorrowRecord
from lending.catalog import BookCatalog
from lending.database import BOOKS, HISTORY, MEMBERS, CollectionStore
from lending.directory import MemberDirectory
from lending.errors import (
    BookNotFound,
    BookUnavailable,
    MemberInactive,
    MemberNotFound,
    NoOpenBorrow,
    PersistenceFailure,
)
from lending.ledger import BorrowLedger
from lending.member import Member
from lending.validators import IdValidator

logger = logging.getLogger(__name__)

DEFAULT_LOAN_DAYS = 30


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass
class BorrowResult:
    record: BorrowRecord
    book: Book
    user: Member

    def to_dict(self) -> Dict[str, Any]:
        return {"record": self.record.to_dict(), "book": self.book.to_dict(), "user": self.user.to_dict()}


@dataclass
class ReturnResult:
    record: BorrowRecord
    book: Book

    def to_dict(self) -> Dict[str, Any]:
        return {"record": self.record.to_dict(), "book": self.book.to_dict()}


@dataclass
class Inconsistency:
    """One violation of the availability / open record rule."""

    book_id: int
    problem: str
    record_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"bookId": self.book_id, "problem": self.problem, "recordIds": list(self.record_ids)}


class LendingEngine:
    """Performs borrow and return as single logical units."""

    def __init__(self, store: CollectionStore, catalog: BookCatalog, directory: MemberDirectory,
                 ledger: BorrowLedger, loan_days: int = DEFAULT_LOAN_DAYS,
                 clock: Optional[Callable[[], date]] = None) -> None:
        self.store = store
        self.catalog = catalog
        self.directory = directory
        self.ledger = ledger
        self.loan_days = int(loan_days)
        self.clock = clock or utc_today

    def borrow(self, user_id: Any, book_id: Any) -> BorrowResult:
        uid, bid = IdValidator.require_ids(user_id, book_id)

        with self.store.lock(BOOKS, MEMBERS, HISTORY):
            member = self.directory.find_by_id(uid)
            if member is None:
                raise MemberNotFound()
            if not self.directory.is_active(member):
                raise MemberInactive()
            book = self.catalog.find_by_id(bid)
            if book is None:
                raise BookNotFound()
            if not book.available:
                raise BookUnavailable()

            book = self.catalog.set_availability(bid, False)

            rows = self.ledger.load_rows()
            borrow_date = self.clock()
            record = BorrowRecord(
                id=self.ledger.next_id(rows),
                user_id=uid,
                book_id=bid,
                borrow_date=borrow_date,
                due_date=borrow_date + timedelta(days=self.loan_days),
            )
            try:
                self.ledger.append(record, rows)
            except PersistenceFailure as e:
                logger.error(f"Book #{bid} is marked unavailable but its borrowing record was not saved")
                raise PersistenceFailure("Error processing borrow request", collection=HISTORY,
                                         inconsistent=True) from e

        logger.info(f"Member #{uid} borrowed book #{bid} (record #{record.id}, due {record.due_date})")
        return BorrowResult(record=record, book=book, user=member)

    def return_book(self, user_id: Any, book_id: Any) -> ReturnResult:
        uid, bid = IdValidator.require_ids(user_id, book_id)

        with self.store.lock(BOOKS, MEMBERS, HISTORY):
            if self.catalog.find_by_id(bid) is None:
                raise BookNotFound()
            rows = self.ledger.load_rows()
            record = self.ledger.find_open(uid, bid, rows)
            if record is None:
                raise NoOpenBorrow()
            today = self.clock()
            # a record with no readable borrowDate is closed as of today
            return_date = max(today, record.borrow_date) if record.borrow_date is not None else today

            book = self.catalog.set_availability(bid, True)
            try:
                record = self.ledger.close(record, return_date, rows)
            except PersistenceFailure as e:
                logger.error(f"Book #{bid} is marked available but record #{record.id} is still open")
                raise PersistenceFailure("Error processing return request", collection=HISTORY,
                                         inconsistent=True) from e

        logger.info(f"Member #{uid} returned book #{bid} (record #{record.id})")
        return ReturnResult(record=record, book=book)

    def check_consistency(self) -> List[Inconsistency]:
        """Audit every book against the open records of the ledger."""
        with self.store.lock(BOOKS, HISTORY):
            books = {book.id: book for book in self.catalog.list_all()}
            open_records: Dict[int, List[int]] = defaultdict(list)
            for record in self.ledger.list_all():
                if record.status == STATUS_BORROWED:
                    open_records[record.book_id].append(record.id)

        problems = []
        for book_id, book in sorted(books.items()):
            record_ids = open_records.get(book_id, [])
            if len(record_ids) > 1:
                problems.append(Inconsistency(book_id, "multiple_open_records", record_ids))
            elif record_ids and book.available:
                problems.append(Inconsistency(book_id, "available_with_open_record", record_ids))
            elif not record_ids and not book.available:
                problems.append(Inconsistency(book_id, "unavailable_without_open_record"))
        for book_id in sorted(set(open_records) - set(books)):
            problems.append(Inconsistency(book_id, "open_record_for_unknown_book", open_records[book_id]))

        for problem in problems:
            logger.warning(f"Inconsistency on book #{problem.book_id}: {problem.problem}")
        return problems
