import os
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple

from lending.book import Book
from lending.borrow_record import BorrowRecord
from lending.catalog import BookCatalog
from lending.database import BOOKS, HISTORY, MEMBERS, initialize_database
from lending.directory import MemberDirectory
from lending.engine import DEFAULT_LOAN_DAYS, BorrowResult, Inconsistency, LendingEngine, ReturnResult, utc_today
from lending.errors import BookUnavailable, MemberNotFound
from lending.ledger import BorrowLedger
from lending.member import Member


def _matches_text(value: Optional[str], needle: str) -> bool:
    return needle.lower() in (value or "").lower()


def _equals_ci(value: Optional[str], expected: str) -> bool:
    return (value or "").lower() == expected.lower()


class Library:
    """Books, members and borrowing history kept in one data directory."""

    def __init__(self, data_dir: str | os.PathLike, loan_days: int = DEFAULT_LOAN_DAYS,
                 clock: Optional[Callable[[], date]] = None) -> None:
        self.store = initialize_database(data_dir)
        self.clock = clock or utc_today
        self.catalog = BookCatalog(self.store)
        self.directory = MemberDirectory(self.store)
        self.ledger = BorrowLedger(self.store)
        self.engine = LendingEngine(self.store, self.catalog, self.directory, self.ledger,
                                    loan_days=loan_days, clock=self.clock)

    # ------------------------- Lending ------------------------- #
    def borrow(self, user_id: Any, book_id: Any) -> BorrowResult:
        return self.engine.borrow(user_id, book_id)

    def return_book(self, user_id: Any, book_id: Any) -> ReturnResult:
        return self.engine.return_book(user_id, book_id)

    def check_consistency(self) -> List[Inconsistency]:
        return self.engine.check_consistency()

    # ------------------------- Books ------------------------- #
    def list_books(self, search: Optional[str] = None, genre: Optional[str] = None,
                   available: Optional[bool] = None) -> List[Book]:
        """List books, optionally filtered by title/author text, genre and availability."""
        books = self.catalog.list_all()
        if search:
            books = [b for b in books if _matches_text(b.title, search) or _matches_text(b.author, search)]
        if genre:
            books = [b for b in books if _equals_ci(b.genre, genre)]
        if available is not None:
            books = [b for b in books if b.available == available]
        return books

    def find_book(self, book_id: int) -> Optional[Book]:
        return self.catalog.find_by_id(book_id)

    def add_book(self, fields: Dict[str, Any]) -> Book:
        with self.store.lock(BOOKS):
            return self.catalog.add(fields)

    def update_book(self, book_id: int, fields: Dict[str, Any]) -> Optional[Book]:
        with self.store.lock(BOOKS):
            return self.catalog.update(book_id, fields)

    def remove_book(self, book_id: int) -> bool:
        """Delete a book. A book that is currently lent out cannot be deleted."""
        with self.store.lock(BOOKS, HISTORY):
            book = self.catalog.find_by_id(book_id)
            if book is None:
                return False
            if any(r.book_id == book_id and r.is_open for r in self.ledger.list_all()):
                raise BookUnavailable("Book is currently borrowed and cannot be deleted")
            return self.catalog.remove(book_id)

    # ------------------------- Members ------------------------- #
    def list_members(self, membership_type: Optional[str] = None, active: Optional[bool] = None,
                     search: Optional[str] = None) -> List[Member]:
        members = self.directory.list_all()
        if search:
            members = [m for m in members if _matches_text(m.name, search) or _matches_text(m.email, search)]
        if membership_type:
            members = [m for m in members if _equals_ci(m.membership_type, membership_type)]
        if active is not None:
            members = [m for m in members if m.active == active]
        return members

    def find_member(self, user_id: int) -> Optional[Member]:
        return self.directory.find_by_id(user_id)

    def add_member(self, fields: Dict[str, Any]) -> Member:
        with self.store.lock(MEMBERS):
            return self.directory.add(fields, today=self.clock())

    def update_member(self, user_id: int, fields: Dict[str, Any]) -> Optional[Member]:
        with self.store.lock(MEMBERS):
            return self.directory.update(user_id, fields)

    def member_history(self, user_id: int) -> Tuple[Member, List[BorrowRecord]]:
        member = self.directory.find_by_id(user_id)
        if member is None:
            raise MemberNotFound()
        return member, self.ledger.for_member(user_id)

    # ------------------------- History ------------------------- #
    def list_history(self, status: Optional[str] = None, user_id: Optional[int] = None,
                     book_id: Optional[int] = None) -> List[BorrowRecord]:
        records = self.ledger.list_all()
        if status:
            records = [r for r in records if _equals_ci(r.status, status)]
        if user_id is not None:
            records = [r for r in records if r.user_id == user_id]
        if book_id is not None:
            records = [r for r in records if r.book_id == book_id]
        return records

    def overdue(self, today: Optional[date] = None) -> List[BorrowRecord]:
        """Open records whose due date has passed."""
        today = today or self.clock()
        return [r for r in self.ledger.list_all() if r.is_overdue(today)]

    def get_statistics(self) -> Dict[str, Any]:
        books = self.catalog.list_all()
        members = self.directory.list_all()
        records = self.ledger.list_all()
        today = self.clock()
        return {
            "total_books": len(books),
            "available_books": sum(1 for b in books if b.available),
            "borrowed_books": sum(1 for b in books if not b.available),
            "total_members": len(members),
            "active_members": sum(1 for m in members if m.active),
            "total_records": len(records),
            "open_borrows": sum(1 for r in records if r.is_open),
            "overdue_borrows": sum(1 for r in records if r.is_overdue(today)),
        }

    def collection_counts(self) -> Dict[str, int]:
        return {
            BOOKS: len(self.store.load(BOOKS)),
            MEMBERS: len(self.store.load(MEMBERS)),
            HISTORY: len(self.store.load(HISTORY)),
        }

    def diagnostics(self) -> Dict[str, str]:
        return self.store.diagnostics()
