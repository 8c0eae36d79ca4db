from __future__ import annotations

from datetime import date

from lending.validators import format_date, parse_date

STATUS_BORROWED = "borrowed"
STATUS_RETURNED = "returned"


class BorrowRecord:
    """One borrow event in the ledger. Immutable once returned."""

    def __init__(self, id: int, user_id: int, book_id: int, borrow_date: date, due_date: date,
                 return_date: date | None = None, status: str = STATUS_BORROWED) -> None:
        self.id = id
        self.user_id = user_id
        self.book_id = book_id
        self.borrow_date = borrow_date
        self.due_date = due_date
        self.return_date = return_date
        self.status = status

    @property
    def is_open(self) -> bool:
        return self.status == STATUS_BORROWED

    def is_overdue(self, today: date) -> bool:
        return self.is_open and self.due_date is not None and self.due_date < today

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "bookId": self.book_id,
            "borrowDate": format_date(self.borrow_date),
            "returnDate": format_date(self.return_date),
            "dueDate": format_date(self.due_date),
            "status": self.status,
        }

    @staticmethod
    def from_dict(data: dict) -> "BorrowRecord":
        return BorrowRecord(
            id=int(data["id"]),
            user_id=int(data["userId"]),
            book_id=int(data["bookId"]),
            borrow_date=parse_date(data.get("borrowDate")),
            due_date=parse_date(data.get("dueDate")),
            return_date=parse_date(data.get("returnDate")),
            status=data.get("status", STATUS_BORROWED),
        )
