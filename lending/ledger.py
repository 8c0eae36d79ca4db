from datetime import date
from typing import Any, Dict, List, Optional

from lending.borrow_record import STATUS_BORROWED, STATUS_RETURNED, BorrowRecord
from lending.database import HISTORY, CollectionStore, to_model, to_models
from lending.errors import PersistenceFailure

Rows = List[Dict[str, Any]]


def _is_open_for(row: Dict[str, Any], user_id: int, book_id: int) -> bool:
    return row.get("userId") == user_id and row.get("bookId") == book_id and row.get("status") == STATUS_BORROWED


class BorrowLedger:
    """The borrowing history. Records are appended and closed, never deleted.

    The mutating methods accept the ``rows`` a caller already loaded so that a
    lookup and the following write operate on the same snapshot.
    """

    def __init__(self, store: CollectionStore) -> None:
        self.store = store

    def load_rows(self) -> Rows:
        return self.store.load(HISTORY)

    def list_all(self) -> List[BorrowRecord]:
        return to_models(self.load_rows(), BorrowRecord.from_dict, HISTORY)

    def for_member(self, user_id: int) -> List[BorrowRecord]:
        return [r for r in self.list_all() if r.user_id == user_id]

    def find_open(self, user_id: int, book_id: int, rows: Optional[Rows] = None) -> Optional[BorrowRecord]:
        """First readable record for (user, book) still borrowed, in ledger order."""
        rows = self.load_rows() if rows is None else rows
        for row in rows:
            if _is_open_for(row, user_id, book_id):
                record = to_model(row, BorrowRecord.from_dict, HISTORY)
                if record is not None:
                    return record
        return None

    def next_id(self, rows: Optional[Rows] = None) -> int:
        rows = self.load_rows() if rows is None else rows
        return self.store.next_id(HISTORY, rows)

    def append(self, record: BorrowRecord, rows: Optional[Rows] = None) -> BorrowRecord:
        rows = self.load_rows() if rows is None else rows
        rows.append(record.to_dict())
        self._save(rows, "Error writing borrowing record")
        return record

    def close(self, record: BorrowRecord, return_date: date, rows: Optional[Rows] = None) -> BorrowRecord:
        """Mark an open record returned. ``borrowDate`` and ``dueDate`` are left alone."""
        rows = self.load_rows() if rows is None else rows
        for row in rows:
            if row.get("id") == record.id and _is_open_for(row, record.user_id, record.book_id):
                row["returnDate"] = return_date.isoformat()
                row["status"] = STATUS_RETURNED
                self._save(rows, "Error closing borrowing record")
                return BorrowRecord.from_dict(row)
        raise LookupError(f"Borrowing record {record.id} is not open")

    def _save(self, rows: Rows, message: str) -> None:
        if not self.store.save(HISTORY, rows):
            raise PersistenceFailure(message, collection=HISTORY)
