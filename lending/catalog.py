import logging
from typing import Any, Dict, List, Optional

from lending.book import Book
from lending.database import BOOKS, CollectionStore, find_row, to_model, to_models
from lending.errors import BookNotFound, InvalidRequest, PersistenceFailure
from lending.validators import TextValidator

logger = logging.getLogger(__name__)

# fields callers may not set directly: ids are allocated here and
# availability is owned by the lending engine
_PROTECTED_FIELDS = ("id", "available")


class BookCatalog:
    """Typed view of the books collection."""

    def __init__(self, store: CollectionStore) -> None:
        self.store = store

    def list_all(self) -> List[Book]:
        return to_models(self.store.load(BOOKS), Book.from_dict, BOOKS)

    def find_by_id(self, book_id: int) -> Optional[Book]:
        row = find_row(self.store.load(BOOKS), book_id)
        return to_model(row, Book.from_dict, BOOKS) if row is not None else None

    def set_availability(self, book_id: int, available: bool) -> Book:
        """Flip ``available`` on one book and persist the whole collection."""
        rows = self.store.load(BOOKS)
        row = find_row(rows, book_id)
        if row is None:
            raise BookNotFound()
        row["available"] = bool(available)
        if not self.store.save(BOOKS, rows):
            raise PersistenceFailure("Error updating book availability", collection=BOOKS)
        return Book.from_dict(row)

    def add(self, fields: Dict[str, Any]) -> Book:
        """Add a new book. It always starts out available."""
        data = {k: v for k, v in fields.items() if k not in _PROTECTED_FIELDS and v is not None}
        data["title"] = TextValidator.require("Title", fields.get("title"))
        data["author"] = TextValidator.require("Author", fields.get("author"))
        data["genre"] = TextValidator.require("Genre", fields.get("genre"))

        rows = self.store.load(BOOKS)
        book = Book.from_dict({"id": self.store.next_id(BOOKS, rows), **data, "available": True})
        rows.append(book.to_dict())
        if not self.store.save(BOOKS, rows):
            raise PersistenceFailure("Error adding book", collection=BOOKS)
        logger.info(f"Book added: {book}")
        return book

    def update(self, book_id: int, fields: Dict[str, Any]) -> Optional[Book]:
        """Update catalog fields of a book. Returns None if it does not exist."""
        changes = {k: v for k, v in fields.items() if k not in _PROTECTED_FIELDS and v is not None}
        if not changes:
            raise InvalidRequest("Nothing to update. Provide at least one book field.")
        for key in ("title", "author", "genre"):
            if key in changes:
                changes[key] = TextValidator.require(key.capitalize(), changes[key])

        rows = self.store.load(BOOKS)
        row = find_row(rows, book_id)
        if row is None:
            return None
        row.update(changes)
        if not self.store.save(BOOKS, rows):
            raise PersistenceFailure("Error updating book", collection=BOOKS)
        return Book.from_dict(row)

    def remove(self, book_id: int) -> bool:
        rows = self.store.load(BOOKS)
        remaining = [row for row in rows if row.get("id") != book_id]
        if len(remaining) == len(rows):
            return False
        if not self.store.save(BOOKS, remaining):
            raise PersistenceFailure("Error deleting book", collection=BOOKS)
        logger.info(f"Book #{book_id} removed")
        return True
