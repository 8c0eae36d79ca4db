from __future__ import annotations

from typing import Any, Dict

_KNOWN_FIELDS = ("id", "title", "author", "genre", "available")


class Book:
    """Represents a single book in the catalog."""

    def __init__(self, id: int, title: str, author: str, genre: str = "", available: bool = True,
                 extra: Dict[str, Any] | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.genre = (genre or "").strip()
        self.available = bool(available)
        # other catalog fields (isbn, year, ...) are kept as-is
        self.extra = dict(extra or {})

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"#{self.id} {self.title} by {self.author}"

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "genre": self.genre,
        }
        data.update(self.extra)
        data["available"] = self.available
        return data

    @staticmethod
    def from_dict(data: dict) -> "Book":
        extra = {k: v for k, v in data.items() if k not in _KNOWN_FIELDS}
        return Book(
            id=int(data["id"]),
            title=str(data.get("title", "")),
            author=str(data.get("author", "")),
            genre=str(data.get("genre") or ""),
            available=data.get("available", True),
            extra=extra,
        )
