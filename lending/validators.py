import re
from datetime import date
from typing import Any, Optional

from lending.errors import InvalidRequest

_DIGITS = re.compile(r"^\d+$")


class IdValidator:
    """Parses record identifiers coming from JSON bodies, paths and the CLI."""

    @staticmethod
    def parse_id(raw: Any) -> Optional[int]:
        """Return a positive integer id, or None when ``raw`` is not one.

        Accepts ints and strings of decimal digits. Booleans, floats, zero,
        negatives and partially numeric strings such as ``"12abc"`` are rejected.
        """
        if raw is None or isinstance(raw, bool):
            return None
        if isinstance(raw, int):
            return raw if raw > 0 else None
        if isinstance(raw, str):
            s = raw.strip()
            if not _DIGITS.match(s):
                return None
            value = int(s)
            return value if value > 0 else None
        return None

    @staticmethod
    def require_ids(user_id: Any, book_id: Any) -> tuple[int, int]:
        uid = IdValidator.parse_id(user_id)
        bid = IdValidator.parse_id(book_id)
        if uid is None or bid is None:
            raise InvalidRequest("User ID and Book ID are required")
        return uid, bid


class TextValidator:
    """Basic text validation and sanitization for catalog and profile fields."""

    @staticmethod
    def is_non_empty(text: Optional[str]) -> bool:
        if text is None or not isinstance(text, str):
            return False
        return bool(text.strip())

    @staticmethod
    def require(field: str, text: Any) -> str:
        if not TextValidator.is_non_empty(text):
            raise InvalidRequest(f"{field} is required")
        return TextValidator.sanitize_text(text.strip())

    @staticmethod
    def sanitize_text(text: str) -> str:
        if text is None:
            return ""
        # strip markup so stored fields render safely as plain text
        return re.sub(r"<[^>]*>", "", text)


def parse_bool(raw: Any) -> Optional[bool]:
    """Query-string flag parsing: only the literal ``true`` means True."""
    if raw is None:
        return None
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() == "true"


def format_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_date(raw: Any) -> Optional[date]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, date):
        return raw
    # tolerate full ISO timestamps written by other tools
    return date.fromisoformat(str(raw)[:10])
