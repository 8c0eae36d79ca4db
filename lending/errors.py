"""Error taxonomy for lending operations.

Every error carries a stable ``code`` (the reason) and a ``category`` so the
HTTP and CLI layers can render it without inspecting the message text.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

INVALID_REQUEST = "InvalidRequest"
NOT_FOUND = "NotFound"
PRECONDITION_FAILED = "PreconditionFailed"
PERSISTENCE_FAILURE = "PersistenceFailure"


class LendingError(Exception):
    """Base class for all failures reported by the lending core."""

    code = "LendingError"
    category = "LendingError"
    default_message = "Lending operation failed"
    status_code = 500

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "code": self.code,
            "category": self.category,
            "message": self.message,
        }


class InvalidRequest(LendingError, ValueError):
    code = INVALID_REQUEST
    category = INVALID_REQUEST
    default_message = "User ID and Book ID are required"
    status_code = 400


class NotFound(LendingError, LookupError):
    code = NOT_FOUND
    category = NOT_FOUND
    default_message = "Not found"
    status_code = 404


class MemberNotFound(NotFound):
    code = "MemberNotFound"
    default_message = "User not found"


class BookNotFound(NotFound):
    code = "BookNotFound"
    default_message = "Book not found"


class NoOpenBorrow(NotFound):
    code = "NoOpenBorrow"
    default_message = "No active borrowing record found for this book and user"


class PreconditionFailed(LendingError):
    code = PRECONDITION_FAILED
    category = PRECONDITION_FAILED
    default_message = "Precondition failed"
    status_code = 400


class MemberInactive(PreconditionFailed):
    code = "MemberInactive"
    default_message = "User account is not active"


class BookUnavailable(PreconditionFailed):
    code = "BookUnavailable"
    default_message = "Book is not available for borrowing"


class PersistenceFailure(LendingError):
    """A durable write did not complete.

    ``collection`` names the write that failed. ``inconsistent`` is True when
    the companion collection had already been written, i.e. the book
    availability / open record invariant is now broken on disk.
    """

    code = PERSISTENCE_FAILURE
    category = PERSISTENCE_FAILURE
    default_message = "Error writing collection"
    status_code = 500

    def __init__(self, message: Optional[str] = None, *, collection: str, inconsistent: bool = False) -> None:
        self.collection = collection
        self.inconsistent = inconsistent
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["collection"] = self.collection
        payload["inconsistent"] = self.inconsistent
        return payload
