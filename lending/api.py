import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from lending.config import settings
from lending.errors import BookNotFound, InvalidRequest, LendingError, MemberNotFound
from lending.library import Library
from lending.validators import IdValidator, parse_bool

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


# --- Models ---
class BorrowRequest(BaseModel):
    """Raw ids as sent; IdValidator decides what is a valid id."""
    userId: Any = None
    bookId: Any = None


class BookCreateModel(BaseModel):
    """Extra catalog fields (isbn, year, ...) are stored as given."""
    model_config = ConfigDict(extra="allow")

    title: str | None = Field(default=None, description="Book title")
    author: str | None = Field(default=None, description="Book author")
    genre: str | None = Field(default=None, description="Genre, matched case-insensitively when filtering")


class BookUpdateModel(BookCreateModel):
    pass


class MemberCreateModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str | None = None
    email: str | None = None
    membershipType: str | None = None
    active: bool | None = None


class MemberUpdateModel(MemberCreateModel):
    pass


# --- Helpers ---
def get_library(request: Request) -> Library:
    return request.app.state.library


def _list_response(items: List[Any]) -> Dict[str, Any]:
    return {"success": True, "count": len(items), "data": [item.to_dict() for item in items]}


def _parse_path_id(raw: str, label: str) -> int:
    value = IdValidator.parse_id(raw)
    if value is None:
        raise InvalidRequest(f"Invalid {label} ID")
    return value


def _parse_optional_id(raw: Optional[str], label: str) -> Optional[int]:
    if raw is None or raw == "":
        return None
    return _parse_path_id(raw, label)


# --- Books ---
books_router = APIRouter(prefix="/api/books", tags=["books"])


@books_router.get("")
def list_books(search: Optional[str] = None, genre: Optional[str] = None, available: Optional[str] = None,
               library: Library = Depends(get_library)):
    """Get all books, optionally filtered by search text, genre and availability."""
    return _list_response(library.list_books(search=search, genre=genre, available=parse_bool(available)))


@books_router.get("/{book_id}")
def get_book(book_id: str, library: Library = Depends(get_library)):
    book = library.find_book(_parse_path_id(book_id, "book"))
    if book is None:
        raise BookNotFound()
    return {"success": True, "data": book.to_dict()}


@books_router.post("")
def add_book(payload: BookCreateModel, library: Library = Depends(get_library)):
    book = library.add_book(payload.model_dump(exclude_none=True))
    return {"success": True, "message": "Book added successfully", "data": book.to_dict()}


@books_router.put("/{book_id}")
def update_book(book_id: str, payload: BookUpdateModel, library: Library = Depends(get_library)):
    book = library.update_book(_parse_path_id(book_id, "book"), payload.model_dump(exclude_none=True))
    if book is None:
        raise BookNotFound()
    return {"success": True, "message": "Book updated successfully", "data": book.to_dict()}


@books_router.delete("/{book_id}")
def delete_book(book_id: str, library: Library = Depends(get_library)):
    if not library.remove_book(_parse_path_id(book_id, "book")):
        raise BookNotFound()
    return {"success": True, "message": "Book deleted successfully"}


# --- Users ---
users_router = APIRouter(prefix="/api/users", tags=["users"])


@users_router.get("")
def list_users(membershipType: Optional[str] = None, active: Optional[str] = None, search: Optional[str] = None,
               library: Library = Depends(get_library)):
    members = library.list_members(membership_type=membershipType, active=parse_bool(active), search=search)
    return _list_response(members)


@users_router.get("/{user_id}")
def get_user(user_id: str, library: Library = Depends(get_library)):
    member = library.find_member(_parse_path_id(user_id, "user"))
    if member is None:
        raise MemberNotFound()
    return {"success": True, "data": member.to_dict()}


@users_router.get("/{user_id}/history")
def get_user_history(user_id: str, library: Library = Depends(get_library)):
    member, records = library.member_history(_parse_path_id(user_id, "user"))
    return {
        "success": True,
        "data": {
            "user": member.to_dict(),
            "borrowingHistory": [r.to_dict() for r in records],
        },
    }


@users_router.post("")
def add_user(payload: MemberCreateModel, library: Library = Depends(get_library)):
    member = library.add_member(payload.model_dump(exclude_none=True))
    return {"success": True, "message": "User added successfully", "data": member.to_dict()}


@users_router.put("/{user_id}")
def update_user(user_id: str, payload: MemberUpdateModel, library: Library = Depends(get_library)):
    member = library.update_member(_parse_path_id(user_id, "user"), payload.model_dump(exclude_none=True))
    if member is None:
        raise MemberNotFound()
    return {"success": True, "message": "User updated successfully", "data": member.to_dict()}


# --- Borrowing ---
borrow_router = APIRouter(prefix="/api/borrow", tags=["borrow"])


@borrow_router.get("/history")
def borrowing_history(status: Optional[str] = None, userId: Optional[str] = None, bookId: Optional[str] = None,
                      library: Library = Depends(get_library)):
    records = library.list_history(status=status, user_id=_parse_optional_id(userId, "user"),
                                   book_id=_parse_optional_id(bookId, "book"))
    return _list_response(records)


@borrow_router.get("/overdue")
def overdue_records(library: Library = Depends(get_library)):
    return _list_response(library.overdue())


@borrow_router.post("/borrow")
def borrow_book(payload: Optional[BorrowRequest] = None, library: Library = Depends(get_library)):
    payload = payload or BorrowRequest()
    result = library.borrow(payload.userId, payload.bookId)
    return {"success": True, "message": "Book borrowed successfully", "data": result.to_dict()}


@borrow_router.post("/return")
def return_book(payload: Optional[BorrowRequest] = None, library: Library = Depends(get_library)):
    payload = payload or BorrowRequest()
    result = library.return_book(payload.userId, payload.bookId)
    return {"success": True, "message": "Book returned successfully", "data": result.to_dict()}


# --- Application ---
ENDPOINTS = {
    "books": {
        "GET /api/books": "Get all books",
        "GET /api/books/:id": "Get specific book details",
        "POST /api/books": "Add new book",
        "PUT /api/books/:id": "Update book",
        "DELETE /api/books/:id": "Delete book",
    },
    "users": {
        "GET /api/users": "Get all users",
        "GET /api/users/:id": "Get specific user details",
        "GET /api/users/:id/history": "Get user borrowing history",
        "POST /api/users": "Add new user",
        "PUT /api/users/:id": "Update user",
    },
    "borrow": {
        "POST /api/borrow/borrow": "Borrow a book",
        "POST /api/borrow/return": "Return a book",
        "GET /api/borrow/history": "Get all borrowing history",
        "GET /api/borrow/overdue": "Get overdue borrowings",
    },
}


def create_app(library: Optional[Library] = None) -> FastAPI:
    """Build the API around ``library``; without one it is created from settings on startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.library is None:
            app.state.library = Library(settings.data_dir, loan_days=settings.loan_days)
        problems = app.state.library.check_consistency()
        if problems:
            logger.warning(f"{len(problems)} lending inconsistencies found at startup")
        yield

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
    app.state.library = library

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LendingError)
    async def lending_error_handler(request: Request, exc: LendingError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.to_dict()}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info(f"{request.method} {request.url.path} rejected: {exc.errors()}")
        if request.url.path.startswith("/api/borrow/"):
            error = InvalidRequest()
        else:
            error = InvalidRequest("Invalid request body")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            return JSONResponse(status_code=404, content={
                "success": False,
                "message": "Route not found",
                "requested_url": request.url.path,
            })
        return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.detail})

    @app.get("/")
    def root():
        return {"message": settings.app_name, "version": settings.app_version, "endpoints": ENDPOINTS}

    @app.get("/health")
    def health(library: Library = Depends(get_library)):
        """Collection sizes plus any read failures and lending inconsistencies."""
        # diagnostics reflect the most recent load of each collection
        counts = library.collection_counts()
        diagnostics = library.diagnostics()
        inconsistencies = [p.to_dict() for p in library.check_consistency()]
        return {
            "status": "OK" if not diagnostics and not inconsistencies else "DEGRADED",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": settings.environment,
            "collections": counts,
            "diagnostics": diagnostics,
            "inconsistencies": inconsistencies,
        }

    app.include_router(books_router)
    app.include_router(users_router)
    app.include_router(borrow_router)
    return app


app = create_app()
