from datetime import date

import pytest
from fastapi.testclient import TestClient

from lending.api import create_app


@pytest.fixture
def client(seeded_lib):
    return TestClient(create_app(seeded_lib))


def test_root_lists_endpoints(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "POST /api/borrow/borrow" in response.json()["endpoints"]["borrow"]


def test_get_books(client):
    response = client.get("/api/books")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["count"] == 5
    assert body["data"][0]["title"] == "Dune"


def test_filter_books(client):
    assert client.get("/api/books", params={"genre": "classic"}).json()["count"] == 2
    assert client.get("/api/books", params={"search": "jane"}).json()["count"] == 2

    client.post("/api/borrow/borrow", json={"userId": 1, "bookId": 2})
    unavailable = client.get("/api/books", params={"available": "false"}).json()
    assert [b["id"] for b in unavailable["data"]] == [2]


def test_get_single_book(client):
    response = client.get("/api/books/5")
    assert response.status_code == 200
    assert response.json()["data"]["title"] == "Sapiens"


def test_get_missing_book(client):
    response = client.get("/api/books/99")
    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "code": "BookNotFound",
        "category": "NotFound",
        "message": "Book not found",
    }


def test_get_book_with_invalid_id(client):
    response = client.get("/api/books/abc")
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid book ID"


def test_add_book(client):
    response = client.post("/api/books", json={"title": "Kindred", "author": "Octavia Butler",
                                               "genre": "Science Fiction", "isbn": "9780807083697"})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["id"] == 6
    assert data["available"] is True
    assert data["isbn"] == "9780807083697"


def test_add_book_without_title(client):
    response = client.post("/api/books", json={"author": "Anonymous", "genre": "Poetry"})
    assert response.status_code == 400
    assert response.json()["code"] == "InvalidRequest"


def test_update_and_delete_book(client):
    response = client.put("/api/books/4", json={"genre": "Romance"})
    assert response.status_code == 200
    assert response.json()["data"]["genre"] == "Romance"

    assert client.delete("/api/books/4").status_code == 200
    assert client.get("/api/books/4").status_code == 404
    assert client.delete("/api/books/4").status_code == 404


def test_borrowed_book_cannot_be_deleted(client):
    client.post("/api/borrow/borrow", json={"userId": 1, "bookId": 3})
    response = client.delete("/api/books/3")
    assert response.status_code == 400
    assert response.json()["code"] == "BookUnavailable"


def test_borrow_and_return(client):
    response = client.post("/api/borrow/borrow", json={"userId": 1, "bookId": 5})
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Book borrowed successfully"
    assert body["data"]["record"]["status"] == "borrowed"
    assert body["data"]["record"]["dueDate"] == "2024-02-14"
    assert body["data"]["book"]["available"] is False
    assert body["data"]["user"]["name"] == "Ada Lovelace"

    again = client.post("/api/borrow/borrow", json={"userId": 1, "bookId": 5})
    assert again.status_code == 400
    assert again.json()["code"] == "BookUnavailable"
    assert again.json()["category"] == "PreconditionFailed"

    returned = client.post("/api/borrow/return", json={"userId": 1, "bookId": 5})
    assert returned.status_code == 200
    assert returned.json()["message"] == "Book returned successfully"
    assert returned.json()["data"]["record"]["returnDate"] == "2024-01-15"
    assert returned.json()["data"]["book"]["available"] is True

    repeat = client.post("/api/borrow/return", json={"userId": 1, "bookId": 5})
    assert repeat.status_code == 404
    assert repeat.json()["code"] == "NoOpenBorrow"


def test_borrow_accepts_string_ids(client):
    response = client.post("/api/borrow/borrow", json={"userId": "1", "bookId": "2"})
    assert response.status_code == 200
    assert response.json()["data"]["record"]["bookId"] == 2


@pytest.mark.parametrize("payload", [None, {}, {"userId": 1}, {"userId": "abc", "bookId": 5}])
def test_borrow_requires_both_ids(client, payload):
    if payload is None:
        response = client.post("/api/borrow/borrow")
    else:
        response = client.post("/api/borrow/borrow", json=payload)
    assert response.status_code == 400
    assert response.json()["code"] == "InvalidRequest"
    assert response.json()["message"] == "User ID and Book ID are required"


@pytest.mark.parametrize("payload", [
    {"userId": True, "bookId": 5},
    {"userId": 1, "bookId": 1.5},
    {"userId": 1, "bookId": [5]},
    {"userId": "12abc", "bookId": 5},
])
def test_borrow_rejects_ids_that_are_not_positive_integers(client, seeded_lib, payload):
    response = client.post("/api/borrow/borrow", json=payload)
    assert response.status_code == 400
    assert response.json()["code"] == "InvalidRequest"
    assert seeded_lib.ledger.list_all() == []


@pytest.mark.parametrize("path", ["/api/borrow/borrow", "/api/borrow/return"])
def test_malformed_json_body_is_invalid_request(client, path):
    response = client.post(path, content="{bad", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "code": "InvalidRequest",
        "category": "InvalidRequest",
        "message": "User ID and Book ID are required",
    }


def test_malformed_book_body_is_invalid_request(client):
    response = client.post("/api/books", json=["Dune"])
    assert response.status_code == 400
    assert response.json()["code"] == "InvalidRequest"
    assert response.json()["message"] == "Invalid request body"


def test_return_against_unreadable_record(client, seeded_lib):
    seeded_lib.catalog.set_availability(5, False)
    seeded_lib.store.save("history", [{"id": 1, "userId": 1, "bookId": 5, "borrowDate": "not-a-date",
                                       "dueDate": "2024-01-31", "returnDate": None, "status": "borrowed"}])

    response = client.post("/api/borrow/return", json={"userId": 1, "bookId": 5})
    assert response.status_code == 404
    assert response.json()["code"] == "NoOpenBorrow"
    assert seeded_lib.find_book(5).available is False


def test_inactive_member_cannot_borrow(client):
    response = client.post("/api/borrow/borrow", json={"userId": 2, "bookId": 1})
    assert response.status_code == 400
    assert response.json()["code"] == "MemberInactive"


def test_deactivating_a_user_blocks_borrowing(client):
    response = client.put("/api/users/1", json={"active": False})
    assert response.status_code == 200
    assert response.json()["data"]["active"] is False

    response = client.post("/api/borrow/borrow", json={"userId": 1, "bookId": 1})
    assert response.json()["code"] == "MemberInactive"


def test_users(client):
    assert client.get("/api/users").json()["count"] == 2
    assert client.get("/api/users", params={"active": "false"}).json()["data"][0]["name"] == "Charles Babbage"
    assert client.get("/api/users/99").json()["code"] == "MemberNotFound"

    created = client.post("/api/users", json={"name": "Grace Hopper", "membershipType": "Premium"})
    assert created.status_code == 200
    assert created.json()["data"]["id"] == 3
    assert created.json()["data"]["joinDate"] == "2024-01-15"


def test_user_history(client):
    client.post("/api/borrow/borrow", json={"userId": 1, "bookId": 1})

    response = client.get("/api/users/1/history")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["id"] == 1
    assert [r["bookId"] for r in data["borrowingHistory"]] == [1]

    assert client.get("/api/users/99/history").status_code == 404


def test_borrowing_history_and_overdue(client, clock):
    client.post("/api/borrow/borrow", json={"userId": 1, "bookId": 1})
    client.post("/api/borrow/borrow", json={"userId": 1, "bookId": 2})
    client.post("/api/borrow/return", json={"userId": 1, "bookId": 2})

    assert client.get("/api/borrow/history").json()["count"] == 2
    assert client.get("/api/borrow/history", params={"status": "borrowed"}).json()["data"][0]["bookId"] == 1
    assert client.get("/api/borrow/history", params={"bookId": "x"}).status_code == 400

    assert client.get("/api/borrow/overdue").json()["count"] == 0
    clock.today = date(2024, 3, 1)
    assert client.get("/api/borrow/overdue").json()["data"][0]["bookId"] == 1


def test_health_reports_ok(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "OK"
    assert body["collections"]["books"] == 5
    assert body["inconsistencies"] == []


def test_ledger_failure_is_reported_and_degrades_health(client, seeded_lib, monkeypatch):
    original = seeded_lib.store.save

    def save(collection, records):
        if collection == "history":
            return False
        return original(collection, records)

    monkeypatch.setattr(seeded_lib.store, "save", save)

    response = client.post("/api/borrow/borrow", json={"userId": 1, "bookId": 5})
    assert response.status_code == 500
    body = response.json()
    assert body["code"] == "PersistenceFailure"
    assert body["collection"] == "history"
    assert body["inconsistent"] is True

    health = client.get("/health").json()
    assert health["status"] == "DEGRADED"
    assert health["inconsistencies"] == [{"bookId": 5, "problem": "unavailable_without_open_record",
                                          "recordIds": []}]


def test_unknown_route(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Route not found",
                               "requested_url": "/api/nothing-here"}
