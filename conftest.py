from datetime import date

import pytest

from lending.library import Library


class FakeClock:
    """Settable stand-in for 'today'."""

    def __init__(self, today: date) -> None:
        self.today = today

    def __call__(self) -> date:
        return self.today


@pytest.fixture
def clock():
    return FakeClock(date(2024, 1, 15))


@pytest.fixture
def lib(tmp_path, clock):
    # every test gets its own data directory
    return Library(data_dir=tmp_path / "data", clock=clock)


@pytest.fixture
def seeded_lib(lib):
    """Members 1 (active) and 2 (inactive); books 1-5, all available."""
    lib.add_member({"name": "Ada Lovelace", "email": "ada@example.com", "membershipType": "Premium"})
    lib.add_member({"name": "Charles Babbage", "email": "charles@example.com", "membershipType": "Basic",
                    "active": False})
    for title, author, genre in [
        ("Dune", "Frank Herbert", "Science Fiction"),
        ("Emma", "Jane Austen", "Classic"),
        ("Neuromancer", "William Gibson", "Science Fiction"),
        ("Persuasion", "Jane Austen", "Classic"),
        ("Sapiens", "Yuval Noah Harari", "History"),
    ]:
        lib.add_book({"title": title, "author": author, "genre": genre})
    return lib
