from __future__ import annotations

from datetime import date
from typing import Any, Dict

from lending.validators import format_date, parse_date

_KNOWN_FIELDS = ("id", "name", "email", "membershipType", "joinDate", "active")


class Member:
    """A library member. ``join_date`` is fixed at creation."""

    def __init__(self, id: int, name: str, email: str | None = None, membership_type: str | None = None,
                 active: bool = True, join_date: date | None = None, extra: Dict[str, Any] | None = None) -> None:
        self.id = id
        self.name = name.strip()
        self.email = email
        self.membership_type = membership_type
        self.active = bool(active)
        self.join_date = join_date
        self.extra = dict(extra or {})

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"#{self.id} {self.name}"

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "membershipType": self.membership_type,
        }
        data.update(self.extra)
        data["joinDate"] = format_date(self.join_date)
        data["active"] = self.active
        return data

    @staticmethod
    def from_dict(data: dict) -> "Member":
        extra = {k: v for k, v in data.items() if k not in _KNOWN_FIELDS}
        return Member(
            id=int(data["id"]),
            name=str(data.get("name", "")),
            email=data.get("email"),
            membership_type=data.get("membershipType"),
            active=data.get("active", True),
            join_date=parse_date(data.get("joinDate")),
            extra=extra,
        )
