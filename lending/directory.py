import logging
from datetime import date
from typing import Any, Dict, List, Optional

from lending.database import MEMBERS, CollectionStore, find_row, to_model, to_models
from lending.errors import InvalidRequest, PersistenceFailure
from lending.member import Member
from lending.validators import TextValidator, format_date

logger = logging.getLogger(__name__)

_PROTECTED_FIELDS = ("id", "joinDate")


class MemberDirectory:
    """Typed view of the members collection."""

    def __init__(self, store: CollectionStore) -> None:
        self.store = store

    def list_all(self) -> List[Member]:
        return to_models(self.store.load(MEMBERS), Member.from_dict, MEMBERS)

    def find_by_id(self, user_id: int) -> Optional[Member]:
        row = find_row(self.store.load(MEMBERS), user_id)
        return to_model(row, Member.from_dict, MEMBERS) if row is not None else None

    @staticmethod
    def is_active(member: Member) -> bool:
        return member.active is True

    def add(self, fields: Dict[str, Any], today: date) -> Member:
        data = {k: v for k, v in fields.items() if k not in _PROTECTED_FIELDS and v is not None}
        data["name"] = TextValidator.require("Name", fields.get("name"))
        data.setdefault("active", True)
        data["active"] = bool(data["active"])

        rows = self.store.load(MEMBERS)
        member = Member.from_dict({"id": self.store.next_id(MEMBERS, rows), **data, "joinDate": format_date(today)})
        rows.append(member.to_dict())
        if not self.store.save(MEMBERS, rows):
            raise PersistenceFailure("Error adding user", collection=MEMBERS)
        logger.info(f"Member added: {member}")
        return member

    def update(self, user_id: int, fields: Dict[str, Any]) -> Optional[Member]:
        """Update profile fields. ``id`` and ``joinDate`` never change."""
        changes = {k: v for k, v in fields.items() if k not in _PROTECTED_FIELDS and v is not None}
        if not changes:
            raise InvalidRequest("Nothing to update. Provide at least one profile field.")
        if "name" in changes:
            changes["name"] = TextValidator.require("Name", changes["name"])
        if "active" in changes:
            changes["active"] = bool(changes["active"])

        rows = self.store.load(MEMBERS)
        row = find_row(rows, user_id)
        if row is None:
            return None
        row.update(changes)
        if not self.store.save(MEMBERS, rows):
            raise PersistenceFailure("Error updating user", collection=MEMBERS)
        return Member.from_dict(row)
