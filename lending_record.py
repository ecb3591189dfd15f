from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class LendingStatus(str, Enum):
    BORROWED = "borrowed"
    RETURNED = "returned"
    OVERDUE = "overdue"
    LOST = "lost"

    @classmethod
    def values(cls) -> list[str]:
        return [s.value for s in cls]


# Allowed status changes. Re-sending the current status is always accepted.
# returned is terminal: the copy is back on the shelf.
TRANSITIONS: dict[LendingStatus, frozenset[LendingStatus]] = {
    LendingStatus.BORROWED: frozenset({LendingStatus.RETURNED, LendingStatus.OVERDUE, LendingStatus.LOST}),
    LendingStatus.OVERDUE: frozenset({LendingStatus.BORROWED, LendingStatus.RETURNED, LendingStatus.LOST}),
    LendingStatus.LOST: frozenset({LendingStatus.RETURNED}),
    LendingStatus.RETURNED: frozenset(),
}


def can_transition(current: LendingStatus, new: LendingStatus) -> bool:
    return new == current or new in TRANSITIONS[current]


class LendingRecord:
    """One borrow-to-return cycle of one copy of a book."""

    def __init__(self, id: int, user_id: int, book_id: int, borrowed_date: str, due_date: str,
                 status: LendingStatus | str = LendingStatus.BORROWED, returned_date: str | None = None,
                 created_at: str | None = None, updated_at: str | None = None) -> None:
        self.id = id
        self.user_id = user_id
        self.book_id = book_id
        self.borrowed_date = borrowed_date
        self.due_date = due_date
        self.returned_date = returned_date
        self.status = LendingStatus(status)
        self.created_at = created_at
        self.updated_at = updated_at

    def __repr__(self) -> str:  # pragma: no cover
        return f"LendingRecord(id={self.id}, user_id={self.user_id}, book_id={self.book_id}, status={self.status.value})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "book_id": self.book_id,
            "borrowed_date": self.borrowed_date,
            "due_date": self.due_date,
            "returned_date": self.returned_date,
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "LendingRecord":
        return LendingRecord(
            id=data["id"],
            user_id=data["user_id"],
            book_id=data["book_id"],
            borrowed_date=data["borrowed_date"],
            due_date=data["due_date"],
            returned_date=data.get("returned_date"),
            status=data.get("status") or LendingStatus.BORROWED,
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@dataclass
class LendingUpdate:
    """Partial update command for a lending record; None means "leave unchanged"."""

    status: Optional[str] = None
    returned_date: Optional[str] = None

    def is_empty(self) -> bool:
        return self.status is None and self.returned_date is None
