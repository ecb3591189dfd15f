"""Lending record store: the ``lendings`` table."""

import logging
import sqlite3
from datetime import date
from typing import List, Optional

from database import get_db_connection, utc_now
from errors import Conflict, InternalError, NotFound
from lending_record import LendingRecord, LendingStatus, LendingUpdate

logger = logging.getLogger(__name__)

LENDING_COLUMNS = (
    "id, user_id, book_id, borrowed_date, due_date, returned_date, status, created_at, updated_at"
)


class LendingRecordStore:
    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file

    def create(self, user_id: int, book_id: int, due_date: date) -> LendingRecord:
        """Insert a new record in status 'borrowed', borrowed now."""
        now = utc_now()
        conn = get_db_connection(self.db_file)
        try:
            cursor = conn.execute(
                """
                INSERT INTO lendings (user_id, book_id, borrowed_date, due_date, returned_date,
                                      status, created_at, updated_at)
                VALUES (?, ?, ?, ?, NULL, ?, ?, ?)
                """,
                (user_id, book_id, now, due_date.isoformat(), LendingStatus.BORROWED.value, now, now),
            )
            conn.commit()
            lending_id = cursor.lastrowid
        except sqlite3.Error as e:
            conn.rollback()
            raise InternalError("Failed to create lending record in database.") from e
        finally:
            conn.close()
        return LendingRecord(
            id=lending_id,
            user_id=user_id,
            book_id=book_id,
            borrowed_date=now,
            due_date=due_date.isoformat(),
            status=LendingStatus.BORROWED,
            created_at=now,
            updated_at=now,
        )

    def get_by_id(self, lending_id: int) -> LendingRecord:
        conn = get_db_connection(self.db_file)
        try:
            row = conn.execute(
                f"SELECT {LENDING_COLUMNS} FROM lendings WHERE id = ?", (lending_id,)
            ).fetchone()
        except sqlite3.Error as e:
            raise InternalError("Failed to read lending record.") from e
        finally:
            conn.close()
        if row is None:
            raise NotFound("Lending record not found.")
        return LendingRecord.from_dict(dict(row))

    def list_by_user(self, user_id: int) -> List[LendingRecord]:
        conn = get_db_connection(self.db_file)
        try:
            rows = conn.execute(
                f"SELECT {LENDING_COLUMNS} FROM lendings WHERE user_id = ? "
                "ORDER BY borrowed_date DESC, id DESC",
                (user_id,),
            ).fetchall()
        except sqlite3.Error as e:
            raise InternalError("Failed to read lending records.") from e
        finally:
            conn.close()
        return [LendingRecord.from_dict(dict(row)) for row in rows]

    def update_status_and_returned_date(self, lending_id: int, update: LendingUpdate,
                                        expected_status: Optional[LendingStatus] = None) -> LendingRecord:
        """Apply a partial update. Fields left as None are not touched; updated_at always is.

        With expected_status the update only applies while the stored status
        still equals it, and Conflict is raised if another request changed it first.
        """
        assignments = ["updated_at = ?"]
        params: list = [utc_now()]
        if update.status is not None:
            assignments.append("status = ?")
            params.append(LendingStatus(update.status).value)
        if update.returned_date is not None:
            assignments.append("returned_date = ?")
            params.append(update.returned_date)
        # A record that leaves 'returned' cannot keep its returned_date
        if update.status is not None and update.status != LendingStatus.RETURNED.value and update.returned_date is None:
            assignments.append("returned_date = NULL")
        where = "id = ?"
        params.append(lending_id)
        if expected_status is not None:
            where += " AND status = ?"
            params.append(LendingStatus(expected_status).value)

        conn = get_db_connection(self.db_file)
        try:
            cursor = conn.execute(
                f"UPDATE lendings SET {', '.join(assignments)} WHERE {where}", params
            )
            conn.commit()
            updated = cursor.rowcount
        except sqlite3.Error as e:
            conn.rollback()
            raise InternalError("Failed to update lending record in database.") from e
        finally:
            conn.close()
        if updated == 0:
            # Raises NotFound when the record is gone
            current = self.get_by_id(lending_id)
            raise Conflict(
                f"Lending record status changed to '{current.status.value}' by another request."
            )
        return self.get_by_id(lending_id)

    def mark_returned(self, lending_id: int, returned_date: str) -> bool:
        """Move a record into 'returned' unless it already is.

        Returns True only for the call that performed the transition, which is
        what gates the single stock increment per lending.
        """
        conn = get_db_connection(self.db_file)
        try:
            cursor = conn.execute(
                "UPDATE lendings SET status = ?, returned_date = ?, updated_at = ? "
                "WHERE id = ? AND status != ?",
                (LendingStatus.RETURNED.value, returned_date, utc_now(), lending_id,
                 LendingStatus.RETURNED.value),
            )
            conn.commit()
            return cursor.rowcount == 1
        except sqlite3.Error as e:
            conn.rollback()
            raise InternalError("Failed to update lending record in database.") from e
        finally:
            conn.close()

    def mark_overdue(self, as_of: date) -> int:
        """Flip every 'borrowed' record due before as_of to 'overdue'. Returns how many changed."""
        conn = get_db_connection(self.db_file)
        try:
            cursor = conn.execute(
                "UPDATE lendings SET status = ?, updated_at = ? WHERE status = ? AND due_date < ?",
                (LendingStatus.OVERDUE.value, utc_now(), LendingStatus.BORROWED.value, as_of.isoformat()),
            )
            conn.commit()
            return cursor.rowcount
        except sqlite3.Error as e:
            conn.rollback()
            raise InternalError("Failed to update overdue lendings.") from e
        finally:
            conn.close()
