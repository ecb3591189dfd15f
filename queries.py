"""Read-only reporting over lendings joined with book details."""

import sqlite3
from typing import Any, Dict, List, Optional

from auth import Principal, authorize
from database import get_db_connection
from errors import InternalError
from validators import IdentifierValidator


class LendingQueryService:
    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file

    def list_by_user_joined(self, principal: Optional[Principal], user_id: int) -> List[Dict[str, Any]]:
        """All lendings of a user, newest first, each with the book's catalog fields.

        Any authenticated principal may read. Returns an empty list when the
        user has no lendings.
        """
        authorize(principal, 0)
        IdentifierValidator.require_id(user_id, "user_id must be a valid number.")
        conn = get_db_connection(self.db_file)
        try:
            # LEFT JOIN keeps history readable after a book has been removed
            rows = conn.execute(
                """
                SELECT
                    l.id AS lending_id,
                    l.user_id,
                    l.book_id,
                    l.borrowed_date,
                    l.due_date,
                    l.returned_date,
                    l.status,
                    l.created_at AS lending_created_at,
                    l.updated_at AS lending_updated_at,
                    b.title AS book_title,
                    b.author AS book_author,
                    b.isbn AS book_isbn,
                    b.publication_year AS book_publication_year,
                    b.genre AS book_genre,
                    b.stock AS book_stock,
                    b.is_available AS book_is_available
                FROM lendings l
                LEFT JOIN books b ON l.book_id = b.id
                WHERE l.user_id = ?
                ORDER BY l.borrowed_date DESC, l.id DESC
                """,
                (user_id,),
            ).fetchall()
        except sqlite3.Error as e:
            raise InternalError("Failed to read lending records.") from e
        finally:
            conn.close()

        results = []
        for row in rows:
            item = dict(row)
            if item["book_is_available"] is not None:
                item["book_is_available"] = bool(item["book_is_available"])
            results.append(item)
        return results
