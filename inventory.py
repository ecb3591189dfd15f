"""Book inventory store.

Owns the ``books`` table. The lending workflow only touches ``stock`` and
``is_available`` through the two conditional updates below; each one is a
single SQL statement, so two concurrent callers can never both take the last
copy. The catalog helpers (add, restock, delete) exist for administration.
"""

import logging
import sqlite3
from typing import Dict, Optional

from book import Book
from database import ACTIVE_LENDING_STATUSES, get_db_connection, utc_now
from errors import Conflict, InternalError, InvalidInput, NotFound, OutOfStock

logger = logging.getLogger(__name__)

BOOK_COLUMNS = (
    "id, title, author, description, isbn, publication_year, genre, "
    "stock, is_available, created_at, updated_at"
)


class BookInventoryStore:
    """Reads and conditionally updates book stock counters."""

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file

    # ------------------------- Lending operations ------------------------- #
    def get_availability(self, book_id: int) -> Dict[str, object]:
        conn = get_db_connection(self.db_file)
        try:
            row = conn.execute(
                "SELECT stock, is_available FROM books WHERE id = ?", (book_id,)
            ).fetchone()
        except sqlite3.Error as e:
            raise InternalError("Failed to read book availability.") from e
        finally:
            conn.close()
        if row is None:
            raise NotFound("Book not found.")
        return {"stock": row["stock"], "is_available": bool(row["is_available"])}

    def decrement_stock(self, book_id: int) -> int:
        """Take one copy off the shelf. Returns the new stock.

        Raises OutOfStock when no copy is left at the moment of the update,
        even if an earlier availability read said otherwise.
        """
        conn = get_db_connection(self.db_file)
        try:
            cursor = conn.execute(
                """
                UPDATE books
                SET stock = stock - 1,
                    is_available = CASE WHEN stock - 1 > 0 THEN 1 ELSE 0 END,
                    updated_at = ?
                WHERE id = ? AND stock > 0
                """,
                (utc_now(), book_id),
            )
            conn.commit()
            if cursor.rowcount == 1:
                return self._read_stock(conn, book_id)
            if not self._exists(conn, book_id):
                raise NotFound("Book not found.")
        except sqlite3.Error as e:
            conn.rollback()
            raise InternalError("Failed to update book stock.") from e
        finally:
            conn.close()
        raise OutOfStock("Book is not available for lending or out of stock.")

    def increment_stock(self, book_id: int) -> int:
        """Put one copy back on the shelf; the book is always available afterwards."""
        conn = get_db_connection(self.db_file)
        try:
            cursor = conn.execute(
                "UPDATE books SET stock = stock + 1, is_available = 1, updated_at = ? WHERE id = ?",
                (utc_now(), book_id),
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise NotFound("Book not found.")
            return self._read_stock(conn, book_id)
        except sqlite3.Error as e:
            conn.rollback()
            raise InternalError("Failed to update book stock.") from e
        finally:
            conn.close()

    # ------------------------- Catalog management ------------------------- #
    def add_book(self, book: Book) -> Book:
        if book.stock < 0:
            raise InvalidInput("Stock cannot be negative.")
        conn = get_db_connection(self.db_file)
        try:
            now = utc_now()
            cursor = conn.execute(
                """
                INSERT INTO books (title, author, description, isbn, publication_year, genre,
                                   stock, is_available, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (book.title, book.author, book.description, book.isbn, book.publication_year,
                 book.genre, book.stock, int(book.stock > 0), now, now),
            )
            conn.commit()
            book_id = cursor.lastrowid
        except sqlite3.Error as e:
            conn.rollback()
            raise InternalError("Failed to create book.") from e
        finally:
            conn.close()
        logger.info(f"Book added: id={book_id}, title={book.title!r}, stock={book.stock}")
        return self.get_book(book_id)

    def get_book(self, book_id: int) -> Book:
        conn = get_db_connection(self.db_file)
        try:
            row = conn.execute(f"SELECT {BOOK_COLUMNS} FROM books WHERE id = ?", (book_id,)).fetchone()
        except sqlite3.Error as e:
            raise InternalError("Failed to read book.") from e
        finally:
            conn.close()
        if row is None:
            raise NotFound("Book not found.")
        return Book.from_dict(dict(row))

    def set_stock(self, book_id: int, stock: int) -> Book:
        """Restock: overwrite the counter and derive availability from it."""
        if stock < 0:
            raise InvalidInput("Stock cannot be negative.")
        conn = get_db_connection(self.db_file)
        try:
            cursor = conn.execute(
                "UPDATE books SET stock = ?, is_available = ?, updated_at = ? WHERE id = ?",
                (stock, int(stock > 0), utc_now(), book_id),
            )
            conn.commit()
            updated = cursor.rowcount
        except sqlite3.Error as e:
            conn.rollback()
            raise InternalError("Failed to update book stock.") from e
        finally:
            conn.close()
        if updated == 0:
            raise NotFound("Book not found.")
        logger.info(f"Book {book_id} restocked to {stock}")
        return self.get_book(book_id)

    def delete_book(self, book_id: int) -> None:
        """Remove a book unless an active lending still references it."""
        placeholders = ", ".join("?" for _ in ACTIVE_LENDING_STATUSES)
        conn = get_db_connection(self.db_file)
        try:
            cursor = conn.execute(
                f"""
                DELETE FROM books
                WHERE id = ?
                  AND NOT EXISTS (
                      SELECT 1 FROM lendings
                      WHERE book_id = ? AND status IN ({placeholders})
                  )
                """,
                (book_id, book_id, *ACTIVE_LENDING_STATUSES),
            )
            conn.commit()
            if cursor.rowcount == 1:
                logger.info(f"Book {book_id} deleted")
                return
            if not self._exists(conn, book_id):
                raise NotFound("Book not found.")
        except sqlite3.Error as e:
            conn.rollback()
            raise InternalError("Failed to delete book.") from e
        finally:
            conn.close()
        raise Conflict("Book has active lendings and cannot be deleted.")

    # ------------------------- Helpers ------------------------- #
    @staticmethod
    def _exists(conn: sqlite3.Connection, book_id: int) -> bool:
        return conn.execute("SELECT 1 FROM books WHERE id = ?", (book_id,)).fetchone() is not None

    @staticmethod
    def _read_stock(conn: sqlite3.Connection, book_id: int) -> int:
        row = conn.execute("SELECT stock FROM books WHERE id = ?", (book_id,)).fetchone()
        return row["stock"] if row else 0
