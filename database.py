import logging
import os
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv

from config import settings

# Make sure .env is loaded before DATABASE_FILE is read, regardless of the
# order in which modules get imported (e.g. library -> database -> config).
load_dotenv()

logger = logging.getLogger(__name__)

# Default database file.
# Priority:
# 1) LIBRARY_DB_FILE (explicit override)
# 2) settings.database_file
DATABASE_FILE = os.environ.get("LIBRARY_DB_FILE") or settings.database_file

LENDING_STATUSES = ("borrowed", "returned", "overdue", "lost")
ACTIVE_LENDING_STATUSES = ("borrowed", "overdue")


def utc_now() -> str:
    """Timestamp format used for every *_at / borrowed_date column."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a new connection to the SQLite database.

    Every store operation uses its own short-lived connection, so concurrent
    requests only share the database file itself. Writers are serialized by
    SQLite; the busy timeout makes a second writer wait instead of failing.
    """
    conn = sqlite3.connect(
        db_file or DATABASE_FILE,
        timeout=settings.db_busy_timeout,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    # WAL lets readers proceed while a writer holds the lock
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA temp_store=MEMORY;")
    return conn


def create_tables(db_file: Optional[str] = None) -> None:
    """Create the tables the lending service needs if they do not exist."""
    statuses = ", ".join(f"'{s}'" for s in LENDING_STATUSES)
    conn = get_db_connection(db_file)
    try:
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                description TEXT,
                isbn TEXT,
                publication_year INTEGER,
                genre TEXT,
                stock INTEGER NOT NULL DEFAULT 0 CHECK(stock >= 0),
                is_available INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # lendings.book_id -> books.id is declared but not enforced
        # (PRAGMA foreign_keys stays off), so history survives a book removal.
        cursor.execute(f"""
            CREATE TABLE IF NOT EXISTS lendings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                book_id INTEGER NOT NULL,
                borrowed_date TIMESTAMP NOT NULL,
                due_date TEXT NOT NULL,
                returned_date TEXT,
                status TEXT NOT NULL DEFAULT 'borrowed' CHECK(status IN ({statuses})),
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                FOREIGN KEY (book_id) REFERENCES books(id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS auth_tokens (
                token_hash TEXT PRIMARY KEY,
                user_id INTEGER NOT NULL,
                privilege_level INTEGER NOT NULL,
                expires_at TIMESTAMP NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_lendings_user_borrowed ON lendings(user_id, borrowed_date DESC)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_lendings_book_status ON lendings(book_id, status)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_lendings_status_due ON lendings(status, due_date)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_auth_tokens_user ON auth_tokens(user_id)")

        conn.commit()
    finally:
        conn.close()


def initialize_database(db_file: Optional[str] = None) -> None:
    """Initialize the database, creating tables when needed."""
    create_tables(db_file)
    logger.debug(f"Database ready: {db_file or DATABASE_FILE}")
