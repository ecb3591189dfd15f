"""Authorization gate and principal resolution.

A request credential is an opaque token created with ``secrets`` and stored
as its SHA-256 digest next to the user id and privilege level it stands for.
Resolving a token yields a ``Principal``; ``authorize`` then compares the
principal's privilege level with the level an operation requires.

Privilege levels are ordinal: 1 = member, 2 = staff, 3 = admin.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from config import settings
from database import get_db_connection
from errors import Forbidden, InternalError, TokenExpired, Unauthenticated

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    id: int
    privilege_level: int


def authorize(principal: Optional[Principal], required_level: int) -> Principal:
    """Return the principal if it may act at required_level, else raise."""
    if principal is None:
        raise Unauthenticated("Authentication required.")
    if principal.privilege_level < required_level:
        logger.warning(
            f"Principal {principal.id} (level {principal.privilege_level}) rejected, needs level {required_level}"
        )
        raise Forbidden("Forbidden: You do not have sufficient privileges to perform this action.")
    return principal


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class TokenStore:
    """Issues, resolves and revokes auth tokens kept in the auth_tokens table."""

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file

    def issue(self, user_id: int, privilege_level: int, ttl_minutes: Optional[int] = None) -> str:
        ttl = settings.token_ttl_minutes if ttl_minutes is None else ttl_minutes
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=ttl)
        token = secrets.token_hex(32)
        conn = get_db_connection(self.db_file)
        try:
            conn.execute(
                "INSERT INTO auth_tokens (token_hash, user_id, privilege_level, expires_at) VALUES (?, ?, ?, ?)",
                (_hash_token(token), user_id, privilege_level, expires_at.isoformat()),
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise InternalError("Failed to issue auth token.") from e
        finally:
            conn.close()
        return token

    def resolve(self, token: Optional[str]) -> Principal:
        if not token:
            raise Unauthenticated("Authentication required: No auth token provided.")
        conn = get_db_connection(self.db_file)
        try:
            row = conn.execute(
                "SELECT user_id, privilege_level, expires_at FROM auth_tokens WHERE token_hash = ?",
                (_hash_token(token),),
            ).fetchone()
        except sqlite3.Error as e:
            raise InternalError("Failed to verify auth token.") from e
        finally:
            conn.close()
        if row is None:
            raise Unauthenticated("Invalid or expired authentication token.")
        if datetime.fromisoformat(row["expires_at"]) <= datetime.now(timezone.utc):
            raise TokenExpired("Invalid or expired authentication token.")
        return Principal(id=row["user_id"], privilege_level=row["privilege_level"])

    def revoke(self, token: str) -> bool:
        conn = get_db_connection(self.db_file)
        try:
            cursor = conn.execute("DELETE FROM auth_tokens WHERE token_hash = ?", (_hash_token(token),))
            conn.commit()
            return cursor.rowcount > 0
        except sqlite3.Error as e:
            conn.rollback()
            raise InternalError("Failed to revoke auth token.") from e
        finally:
            conn.close()
