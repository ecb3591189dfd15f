import pytest

from auth import Principal, authorize
from errors import Forbidden, TokenExpired, Unauthenticated


def test_issue_and_resolve_token(lib):
    token = lib.tokens.issue(user_id=5, privilege_level=3)

    principal = lib.tokens.resolve(token)
    assert principal == Principal(id=5, privilege_level=3)


def test_resolve_unknown_token(lib):
    with pytest.raises(Unauthenticated):
        lib.tokens.resolve("not-a-token")


def test_resolve_missing_token(lib):
    with pytest.raises(Unauthenticated, match="No auth token"):
        lib.tokens.resolve(None)


def test_expired_token(lib):
    token = lib.tokens.issue(user_id=5, privilege_level=3, ttl_minutes=-1)
    with pytest.raises(TokenExpired):
        lib.tokens.resolve(token)


def test_revoke_token(lib):
    token = lib.tokens.issue(user_id=5, privilege_level=1)
    assert lib.tokens.revoke(token) is True
    assert lib.tokens.revoke(token) is False
    with pytest.raises(Unauthenticated):
        lib.tokens.resolve(token)


def test_tokens_are_not_stored_in_clear(lib):
    from database import get_db_connection

    token = lib.tokens.issue(user_id=5, privilege_level=1)
    conn = get_db_connection(lib.db_file)
    try:
        stored = [row["token_hash"] for row in conn.execute("SELECT token_hash FROM auth_tokens")]
    finally:
        conn.close()
    assert token not in stored


def test_authorize_levels():
    staff = Principal(id=1, privilege_level=2)
    assert authorize(staff, 2) is staff
    with pytest.raises(Forbidden):
        authorize(staff, 3)
    with pytest.raises(Unauthenticated):
        authorize(None, 1)
