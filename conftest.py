import pytest
from fastapi.testclient import TestClient

from auth import Principal
from book import Book
from library import Library


@pytest.fixture
def lib(tmp_path):
    # Each test gets its own database file
    db_file = str(tmp_path / "library_test.db")
    lib = Library(db_file=db_file)
    yield lib
    lib.close()


@pytest.fixture
def admin():
    return Principal(id=1, privilege_level=3)


@pytest.fixture
def staff():
    return Principal(id=2, privilege_level=2)


@pytest.fixture
def member():
    return Principal(id=3, privilege_level=1)


@pytest.fixture
def add_book(lib):
    """Factory adding a book with the given stock to the test database."""
    def _add(stock=1, title="Dune", author="Frank Herbert", **extra):
        return lib.inventory.add_book(Book(title=title, author=author, stock=stock, **extra))
    return _add


@pytest.fixture
def client(lib):
    import api as api_module

    api_module.app.dependency_overrides[api_module.get_library] = lambda: lib
    test_client = TestClient(api_module.app)
    try:
        yield test_client
    finally:
        api_module.app.dependency_overrides.clear()


@pytest.fixture
def token_for(lib):
    """Issue an auth token for (user_id, privilege_level)."""
    def _issue(user_id, level):
        return lib.tokens.issue(user_id, level)
    return _issue
