"""Error taxonomy shared by the stores, the lending engine and the HTTP layer.

Every error carries a human-readable message and the HTTP status code the API
renders it with, so callers never need a separate mapping table.
"""


class LibraryError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class Unauthenticated(LibraryError):
    status_code = 401


class TokenExpired(Unauthenticated):
    pass


class Forbidden(LibraryError):
    status_code = 403


class InvalidInput(LibraryError):
    status_code = 400


class NotFound(LibraryError):
    status_code = 404


class Conflict(LibraryError):
    status_code = 409


class OutOfStock(Conflict):
    """Raised by the inventory store when a conditional decrement matches no row."""


class InternalError(LibraryError):
    status_code = 500
