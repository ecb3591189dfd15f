from datetime import date, datetime
from typing import Any, Optional

from errors import InvalidInput


class IdentifierValidator:
    """Checks for the integer identifiers used by books, users and lendings."""

    @staticmethod
    def is_valid_id(value: Any) -> bool:
        # bool is a subclass of int; True must not pass as id 1
        if isinstance(value, bool) or not isinstance(value, int):
            return False
        return value > 0

    @staticmethod
    def require_id(value: Any, message: str) -> int:
        if not IdentifierValidator.is_valid_id(value):
            raise InvalidInput(message)
        return value


class DateValidator:
    """Parsing and sanity checks for calendar dates (YYYY-MM-DD)."""

    @staticmethod
    def parse(value: Any) -> Optional[date]:
        if value is None:
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                return date.fromisoformat(value.strip())
            except ValueError:
                return None
        return None

    @staticmethod
    def require_date(value: Any, field_name: str) -> date:
        parsed = DateValidator.parse(value)
        if parsed is None:
            raise InvalidInput(f"{field_name} must be a date in YYYY-MM-DD format.")
        return parsed
