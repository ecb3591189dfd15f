import logging
from datetime import date, timedelta
from typing import Any, Optional

from auth import Principal, TokenStore, authorize
from config import settings
from database import initialize_database
from errors import Conflict, InternalError, InvalidInput, LibraryError, OutOfStock
from inventory import BookInventoryStore
from lending_record import LendingRecord, LendingStatus, LendingUpdate, can_transition
from lendings import LendingRecordStore
from queries import LendingQueryService
from validators import DateValidator, IdentifierValidator

# Configure logging
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


class Library:
    """Lending workflow: moves copies between the shelf and borrowers.

    Borrowing is a short saga over two tables without a shared transaction:
    reserve a copy with a conditional decrement, then create the lending
    record, and put the copy back if the record cannot be written. Returning
    is gated on a conditional status change so a copy goes back on the shelf
    once per lending, however many times the return is sent.
    """

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file
        initialize_database(db_file)  # Ensure DB and tables exist
        self.inventory = BookInventoryStore(db_file)
        self.lendings = LendingRecordStore(db_file)
        self.queries = LendingQueryService(db_file)
        self.tokens = TokenStore(db_file)

    # ------------------------- Borrow ------------------------- #
    def borrow(self, principal: Optional[Principal], user_id: Any, book_id: Any,
               due_date: Any = None) -> LendingRecord:
        """Lend one copy of book_id to user_id and return the new lending record."""
        authorize(principal, settings.lending_min_privilege)

        IdentifierValidator.require_id(user_id, "User ID and Book ID must be numbers and are required.")
        IdentifierValidator.require_id(book_id, "User ID and Book ID must be numbers and are required.")
        requested_due: Optional[date] = None
        if due_date is not None:
            requested_due = DateValidator.require_date(due_date, "due_date")

        availability = self.inventory.get_availability(book_id)
        if not availability["is_available"] or availability["stock"] <= 0:
            raise Conflict("Book is not available for lending or out of stock.")

        effective_due = requested_due or self._today() + timedelta(days=settings.default_loan_days)

        # Reserve first: the conditional decrement is the authoritative check.
        try:
            remaining = self.inventory.decrement_stock(book_id)
        except OutOfStock as e:
            logger.info(f"Borrow of book {book_id} lost the race for the last copy")
            raise Conflict("Book is not available for lending or out of stock.") from e

        try:
            record = self.lendings.create(user_id, book_id, effective_due)
        except LibraryError as e:
            self._release_reservation(book_id)
            raise InternalError("Failed to create lending record in database.") from e

        logger.info(
            f"Lending {record.id} created: user={user_id}, book={book_id}, due={record.due_date}, stock left={remaining}"
        )
        return record

    def _release_reservation(self, book_id: int) -> None:
        try:
            self.inventory.increment_stock(book_id)
            logger.warning(f"Lending record creation failed, copy of book {book_id} put back on the shelf")
        except LibraryError:
            logger.exception(
                f"Inconsistent stock: reserved copy of book {book_id} could not be released after a failed lending"
            )

    # ------------------------- Update / return ------------------------- #
    def update_lending(self, principal: Optional[Principal], lending_id: Any,
                       update: LendingUpdate) -> LendingRecord:
        """Change a lending's status and/or returned date.

        A transition into 'returned' puts the copy back on the shelf. Sending
        the same return again changes nothing in the inventory.
        """
        authorize(principal, settings.lending_min_privilege)

        IdentifierValidator.require_id(lending_id, "Lending ID is required and must be a number.")
        new_status: Optional[LendingStatus] = None
        if update.status is not None:
            if update.status not in LendingStatus.values():
                raise InvalidInput(
                    "Invalid status value. Allowed values are: " + ", ".join(LendingStatus.values()) + "."
                )
            new_status = LendingStatus(update.status)
        returned_on: Optional[date] = None
        if update.returned_date is not None:
            returned_on = DateValidator.require_date(update.returned_date, "returned_date")

        record = self.lendings.get_by_id(lending_id)

        if update.is_empty():
            raise InvalidInput("No valid fields provided for update.")

        # A returned date on its own means the copy came back
        if new_status is None:
            new_status = LendingStatus.RETURNED
        if returned_on is not None and new_status != LendingStatus.RETURNED:
            raise InvalidInput("returned_date can only be set together with status 'returned'.")
        if not can_transition(record.status, new_status):
            raise Conflict(
                f"Cannot change lending status from '{record.status.value}' to '{new_status.value}'."
            )

        if new_status == LendingStatus.RETURNED:
            return self._return(record, returned_on)

        updated = self.lendings.update_status_and_returned_date(
            record.id, LendingUpdate(status=new_status.value), expected_status=record.status
        )
        logger.info(f"Lending {record.id} status {record.status.value} -> {new_status.value}")
        return updated

    def _return(self, record: LendingRecord, returned_on: Optional[date]) -> LendingRecord:
        returned_date = (returned_on or self._today()).isoformat()

        if record.status != LendingStatus.RETURNED and self.lendings.mark_returned(record.id, returned_date):
            try:
                stock = self.inventory.increment_stock(record.book_id)
                logger.info(f"Lending {record.id} returned, book {record.book_id} stock now {stock}")
            except LibraryError:
                # Tolerated inconsistency: the return is recorded but the shelf count is not
                logger.exception(
                    f"Failed to update stock of book {record.book_id} after return of lending {record.id}"
                )
            return self.lendings.get_by_id(record.id)

        # Already returned, possibly by a concurrent request: only the date may change
        logger.info(f"Lending {record.id} already returned, inventory unchanged")
        return self.lendings.update_status_and_returned_date(
            record.id,
            LendingUpdate(
                status=LendingStatus.RETURNED.value,
                returned_date=returned_on.isoformat() if returned_on else None,
            ),
            expected_status=LendingStatus.RETURNED,
        )

    # ------------------------- Overdue sweep ------------------------- #
    def mark_overdue(self, principal: Optional[Principal], as_of: Any = None) -> int:
        """Flag borrowed lendings past their due date as overdue. Stock is not touched."""
        authorize(principal, settings.lending_min_privilege)
        cutoff = DateValidator.require_date(as_of, "as_of") if as_of is not None else self._today()
        count = self.lendings.mark_overdue(cutoff)
        logger.info(f"{count} lending(s) marked overdue as of {cutoff.isoformat()}")
        return count

    # ------------------------- Queries ------------------------- #
    def list_user_lendings(self, principal: Optional[Principal], user_id: Any) -> list:
        return self.queries.list_by_user_joined(principal, user_id)

    @staticmethod
    def _today() -> date:
        return date.today()

    def close(self) -> None:
        """Connections are opened per operation, so there is nothing to release."""
        return None
