"""Return side of the borrow lifecycle."""
from __future__ import annotations

import datetime
import logging
from typing import Callable, Optional

from models import BorrowStatus

from .errors import InvalidState, NotFound
from .store import Store


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class ReturnService:
    """Marks a pending borrow returned and puts the copy back in stock."""

    def __init__(
        self,
        store: Store,
        *,
        clock: Callable[[], datetime.datetime] = utcnow,
        logger: Optional[logging.Logger] = None,
    ):
        self._store = store
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    def return_borrow(self, borrow_id: int) -> None:
        with self._store.transaction() as tx:
            borrow = tx.borrows.get(borrow_id)
            if borrow is None:
                self._logger.info('Return refused: borrow %s does not exist', borrow_id)
                raise NotFound(f'Borrow record {borrow_id} not found.')
            if borrow.status != BorrowStatus.PENDING:
                self._logger.info('Return refused: borrow %s is %s', borrow_id, borrow.status)
                raise InvalidState(f'Borrow record {borrow_id} is already returned.')

            book_id = borrow.book_id
            book = tx.books.get(book_id)
            if book is None:
                raise NotFound(f'Book {book_id} not found.')

            tx.books.set_quantity(book_id, book.quantity + 1)
            tx.borrows.update_status(borrow_id, BorrowStatus.RETURNED, self._clock())
        self._logger.info('Borrow %s returned, book %s restocked', borrow_id, book_id)
