"""Borrowing domain service logic."""
from __future__ import annotations

import datetime
import logging
from typing import Callable, Optional

from models import Borrow, BorrowStatus

from .errors import NotFound, StoreFailure, Unavailable
from .store import Store
from .tokens import generate_borrow_key

MAX_KEY_ATTEMPTS = 5


class BorrowService:
    """Lends one copy of a book and issues the pickup key, in one transaction.

    Date ordering and borrow window length are left to the caller. Nothing
    stops a user from holding several pending borrows, including of the same
    book.
    """

    def __init__(
        self,
        store: Store,
        *,
        key_factory: Callable[[], str] = generate_borrow_key,
        logger: Optional[logging.Logger] = None,
    ):
        self._store = store
        self._key_factory = key_factory
        self._logger = logger or logging.getLogger(__name__)

    def borrow(
        self,
        user_id: int,
        book_id: int,
        borrow_date: datetime.datetime,
        return_date: datetime.datetime,
    ) -> Borrow:
        with self._store.transaction() as tx:
            book = tx.books.get(book_id)
            if book is None:
                self._logger.info('Borrow refused: book %s does not exist', book_id)
                raise NotFound(f'Book {book_id} not found.')
            if book.quantity < 1:
                self._logger.info('Borrow refused: book %s has no copies left', book_id)
                raise Unavailable(f'Book {book_id} is not available.')

            tx.books.set_quantity(book_id, book.quantity - 1)
            borrow = tx.borrows.create(
                Borrow(
                    user_id=user_id,
                    book_id=book_id,
                    borrow_date=borrow_date,
                    return_date=return_date,
                    borrow_key=self._new_key(tx),
                    status=BorrowStatus.PENDING,
                )
            )
            borrow_id = borrow.id
        self._logger.info('User %s borrowed book %s (borrow %s)', user_id, book_id, borrow_id)
        return borrow

    def _new_key(self, tx) -> str:
        for _ in range(MAX_KEY_ATTEMPTS):
            key = self._key_factory()
            if tx.borrows.get_by_key(key) is None:
                return key
            self._logger.warning('Borrow key collision, drawing again')
        raise StoreFailure('Could not allocate a unique borrow key.')
