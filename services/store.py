"""Repository contracts and the SQLAlchemy-backed store.

The borrowing services only see the protocols defined here. Every repository
call happens inside ``Store.transaction()``, which commits when the block
exits normally and rolls back on any exception.
"""
from __future__ import annotations

import datetime
import logging
from contextlib import contextmanager
from typing import ContextManager, Iterator, List, Optional, Protocol

from sqlalchemy import event, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import scoped_session

from models import Book, Borrow

from .errors import StoreFailure


class BookRepository(Protocol):
    def get(self, book_id: int) -> Optional[Book]:
        ...

    def set_quantity(self, book_id: int, quantity: int) -> None:
        ...


class BorrowRepository(Protocol):
    def get(self, borrow_id: int) -> Optional[Borrow]:
        ...

    def get_by_key(self, borrow_key: str) -> Optional[Borrow]:
        ...

    def create(self, borrow: Borrow) -> Borrow:
        ...

    def update_status(self, borrow_id: int, status: str, returned_at: datetime.datetime) -> None:
        ...

    def list_for_user(self, user_id: int) -> List[Borrow]:
        ...


class Transaction(Protocol):
    books: BookRepository
    borrows: BorrowRepository


class Store(Protocol):
    def transaction(self) -> ContextManager[Transaction]:
        ...


class SqlBookRepository:
    def __init__(self, session):
        self._session = session

    def get(self, book_id: int) -> Optional[Book]:
        # row lock for the rest of the transaction
        return self._session.get(Book, book_id, with_for_update=True, populate_existing=True)

    def set_quantity(self, book_id: int, quantity: int) -> None:
        self._session.execute(update(Book).where(Book.id == book_id).values(quantity=quantity))


class SqlBorrowRepository:
    def __init__(self, session):
        self._session = session

    def get(self, borrow_id: int) -> Optional[Borrow]:
        return self._session.get(Borrow, borrow_id, with_for_update=True, populate_existing=True)

    def get_by_key(self, borrow_key: str) -> Optional[Borrow]:
        stmt = select(Borrow).where(Borrow.borrow_key == borrow_key)
        return self._session.execute(stmt).scalar_one_or_none()

    def create(self, borrow: Borrow) -> Borrow:
        self._session.add(borrow)
        self._session.flush()
        return borrow

    def update_status(self, borrow_id: int, status: str, returned_at: datetime.datetime) -> None:
        self._session.execute(
            update(Borrow)
            .where(Borrow.id == borrow_id)
            .values(status=status, return_date=returned_at)
        )

    def list_for_user(self, user_id: int) -> List[Borrow]:
        stmt = (
            select(Borrow)
            .where(Borrow.user_id == user_id)
            .order_by(Borrow.borrow_date.desc(), Borrow.id.desc())
        )
        return list(self._session.execute(stmt).scalars())


class SqlTransaction:
    def __init__(self, session):
        self.books = SqlBookRepository(session)
        self.borrows = SqlBorrowRepository(session)


class SqlAlchemyStore:
    """Store backed by a SQLAlchemy session (usually ``db.session``)."""

    def __init__(self, session, logger: Optional[logging.Logger] = None):
        self._session = session
        self._logger = logger or logging.getLogger(__name__)

    @contextmanager
    def transaction(self) -> Iterator[SqlTransaction]:
        """Open a transaction scope on the current session.

        Work already pending in the session (including an implicit
        transaction opened by earlier reads) is committed before the scope
        begins, so it is not rolled back with a failed borrow or return.
        """
        session = self._session
        if isinstance(session, scoped_session):
            session = session()
        try:
            if session.in_transaction():
                # autobegin opened one for earlier reads in this request
                session.commit()
            with session.begin():
                yield SqlTransaction(session)
        except SQLAlchemyError as exc:
            self._logger.exception('Store transaction failed: %s', exc)
            raise StoreFailure('The data store rejected the transaction.') from exc


def use_immediate_transactions(engine) -> None:
    """Make pysqlite start every transaction with ``BEGIN IMMEDIATE``.

    SQLite has no row locks, so this is what serializes concurrent
    read-check-write sequences on that backend.
    """

    @event.listens_for(engine, 'connect')
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, 'begin')
    def _begin_immediate(conn):
        conn.exec_driver_sql('BEGIN IMMEDIATE')
