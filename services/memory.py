"""In-memory store implementing the repository contracts.

Rows are kept as plain dicts and handed out as detached model instances, so
callers never mutate stored state except through the repositories. A single
lock is held for each transaction, which makes transactions serializable.
"""
from __future__ import annotations

import copy
import datetime
import itertools
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from models import Book, Borrow

BOOK_FIELDS = (
    'id', 'title', 'isbn', 'authors', 'genre', 'pages', 'year', 'language',
    'publisher', 'description', 'quantity', 'cover_image',
)
BORROW_FIELDS = ('id', 'user_id', 'book_id', 'borrow_date', 'return_date', 'borrow_key', 'status')


class InMemoryBookRepository:
    def __init__(self, store: 'InMemoryStore'):
        self._store = store

    def get(self, book_id: int) -> Optional[Book]:
        row = self._store.books.get(book_id)
        return Book(**row) if row is not None else None

    def set_quantity(self, book_id: int, quantity: int) -> None:
        if quantity < 0:
            raise ValueError('quantity must not be negative')
        self._store.books[book_id]['quantity'] = quantity


class InMemoryBorrowRepository:
    def __init__(self, store: 'InMemoryStore'):
        self._store = store

    def get(self, borrow_id: int) -> Optional[Borrow]:
        row = self._store.borrows.get(borrow_id)
        return Borrow(**row) if row is not None else None

    def get_by_key(self, borrow_key: str) -> Optional[Borrow]:
        for row in self._store.borrows.values():
            if row['borrow_key'] == borrow_key:
                return Borrow(**row)
        return None

    def create(self, borrow: Borrow) -> Borrow:
        if borrow.book_id not in self._store.books:
            raise ValueError(f'unknown book {borrow.book_id}')
        if self.get_by_key(borrow.borrow_key) is not None:
            raise ValueError('borrow_key must be unique')
        row = {field: getattr(borrow, field) for field in BORROW_FIELDS}
        row['id'] = next(self._store.borrow_ids)
        self._store.borrows[row['id']] = row
        return Borrow(**row)

    def update_status(self, borrow_id: int, status: str, returned_at: datetime.datetime) -> None:
        row = self._store.borrows[borrow_id]
        row['status'] = status
        row['return_date'] = returned_at

    def list_for_user(self, user_id: int) -> List[Borrow]:
        rows = [row for row in self._store.borrows.values() if row['user_id'] == user_id]
        rows.sort(key=lambda row: (row['borrow_date'], row['id']), reverse=True)
        return [Borrow(**row) for row in rows]


class InMemoryTransaction:
    def __init__(self, store: 'InMemoryStore'):
        self.books = InMemoryBookRepository(store)
        self.borrows = InMemoryBorrowRepository(store)


class InMemoryStore:
    def __init__(self):
        self.books: Dict[int, dict] = {}
        self.borrows: Dict[int, dict] = {}
        self.borrow_ids = itertools.count(1)
        self._lock = threading.Lock()

    def add_book(self, **fields) -> Book:
        """Seed a book row outside of any transaction."""
        with self._lock:
            row = {field: None for field in BOOK_FIELDS}
            row.update(fields)
            if row['id'] is None:
                row['id'] = max(self.books, default=0) + 1
            if row['quantity'] is None:
                row['quantity'] = 0
            self.books[row['id']] = row
            return Book(**row)

    @contextmanager
    def transaction(self) -> Iterator[InMemoryTransaction]:
        with self._lock:
            books = copy.deepcopy(self.books)
            borrows = copy.deepcopy(self.borrows)
            try:
                yield InMemoryTransaction(self)
            except BaseException:
                self.books = books
                self.borrows = borrows
                raise
