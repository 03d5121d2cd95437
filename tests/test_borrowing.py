import datetime
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import BORROW_DATE, RETURN_DATE
from models import BorrowStatus
from services.borrowing import BorrowService
from services.errors import InvalidState, NotFound, StoreFailure, Unavailable
from services.memory import InMemoryStore
from services.returning import ReturnService

RETURNED_AT = datetime.datetime(2024, 1, 10, 12, 0, tzinfo=datetime.timezone.utc)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def borrow_service(store):
    return BorrowService(store)


@pytest.fixture
def return_service(store):
    return ReturnService(store, clock=lambda: RETURNED_AT)


def quantity(store, book_id):
    return store.books[book_id]['quantity']


def test_borrow_then_return_then_return_again(store, borrow_service, return_service):
    store.add_book(id=1, title='Dune', quantity=2)

    borrow = borrow_service.borrow(7, 1, BORROW_DATE, RETURN_DATE)
    assert borrow.status == BorrowStatus.PENDING
    assert borrow.book_id == 1
    assert borrow.user_id == 7
    assert borrow.return_date == RETURN_DATE
    assert quantity(store, 1) == 1

    return_service.return_borrow(borrow.id)
    assert quantity(store, 1) == 2
    assert store.borrows[borrow.id]['status'] == BorrowStatus.RETURNED
    assert store.borrows[borrow.id]['return_date'] == RETURNED_AT

    with pytest.raises(InvalidState):
        return_service.return_borrow(borrow.id)
    assert quantity(store, 1) == 2


def test_borrow_unavailable_leaves_state_unchanged(store, borrow_service):
    store.add_book(id=1, quantity=0)

    with pytest.raises(Unavailable):
        borrow_service.borrow(7, 1, BORROW_DATE, RETURN_DATE)
    assert quantity(store, 1) == 0
    assert store.borrows == {}


def test_borrow_missing_book(store, borrow_service):
    with pytest.raises(NotFound):
        borrow_service.borrow(7, 42, BORROW_DATE, RETURN_DATE)
    assert store.borrows == {}


def test_each_borrow_gets_a_fresh_key(store, borrow_service):
    store.add_book(id=1, quantity=5)

    keys = {borrow_service.borrow(7, 1, BORROW_DATE, RETURN_DATE).borrow_key for _ in range(5)}
    assert len(keys) == 5
    assert all(len(key) == 10 for key in keys)
    assert quantity(store, 1) == 0


def test_same_user_may_hold_several_pending_borrows(store, borrow_service):
    store.add_book(id=1, quantity=3)

    borrow_service.borrow(7, 1, BORROW_DATE, RETURN_DATE)
    borrow_service.borrow(7, 1, BORROW_DATE, RETURN_DATE)
    pending = [row for row in store.borrows.values() if row['status'] == BorrowStatus.PENDING]
    assert len(pending) == 2
    assert quantity(store, 1) == 1


def test_return_missing_borrow(return_service):
    with pytest.raises(NotFound):
        return_service.return_borrow(99)


def test_key_collision_draws_again(store):
    store.add_book(id=1, quantity=2)
    keys = iter(['AAAAAAAAAA', 'AAAAAAAAAA', 'BBBBBBBBBB'])
    service = BorrowService(store, key_factory=lambda: next(keys))

    first = service.borrow(7, 1, BORROW_DATE, RETURN_DATE)
    second = service.borrow(8, 1, BORROW_DATE, RETURN_DATE)
    assert first.borrow_key == 'AAAAAAAAAA'
    assert second.borrow_key == 'BBBBBBBBBB'


def test_key_exhaustion_rolls_back_quantity(store):
    store.add_book(id=1, quantity=2)
    service = BorrowService(store, key_factory=lambda: 'AAAAAAAAAA')
    service.borrow(7, 1, BORROW_DATE, RETURN_DATE)

    with pytest.raises(StoreFailure):
        service.borrow(8, 1, BORROW_DATE, RETURN_DATE)
    assert quantity(store, 1) == 1
    assert len(store.borrows) == 1


def test_unexpected_fault_rolls_back(store):
    store.add_book(id=1, quantity=1)

    def broken_key_factory():
        raise RuntimeError('entropy source unavailable')

    service = BorrowService(store, key_factory=broken_key_factory)
    with pytest.raises(RuntimeError):
        service.borrow(7, 1, BORROW_DATE, RETURN_DATE)
    assert quantity(store, 1) == 1
    assert store.borrows == {}


def test_concurrent_borrows_of_last_copy(store, borrow_service):
    store.add_book(id=1, quantity=1)

    def attempt(user_id):
        try:
            borrow_service.borrow(user_id, 1, BORROW_DATE, RETURN_DATE)
            return 'ok'
        except Unavailable:
            return 'unavailable'

    with ThreadPoolExecutor(max_workers=16) as pool:
        outcomes = list(pool.map(attempt, range(16)))

    assert outcomes.count('ok') == 1
    assert outcomes.count('unavailable') == 15
    assert quantity(store, 1) == 0
    assert len(store.borrows) == 1


def test_concurrent_returns_of_same_borrow(store, borrow_service, return_service):
    store.add_book(id=1, quantity=1)
    borrow = borrow_service.borrow(7, 1, BORROW_DATE, RETURN_DATE)

    def attempt(_):
        try:
            return_service.return_borrow(borrow.id)
            return 'ok'
        except InvalidState:
            return 'invalid'

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(attempt, range(8)))

    assert outcomes.count('ok') == 1
    assert outcomes.count('invalid') == 7
    assert quantity(store, 1) == 1
