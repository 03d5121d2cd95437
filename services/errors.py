"""Typed failures raised by the borrowing services."""
from __future__ import annotations


class BorrowServiceError(RuntimeError):
    """Base class for borrow/return failures."""


class NotFound(BorrowServiceError):
    """The referenced book or borrow does not exist."""


class Unavailable(BorrowServiceError):
    """No copies of the book are left to lend."""


class InvalidState(BorrowServiceError):
    """The borrow is not in a state that allows the operation."""


class StoreFailure(BorrowServiceError):
    """The underlying store aborted the transaction."""
