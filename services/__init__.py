"""Service layer package for encapsulating business logic."""

from .errors import BorrowServiceError, InvalidState, NotFound, StoreFailure, Unavailable  # noqa: F401
from .store import SqlAlchemyStore, Store  # noqa: F401
from .borrowing import BorrowService  # noqa: F401
from .returning import ReturnService  # noqa: F401
from .auth import login_user, logout_user, login_required, admin_required, get_current_user  # noqa: F401
