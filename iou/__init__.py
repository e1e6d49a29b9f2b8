"""
IOU Ledger

Shared-expense ledger between users and the people they track debts with:
- Persons with running balances (credit minus debit)
- Friend requests that link two users' ledgers
- Mirrored, sign-inverted twin transactions on linked ledgers
- Per-user notification feed for changes made by the other side
"""

from .errors import (
    ForbiddenError,
    InvalidOperationError,
    LedgerServiceError,
    NotFoundError,
    UnauthenticatedError,
)
from .models import (
    FriendRequest,
    FriendRequestStatus,
    Notification,
    NotificationType,
    Person,
    Transaction,
    TransactionType,
    User,
)
from .service import LedgerService
from .storage import InMemoryStorage

__all__ = [
    "ForbiddenError",
    "InvalidOperationError",
    "LedgerServiceError",
    "NotFoundError",
    "UnauthenticatedError",
    "FriendRequest",
    "FriendRequestStatus",
    "Notification",
    "NotificationType",
    "Person",
    "Transaction",
    "TransactionType",
    "User",
    "LedgerService",
    "InMemoryStorage",
]
