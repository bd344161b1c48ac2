"""
Echo Ledger

This module provides:
- Fixed-point conversion between echo and integer minor-units
- Immutable, append-only ledger entries
- Idempotent credits keyed by a globally unique dedupe key
- Per-user balance and participation score kept in step with the log
- Cursor-paginated ledger history
"""

from .codec import SCALE, to_major_units, to_minor_units
from .errors import (
    AmountTooSmallError,
    InvalidAmountError,
    InvalidCursorError,
    InvalidKindError,
    LedgerServiceError,
    UserNotFoundError,
)
from .models import (
    Balance,
    CreditResult,
    EchoKind,
    LedgerEntry,
    LogPage,
    UserAccount,
)
from .service import LedgerService
from .storage import InMemoryStorage

__all__ = [
    "SCALE",
    "to_major_units",
    "to_minor_units",
    "AmountTooSmallError",
    "InvalidAmountError",
    "InvalidCursorError",
    "InvalidKindError",
    "LedgerServiceError",
    "UserNotFoundError",
    "Balance",
    "CreditResult",
    "EchoKind",
    "LedgerEntry",
    "LogPage",
    "UserAccount",
    "LedgerService",
    "InMemoryStorage",
]
