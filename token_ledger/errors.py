"""
Ledger Error Module

Closed set of failure kinds raised by the transition engine. Every failure
aborts the operation before any state is touched.
"""

from enum import Enum
from typing import Any, Dict, Optional


class LedgerErrorKind(Enum):
    """Kinds of ledger failures"""
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INSUFFICIENT_ALLOWANCE = "insufficient_allowance"
    ALREADY_INITIALIZED = "already_initialized"
    NOT_INITIALIZED = "not_initialized"


class LedgerError(ValueError):
    """Base class for classified ledger failures"""

    kind: LedgerErrorKind

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a serializable error payload"""
        return {"error": self.kind.value, "message": self.message}


class InsufficientBalanceError(LedgerError):
    """Attempted to move more value out of an account than it holds"""

    kind = LedgerErrorKind.INSUFFICIENT_BALANCE

    def __init__(self, account: str, available: int, requested: int):
        super().__init__(
            f"Insufficient balance for {account}: available={available}, requested={requested}",
            {"account": account, "available": available, "requested": requested},
        )
        self.account = account
        self.available = available
        self.requested = requested


class InsufficientAllowanceError(LedgerError):
    """Delegated transfer beyond the allowance granted to the spender"""

    kind = LedgerErrorKind.INSUFFICIENT_ALLOWANCE

    def __init__(self, owner: str, spender: str, available: int, requested: int):
        super().__init__(
            f"Insufficient allowance from {owner} to {spender}: "
            f"available={available}, requested={requested}",
            {"owner": owner, "spender": spender, "available": available, "requested": requested},
        )
        self.owner = owner
        self.spender = spender
        self.available = available
        self.requested = requested


class AlreadyInitializedError(LedgerError):
    """Issuance invoked on a ledger that was already issued"""

    kind = LedgerErrorKind.ALREADY_INITIALIZED

    def __init__(self):
        super().__init__("Ledger has already been initialized")


class NotInitializedError(LedgerError):
    """Mutation attempted before issuance"""

    kind = LedgerErrorKind.NOT_INITIALIZED

    def __init__(self, operation: str):
        super().__init__(
            f"Ledger must be initialized before {operation}",
            {"operation": operation},
        )
        self.operation = operation
