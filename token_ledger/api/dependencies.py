"""
Request dependencies: ledger system and caller identity
"""

from typing import Optional

from fastapi import Header, HTTPException, status

from ..system import LedgerSystem


# Created on first request so importing the app never touches the database
ledger_system: Optional[LedgerSystem] = None


def get_ledger_system() -> LedgerSystem:
    global ledger_system
    if ledger_system is None:
        ledger_system = LedgerSystem()
    return ledger_system


def get_caller(x_account_id: Optional[str] = Header(None)) -> str:
    """
    Caller identity, authenticated upstream by the gateway.

    The ledger trusts this header as the true caller.
    """
    if not x_account_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Account-Id header required"
        )
    return x_account_id
