"""
Transition Engine

Pure functions of (state, inputs) -> Transition. Nothing here mutates the
state it is given; a returned Transition is committed with LedgerState.apply.
Validation runs in a fixed order and raises a LedgerError on the first
failing check.
"""

from typing import Dict

from .errors import (
    AlreadyInitializedError, InsufficientAllowanceError,
    InsufficientBalanceError, NotInitializedError
)
from .state import MAX_UINT256, AllowanceKey, LedgerState, Operation, Transition


MAX_DECIMALS = 77  # 10**77 is the largest power of ten below 2**256


def _require_account(account: str, role: str) -> None:
    if not isinstance(account, str):
        raise TypeError(f"{role} must be a string account identifier, got {type(account).__name__}")
    if not account:
        raise ValueError(f"{role} must be a non-empty account identifier")


def _require_amount(amount: int, role: str = "amount") -> None:
    # bool is an int subclass but never a meaningful amount
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"{role} must be an integer, got {type(amount).__name__}")
    if amount < 0:
        raise ValueError(f"{role} must be non-negative")
    if amount > MAX_UINT256:
        raise ValueError(f"{role} exceeds the 256-bit unsigned range")


def _require_initialized(state: LedgerState, operation: Operation) -> None:
    if not state.initialized:
        raise NotInitializedError(operation.value)


def scaled_supply(whole_units: int, decimals: int) -> int:
    """Scale a whole-token supply to base units (whole_units * 10**decimals)"""
    _require_amount(whole_units, "whole_units")
    if not 0 <= decimals <= MAX_DECIMALS:
        raise ValueError(f"decimals must be between 0 and {MAX_DECIMALS}")
    supply = whole_units * 10 ** decimals
    _require_amount(supply, "total_supply")
    return supply


def issue(
    state: LedgerState,
    issuer: str,
    total_supply: int,
    name: str,
    symbol: str,
    decimals: int
) -> Transition:
    """
    Mint the entire supply to the issuer

    Raises:
        AlreadyInitializedError: If the state has already been issued
    """
    if state.initialized:
        raise AlreadyInitializedError()

    _require_account(issuer, "issuer")
    _require_amount(total_supply, "total_supply")
    if not isinstance(name, str) or not isinstance(symbol, str):
        raise TypeError("name and symbol must be strings")
    if isinstance(decimals, bool) or not isinstance(decimals, int):
        raise TypeError("decimals must be an integer")
    if not 0 <= decimals <= MAX_DECIMALS:
        raise ValueError(f"decimals must be between 0 and {MAX_DECIMALS}")

    return Transition(
        operation=Operation.ISSUE,
        caller=issuer,
        amount=total_supply,
        balance_updates={issuer: total_supply},
        to=issuer,
        metadata={
            'name': name,
            'symbol': symbol,
            'decimals': decimals,
            'total_supply': total_supply,
        },
    )


def _move(state: LedgerState, source: str, destination: str, amount: int) -> Dict[str, int]:
    """
    Post-values for moving amount from source to destination.

    Updates accumulate in one dict so that source == destination nets out.
    """
    updates: Dict[str, int] = {source: state.balance_of(source) - amount}
    updates[destination] = updates.get(destination, state.balance_of(destination)) + amount
    return updates


def transfer(state: LedgerState, caller: str, to: str, amount: int) -> Transition:
    """
    Move amount from the caller's balance to another account

    Raises:
        NotInitializedError: Before issuance
        InsufficientBalanceError: If the caller holds less than amount
    """
    _require_account(caller, "caller")
    _require_account(to, "to")
    _require_amount(amount)
    _require_initialized(state, Operation.TRANSFER)

    available = state.balance_of(caller)
    if available < amount:
        raise InsufficientBalanceError(caller, available, amount)

    return Transition(
        operation=Operation.TRANSFER,
        caller=caller,
        amount=amount,
        balance_updates=_move(state, caller, to, amount),
        to=to,
    )


def approve(state: LedgerState, caller: str, spender: str, amount: int) -> Transition:
    """
    Set the spender's allowance over the caller's balance.

    Overwrites any prior value and deliberately skips any balance check. An
    owner lowering a non-zero allowance races with a spender already using
    it; the ledger does not attempt to arbitrate that.
    """
    _require_account(caller, "caller")
    _require_account(spender, "spender")
    _require_amount(amount)
    _require_initialized(state, Operation.APPROVE)

    allowance_updates: Dict[AllowanceKey, int] = {(caller, spender): amount}
    return Transition(
        operation=Operation.APPROVE,
        caller=caller,
        amount=amount,
        allowance_updates=allowance_updates,
        owner=caller,
        spender=spender,
    )


def transfer_from(state: LedgerState, caller: str, owner: str, to: str, amount: int) -> Transition:
    """
    Move amount out of owner's balance on the owner's behalf

    The allowance decrement and the balance movement form one transition.

    Raises:
        NotInitializedError: Before issuance
        InsufficientAllowanceError: If owner granted caller less than amount
        InsufficientBalanceError: If owner holds less than amount
    """
    _require_account(caller, "caller")
    _require_account(owner, "owner")
    _require_account(to, "to")
    _require_amount(amount)
    _require_initialized(state, Operation.TRANSFER_FROM)

    granted = state.allowance(owner, caller)
    if granted < amount:
        raise InsufficientAllowanceError(owner, caller, granted, amount)

    available = state.balance_of(owner)
    if available < amount:
        raise InsufficientBalanceError(owner, available, amount)

    return Transition(
        operation=Operation.TRANSFER_FROM,
        caller=caller,
        amount=amount,
        balance_updates=_move(state, owner, to, amount),
        allowance_updates={(owner, caller): granted - amount},
        owner=owner,
        spender=caller,
        to=to,
    )


# Read accessors

def balance_of(state: LedgerState, account: str) -> int:
    return state.balance_of(account)


def allowance(state: LedgerState, owner: str, spender: str) -> int:
    return state.allowance(owner, spender)


def total_supply(state: LedgerState) -> int:
    return state.total_supply


def name(state: LedgerState) -> str:
    return state.name


def symbol(state: LedgerState) -> str:
    return state.symbol


def decimals(state: LedgerState) -> int:
    return state.decimals
