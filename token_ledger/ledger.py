"""
Token Ledger Service

Owns a single LedgerState and serializes every mutation behind a
whole-ledger lock. Each committed transition is persisted record by record
and chained into the audit trail before it becomes visible in memory, so a
storage failure never leaves the in-memory ledger ahead of what was written.
"""

import json
import threading
import uuid
from typing import Any, Callable, Dict, Optional

from . import engine
from .audit import AuditTrail, AuditEventType
from .errors import LedgerError
from .logging_config import get_logger, log_action
from .state import LedgerState, Operation, Transition
from .storage import StorageInterface


_AUDIT_EVENT_TYPES = {
    Operation.ISSUE: AuditEventType.LEDGER_INITIALIZED,
    Operation.TRANSFER: AuditEventType.TRANSFER,
    Operation.APPROVE: AuditEventType.APPROVAL,
    Operation.TRANSFER_FROM: AuditEventType.DELEGATED_TRANSFER,
}

METADATA_RECORD_ID = "metadata"


class TokenLedger:
    """
    Fixed-supply token ledger with direct and delegated transfers.

    Constructing a TokenLedger over storage that already holds a ledger with
    the same table prefix resumes that ledger.
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: Optional[AuditTrail] = None,
        table_prefix: str = "token"
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_prefix = table_prefix
        self.metadata_table = f"{table_prefix}_metadata"
        self.balances_table = f"{table_prefix}_balances"
        self.allowances_table = f"{table_prefix}_allowances"
        self.logger = get_logger("token_ledger.ledger")
        self._lock = threading.RLock()
        self._state = self._read_state()

    # Mutations

    def initialize(
        self,
        issuer: str,
        total_supply: int,
        name: str,
        symbol: str,
        decimals: int
    ) -> Transition:
        """
        Issue the entire supply to the issuer. Callable exactly once.

        Raises:
            AlreadyInitializedError: If the ledger was already issued
        """
        return self._execute(
            Operation.ISSUE, issuer,
            lambda state: engine.issue(state, issuer, total_supply, name, symbol, decimals)
        )

    def transfer(self, caller: str, to: str, amount: int) -> Transition:
        """
        Move amount from the caller to another account

        Raises:
            NotInitializedError: Before issuance
            InsufficientBalanceError: If the caller holds less than amount
        """
        return self._execute(
            Operation.TRANSFER, caller,
            lambda state: engine.transfer(state, caller, to, amount)
        )

    def approve(self, caller: str, spender: str, amount: int) -> Transition:
        """Set spender's allowance over the caller's balance, replacing any prior value"""
        return self._execute(
            Operation.APPROVE, caller,
            lambda state: engine.approve(state, caller, spender, amount)
        )

    def transfer_from(self, caller: str, owner: str, to: str, amount: int) -> Transition:
        """
        Spend from owner's balance within the allowance owner granted caller

        Raises:
            NotInitializedError: Before issuance
            InsufficientAllowanceError: If the allowance is below amount
            InsufficientBalanceError: If owner holds less than amount
        """
        return self._execute(
            Operation.TRANSFER_FROM, caller,
            lambda state: engine.transfer_from(state, caller, owner, to, amount)
        )

    # Reads

    def balance_of(self, account: str) -> int:
        with self._lock:
            return engine.balance_of(self._state, account)

    def allowance(self, owner: str, spender: str) -> int:
        with self._lock:
            return engine.allowance(self._state, owner, spender)

    def total_supply(self) -> int:
        with self._lock:
            return engine.total_supply(self._state)

    def name(self) -> str:
        with self._lock:
            return engine.name(self._state)

    def symbol(self) -> str:
        with self._lock:
            return engine.symbol(self._state)

    def decimals(self) -> int:
        with self._lock:
            return engine.decimals(self._state)

    @property
    def is_initialized(self) -> bool:
        with self._lock:
            return self._state.initialized

    def snapshot(self) -> LedgerState:
        """Consistent, independent copy of the current state"""
        with self._lock:
            return self._state.copy()

    def verify_integrity(self) -> Dict[str, Any]:
        """Check ledger invariants against the current state"""
        with self._lock:
            return self._state.verify_invariants()

    # Internals

    def _execute(
        self,
        operation: Operation,
        caller: str,
        compute: Callable[[LedgerState], Transition]
    ) -> Transition:
        with self._lock:
            try:
                transition = compute(self._state)
            except LedgerError as e:
                log_action(
                    self.logger, "warning", f"{operation.value} rejected: {e.message}",
                    user_id=caller, action=operation.value, resource=self.table_prefix,
                    extra={"error": e.kind.value, **e.context}
                )
                raise

            self._commit(transition)

        log_action(
            self.logger, "info", f"{operation.value} committed",
            user_id=caller, action=operation.value, resource=self.table_prefix,
            extra=transition.to_dict()
        )
        return transition

    def _commit(self, transition: Transition) -> None:
        """
        Persist and audit a transition, then apply it in memory.

        The storage block must be the outermost transaction: inside a
        caller's transaction the writes could still be rolled back after the
        in-memory state had moved on.
        """
        if self.storage.in_transaction:
            raise RuntimeError("Ledger mutations cannot run inside an open storage transaction")

        try:
            with self.storage.atomic():
                self._persist(transition)
                if self.audit_trail:
                    self.audit_trail.log_event(
                        event_type=_AUDIT_EVENT_TYPES[transition.operation],
                        entity_type="token",
                        entity_id=self.table_prefix,
                        metadata=transition.to_dict(),
                        user_id=transition.caller
                    )
        except Exception:
            if self.audit_trail:
                self.audit_trail.resync()
            raise

        self._state.apply(transition)

    def _persist(self, transition: Transition) -> None:
        if transition.operation == Operation.ISSUE:
            meta = transition.metadata or {}
            self.storage.save(self.metadata_table, METADATA_RECORD_ID, {
                'name': meta['name'],
                'symbol': meta['symbol'],
                'decimals': meta['decimals'],
                'total_supply': str(meta['total_supply']),
                'issuer': transition.caller
            })

        for account, balance in transition.balance_updates.items():
            self.storage.save(self.balances_table, account, {
                'account': account,
                'balance': str(balance)
            })

        for (owner, spender), amount in transition.allowance_updates.items():
            self.storage.save(self.allowances_table, self._allowance_record_id(owner, spender), {
                'owner': owner,
                'spender': spender,
                'amount': str(amount)
            })

    @staticmethod
    def _allowance_record_id(owner: str, spender: str) -> str:
        # Deterministic id that cannot collide for identifiers containing separators
        return str(uuid.uuid5(uuid.NAMESPACE_URL, json.dumps([owner, spender])))

    def _read_state(self) -> LedgerState:
        """Rebuild state from persisted records"""
        meta = self.storage.load(self.metadata_table, METADATA_RECORD_ID)
        if not meta:
            return LedgerState()

        state = LedgerState(
            name=meta['name'],
            symbol=meta['symbol'],
            decimals=meta['decimals'],
            total_supply=int(meta['total_supply']),
            initialized=True
        )
        for record in self.storage.load_all(self.balances_table):
            state.balances[record['account']] = int(record['balance'])
        for record in self.storage.load_all(self.allowances_table):
            state.allowances[(record['owner'], record['spender'])] = int(record['amount'])
        return state
