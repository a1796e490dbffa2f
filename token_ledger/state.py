"""
Ledger State Module

Canonical record of total supply, balances and allowances. Reads use a
default-on-miss policy and never insert into the underlying mappings; all
mutation goes through LedgerState.apply with a Transition computed by the
engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple


# Amounts live in 256-bit unsigned space
MAX_UINT256 = 2 ** 256 - 1

AllowanceKey = Tuple[str, str]


class Operation(Enum):
    """Ledger operations that produce a transition"""
    ISSUE = "issue"
    TRANSFER = "transfer"
    APPROVE = "approve"
    TRANSFER_FROM = "transfer_from"


@dataclass(frozen=True)
class Transition:
    """
    Validated, not-yet-committed state change.

    Holds the absolute post-values of every balance and allowance the
    operation touches, so applying it twice is harmless and a self-transfer
    nets out to the original balance.
    """
    operation: Operation
    caller: str
    amount: int
    balance_updates: Mapping[str, int] = field(default_factory=dict, hash=False)
    allowance_updates: Mapping[AllowanceKey, int] = field(default_factory=dict, hash=False)
    owner: Optional[str] = None
    spender: Optional[str] = None
    to: Optional[str] = None
    metadata: Optional[Mapping[str, Any]] = field(default=None, hash=False)

    def __post_init__(self):
        # Read-only copies so a committed transition cannot be altered
        object.__setattr__(self, "balance_updates", MappingProxyType(dict(self.balance_updates)))
        object.__setattr__(self, "allowance_updates", MappingProxyType(dict(self.allowance_updates)))
        if self.metadata is not None:
            object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def success(self) -> bool:
        """Failures are raised, so any transition that exists succeeded"""
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view used for audit metadata and API responses"""
        result: Dict[str, Any] = {
            'operation': self.operation.value,
            'caller': self.caller,
            'amount': str(self.amount),
            'balances': {k: str(v) for k, v in self.balance_updates.items()},
            'allowances': [
                {'owner': owner, 'spender': spender, 'amount': str(value)}
                for (owner, spender), value in self.allowance_updates.items()
            ],
        }
        for key in ('owner', 'spender', 'to'):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result['metadata'] = dict(self.metadata)
        return result


@dataclass
class LedgerState:
    """
    Balances, allowances and immutable metadata of a single token.

    An unissued state reads as empty metadata and zero everywhere.
    """
    name: str = ""
    symbol: str = ""
    decimals: int = 0
    total_supply: int = 0
    initialized: bool = False
    balances: Dict[str, int] = field(default_factory=dict)
    allowances: Dict[AllowanceKey, int] = field(default_factory=dict)

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((owner, spender), 0)

    def apply(self, transition: Transition) -> 'LedgerState':
        """
        Commit a transition computed against this state.

        Callers sharing the state across threads must hold their own lock
        around apply so that multi-entry updates are never observed halfway.
        """
        if transition.operation == Operation.ISSUE:
            meta = transition.metadata or {}
            self.name = meta['name']
            self.symbol = meta['symbol']
            self.decimals = meta['decimals']
            self.total_supply = meta['total_supply']
            self.initialized = True

        self.balances.update(transition.balance_updates)
        self.allowances.update(transition.allowance_updates)
        return self

    def copy(self) -> 'LedgerState':
        """Independent snapshot of this state"""
        return LedgerState(
            name=self.name,
            symbol=self.symbol,
            decimals=self.decimals,
            total_supply=self.total_supply,
            initialized=self.initialized,
            balances=dict(self.balances),
            allowances=dict(self.allowances),
        )

    def verify_invariants(self) -> Dict[str, Any]:
        """
        Check supply conservation and non-negativity

        Returns:
            Dictionary with invariant check results
        """
        sum_of_balances = sum(self.balances.values())
        negative_balances = [a for a, v in self.balances.items() if v < 0]
        negative_allowances = [
            {'owner': owner, 'spender': spender}
            for (owner, spender), v in self.allowances.items() if v < 0
        ]

        valid = (
            sum_of_balances == self.total_supply
            and not negative_balances
            and not negative_allowances
        )

        return {
            'valid': valid,
            'total_supply': self.total_supply,
            'sum_of_balances': sum_of_balances,
            'negative_balances': negative_balances,
            'negative_allowances': negative_allowances,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage, amounts as decimal strings"""
        allowances: Dict[str, Dict[str, str]] = {}
        for (owner, spender), value in self.allowances.items():
            allowances.setdefault(owner, {})[spender] = str(value)

        return {
            'name': self.name,
            'symbol': self.symbol,
            'decimals': self.decimals,
            'total_supply': str(self.total_supply),
            'initialized': self.initialized,
            'balances': {account: str(value) for account, value in self.balances.items()},
            'allowances': allowances,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LedgerState':
        """Create instance from dictionary produced by to_dict"""
        allowances: Dict[AllowanceKey, int] = {}
        for owner, spenders in data.get('allowances', {}).items():
            for spender, value in spenders.items():
                allowances[(owner, spender)] = int(value)

        return cls(
            name=data.get('name', ""),
            symbol=data.get('symbol', ""),
            decimals=int(data.get('decimals', 0)),
            total_supply=int(data.get('total_supply', 0)),
            initialized=bool(data.get('initialized', False)),
            balances={account: int(value) for account, value in data.get('balances', {}).items()},
            allowances=allowances,
        )
