"""
Ledger system assembly

Wires storage, audit trail and ledger together from configuration and
performs the one-time issuance on first start.
"""

from typing import Optional

from .audit import AuditTrail
from .config import TokenLedgerConfig, get_config
from .engine import scaled_supply
from .ledger import TokenLedger
from .storage import InMemoryStorage, SQLiteStorage, StorageInterface


class LedgerSystem:
    """Token ledger with all components initialized"""

    def __init__(self, config: Optional[TokenLedgerConfig] = None,
                 storage: Optional[StorageInterface] = None):
        self.config = config or get_config()

        if storage is not None:
            self.storage = storage
        elif self.config.storage_backend == "memory":
            self.storage = InMemoryStorage()
        elif self.config.storage_backend == "sqlite":
            self.storage = SQLiteStorage(self.config.database_path)
        else:
            raise ValueError(f"Unknown storage backend: {self.config.storage_backend}")

        self.audit_trail = AuditTrail(self.storage) if self.config.enable_audit_logging else None
        self.ledger = TokenLedger(self.storage, self.audit_trail, self.config.table_prefix)

        if not self.ledger.is_initialized:
            self._issue_initial_supply()

    def _issue_initial_supply(self) -> None:
        supply = scaled_supply(self.config.initial_supply, self.config.token_decimals)
        self.ledger.initialize(
            issuer=self.config.issuer_account,
            total_supply=supply,
            name=self.config.token_name,
            symbol=self.config.token_symbol,
            decimals=self.config.token_decimals
        )

    def close(self) -> None:
        self.storage.close()
