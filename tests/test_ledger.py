"""
Test suite for the token ledger service

Tests serialized commits, persistence through storage backends, audit
chaining and rollback when storage fails.
"""

import logging
import sqlite3
import threading

import pytest

from token_ledger.audit import AuditTrail, AuditEventType
from token_ledger.errors import (
    AlreadyInitializedError, InsufficientAllowanceError,
    InsufficientBalanceError, NotInitializedError
)
from token_ledger.ledger import TokenLedger
from token_ledger.state import Operation
from token_ledger.storage import InMemoryStorage, SQLiteStorage


DECIMALS = 18
SUPPLY = 21_000_000 * 10 ** DECIMALS


class FailingStorage(InMemoryStorage):
    """Storage that fails every save to one table once armed"""

    def __init__(self):
        super().__init__()
        self.fail_on_table = None

    def save(self, table, record_id, data):
        if table == self.fail_on_table:
            raise IOError("disk full")
        super().save(table, record_id, data)


class FailingCommitConnection:
    """Wraps a sqlite3 connection so that commit can be made to fail"""

    def __init__(self, connection):
        self._connection = connection
        self.fail_commit = False

    def commit(self):
        if self.fail_commit:
            raise sqlite3.OperationalError("database is locked")
        self._connection.commit()

    def __getattr__(self, name):
        return getattr(self._connection, name)


class TestTokenLedger:
    """Test ledger operations through the service"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.ledger = TokenLedger(self.storage, self.audit_trail)
        self.ledger.initialize("owner", SUPPLY, "ERC-BEGGIN", "ERCB", DECIMALS)

    def test_metadata(self):
        assert self.ledger.is_initialized
        assert self.ledger.name() == "ERC-BEGGIN"
        assert self.ledger.symbol() == "ERCB"
        assert self.ledger.decimals() == DECIMALS
        assert self.ledger.total_supply() == SUPPLY
        assert self.ledger.balance_of("owner") == SUPPLY

    def test_initialize_twice_fails(self):
        with pytest.raises(AlreadyInitializedError):
            self.ledger.initialize("other", 1, "X", "X", 0)
        assert self.ledger.total_supply() == SUPPLY

    def test_uninitialized_ledger_rejects_mutations(self):
        ledger = TokenLedger(InMemoryStorage())

        assert not ledger.is_initialized
        assert ledger.balance_of("owner") == 0
        with pytest.raises(NotInitializedError):
            ledger.transfer("owner", "other", 1)
        with pytest.raises(NotInitializedError):
            ledger.approve("owner", "other", 1)

    def test_end_to_end_flow(self):
        """Test transfer, approve and delegated transfer in sequence"""
        amount = 1000 * 10 ** DECIMALS
        transition = self.ledger.transfer("owner", "other", amount)

        assert transition.success
        assert self.ledger.balance_of("other") == amount
        assert self.ledger.balance_of("owner") == SUPPLY - amount

        self.ledger.approve("owner", "other", 50)
        assert self.ledger.allowance("owner", "other") == 50

        transition = self.ledger.transfer_from("other", "owner", "another", 50)
        assert transition.operation == Operation.TRANSFER_FROM
        assert self.ledger.allowance("owner", "other") == 0
        assert self.ledger.balance_of("owner") == SUPPLY - amount - 50
        assert self.ledger.balance_of("another") == 50

        assert self.ledger.verify_integrity()["valid"]

    def test_zero_balance_account_cannot_transfer(self):
        with pytest.raises(InsufficientBalanceError):
            self.ledger.transfer("other", "another", 1000)

    def test_transfer_from_beyond_allowance(self):
        """Test that a rejected delegated transfer changes nothing"""
        self.ledger.approve("owner", "other", 50)
        events_before = self.audit_trail.count_events()

        with pytest.raises(InsufficientAllowanceError):
            self.ledger.transfer_from("other", "owner", "another", 51)

        assert self.ledger.balance_of("owner") == SUPPLY
        assert self.ledger.balance_of("another") == 0
        assert self.ledger.allowance("owner", "other") == 50
        assert self.audit_trail.count_events() == events_before

    def test_snapshot_is_detached(self):
        snapshot = self.ledger.snapshot()
        self.ledger.transfer("owner", "other", 10)

        assert snapshot.balance_of("other") == 0
        assert self.ledger.balance_of("other") == 10

    def test_rejection_is_logged(self, caplog):
        """Test that rejected mutations log a warning with the error kind"""
        with caplog.at_level(logging.WARNING, logger="token_ledger.ledger"):
            with pytest.raises(InsufficientBalanceError):
                self.ledger.transfer("other", "another", 1)

        records = [r for r in caplog.records if r.name == "token_ledger.ledger"]
        assert records
        assert records[-1].levelno == logging.WARNING
        assert records[-1].action == "transfer"
        assert records[-1].extra["error"] == "insufficient_balance"

    def test_commit_is_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger="token_ledger.ledger"):
            self.ledger.approve("owner", "other", 5)

        records = [r for r in caplog.records if r.name == "token_ledger.ledger"]
        assert records[-1].getMessage() == "approve committed"
        assert records[-1].user_id == "owner"


class TestAuditIntegration:
    """Test that committed mutations are chained into the audit trail"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.ledger = TokenLedger(self.storage, self.audit_trail)

    def test_events_recorded(self):
        self.ledger.initialize("owner", 1_000, "T", "T", 0)
        self.ledger.transfer("owner", "other", 10)
        self.ledger.approve("owner", "other", 5)
        self.ledger.transfer_from("other", "owner", "third", 5)

        events = self.audit_trail.get_all_events()
        assert [e.event_type for e in events] == [
            AuditEventType.LEDGER_INITIALIZED,
            AuditEventType.TRANSFER,
            AuditEventType.APPROVAL,
            AuditEventType.DELEGATED_TRANSFER,
        ]
        assert events[1].user_id == "owner"
        assert events[1].metadata["balances"] == {"owner": "990", "other": "10"}
        assert events[3].metadata["allowances"] == [
            {"owner": "owner", "spender": "other", "amount": "0"}
        ]
        assert self.audit_trail.verify_integrity()["valid"]

    def test_ledger_without_audit_trail(self):
        ledger = TokenLedger(InMemoryStorage())
        ledger.initialize("owner", 10, "T", "T", 0)
        ledger.transfer("owner", "other", 3)

        assert ledger.balance_of("other") == 3


class TestPersistence:
    """Test that a ledger resumes from its storage"""

    def _exercise(self, storage):
        ledger = TokenLedger(storage, AuditTrail(storage))
        ledger.initialize("owner", SUPPLY, "ERC-BEGGIN", "ERCB", DECIMALS)
        ledger.transfer("owner", "other", 1000)
        ledger.approve("owner", "other", 50)
        ledger.transfer_from("other", "owner", "another", 20)
        ledger.transfer("other", "other", 5)
        return ledger

    def test_resume_from_memory(self):
        storage = InMemoryStorage()
        original = self._exercise(storage)

        resumed = TokenLedger(storage)
        assert resumed.snapshot() == original.snapshot()
        assert resumed.allowance("owner", "other") == 30

    def test_resume_from_sqlite(self, tmp_path):
        db_path = tmp_path / "ledger.db"
        storage = SQLiteStorage(db_path)
        original = self._exercise(storage)
        expected = original.snapshot()
        storage.close()

        reopened = SQLiteStorage(db_path)
        resumed = TokenLedger(reopened, AuditTrail(reopened))
        try:
            assert resumed.snapshot() == expected
            assert resumed.balance_of("owner") == SUPPLY - 1000 - 20
            assert resumed.is_initialized
            with pytest.raises(AlreadyInitializedError):
                resumed.initialize("owner", 1, "X", "X", 0)
            resumed.transfer("another", "owner", 20)
            assert resumed.audit_trail.verify_integrity()["valid"]
        finally:
            reopened.close()

    def test_separate_prefixes_are_independent(self):
        storage = InMemoryStorage()
        first = TokenLedger(storage, table_prefix="alpha")
        second = TokenLedger(storage, table_prefix="beta")
        first.initialize("owner", 10, "A", "A", 0)

        assert not second.is_initialized
        assert not TokenLedger(storage, table_prefix="beta").is_initialized
        assert TokenLedger(storage, table_prefix="alpha").balance_of("owner") == 10


class TestStorageFailure:
    """Test that a failed write leaves the ledger untouched"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = FailingStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.ledger = TokenLedger(self.storage, self.audit_trail)
        self.ledger.initialize("owner", 100, "T", "T", 0)

    def test_failed_audit_write_rolls_back(self):
        """Test that balances are neither changed in memory nor in storage"""
        self.storage.fail_on_table = "audit_events"
        head = self.audit_trail.get_latest_hash()

        with pytest.raises(IOError):
            self.ledger.transfer("owner", "other", 10)

        assert self.ledger.balance_of("owner") == 100
        assert self.ledger.balance_of("other") == 0
        assert TokenLedger(self.storage).balance_of("owner") == 100
        assert self.audit_trail.get_latest_hash() == head

        self.storage.fail_on_table = None
        self.ledger.transfer("owner", "other", 10)
        assert self.ledger.balance_of("other") == 10
        assert self.audit_trail.verify_integrity()["valid"]

    def test_refuses_to_join_open_transaction(self):
        """Test that a mutation inside a caller's transaction is rejected untouched"""
        with pytest.raises(IOError):
            with self.storage.atomic():
                with pytest.raises(RuntimeError):
                    self.ledger.transfer("owner", "a", 10)
                self.storage.fail_on_table = "token_balances"
                self.storage.save("token_balances", "b", {})

        assert self.ledger.balance_of("owner") == 100
        assert self.ledger.balance_of("a") == 0
        assert TokenLedger(self.storage).snapshot() == self.ledger.snapshot()

    def test_failed_sqlite_commit_rolls_back(self, tmp_path):
        """Test that a commit error surfaces and leaves storage matching memory"""
        storage = SQLiteStorage(tmp_path / "ledger.db")
        connection = FailingCommitConnection(storage._connection)
        storage._connection = connection
        audit_trail = AuditTrail(storage)
        ledger = TokenLedger(storage, audit_trail)
        ledger.initialize("owner", 100, "T", "T", 0)
        head = audit_trail.get_latest_hash()

        try:
            connection.fail_commit = True
            with pytest.raises(sqlite3.OperationalError):
                ledger.transfer("owner", "other", 10)
            connection.fail_commit = False

            assert ledger.balance_of("other") == 0
            assert audit_trail.get_latest_hash() == head
            assert TokenLedger(storage).snapshot() == ledger.snapshot()

            ledger.transfer("owner", "third", 5)
            assert TokenLedger(storage).snapshot() == ledger.snapshot()
            assert TokenLedger(storage).balance_of("other") == 0
            assert audit_trail.verify_integrity()["valid"]
        finally:
            storage.close()


class TestConcurrency:
    """Test that concurrent callers never break conservation"""

    def test_concurrent_transfers(self):
        storage = InMemoryStorage()
        ledger = TokenLedger(storage, AuditTrail(storage))
        ledger.initialize("owner", 10_000, "T", "T", 0)
        accounts = [f"acct-{i}" for i in range(4)]
        for account in accounts:
            ledger.transfer("owner", account, 1_000)

        errors = []

        def worker(source, destination):
            for _ in range(200):
                try:
                    ledger.transfer(source, destination, 7)
                except InsufficientBalanceError:
                    pass
                report = ledger.verify_integrity()
                if not report["valid"]:
                    errors.append(report)

        threads = [
            threading.Thread(target=worker, args=(accounts[i], accounts[(i + 1) % 4]))
            for i in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sum(ledger.balance_of(a) for a in accounts + ["owner"]) == 10_000
        assert ledger.audit_trail.verify_integrity()["valid"]
