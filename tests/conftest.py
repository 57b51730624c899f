"""
Shared pytest fixtures.

Every fixture is in-memory: no files are written and no remote
service is contacted.
"""

import pytest

from moodledger.audit import AuditLogger
from moodledger.ledger.store import LedgerStore
from moodledger.models.ledger import SyncSession
from moodledger.services.storage import InMemoryKeyValueStore, InMemoryRemoteStore
from moodledger.sync import ReconciliationEngine


@pytest.fixture
def local_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def audit_logger() -> AuditLogger:
    return AuditLogger()


@pytest.fixture
def ledger(local_store, audit_logger) -> LedgerStore:
    """An empty ledger with no reconciliation attached."""
    return LedgerStore(local_store=local_store, audit_logger=audit_logger)


@pytest.fixture
def remote() -> InMemoryRemoteStore:
    return InMemoryRemoteStore()


@pytest.fixture
def session() -> SyncSession:
    return SyncSession(user_id="user-1")


@pytest.fixture
def engine(ledger, remote, session) -> ReconciliationEngine:
    """Reconciliation engine attached to `ledger` with an active session."""
    return ReconciliationEngine(store=ledger, remote=remote, session=session)
