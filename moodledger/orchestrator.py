"""
Main Orchestrator for MoodLedger

Ties the components together:
1. Local key-value store (JSON file) backing the ledger store
2. Ledger store with its validator and audit logger
3. Remote store (Google Sheets) and the reconciliation engine,
   when sync is enabled and configured

DESIGN DECISION: The ledger always works locally. A missing or broken
remote configuration downgrades to local-only operation with a warning;
it never prevents the ledger from starting.
"""

from typing import Optional

import structlog

from moodledger.audit import AuditLogger
from moodledger.config import get_settings
from moodledger.ledger.store import LedgerStore
from moodledger.models.currency import Currency
from moodledger.models.ledger import SyncSession
from moodledger.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    RemoteLedgerStore,
)
from moodledger.sync import ReconciliationEngine
from moodledger.validation import LedgerValidator


def create_ledger_components(
    use_remote: bool = True,
    local_store: Optional[KeyValueStore] = None,
    remote_store: Optional[RemoteLedgerStore] = None,
) -> tuple[LedgerStore, Optional[ReconciliationEngine], Optional[GoogleSheetsClient]]:
    """
    Factory function to create all ledger components.

    Args:
        use_remote: Whether to wire up remote reconciliation.
                    Set to False for local-only use.
        local_store: Overrides the JSON file store from settings.
        remote_store: Overrides the Google Sheets store.

    Returns:
        (ledger_store, reconciliation_engine, sheets_client)
    """
    settings = get_settings()
    ledger_settings = settings.ledger
    logger = structlog.get_logger("moodledger.orchestrator")

    audit_logger = AuditLogger()
    store = LedgerStore(
        local_store=local_store or JsonFileKeyValueStore(ledger_settings.data_file),
        audit_logger=audit_logger,
        validator=LedgerValidator(ledger_settings.balance_epsilon),
        default_currency=Currency(ledger_settings.default_currency),
    )

    sheets_client = None
    engine = None

    if use_remote:
        sync_settings = settings.sync
        if remote_store is None and sync_settings.enabled:
            try:
                sheets_client = GoogleSheetsClient()
                remote_store = GoogleSheetsRemoteStore(sheets_client)
            except Exception as e:
                # Remote not configured - continue local-only
                logger.warning("remote_store_not_configured", error=str(e))
                sheets_client = None
                remote_store = None

        if remote_store is not None:
            session = (
                SyncSession(user_id=sync_settings.user_id)
                if sync_settings.user_id else None
            )
            engine = ReconciliationEngine(
                store=store,
                remote=remote_store,
                session=session,
                audit_logger=audit_logger,
            )

    return store, engine, sheets_client


async def open_ledger(
    use_remote: bool = True,
    local_store: Optional[KeyValueStore] = None,
    remote_store: Optional[RemoteLedgerStore] = None,
) -> tuple[LedgerStore, Optional[ReconciliationEngine]]:
    """
    Create the components, load local data and run the first
    reconciliation when a session is configured.
    """
    store, engine, _ = create_ledger_components(
        use_remote=use_remote,
        local_store=local_store,
        remote_store=remote_store,
    )
    await store.load()
    if engine is not None and engine.session is not None:
        await engine.bootstrap(engine.session)
    return store, engine
