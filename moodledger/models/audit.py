"""
Audit Models for MoodLedger

Every ledger mutation, rejection and sync round trip is logged.
This provides:
1. Traceability of how a balance came to be
2. Debugging information when a sync goes wrong
3. A record of rejected intents (insufficient funds, limits...)

DESIGN DECISION: Audit events are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Transactions
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSFER_COMPLETED = "transfer_completed"

    # Accounts
    ACCOUNT_ADDED = "account_added"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_ARCHIVED = "account_archived"
    ACCOUNT_DELETED = "account_deleted"

    # Invariants
    INVARIANT_REJECTED = "invariant_rejected"
    ORPHANED_TRANSACTIONS_DETECTED = "orphaned_transactions_detected"

    # Reconciliation
    SYNC_STARTED = "sync_started"
    SYNC_COMPLETED = "sync_completed"
    SYNC_FAILED = "sync_failed"
    SYNC_DROPPED = "sync_dropped"
    REMOTE_DELETE_COMPLETED = "remote_delete_completed"
    SETTINGS_PULLED = "settings_pulled"

    # Import / export
    DATA_EXPORTED = "data_exported"
    DATA_IMPORTED = "data_imported"
    IMPORT_FAILED = "import_failed"
    DATA_CLEARED = "data_cleared"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'account', 'sync')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., both legs of a transfer)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_added(tx_id, "expense", "30")
        event = AuditEventBuilder.sync_failed("transactions", "timeout")
    """

    @staticmethod
    def transaction_added(
        transaction_id: str,
        transaction_type: str,
        amount: str,
        account_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction added: {transaction_type} {amount}",
            details={
                "type": transaction_type,
                "amount": amount,
                "account_id": account_id,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        transaction_id: str,
        fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction updated: {', '.join(fields) or 'no fields'}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(transaction_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Transaction deleted locally",
            is_user_action=True,
        )

    @staticmethod
    def transfer_completed(
        transfer_group_id: str,
        from_account_id: str,
        to_account_id: str,
        amount: str,
        fee: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_COMPLETED,
            entity_type="transfer",
            entity_id=transfer_group_id,
            correlation_id=correlation_id,
            description=f"Transfer of {amount} (fee {fee}) completed",
            details={
                "from_account_id": from_account_id,
                "to_account_id": to_account_id,
                "amount": amount,
                "fee": fee,
            },
            is_user_action=True,
        )

    @staticmethod
    def account_changed(
        event_type: AuditEventType,
        account_id: str,
        name: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        verb = event_type.value.split("_", 1)[1]
        return AuditEvent(
            event_type=event_type,
            entity_type="account",
            entity_id=account_id,
            description=f"Account {verb}: {name}",
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def invariant_rejected(
        code: str,
        message: str,
        operation: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVARIANT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="ledger",
            description=f"{operation} rejected: {code}",
            error_code=code,
            error_message=message,
            details={"operation": operation},
            is_user_action=True,
        )

    @staticmethod
    def orphaned_transactions(transaction_ids: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ORPHANED_TRANSACTIONS_DETECTED,
            severity=AuditSeverity.WARNING,
            entity_type="ledger",
            description=f"{len(transaction_ids)} transactions reference missing accounts",
            details={"transaction_ids": transaction_ids},
        )

    @staticmethod
    def sync_started(unit: str, pushed: int, user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_STARTED,
            severity=AuditSeverity.DEBUG,
            entity_type="sync",
            entity_id=unit,
            description=f"Sync of {unit} started with {pushed} local records",
            details={"pushed": pushed, "user_id": user_id},
        )

    @staticmethod
    def sync_completed(unit: str, pulled: int, id_translations: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_COMPLETED,
            entity_type="sync",
            entity_id=unit,
            description=f"Sync of {unit} completed: {pulled} records adopted from remote",
            details={"pulled": pulled, "id_translations": id_translations},
        )

    @staticmethod
    def sync_failed(unit: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="sync",
            entity_id=unit,
            description=f"Sync of {unit} failed, local state kept",
            error_message=error_message,
        )

    @staticmethod
    def sync_dropped(unit: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_DROPPED,
            severity=AuditSeverity.DEBUG,
            entity_type="sync",
            entity_id=unit,
            description=f"Sync of {unit} already in flight, trigger dropped",
        )

    @staticmethod
    def remote_delete_completed(
        resource: str,
        local_id: str,
        remote_ids: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMOTE_DELETE_COMPLETED,
            entity_type=resource,
            entity_id=local_id,
            description=f"Remote delete of {len(remote_ids)} {resource} rows",
            details={"remote_ids": remote_ids},
        )

    @staticmethod
    def settings_pulled(user_id: str, currency: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTINGS_PULLED,
            entity_type="user_settings",
            entity_id=user_id,
            description=f"User settings adopted from remote (currency {currency})",
            details={"currency": currency},
        )

    @staticmethod
    def data_exported(transaction_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_EXPORTED,
            entity_type="ledger",
            description=f"Exported {transaction_count} transactions",
            details={"transaction_count": transaction_count},
            is_user_action=True,
        )

    @staticmethod
    def data_imported(transaction_count: int, regenerated_ids: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_IMPORTED,
            entity_type="ledger",
            description=f"Imported {transaction_count} transactions (ledger replaced)",
            details={
                "transaction_count": transaction_count,
                "regenerated_ids": regenerated_ids,
            },
            is_user_action=True,
        )

    @staticmethod
    def import_failed(error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="ledger",
            description="Import rejected, nothing changed",
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def data_cleared() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_CLEARED,
            severity=AuditSeverity.WARNING,
            entity_type="ledger",
            description="All local ledger data cleared",
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_code=error_type,
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
