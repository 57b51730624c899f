"""
Audit Logger

DESIGN DECISION: Every ledger mutation, rejected intent and sync round
trip is logged. This provides:
1. Complete traceability of how balances came to be
2. Debugging capability for reconciliation issues
3. Visibility of silent, retried remote failures

The audit logger:
- Is async so callers can await it alongside storage calls
- Never raises (logging must not break a ledger operation)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from moodledger.models.audit import AuditEvent, AuditEventBuilder, AuditEventType


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Events go to the structured local log. Recent events are also kept
    in a bounded in-memory trail so callers (and tests) can inspect what
    happened without parsing log output.
    """

    def __init__(self, trail_size: int = 500):
        self._logger = structlog.get_logger("moodledger.audit")
        self._trail: list[AuditEvent] = []
        self._trail_size = trail_size

    @property
    def events(self) -> list[AuditEvent]:
        """Recent events, oldest first."""
        return list(self._trail)

    def events_of(self, event_type: AuditEventType) -> list[AuditEvent]:
        return [e for e in self._trail if e.event_type == event_type]

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the event was recorded.
        """
        self._trail.append(event)
        if len(self._trail) > self._trail_size:
            del self._trail[: len(self._trail) - self._trail_size]

        try:
            log_dict = event.to_log_dict()
            if event.severity.value in ("error", "critical"):
                self._logger.error("audit_event", **log_dict)
            elif event.severity.value == "warning":
                self._logger.warning("audit_event", **log_dict)
            elif event.severity.value == "debug":
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception:
            # A broken log handler must not break the ledger
            return False
        return True

    async def log_transaction_added(
        self,
        transaction_id: str,
        transaction_type: str,
        amount: str,
        account_id: Optional[str],
    ) -> None:
        """Log a new transaction."""
        await self.log(AuditEventBuilder.transaction_added(
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            amount=amount,
            account_id=account_id,
        ))

    async def log_transaction_updated(self, transaction_id: str, fields: list[str]) -> None:
        await self.log(AuditEventBuilder.transaction_updated(transaction_id, fields))

    async def log_transaction_deleted(self, transaction_id: str) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(transaction_id))

    async def log_transfer_completed(
        self,
        transfer_group_id: str,
        from_account_id: str,
        to_account_id: str,
        amount: str,
        fee: str,
        correlation_id: UUID,
    ) -> None:
        """Log a completed transfer (both legs installed)."""
        await self.log(AuditEventBuilder.transfer_completed(
            transfer_group_id=transfer_group_id,
            from_account_id=from_account_id,
            to_account_id=to_account_id,
            amount=amount,
            fee=fee,
            correlation_id=correlation_id,
        ))

    async def log_account_changed(
        self,
        event_type: AuditEventType,
        account_id: str,
        name: str,
        details: Optional[dict] = None,
    ) -> None:
        await self.log(AuditEventBuilder.account_changed(
            event_type=event_type,
            account_id=account_id,
            name=name,
            details=details,
        ))

    async def log_invariant_rejected(self, code: str, message: str, operation: str) -> None:
        """Log an intent rejected by a ledger invariant."""
        await self.log(AuditEventBuilder.invariant_rejected(code, message, operation))

    async def log_orphaned_transactions(self, transaction_ids: list[str]) -> None:
        await self.log(AuditEventBuilder.orphaned_transactions(transaction_ids))

    async def log_sync_started(self, unit: str, pushed: int, user_id: str) -> None:
        await self.log(AuditEventBuilder.sync_started(unit, pushed, user_id))

    async def log_sync_completed(self, unit: str, pulled: int, id_translations: int) -> None:
        await self.log(AuditEventBuilder.sync_completed(unit, pulled, id_translations))

    async def log_sync_failed(self, unit: str, error_message: str) -> None:
        await self.log(AuditEventBuilder.sync_failed(unit, error_message))

    async def log_sync_dropped(self, unit: str) -> None:
        await self.log(AuditEventBuilder.sync_dropped(unit))

    async def log_remote_delete(
        self,
        resource: str,
        local_id: str,
        remote_ids: list[str],
    ) -> None:
        await self.log(AuditEventBuilder.remote_delete_completed(resource, local_id, remote_ids))

    async def log_settings_pulled(self, user_id: str, currency: str) -> None:
        await self.log(AuditEventBuilder.settings_pulled(user_id, currency))

    async def log_data_exported(self, transaction_count: int) -> None:
        await self.log(AuditEventBuilder.data_exported(transaction_count))

    async def log_data_imported(self, transaction_count: int, regenerated_ids: int) -> None:
        await self.log(AuditEventBuilder.data_imported(transaction_count, regenerated_ids))

    async def log_import_failed(self, error_message: str) -> None:
        await self.log(AuditEventBuilder.import_failed(error_message))

    async def log_data_cleared(self) -> None:
        await self.log(AuditEventBuilder.data_cleared())

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a multi-step action (e.g., a transfer).
    """
    return uuid4()
