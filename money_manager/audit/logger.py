"""
Audit Logger

DESIGN DECISION: Every ledger write and every failure is logged.
This provides:
1. Complete traceability of balance changes
2. Debugging capability when a batch fails
3. User can see history of their loan actions

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from money_manager.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from money_manager.services.storage.interface import DocumentStoreInterface, WriteOperation

AUDIT_COLLECTION = "auditLog"


def configure_logging(level: str = "INFO") -> None:
    """
    Configure structlog for local logging.

    Args:
        level: Standard library level name (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )
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

    Logs events both to:
    1. Structured local log (for debugging)
    2. The auditLog collection of the document store (for persistence)
    """

    def __init__(
        self,
        store: Optional[DocumentStoreInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            store: Document store for persistence.
                   If None, only logs locally.
        """
        self._store = store
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        # Always log locally
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        # Persist to storage if available
        if self._store:
            try:
                await self._store.commit([
                    WriteOperation.set(AUDIT_COLLECTION, str(event.event_id), event.to_document())
                ])
                return True
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        """
        Get all persisted events of one user action, oldest first.

        Returns an empty list when no store is configured.
        """
        if self._store is None:
            return []
        docs = await self._store.list_documents(AUDIT_COLLECTION)
        events = [
            AuditEvent.model_validate(doc)
            for doc in docs.values()
            if doc.get("correlation_id") == str(correlation_id)
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def log_loan_created(
        self,
        loan_id: str,
        name: str,
        total_amount: str,
        entry_count: int,
        correlation_id: UUID,
    ) -> None:
        """Log loan creation."""
        event = AuditEventBuilder.loan_created(
            loan_id=loan_id,
            name=name,
            total_amount=total_amount,
            entry_count=entry_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_loan_updated(
        self,
        loan_id: str,
        entry_count: int,
        removed_entries: int,
        remaining_balance: str,
        correlation_id: UUID,
    ) -> None:
        """Log a full loan edit."""
        event = AuditEventBuilder.loan_updated(
            loan_id=loan_id,
            entry_count=entry_count,
            removed_entries=removed_entries,
            remaining_balance=remaining_balance,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_loan_deleted(
        self,
        loan_id: str,
        entry_count: int,
        batch_count: int,
        correlation_id: UUID,
    ) -> None:
        """Log loan deletion."""
        event = AuditEventBuilder.loan_deleted(
            loan_id=loan_id,
            entry_count=entry_count,
            batch_count=batch_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_schedule_generated(
        self,
        loan_id: str,
        entry_count: int,
        total_interest: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.schedule_generated(
            loan_id=loan_id,
            entry_count=entry_count,
            total_interest=total_interest,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entry_edited(
        self,
        loan_id: str,
        entry_id: str,
        cascaded_entries: int,
        apply_rate_to_future: bool,
        correlation_id: UUID,
    ) -> None:
        """Log a schedule entry edit and its cascade."""
        event = AuditEventBuilder.schedule_entry_edited(
            loan_id=loan_id,
            entry_id=entry_id,
            cascaded_entries=cascaded_entries,
            apply_rate_to_future=apply_rate_to_future,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_payment_marked_paid(
        self,
        loan_id: str,
        entry_id: str,
        principal: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.payment_marked_paid(
            loan_id=loan_id,
            entry_id=entry_id,
            principal=principal,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        subject: str,
        issues: list[dict],
        correlation_id: UUID,
        entity_id: Optional[str] = None,
    ) -> None:
        """Log validation failure."""
        event = AuditEventBuilder.validation_failed(
            subject=subject,
            issues=issues,
            correlation_id=correlation_id,
            entity_id=entity_id,
        )
        await self.log(event)

    async def log_save_failed(
        self,
        operation: str,
        loan_id: Optional[str],
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a rejected or failed batch write."""
        event = AuditEventBuilder.save_failed(
            operation=operation,
            loan_id=loan_id,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_state_resynced(
        self,
        loan_id: str,
        found: bool,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.state_resynced(
            loan_id=loan_id,
            found=found,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_balance_drift(
        self,
        loan_id: str,
        stored: str,
        expected: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.balance_drift_detected(
            loan_id=loan_id,
            stored=stored,
            expected=expected,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_advice_requested(
        self,
        question: str,
        context_chars: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.advice_requested(
            question=question,
            context_chars=context_chars,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., marking a payment).
    Pass it through all subsequent operations.
    """
    return uuid4()


configure_logging()
