"""
Audit Models for Money Manager

Every ledger write and every failure is logged for audit purposes.
This provides:
1. Complete traceability of balance changes
2. Debugging information when a batch fails
3. A record of resyncs after optimistic updates were rolled back

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every ledger operation has its own event type.
    """
    # Loan lifecycle
    LOAN_CREATED = "loan_created"
    LOAN_UPDATED = "loan_updated"
    LOAN_DELETED = "loan_deleted"
    SCHEDULE_GENERATED = "schedule_generated"

    # Schedule changes
    SCHEDULE_ENTRY_EDITED = "schedule_entry_edited"
    PAYMENT_MARKED_PAID = "payment_marked_paid"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # Persistence
    SAVE_FAILED = "save_failed"
    STATE_RESYNCED = "state_resynced"
    BALANCE_DRIFT_DETECTED = "balance_drift_detected"

    # Advisor
    ADVICE_REQUESTED = "advice_requested"

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
    Every ledger write creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
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
        description="Type of entity (e.g., 'loan', 'schedule_entry')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Document id of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one user action)"
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

    def to_document(self) -> dict:
        """Convert to a JSON-safe document for the auditLog collection."""
        return self.model_dump(mode="json")


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.loan_created(loan_id, name, amount, entries, correlation_id)
        event = AuditEventBuilder.payment_marked_paid(loan_id, entry_id, principal, correlation_id)
    """

    @staticmethod
    def loan_created(
        loan_id: str,
        name: str,
        total_amount: str,
        entry_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_CREATED,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Loan created: {name} - {total_amount}",
            details={
                "total_amount": total_amount,
                "entry_count": entry_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def loan_updated(
        loan_id: str,
        entry_count: int,
        removed_entries: int,
        remaining_balance: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_UPDATED,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Loan edited, schedule regenerated with {entry_count} entries",
            details={
                "entry_count": entry_count,
                "removed_entries": removed_entries,
                "remaining_balance": remaining_balance,
            },
            is_user_action=True,
        )

    @staticmethod
    def loan_deleted(
        loan_id: str,
        entry_count: int,
        batch_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_DELETED,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Loan deleted with {entry_count} schedule entries",
            details={
                "entry_count": entry_count,
                "batch_count": batch_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def schedule_generated(
        loan_id: str,
        entry_count: int,
        total_interest: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULE_GENERATED,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Schedule generated: {entry_count} entries",
            details={
                "entry_count": entry_count,
                "total_interest": total_interest,
            },
        )

    @staticmethod
    def schedule_entry_edited(
        loan_id: str,
        entry_id: str,
        cascaded_entries: int,
        apply_rate_to_future: bool,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULE_ENTRY_EDITED,
            entity_type="schedule_entry",
            entity_id=f"{loan_id}/{entry_id}",
            correlation_id=correlation_id,
            description=f"Entry {entry_id} edited, {cascaded_entries} later entries recalculated",
            details={
                "loan_id": loan_id,
                "cascaded_entries": cascaded_entries,
                "apply_rate_to_future": apply_rate_to_future,
            },
            is_user_action=True,
        )

    @staticmethod
    def payment_marked_paid(
        loan_id: str,
        entry_id: str,
        principal: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_MARKED_PAID,
            entity_type="schedule_entry",
            entity_id=f"{loan_id}/{entry_id}",
            correlation_id=correlation_id,
            description=f"Entry {entry_id} marked paid, balance reduced by {principal}",
            details={
                "loan_id": loan_id,
                "principal": principal,
            },
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        subject: str,
        issues: list[dict],
        correlation_id: UUID,
        entity_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=subject,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Validation of {subject} failed with {len(issues)} issues",
            details={
                "issues": issues,
            },
        )

    @staticmethod
    def save_failed(
        operation: str,
        loan_id: Optional[str],
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Batch write failed: {operation}",
            error_message=error_message,
            details={
                "operation": operation,
            },
        )

    @staticmethod
    def state_resynced(
        loan_id: str,
        found: bool,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_RESYNCED,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description="Local loan state re-fetched from storage",
            details={
                "found": found,
            },
        )

    @staticmethod
    def balance_drift_detected(
        loan_id: str,
        stored: str,
        expected: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_DRIFT_DETECTED,
            severity=AuditSeverity.WARNING,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Remaining balance {stored} differs from paid principal ({expected})",
            details={
                "stored": stored,
                "expected": expected,
            },
        )

    @staticmethod
    def advice_requested(
        question: str,
        context_chars: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ADVICE_REQUESTED,
            entity_type="advice",
            correlation_id=correlation_id,
            description="Financial advice requested",
            details={
                "question": question[:200],
                "context_chars": context_chars,
            },
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
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: UUID
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
