"""
Audit Models for CoInvest

Every significant action on the ledger is logged for audit purposes.
This provides:
1. Complete traceability of who changed what in the shared books
2. Debugging information when a remote write fails and is reverted
3. A record of rejected allocations

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Partners and projects
    PARTNER_ADDED = "partner_added"
    PARTNER_DELETED = "partner_deleted"
    PARTNER_DELETE_BLOCKED = "partner_delete_blocked"
    PROJECT_ADDED = "project_added"

    # Transactions
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Allocation
    ALLOCATION_APPLIED = "allocation_applied"
    ALLOCATION_REJECTED = "allocation_rejected"

    # Remote sync
    REMOTE_LOAD_FAILED = "remote_load_failed"
    REMOTE_WRITE_FAILED = "remote_write_failed"
    MUTATION_REVERTED = "mutation_reverted"
    COMPENSATION_FAILED = "compensation_failed"
    CHANGE_EVENT_APPLIED = "change_event_applied"
    CHANGE_EVENT_IGNORED = "change_event_ignored"

    # Import / export
    SNAPSHOT_IMPORTED = "snapshot_imported"
    IMPORT_REJECTED = "import_rejected"
    SNAPSHOT_EXPORTED = "snapshot_exported"

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
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Ledger table (partners, projects, transactions)"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Id of the record this event relates to"
    )

    # Correlation - all records created by one request
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
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
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_written("partners", partner.id, "added")
        event = AuditEventBuilder.allocation_rejected(project_id, issues, request_id)
    """

    _WRITE_EVENTS = {
        ("partners", "added"): AuditEventType.PARTNER_ADDED,
        ("partners", "deleted"): AuditEventType.PARTNER_DELETED,
        ("projects", "added"): AuditEventType.PROJECT_ADDED,
        ("transactions", "added"): AuditEventType.TRANSACTION_ADDED,
        ("transactions", "updated"): AuditEventType.TRANSACTION_UPDATED,
        ("transactions", "deleted"): AuditEventType.TRANSACTION_DELETED,
    }

    @staticmethod
    def record_written(
        entity_type: str,
        entity_id: str,
        action: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = AuditEventBuilder._WRITE_EVENTS.get(
            (entity_type, action), AuditEventType.SYSTEM_ERROR
        )
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type[:-1].capitalize()} {action}: {entity_id}",
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def partner_delete_blocked(partner_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARTNER_DELETE_BLOCKED,
            severity=AuditSeverity.WARNING,
            entity_type="partners",
            entity_id=partner_id,
            description="Partner delete refused: transactions still reference it",
            is_user_action=True,
        )

    @staticmethod
    def allocation_applied(
        project_id: str,
        amount: str,
        entry_ids: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATION_APPLIED,
            entity_type="projects",
            entity_id=project_id,
            correlation_id=correlation_id,
            description=f"Expense of {amount} allocated in {len(entry_ids)} entries",
            details={
                "amount": amount,
                "entry_ids": entry_ids,
            },
            is_user_action=True,
        )

    @staticmethod
    def allocation_rejected(
        project_id: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="projects",
            entity_id=project_id,
            correlation_id=correlation_id,
            description=f"Allocation rejected with {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def remote_write_failed(
        entity_type: str,
        entity_id: str,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMOTE_WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Remote {operation} failed for {entity_type}",
            details={"operation": operation},
            error_message=error_message,
        )

    @staticmethod
    def mutation_reverted(
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_REVERTED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description="Local ledger reverted to its previous state",
            details={"reason": reason},
        )

    @staticmethod
    def compensation_failed(
        entity_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMPENSATION_FAILED,
            severity=AuditSeverity.CRITICAL,
            entity_type="transactions",
            entity_id=entity_id,
            correlation_id=correlation_id,
            description="Could not remove a partially written allocation entry",
            error_message=error_message,
        )

    @staticmethod
    def remote_load_failed(error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMOTE_LOAD_FAILED,
            severity=AuditSeverity.WARNING,
            description="Remote ledger could not be loaded, starting empty",
            error_message=error_message,
        )

    @staticmethod
    def change_event(
        entity_type: str,
        entity_id: str,
        change_type: str,
        applied: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.CHANGE_EVENT_APPLIED
                if applied
                else AuditEventType.CHANGE_EVENT_IGNORED
            ),
            severity=AuditSeverity.DEBUG,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"Remote {change_type} on {entity_type}",
            details={"change_type": change_type, "applied": applied},
        )

    @staticmethod
    def snapshot_imported(counts: dict[str, int]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_IMPORTED,
            description="Ledger replaced from imported file",
            details=counts,
            is_user_action=True,
        )

    @staticmethod
    def import_rejected(reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_REJECTED,
            severity=AuditSeverity.WARNING,
            description="Import file rejected",
            error_message=reason,
            is_user_action=True,
        )

    @staticmethod
    def snapshot_exported(counts: dict[str, int]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_EXPORTED,
            description="Ledger exported",
            details=counts,
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
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
