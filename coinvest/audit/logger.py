"""
Audit Logger

DESIGN DECISION: Every change to the shared books is logged.
This provides:
1. Complete traceability of who changed what
2. Debugging capability when a remote write is reverted
3. Partners can see the history of the ledger

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace all records of one request
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from coinvest.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from coinvest.services.storage import AuditStorageInterface


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

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when configured (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def recent_events(self, limit: int = 50) -> list[AuditEvent]:
        """Latest persisted events, or nothing when storage is not configured."""
        if not self._storage:
            return []
        return await self._storage.get_recent_events(limit=limit)

    async def log_record_written(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an add / update / delete of a ledger record."""
        event = AuditEventBuilder.record_written(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_allocation_applied(
        self,
        project_id: str,
        amount: str,
        entry_ids: list[str],
        correlation_id: UUID,
    ) -> None:
        """Log a successful expense allocation."""
        event = AuditEventBuilder.allocation_applied(
            project_id=project_id,
            amount=amount,
            entry_ids=entry_ids,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_allocation_rejected(
        self,
        project_id: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        """Log a rejected allocation."""
        event = AuditEventBuilder.allocation_rejected(
            project_id=project_id,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_remote_write_failed(
        self,
        entity_type: str,
        entity_id: str,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed remote write and the revert that follows it."""
        await self.log(AuditEventBuilder.remote_write_failed(
            entity_type=entity_type,
            entity_id=entity_id,
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))
        await self.log(AuditEventBuilder.mutation_reverted(
            reason=error_message,
            correlation_id=correlation_id,
        ))

    async def log_compensation_failed(
        self,
        entity_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an entry that could not be rolled back remotely."""
        event = AuditEventBuilder.compensation_failed(
            entity_id=entity_id,
            error_message=error_message,
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
        correlation_id: Optional[UUID] = None,
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

    Use this at the start of a new user action (e.g., recording an expense).
    Pass it through all subsequent operations.
    """
    return uuid4()
