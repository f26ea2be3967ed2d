"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the sync coordinator decoupled from the storage implementation

The interface is intentionally simple - one table per entity kind and
four operations. Filtering and aggregation happen in Python on the
loaded snapshot, never in the store.
"""

from abc import ABC, abstractmethod

from coinvest.models.audit import AuditEvent
from coinvest.models.ledger import EntityKind, LedgerRecord, LedgerSnapshot


class LedgerStoreInterface(ABC):
    """
    Abstract interface for the remote ledger tables.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def load_all(self) -> LedgerSnapshot:
        """
        Read all three tables.

        Returns:
            The whole ledger as one snapshot

        Raises:
            StorageError: If any table cannot be read
        """
        pass

    @abstractmethod
    async def insert(self, kind: EntityKind, record: LedgerRecord) -> bool:
        """
        Insert a new record.

        Raises:
            DuplicateError: If a record with this id already exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update(self, kind: EntityKind, record: LedgerRecord) -> bool:
        """
        Replace a record by id.

        Raises:
            NotFoundError: If the record doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, kind: EntityKind, record_id: str) -> bool:
        """
        Delete a record by id.

        Returns:
            True if a record was deleted, False if it was not there
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
