"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the remote backend; a JSON file is the local one.
"""

from coinvest.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStoreInterface,
    NotFoundError,
    StorageError,
)
from coinvest.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
)
from coinvest.services.storage.local_file import LocalSnapshotStore
from coinvest.services.storage.schema import (
    REMOTE_FIELD_NAMES,
    from_remote_record,
    remote_columns,
    to_remote_row,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStoreInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStore",
    # Local file
    "LocalSnapshotStore",
    # Remote schema
    "REMOTE_FIELD_NAMES",
    "from_remote_record",
    "remote_columns",
    "to_remote_row",
]
