"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the remote store because:
1. Partners can look at the books directly in a shared spreadsheet
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (a few partners and projects is fine)
- No transactions: multi-record writes are compensated by the sync coordinator
- No realtime feed: changes are picked up by polling (see coinvest.sync.changes)
- Concurrent edits are last-write-wins

One worksheet per ledger table. Column headers are the snake_case names
from coinvest.services.storage.schema.
"""

import json
from typing import Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from coinvest.config import get_settings
from coinvest.models.audit import AuditEvent, AuditEventType, AuditSeverity
from coinvest.models.ledger import EntityKind, LedgerRecord, LedgerSnapshot
from coinvest.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStoreInterface,
    NotFoundError,
    StorageError,
)
from coinvest.services.storage.schema import (
    from_remote_record,
    remote_columns,
    to_remote_row,
)


logger = structlog.get_logger(__name__)


# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

_remote_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type((DuplicateError, NotFoundError)),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get a worksheet, creating it with a header row if needed."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_ledger_sheet(self, kind: EntityKind) -> gspread.Worksheet:
        """Worksheet holding one ledger table."""
        titles = {
            EntityKind.PARTNERS: self._settings.partners_sheet_name,
            EntityKind.PROJECTS: self._settings.projects_sheet_name,
            EntityKind.TRANSACTIONS: self._settings.transactions_sheet_name,
        }
        return self.get_worksheet(titles[kind], remote_columns(kind))

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self.get_worksheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


def _row_values(kind: EntityKind, record: LedgerRecord) -> list[str]:
    """Record -> list of cell values in column order."""
    row = to_remote_row(kind, record)
    return ["" if value is None else str(value) for value in row.values()]


def _find_row(all_rows: list[list[str]], record_id: str) -> Optional[int]:
    """1-based sheet row number of a record, skipping the header."""
    for idx, row in enumerate(all_rows[1:], start=2):
        if row and row[0] == record_id:
            return idx
    return None


class GoogleSheetsLedgerStore(LedgerStoreInterface):
    """
    Google Sheets implementation of the ledger store.

    Records are stored one per row. Cells are read back as text and
    validated through the record models.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _read_table(self, kind: EntityKind) -> tuple:
        sheet = self._client.get_ledger_sheet(kind)
        all_rows = sheet.get_all_values()
        if not all_rows:
            return ()

        header = all_rows[0]
        records = []
        for row in all_rows[1:]:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                records.append(from_remote_record(kind, dict(zip(header, row))))
            except ValidationError as e:
                logger.warning(
                    "remote_row_skipped",
                    table=kind.value,
                    record_id=row[0],
                    error=str(e),
                )
        return tuple(records)

    @_remote_retry
    async def load_all(self) -> LedgerSnapshot:
        """Read partners, projects and transactions."""
        try:
            return LedgerSnapshot(
                partners=self._read_table(EntityKind.PARTNERS),
                projects=self._read_table(EntityKind.PROJECTS),
                transactions=self._read_table(EntityKind.TRANSACTIONS),
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to load ledger: {e}")

    @_remote_retry
    async def insert(self, kind: EntityKind, record: LedgerRecord) -> bool:
        """Append a record as a new row."""
        try:
            sheet = self._client.get_ledger_sheet(kind)
            if _find_row(sheet.get_all_values(), record.id) is not None:
                raise DuplicateError(f"{kind.value} record already exists: {record.id}")
            sheet.append_row(_row_values(kind, record), value_input_option="RAW")
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert into {kind.value}: {e}")

    @_remote_retry
    async def update(self, kind: EntityKind, record: LedgerRecord) -> bool:
        """Overwrite the row holding this record."""
        try:
            sheet = self._client.get_ledger_sheet(kind)
            idx = _find_row(sheet.get_all_values(), record.id)
            if idx is None:
                raise NotFoundError(f"{kind.value} record not found: {record.id}")
            sheet.update(
                range_name=f"A{idx}",
                values=[_row_values(kind, record)],
                value_input_option="RAW",
            )
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {kind.value}: {e}")

    @_remote_retry
    async def delete(self, kind: EntityKind, record_id: str) -> bool:
        """Delete the row holding this record."""
        try:
            sheet = self._client.get_ledger_sheet(kind)
            idx = _find_row(sheet.get_all_values(), record_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete from {kind.value}: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        details = safe_get(8)
        return AuditEvent(
            event_id=safe_get(0),
            timestamp=safe_get(1),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=safe_get(6) or None,
            description=safe_get(7),
            details=json.loads(details) if details else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning(
                "audit_event_write_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Get recent events."""
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]

            events = []
            for row in all_rows:
                if row and row[0]:
                    try:
                        events.append(self._row_to_event(row))
                    except ValueError:
                        continue  # Skip malformed rows

            # Sort newest first
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
