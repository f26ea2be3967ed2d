"""
Main Orchestrator for CoInvest Ledger

This module ties together all the components and decides which storage
mode the application runs in:

1. Remote mode: Google Sheets is configured. The ledger is loaded from
   the spreadsheet and every change is written back to it.
2. Local mode: no remote store. The ledger lives in a JSON file and
   import is available.

DESIGN DECISION: The two modes are never mixed. If Google Sheets is
configured the local file is ignored entirely.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from pydantic import ValidationError

from coinvest.agents import PortfolioAnalyst
from coinvest.allocation import AllocationEngine
from coinvest.audit import AuditLogger
from coinvest.config import get_settings
from coinvest.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
    LocalSnapshotStore,
)
from coinvest.sync import SyncCoordinator


logger = structlog.get_logger(__name__)


@dataclass
class AppComponents:
    """Everything the UI needs."""

    coordinator: SyncCoordinator
    analyst: PortfolioAnalyst
    audit_logger: AuditLogger
    sheets_client: Optional[GoogleSheetsClient] = None

    @property
    def is_remote(self) -> bool:
        return self.sheets_client is not None


def create_app_components(
    use_storage: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to try Google Sheets storage.
                    Set to False to force local mode.

    Returns:
        AppComponents with a coordinator that still needs `await load()`
    """
    settings = get_settings().app
    sheets_client = None
    remote = None
    audit_logger = AuditLogger()  # Local-only logging

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            remote = GoogleSheetsLedgerStore(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except ValidationError as e:
            # Storage not configured - continue in local mode
            logger.warning("remote_storage_not_configured", error=str(e))
            sheets_client = None
            remote = None

    engine = AllocationEngine(
        split_tolerance=settings.split_tolerance,
        require_partner_for_withdrawal=settings.require_partner_for_withdrawal,
    )
    coordinator = SyncCoordinator(
        remote=remote,
        local=None if remote else LocalSnapshotStore(settings.local_data_path),
        engine=engine,
        audit_logger=audit_logger,
        cascade_linked_deletes=settings.cascade_linked_deletes,
    )

    return AppComponents(
        coordinator=coordinator,
        analyst=PortfolioAnalyst(audit_logger=audit_logger),
        audit_logger=audit_logger,
        sheets_client=sheets_client,
    )
