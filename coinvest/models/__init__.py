"""
Data Models Package

This package contains all Pydantic models used in the CoInvest ledger.
All data flowing through the system must conform to these schemas.
"""

from coinvest.models.ledger import (
    RECORD_TYPES,
    EntityKind,
    LedgerRecord,
    LedgerSnapshot,
    Partner,
    Project,
    ProjectStatus,
    Transaction,
    TransactionType,
    new_id,
    seed_snapshot,
)
from coinvest.models.allocation import (
    POOL_KEY,
    AllocationIssue,
    AllocationResult,
    ExpenseRequest,
    FundingKind,
    FundingSource,
    FundingSpec,
    TransactionRequest,
)
from coinvest.models.reports import (
    LedgerFilter,
    LedgerTotals,
    PartnerShare,
    PartnerStatement,
    PartnerStatementReport,
    PortfolioOverview,
    ProjectPerformance,
    ProjectStatement,
    RecentActivity,
)
from coinvest.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "RECORD_TYPES",
    "EntityKind",
    "LedgerRecord",
    "LedgerSnapshot",
    "Partner",
    "Project",
    "ProjectStatus",
    "Transaction",
    "TransactionType",
    "new_id",
    "seed_snapshot",
    # Allocation models
    "POOL_KEY",
    "AllocationIssue",
    "AllocationResult",
    "ExpenseRequest",
    "FundingKind",
    "FundingSource",
    "FundingSpec",
    "TransactionRequest",
    # Report models
    "LedgerFilter",
    "LedgerTotals",
    "PartnerShare",
    "PartnerStatement",
    "PartnerStatementReport",
    "PortfolioOverview",
    "ProjectPerformance",
    "ProjectStatement",
    "RecentActivity",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
