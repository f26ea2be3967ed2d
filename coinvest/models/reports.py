"""
Report Models

Read-only views derived from a ledger snapshot by the aggregation
engine. Nothing here is persisted; every view is recomputed from the
current snapshot.
"""

import re
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from coinvest.models.ledger import Partner, Transaction


_MONTH_PATTERN = re.compile(r"^\d{4}-\d{2}$")
_UNRESTRICTED = {"", "all"}


class LedgerFilter(BaseModel):
    """
    Optional, independently combinable restrictions.

    None, "" and "all" all mean "no restriction".
    """

    project_id: Optional[str] = None
    partner_id: Optional[str] = None
    month: Optional[str] = Field(
        default=None,
        description="Calendar month as YYYY-MM"
    )

    @field_validator("project_id", "partner_id", "month", mode="before")
    @classmethod
    def normalize_unrestricted(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip().lower() in _UNRESTRICTED:
            return None
        return v

    @field_validator("month")
    @classmethod
    def validate_month(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _MONTH_PATTERN.match(v):
            raise ValueError(f"Month must look like YYYY-MM, got {v!r}")
        return v


class LedgerTotals(BaseModel):
    """Dashboard headline numbers."""

    total_investment: Decimal = Decimal("0")
    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
    net_profit: Decimal = Decimal("0")


class PartnerShare(BaseModel):
    """A partner's contributed capital and ownership share."""

    partner_id: str
    name: str
    color: str
    invested: Decimal
    share_percent: float = Field(ge=0.0)


class ProjectPerformance(BaseModel):
    """Income, expense and profit for one project."""

    project_id: str
    name: str
    income: Decimal
    expense: Decimal
    profit: Decimal


class RecentActivity(BaseModel):
    """Newest transactions first, truncated for display."""

    items: list[Transaction] = Field(default_factory=list)
    remaining: int = Field(
        default=0,
        ge=0,
        description="Transactions in scope that were not shown"
    )


class ProjectStatement(BaseModel):
    """Per-project statement, optionally restricted to a month."""

    project_id: str
    name: str
    month: Optional[str] = None
    income: Decimal
    expense: Decimal
    investment: Decimal
    net_profit: Decimal
    roi_percent: float
    partner_investments: list[PartnerShare] = Field(default_factory=list)
    recent: RecentActivity
    transaction_count: int = Field(ge=0)


class PartnerStatement(BaseModel):
    """One partner's investment-like transactions within a filter."""

    partner: Partner
    investments: list[Transaction] = Field(default_factory=list)
    by_project: dict[str, list[Transaction]] = Field(default_factory=dict)
    total_invested: Decimal
    share_percent: float

    @property
    def has_data(self) -> bool:
        return len(self.investments) > 0


class PartnerStatementReport(BaseModel):
    """Partner statements plus the total of what is displayed."""

    filters: LedgerFilter
    statements: list[PartnerStatement] = Field(default_factory=list)
    displayed_total: Decimal = Decimal("0")


class PortfolioOverview(BaseModel):
    """Everything the dashboard shows."""

    totals: LedgerTotals
    shares: list[PartnerShare] = Field(default_factory=list)
    performance: list[ProjectPerformance] = Field(default_factory=list)
    recent: RecentActivity
