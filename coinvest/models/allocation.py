"""
Allocation Models

Requests and results for recording money movements.

An expense request carries a funding specification: where the money
came from. It is either a single source (central pool, a partner, or
another project) or a split across several sources keyed by "POOL",
a partner id or a project id.

IMPORTANT: Results report issues, they never raise. Callers must check
`success` before treating a request as applied.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from coinvest.models.ledger import Transaction, TransactionType


POOL_KEY = "POOL"


class FundingKind(str, Enum):
    """Where the money for an expense came from."""
    POOL = "pool"        # Central pool, no partner attribution
    PARTNER = "partner"  # Partner paid directly
    PROJECT = "project"  # Borrowed from another project's funds


class FundingSource(BaseModel):
    """A single funding source."""

    model_config = ConfigDict(frozen=True)

    kind: FundingKind
    source_id: Optional[str] = None

    @model_validator(mode='after')
    def check_source_id(self) -> 'FundingSource':
        if self.kind == FundingKind.POOL and self.source_id:
            raise ValueError("Central pool funding takes no source id")
        if self.kind != FundingKind.POOL and not self.source_id:
            raise ValueError(f"{self.kind.value} funding needs a source id")
        return self

    @classmethod
    def pool(cls) -> 'FundingSource':
        return cls(kind=FundingKind.POOL)

    @classmethod
    def partner(cls, partner_id: str) -> 'FundingSource':
        return cls(kind=FundingKind.PARTNER, source_id=partner_id)

    @classmethod
    def project(cls, project_id: str) -> 'FundingSource':
        return cls(kind=FundingKind.PROJECT, source_id=project_id)

    @property
    def key(self) -> str:
        return self.source_id or POOL_KEY


class FundingSpec(BaseModel):
    """
    Funding for one expense: a single source or a split.

    Split keys are "POOL", partner ids or project ids. They are resolved
    against the ledger when the expense is allocated.
    """

    model_config = ConfigDict(frozen=True)

    source: Optional[FundingSource] = None
    split: Optional[dict[str, Decimal]] = None

    @model_validator(mode='after')
    def exactly_one_mode(self) -> 'FundingSpec':
        if (self.source is None) == (self.split is None):
            raise ValueError("Give either a single source or a split, not both")
        return self

    @classmethod
    def single(cls, source: FundingSource) -> 'FundingSpec':
        return cls(source=source)

    @classmethod
    def split_between(cls, amounts: dict[str, Decimal]) -> 'FundingSpec':
        return cls(split=dict(amounts))

    @property
    def is_split(self) -> bool:
        return self.split is not None


def _pool_funding() -> FundingSpec:
    return FundingSpec.single(FundingSource.pool())


class ExpenseRequest(BaseModel):
    """
    "Record an expense of `amount` on `project_id`, paid by `funding`."

    The amount is deliberately unconstrained here: a non-positive
    amount is reported by the allocation engine as a rejection.
    """

    request_id: UUID = Field(
        default_factory=uuid4,
        description="Correlates every record created from this request"
    )
    project_id: str
    amount: Decimal
    date: date
    note: str = ""
    funding: FundingSpec = Field(default_factory=_pool_funding)


class TransactionRequest(BaseModel):
    """A single record that bypasses allocation (income, investment, withdrawal)."""

    request_id: UUID = Field(default_factory=uuid4)
    project_id: str
    type: TransactionType
    amount: Decimal
    date: date
    note: str = ""
    partner_id: Optional[str] = None


class AllocationIssue(BaseModel):
    """A single problem found while allocating."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'unknown_reference', 'split_mismatch')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning)$",
    )
    suggested_fix: Optional[str] = None


class AllocationResult(BaseModel):
    """
    Outcome of an allocation.

    On success `entries` holds the new records in creation order and,
    for edits, `updated` holds the rewritten record. On failure both
    are empty and `issues` says why.
    """

    request_id: UUID
    success: bool
    entries: list[Transaction] = Field(default_factory=list)
    updated: Optional[Transaction] = None
    issues: list[AllocationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "warning"]

    def expense_total_for(self, project_id: str) -> Decimal:
        """Sum of EXPENSE amounts this result books on one project."""
        records = list(self.entries)
        if self.updated is not None:
            records.append(self.updated)
        return sum(
            (
                t.amount for t in records
                if t.project_id == project_id and t.type == TransactionType.EXPENSE
            ),
            Decimal("0"),
        )
