"""
Ledger Data Model for CoInvest

These models define the strict schemas for partners, projects and
transactions. They are designed to:
1. Enforce type safety at runtime
2. Be serializable in the camelCase snapshot shape used for import/export
3. Be immutable, so every mutation produces a new LedgerSnapshot

DESIGN DECISION: Amounts are stored as non-negative Decimal magnitudes.
The direction of money is derived from the transaction type and is
never stored separately.

DESIGN DECISION: The whole ledger is one frozen LedgerSnapshot value.
Writers replace it wholesale (copy-on-write), readers only ever see a
consistent snapshot.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
)
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Generate an opaque, globally unique record id."""
    return uuid4().hex


def _money_to_json(value: Decimal) -> Union[int, float]:
    if value == value.to_integral_value():
        return int(value)
    return float(value)


# Non-negative currency magnitude, written as a plain JSON number
Money = Annotated[
    Decimal,
    Field(ge=0),
    PlainSerializer(_money_to_json, when_used="json"),
]


def _calendar_date(value: Any) -> Any:
    """Accept plain dates as well as ISO date-time strings and datetimes."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and len(value) > 10 and value[10] in ("T", " "):
        return value[:10]
    return value


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """
    Kinds of ledger movement.

    INVESTMENT and WITHDRAWAL are partner money in and out.
    INCOME and EXPENSE belong to the project.
    """
    INVESTMENT = "INVESTMENT"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    WITHDRAWAL = "WITHDRAWAL"


class ProjectStatus(str, Enum):
    """Project lifecycle status."""
    ACTIVE = "active"
    COMPLETED = "completed"
    PLANNING = "planning"


class EntityKind(str, Enum):
    """
    The three ledger tables.

    Values double as the snapshot keys and the remote table names.
    """
    PARTNERS = "partners"
    PROJECTS = "projects"
    TRANSACTIONS = "transactions"


# =============================================================================
# ENTITIES
# =============================================================================

class LedgerRecord(BaseModel):
    """Common configuration for all ledger entities."""

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str = Field(
        default_factory=new_id,
        min_length=1,
        description="Opaque id assigned by the creator"
    )

    def to_record(self) -> dict:
        """Dump in the camelCase snapshot shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Partner(LedgerRecord):
    """A person contributing capital to projects."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name"
    )
    avatar: str = Field(
        default="🧑‍💻",
        description="Emoji or image URL"
    )
    color: str = Field(
        default="#818CF8",
        description="Display color"
    )


class Project(LedgerRecord):
    """An investment project with its own books."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Project name"
    )
    description: str = Field(
        default="",
        max_length=1000,
    )
    status: ProjectStatus = Field(
        default=ProjectStatus.PLANNING,
        description="Lifecycle status"
    )
    start_date: date = Field(
        default_factory=date.today,
        description="When the project started"
    )

    @field_validator("start_date", mode="before")
    @classmethod
    def keep_calendar_date(cls, v: Any) -> Any:
        return _calendar_date(v)


class Transaction(LedgerRecord):
    """
    A single ledger movement on one project.

    partner_id is required for INVESTMENT, conventionally required for
    WITHDRAWAL and optional for INCOME / EXPENSE. An EXPENSE carrying a
    partner means the partner paid directly; it counts as investment.

    linked_transaction_id connects the two sides of a cross-project
    transfer. It is informational: deleting one side leaves the other.
    """

    project_id: str = Field(
        ...,
        min_length=1,
        description="Project this movement is booked on"
    )
    partner_id: Optional[str] = Field(
        default=None,
        description="Partner involved, if any"
    )
    type: TransactionType
    amount: Money
    date: date
    note: str = Field(
        default="",
        max_length=1000,
    )
    linked_transaction_id: Optional[str] = Field(
        default=None,
        description="Other side of a cross-project transfer"
    )

    @field_validator("partner_id", "linked_transaction_id", mode="before")
    @classmethod
    def blank_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("date", mode="before")
    @classmethod
    def keep_calendar_date(cls, v: Any) -> Any:
        return _calendar_date(v)

    @property
    def counts_as_investment(self) -> bool:
        """INVESTMENT, or an EXPENSE paid directly by a partner."""
        if self.type == TransactionType.INVESTMENT:
            return True
        return self.type == TransactionType.EXPENSE and self.partner_id is not None

    @property
    def month(self) -> str:
        """Calendar month as YYYY-MM."""
        return self.date.strftime("%Y-%m")


RECORD_TYPES: dict[EntityKind, type[LedgerRecord]] = {
    EntityKind.PARTNERS: Partner,
    EntityKind.PROJECTS: Project,
    EntityKind.TRANSACTIONS: Transaction,
}


# =============================================================================
# SNAPSHOT
# =============================================================================

class LedgerSnapshot(BaseModel):
    """
    The whole ledger as one immutable value.

    CRITICAL: Never mutate a snapshot. Every change goes through the
    copy helpers below and produces a new snapshot.
    """

    model_config = ConfigDict(frozen=True)

    partners: tuple[Partner, ...] = ()
    projects: tuple[Project, ...] = ()
    transactions: tuple[Transaction, ...] = ()

    # --- Lookups -----------------------------------------------------------

    def records(self, kind: EntityKind) -> tuple:
        return getattr(self, kind.value)

    def find(self, kind: EntityKind, record_id: str) -> Optional[LedgerRecord]:
        for record in self.records(kind):
            if record.id == record_id:
                return record
        return None

    def contains(self, kind: EntityKind, record_id: str) -> bool:
        return self.find(kind, record_id) is not None

    def get_partner(self, partner_id: str) -> Optional[Partner]:
        return self.find(EntityKind.PARTNERS, partner_id)

    def get_project(self, project_id: str) -> Optional[Project]:
        return self.find(EntityKind.PROJECTS, project_id)

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self.find(EntityKind.TRANSACTIONS, transaction_id)

    def has_partner(self, partner_id: str) -> bool:
        return self.contains(EntityKind.PARTNERS, partner_id)

    def has_project(self, project_id: str) -> bool:
        return self.contains(EntityKind.PROJECTS, project_id)

    def exists_transaction_for_partner(self, partner_id: str) -> bool:
        """Integrity check run before a partner may be deleted."""
        return any(t.partner_id == partner_id for t in self.transactions)

    def linked_sibling(self, transaction: Transaction) -> Optional[Transaction]:
        """
        The other side of a transfer, only if the link goes both ways.

        Editing an expense away from a project source leaves the old
        mirror pointing at a record that no longer points back.
        """
        if not transaction.linked_transaction_id:
            return None
        sibling = self.get_transaction(transaction.linked_transaction_id)
        if sibling is None or sibling.linked_transaction_id != transaction.id:
            return None
        return sibling

    def integrity_errors(self) -> list[str]:
        """
        Problems that make the snapshot unusable as a ledger.

        Ids must be unique per table, and every transaction must point at
        an existing project (and partner, when it names one). A dangling
        linked_transaction_id is allowed: deleting one side of a transfer
        leaves the other in place.
        """
        errors = []
        for kind in EntityKind:
            seen = set()
            for record in self.records(kind):
                if record.id in seen:
                    errors.append(f"Duplicate id {record.id} in {kind.value}")
                seen.add(record.id)

        project_ids = {p.id for p in self.projects}
        partner_ids = {p.id for p in self.partners}
        for t in self.transactions:
            if t.project_id not in project_ids:
                errors.append(f"Transaction {t.id} refers to unknown project {t.project_id}")
            if t.partner_id and t.partner_id not in partner_ids:
                errors.append(f"Transaction {t.id} refers to unknown partner {t.partner_id}")
        return errors

    # --- Copy-on-write -----------------------------------------------------

    def inserted(self, kind: EntityKind, *records: LedgerRecord) -> "LedgerSnapshot":
        """New snapshot with the records appended."""
        return self.model_copy(update={kind.value: self.records(kind) + tuple(records)})

    def replaced(self, kind: EntityKind, record: LedgerRecord) -> "LedgerSnapshot":
        """New snapshot with the record swapped in by id."""
        updated = tuple(
            record if existing.id == record.id else existing
            for existing in self.records(kind)
        )
        return self.model_copy(update={kind.value: updated})

    def removed(self, kind: EntityKind, *record_ids: str) -> "LedgerSnapshot":
        """New snapshot without the given ids."""
        ids = set(record_ids)
        kept = tuple(r for r in self.records(kind) if r.id not in ids)
        return self.model_copy(update={kind.value: kept})

    # --- Serialization -----------------------------------------------------

    def to_export_dict(self) -> dict:
        """The persisted snapshot shape: camelCase records under three keys."""
        return {
            kind.value: [record.to_record() for record in self.records(kind)]
            for kind in EntityKind
        }

    @classmethod
    def from_export_dict(cls, data: dict) -> "LedgerSnapshot":
        """
        Parse the persisted snapshot shape.

        Raises ValueError if a top-level key is missing and
        pydantic.ValidationError if a record is malformed.
        """
        missing = [kind.value for kind in EntityKind if kind.value not in data]
        if missing:
            raise ValueError(f"Snapshot is missing keys: {', '.join(missing)}")
        return cls(
            partners=tuple(Partner.model_validate(p) for p in data["partners"]),
            projects=tuple(Project.model_validate(p) for p in data["projects"]),
            transactions=tuple(
                Transaction.model_validate(t) for t in data["transactions"]
            ),
        )


def seed_snapshot() -> LedgerSnapshot:
    """Starter ledger shown on first launch in local mode."""
    return LedgerSnapshot(
        partners=(
            Partner(id="p1", name="Ek", avatar="👨‍💼", color="#818CF8"),
            Partner(id="p2", name="Tho", avatar="👩‍💼", color="#34D399"),
            Partner(id="p3", name="Tri", avatar="👨‍💻", color="#F472B6"),
        ),
        projects=(
            Project(
                id="proj1",
                name="Coffee Shop",
                description="Renovate an old building into a loft-style coffee shop",
                status=ProjectStatus.ACTIVE,
                start_date=date(2023, 1, 15),
            ),
        ),
        transactions=(
            Transaction(
                id="t1",
                project_id="proj1",
                partner_id="p1",
                type=TransactionType.INVESTMENT,
                amount=Decimal("500000"),
                date=date(2023, 1, 15),
                note="First capital injection",
            ),
            Transaction(
                id="t2",
                project_id="proj1",
                partner_id="p2",
                type=TransactionType.INVESTMENT,
                amount=Decimal("300000"),
                date=date(2023, 1, 16),
                note="Joint investment",
            ),
        ),
    )
