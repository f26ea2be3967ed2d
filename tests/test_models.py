"""
Tests for CoInvest Ledger

Test strategy:
1. Unit tests for individual components (models, engines)
2. Integration tests for the sync coordinator (with in-memory stores)
3. No real API calls in tests
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from coinvest.models.allocation import (
    AllocationIssue,
    AllocationResult,
    FundingKind,
    FundingSource,
    FundingSpec,
)
from coinvest.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from coinvest.models.ledger import (
    EntityKind,
    LedgerSnapshot,
    Partner,
    Project,
    ProjectStatus,
    Transaction,
    TransactionType,
    seed_snapshot,
)
from coinvest.models.reports import LedgerFilter


def make_transaction(**overrides) -> Transaction:
    data = dict(
        project_id="proj1",
        type=TransactionType.INCOME,
        amount=Decimal("100"),
        date=date(2024, 5, 1),
    )
    data.update(overrides)
    return Transaction(**data)


class TestLedgerModels:
    """Tests for partner, project and transaction models."""

    def test_partner_defaults(self):
        """Test Partner gets an id, avatar and color."""
        partner = Partner(name="Ek")
        assert partner.id
        assert partner.avatar
        assert partner.color.startswith("#")

    def test_partner_strips_whitespace(self):
        """Test that whitespace is stripped from partner name."""
        partner = Partner(name="  Ek  ")
        assert partner.name == "Ek"

    def test_partner_rejects_blank_name(self):
        """Test that a blank name is rejected."""
        with pytest.raises(ValidationError):
            Partner(name="   ")

    def test_ids_are_unique(self):
        """Test that generated ids are never reused."""
        ids = {Partner(name="X").id for _ in range(50)}
        assert len(ids) == 50

    def test_project_defaults_to_planning_today(self):
        """Test new projects start in planning, today."""
        project = Project(name="Shop")
        assert project.status == ProjectStatus.PLANNING
        assert project.start_date == date.today()

    def test_project_accepts_iso_datetime(self):
        """Test that only the calendar date of a datetime string is kept."""
        project = Project(name="Shop", start_date="2023-01-15T08:30:00.000Z")
        assert project.start_date == date(2023, 1, 15)

    def test_transaction_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValidationError):
            make_transaction(amount=Decimal("-100"))

    def test_transaction_blank_partner_is_none(self):
        """Test that an empty partner id means no partner."""
        t = make_transaction(partner_id="")
        assert t.partner_id is None

    def test_transaction_accepts_datetime(self):
        """Test transaction date from a datetime."""
        t = make_transaction(date=datetime(2024, 5, 3, 14, 0))
        assert t.date == date(2024, 5, 3)
        assert t.month == "2024-05"

    def test_counts_as_investment(self):
        """Test which records count as partner capital."""
        assert make_transaction(type=TransactionType.INVESTMENT, partner_id="p1").counts_as_investment
        assert make_transaction(type=TransactionType.EXPENSE, partner_id="p1").counts_as_investment
        assert not make_transaction(type=TransactionType.EXPENSE).counts_as_investment
        assert not make_transaction(type=TransactionType.INCOME, partner_id="p1").counts_as_investment

    def test_records_are_frozen(self):
        """Test that records cannot be changed in place."""
        t = make_transaction()
        with pytest.raises(ValidationError):
            t.amount = Decimal("5")

    def test_to_record_uses_camel_case(self):
        """Test the export shape of a transaction."""
        t = make_transaction(partner_id="p1", linked_transaction_id="x")
        record = t.to_record()
        assert record["projectId"] == "proj1"
        assert record["partnerId"] == "p1"
        assert record["linkedTransactionId"] == "x"
        assert record["amount"] == 100
        assert record["date"] == "2024-05-01"

    def test_model_accepts_camel_case_input(self):
        """Test validation from the export shape."""
        t = Transaction.model_validate({
            "id": "t9",
            "projectId": "proj1",
            "type": "EXPENSE",
            "amount": 250.5,
            "date": "2024-05-01",
        })
        assert t.project_id == "proj1"
        assert t.amount == Decimal("250.5")


class TestLedgerSnapshot:
    """Tests for the immutable snapshot."""

    def test_lookups(self):
        """Test get and has helpers."""
        snapshot = seed_snapshot()
        assert snapshot.get_partner("p1").name == "Ek"
        assert snapshot.get_project("proj1").name == "Coffee Shop"
        assert snapshot.get_transaction("t2").amount == Decimal("300000")
        assert snapshot.has_partner("p3")
        assert not snapshot.has_project("nope")

    def test_exists_transaction_for_partner(self):
        """Test the integrity check used before deleting a partner."""
        snapshot = seed_snapshot()
        assert snapshot.exists_transaction_for_partner("p1")
        assert not snapshot.exists_transaction_for_partner("p3")

    def test_copy_on_write(self):
        """Test that every change returns a new snapshot."""
        snapshot = seed_snapshot()
        partner = Partner(id="p4", name="Nok")

        added = snapshot.inserted(EntityKind.PARTNERS, partner)
        renamed = added.replaced(EntityKind.PARTNERS, partner.model_copy(update={"name": "Noi"}))
        removed = renamed.removed(EntityKind.PARTNERS, "p4")

        assert len(snapshot.partners) == 3
        assert added.get_partner("p4").name == "Nok"
        assert renamed.get_partner("p4").name == "Noi"
        assert removed == snapshot

    def test_export_round_trip(self):
        """Test export dict parses back to the same snapshot."""
        snapshot = seed_snapshot()
        data = snapshot.to_export_dict()
        assert set(data) == {"partners", "projects", "transactions"}
        assert data["projects"][0]["startDate"] == "2023-01-15"
        assert LedgerSnapshot.from_export_dict(data) == snapshot

    def test_from_export_dict_requires_all_keys(self):
        """Test that a file without transactions is rejected."""
        with pytest.raises(ValueError, match="transactions"):
            LedgerSnapshot.from_export_dict({"partners": [], "projects": []})

    def test_linked_sibling_needs_both_directions(self):
        """Test that a one-way link is not treated as a transfer pair."""
        main = make_transaction(id="a", type=TransactionType.EXPENSE, linked_transaction_id="b")
        mirror = make_transaction(id="b", type=TransactionType.EXPENSE, linked_transaction_id="a")
        stale = make_transaction(id="c", type=TransactionType.EXPENSE, linked_transaction_id="a")
        snapshot = seed_snapshot().inserted(EntityKind.TRANSACTIONS, main, mirror, stale)

        assert snapshot.linked_sibling(main) == mirror
        assert snapshot.linked_sibling(mirror) == main
        assert snapshot.linked_sibling(stale) is None
        assert snapshot.linked_sibling(snapshot.get_transaction("t1")) is None

    def test_integrity_errors(self):
        """Test duplicate ids and unknown references are reported."""
        assert seed_snapshot().integrity_errors() == []

        broken = seed_snapshot().inserted(
            EntityKind.TRANSACTIONS,
            make_transaction(id="t1"),
            make_transaction(id="t8", project_id="nope"),
            make_transaction(id="t9", partner_id="ghost"),
            make_transaction(id="t10", linked_transaction_id="gone"),
        )

        assert broken.integrity_errors() == [
            "Duplicate id t1 in transactions",
            "Transaction t8 refers to unknown project nope",
            "Transaction t9 refers to unknown partner ghost",
        ]


class TestAllocationModels:
    """Tests for funding specifications and results."""

    def test_pool_takes_no_id(self):
        """Test that pool funding rejects a source id."""
        with pytest.raises(ValidationError):
            FundingSource(kind=FundingKind.POOL, source_id="p1")

    def test_partner_needs_id(self):
        """Test that partner funding needs a source id."""
        with pytest.raises(ValidationError):
            FundingSource(kind=FundingKind.PARTNER)

    def test_spec_is_single_or_split(self):
        """Test that a spec is exactly one of single or split."""
        with pytest.raises(ValidationError):
            FundingSpec()
        with pytest.raises(ValidationError):
            FundingSpec(source=FundingSource.pool(), split={"POOL": Decimal("1")})
        assert FundingSpec.split_between({"POOL": Decimal("1")}).is_split

    def test_result_has_errors(self):
        """Test has_errors property."""
        result = AllocationResult(
            request_id=uuid4(),
            success=False,
            issues=[
                AllocationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message="Amount must be greater than zero",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1

    def test_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = AllocationResult(
            request_id=uuid4(),
            success=True,
            issues=[
                AllocationIssue(
                    field="note",
                    issue_type="empty",
                    message="No note given",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.warnings == ["No note given"]


class TestLedgerFilter:
    """Tests for filter normalization."""

    def test_all_and_empty_mean_unrestricted(self):
        """Test that 'all', '' and None are the same."""
        f = LedgerFilter(project_id="all", partner_id="", month=None)
        assert f.project_id is None
        assert f.partner_id is None
        assert f.month is None

    def test_month_format(self):
        """Test that months must be YYYY-MM."""
        assert LedgerFilter(month="2024-05").month == "2024-05"
        with pytest.raises(ValidationError):
            LedgerFilter(month="May 2024")


class TestAuditModels:
    """Tests for audit event models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.PARTNER_ADDED,
            description="Partner added",
        )
        assert event.event_type == AuditEventType.PARTNER_ADDED
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type="transactions",
            entity_id="t1",
            description="Transaction added",
            details={"amount": "500"},
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "transaction_added"
        assert log_dict["entity_id"] == "t1"
        assert log_dict["details"] == {"amount": "500"}

    def test_audit_event_to_sheets_row(self):
        """Test conversion to a spreadsheet row."""
        event = AuditEventBuilder.import_rejected("bad file")
        row = event.to_sheets_row()
        assert len(row) == 11
        assert row[2] == "import_rejected"
        assert row[9] == "bad file"

    def test_record_written_maps_event_type(self):
        """Test AuditEventBuilder.record_written."""
        correlation_id = uuid4()
        event = AuditEventBuilder.record_written(
            "transactions", "t1", "deleted", correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.TRANSACTION_DELETED
        assert event.correlation_id == correlation_id
        assert event.is_user_action is True

    def test_allocation_rejected_is_warning(self):
        """Test AuditEventBuilder.allocation_rejected."""
        event = AuditEventBuilder.allocation_rejected("proj1", [{"field": "amount"}], uuid4())
        assert event.event_type == AuditEventType.ALLOCATION_REJECTED
        assert event.severity == AuditSeverity.WARNING
        assert event.details["issues"] == [{"field": "amount"}]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
