"""Tests for the aggregation engine."""

import pytest
from datetime import date
from decimal import Decimal

from coinvest.aggregation import (
    filter_transactions,
    global_totals,
    ownership_shares,
    partner_invested,
    partner_statements,
    portfolio_overview,
    project_performance,
    project_statement,
    recent_activity,
)
from coinvest.models.ledger import (
    EntityKind,
    LedgerSnapshot,
    Transaction,
    TransactionType,
    seed_snapshot,
)
from coinvest.models.reports import LedgerFilter


def tx(id, type, amount, on, project_id="proj1", partner_id=None) -> Transaction:
    return Transaction(
        id=id,
        project_id=project_id,
        partner_id=partner_id,
        type=type,
        amount=Decimal(str(amount)),
        date=on,
    )


@pytest.fixture
def busy(ledger) -> LedgerSnapshot:
    """Seed ledger with a month of trading on Coffee Shop and one on Food Truck."""
    return ledger.inserted(
        EntityKind.TRANSACTIONS,
        tx("i1", TransactionType.INCOME, 100000, date(2024, 5, 2)),
        tx("e1", TransactionType.EXPENSE, 20000, date(2024, 5, 3)),
        tx("e2", TransactionType.EXPENSE, 5000, date(2024, 6, 1), partner_id="p3"),
        tx("i2", TransactionType.INCOME, 8000, date(2024, 6, 5), project_id="proj2"),
        tx("w1", TransactionType.WITHDRAWAL, 1000, date(2024, 6, 6), partner_id="p1"),
    )


class TestTotals:
    """Tests for headline totals and partner capital."""

    def test_global_totals(self, busy):
        """Test totals with a partner-paid expense."""
        totals = global_totals(busy.transactions)

        assert totals.total_investment == Decimal("805000")
        assert totals.total_income == Decimal("108000")
        assert totals.total_expense == Decimal("25000")
        assert totals.net_profit == Decimal("83000")

    def test_withdrawal_is_not_in_totals(self, busy):
        """Test that withdrawals do not change income, expense or investment."""
        without = busy.removed(EntityKind.TRANSACTIONS, "w1")
        assert global_totals(busy.transactions) == global_totals(without.transactions)

    def test_partner_invested(self, busy):
        """Test capital per partner, optionally per project."""
        assert partner_invested(busy.transactions, "p1") == Decimal("500000")
        assert partner_invested(busy.transactions, "p3") == Decimal("5000")
        assert partner_invested(busy.transactions, "p3", project_id="proj2") == Decimal("0")

    def test_empty_ledger(self):
        """Test totals of nothing."""
        totals = global_totals(())
        assert totals.total_investment == Decimal("0")
        assert totals.net_profit == Decimal("0")


class TestOwnershipShares:
    """Tests for share percentages."""

    def test_seed_shares(self):
        """Test 500,000 and 300,000 give 62.5% and 37.5%."""
        shares = {s.partner_id: s for s in ownership_shares(seed_snapshot())}

        assert shares["p1"].share_percent == pytest.approx(62.5)
        assert shares["p2"].share_percent == pytest.approx(37.5)
        assert shares["p3"].share_percent == 0.0
        assert shares["p1"].invested == Decimal("500000")

    def test_shares_sum_to_100(self, busy):
        """Test normalization when anything was invested."""
        total = sum(s.share_percent for s in ownership_shares(busy))
        assert total == pytest.approx(100.0)

    def test_no_investment_gives_zero_shares(self):
        """Test that shares are all 0 without investment."""
        snapshot = seed_snapshot().removed(EntityKind.TRANSACTIONS, "t1", "t2")
        shares = ownership_shares(snapshot)

        assert len(shares) == 3
        assert all(s.share_percent == 0.0 for s in shares)

    def test_aggregation_is_repeatable(self, busy):
        """Test that views are pure functions of the snapshot."""
        before = busy.model_copy()
        first = portfolio_overview(busy, recent_limit=5)
        second = portfolio_overview(busy, recent_limit=5)

        assert first == second
        assert busy == before


class TestProjectViews:
    """Tests for project performance and statements."""

    def test_project_performance(self, busy):
        """Test income, expense and profit per project."""
        perf = {p.project_id: p for p in project_performance(busy)}

        assert perf["proj1"].income == Decimal("100000")
        assert perf["proj1"].expense == Decimal("25000")
        assert perf["proj1"].profit == Decimal("75000")
        assert perf["proj2"].profit == Decimal("8000")

    def test_project_statement_roi(self, busy):
        """Test ROI uses INVESTMENT records only."""
        statement = project_statement(busy, "proj1", recent_limit=3)

        assert statement.investment == Decimal("800000")
        assert statement.net_profit == Decimal("75000")
        assert statement.roi_percent == pytest.approx(9.375)
        assert statement.transaction_count == 6
        assert len(statement.recent.items) == 3
        assert statement.recent.remaining == 3
        assert [s.partner_id for s in statement.partner_investments] == ["p1", "p2"]

    def test_project_statement_month(self, busy):
        """Test a statement restricted to one month."""
        statement = project_statement(busy, "proj1", month="2024-05")

        assert statement.month == "2024-05"
        assert statement.income == Decimal("100000")
        assert statement.expense == Decimal("20000")
        assert statement.investment == Decimal("0")
        assert statement.roi_percent == 0.0
        assert statement.partner_investments == []

    def test_unknown_project(self, busy):
        """Test that a missing project has no statement."""
        assert project_statement(busy, "nope") is None


class TestFiltersAndActivity:
    """Tests for filters and recent activity."""

    def test_filters_combine(self, busy):
        """Test project, partner and month restrictions."""
        by_project = filter_transactions(busy.transactions, LedgerFilter(project_id="proj2"))
        by_month = filter_transactions(busy.transactions, LedgerFilter(month="2024-06"))
        both = filter_transactions(
            busy.transactions, LedgerFilter(partner_id="p3", month="2024-06"),
        )

        assert [t.id for t in by_project] == ["i2"]
        assert [t.id for t in by_month] == ["e2", "i2", "w1"]
        assert [t.id for t in both] == ["e2"]

    def test_all_means_unrestricted(self, busy):
        """Test that 'all' filters nothing."""
        result = filter_transactions(busy.transactions, LedgerFilter(project_id="all", month=""))
        assert len(result) == len(busy.transactions)

    def test_recent_activity_order(self):
        """Test newest first, ties kept in ledger order."""
        items = [
            tx("a", TransactionType.INCOME, 1, date(2024, 1, 1)),
            tx("b", TransactionType.INCOME, 1, date(2024, 3, 1)),
            tx("c", TransactionType.INCOME, 1, date(2024, 3, 1)),
            tx("d", TransactionType.INCOME, 1, date(2024, 2, 1)),
        ]
        recent = recent_activity(items, limit=3)

        assert [t.id for t in recent.items] == ["b", "c", "d"]
        assert recent.remaining == 1

    def test_recent_activity_short_list(self):
        """Test that nothing remains when everything fits."""
        recent = recent_activity([tx("a", TransactionType.INCOME, 1, date(2024, 1, 1))], limit=8)
        assert recent.remaining == 0

    def test_recent_activity_negative_limit(self):
        """Test that a negative limit shows nothing and counts everything as remaining."""
        items = [
            tx("a", TransactionType.INCOME, 1, date(2024, 1, 1)),
            tx("b", TransactionType.INCOME, 1, date(2024, 2, 1)),
        ]
        recent = recent_activity(items, limit=-1)

        assert recent.items == []
        assert recent.remaining == 2


class TestPartnerStatements:
    """Tests for per-partner statements."""

    def test_partners_without_data_are_omitted(self, busy):
        """Test that only partners with investments are listed."""
        report = partner_statements(busy, LedgerFilter(month="2024-06"))

        assert [s.partner.id for s in report.statements] == ["p3"]
        assert report.displayed_total == Decimal("5000")

    def test_requested_partner_is_always_shown(self, busy):
        """Test a specific partner with nothing in scope."""
        report = partner_statements(busy, LedgerFilter(partner_id="p2", month="2024-06"))

        assert len(report.statements) == 1
        assert report.statements[0].has_data is False
        assert report.statements[0].total_invested == Decimal("0")

    def test_statement_contents(self, busy):
        """Test ordering, grouping and the global share."""
        extra = busy.inserted(
            EntityKind.TRANSACTIONS,
            tx("t0", TransactionType.INVESTMENT, 1000, date(2022, 12, 1), partner_id="p1"),
        )
        report = partner_statements(extra, LedgerFilter(partner_id="p1"))
        statement = report.statements[0]

        assert [t.id for t in statement.investments] == ["t0", "t1"]
        assert list(statement.by_project) == ["proj1"]
        assert statement.total_invested == Decimal("501000")
        assert statement.share_percent == pytest.approx(501000 / 806000 * 100)

    def test_no_filter(self, busy):
        """Test that no filter lists every partner with capital."""
        report = partner_statements(busy)
        assert [s.partner.id for s in report.statements] == ["p1", "p2", "p3"]
        assert report.displayed_total == Decimal("805000")
