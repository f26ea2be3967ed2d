"""
Aggregation Engine

DESIGN DECISION: Aggregations are DETERMINISTIC and read-only.
Every view is a pure function of the transactions (or snapshot) it is
given plus optional filters. Nothing is cached and nothing is stored,
so calling any function twice on the same input gives the same answer.

The AI analyst only ever sees figures produced here.

Investment rules used throughout:
- INVESTMENT records are investment.
- An EXPENSE paid directly by a partner (partner_id set) is ALSO that
  partner's investment. It is still an expense of the project.
- ROI uses INVESTMENT records only.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Callable, Iterable, Optional

from coinvest.config import get_settings
from coinvest.models.ledger import LedgerSnapshot, Transaction, TransactionType
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


ZERO = Decimal("0")


def _total(
    transactions: Iterable[Transaction],
    predicate: Callable[[Transaction], bool],
) -> Decimal:
    return sum((t.amount for t in transactions if predicate(t)), ZERO)


def _of_type(kind: TransactionType) -> Callable[[Transaction], bool]:
    return lambda t: t.type == kind


def _percent(part: Decimal, whole: Decimal) -> float:
    """part / whole * 100, or 0 when there is nothing to divide by."""
    if whole <= 0:
        return 0.0
    return float(part / whole * 100)


def _recent_limit(limit: Optional[int]) -> int:
    if limit is None:
        return get_settings().app.recent_activity_limit
    return max(limit, 0)


# =============================================================================
# FILTERS
# =============================================================================

def filter_transactions(
    transactions: Iterable[Transaction],
    filters: Optional[LedgerFilter] = None,
) -> list[Transaction]:
    """
    Keep transactions matching every restriction in the filter.

    Order is preserved. No filter (or an empty one) keeps everything.
    """
    filters = filters or LedgerFilter()
    result = []

    for t in transactions:
        if filters.project_id and t.project_id != filters.project_id:
            continue
        if filters.partner_id and t.partner_id != filters.partner_id:
            continue
        if filters.month and t.month != filters.month:
            continue
        result.append(t)

    return result


def recent_activity(
    transactions: Iterable[Transaction],
    limit: Optional[int] = None,
) -> RecentActivity:
    """Newest first. Records on the same date keep their ledger order."""
    limit = _recent_limit(limit)
    ordered = sorted(transactions, key=lambda t: t.date, reverse=True)
    return RecentActivity(
        items=ordered[:limit],
        remaining=max(len(ordered) - limit, 0),
    )


# =============================================================================
# TOTALS AND SHARES
# =============================================================================

def global_totals(transactions: Iterable[Transaction]) -> LedgerTotals:
    """Headline totals across everything given."""
    transactions = list(transactions)
    income = _total(transactions, _of_type(TransactionType.INCOME))
    expense = _total(transactions, _of_type(TransactionType.EXPENSE))

    return LedgerTotals(
        total_investment=_total(transactions, lambda t: t.counts_as_investment),
        total_income=income,
        total_expense=expense,
        net_profit=income - expense,
    )


def partner_invested(
    transactions: Iterable[Transaction],
    partner_id: str,
    project_id: Optional[str] = None,
) -> Decimal:
    """
    Capital a partner has put in: INVESTMENT plus expenses they paid.

    Optionally restricted to one project.
    """
    return _total(
        transactions,
        lambda t: (
            t.partner_id == partner_id
            and t.counts_as_investment
            and (project_id is None or t.project_id == project_id)
        ),
    )


def ownership_shares(snapshot: LedgerSnapshot) -> list[PartnerShare]:
    """
    Every partner's invested capital and its share of the total.

    Shares add up to 100 when anything has been invested, otherwise
    every share is 0.
    """
    total_investment = global_totals(snapshot.transactions).total_investment
    shares = []

    for partner in snapshot.partners:
        invested = partner_invested(snapshot.transactions, partner.id)
        shares.append(PartnerShare(
            partner_id=partner.id,
            name=partner.name,
            color=partner.color,
            invested=invested,
            share_percent=_percent(invested, total_investment),
        ))

    return shares


def project_performance(snapshot: LedgerSnapshot) -> list[ProjectPerformance]:
    """Income, expense and profit per project, in project order."""
    performance = []

    for project in snapshot.projects:
        in_project = [t for t in snapshot.transactions if t.project_id == project.id]
        income = _total(in_project, _of_type(TransactionType.INCOME))
        expense = _total(in_project, _of_type(TransactionType.EXPENSE))
        performance.append(ProjectPerformance(
            project_id=project.id,
            name=project.name,
            income=income,
            expense=expense,
            profit=income - expense,
        ))

    return performance


# =============================================================================
# STATEMENTS
# =============================================================================

def project_statement(
    snapshot: LedgerSnapshot,
    project_id: str,
    month: Optional[str] = None,
    recent_limit: Optional[int] = None,
) -> Optional[ProjectStatement]:
    """
    Statement for one project, optionally for one month only.

    Returns None if the project does not exist.
    """
    project = snapshot.get_project(project_id)
    if project is None:
        return None

    filters = LedgerFilter(project_id=project_id, month=month)
    in_scope = filter_transactions(snapshot.transactions, filters)

    income = _total(in_scope, _of_type(TransactionType.INCOME))
    expense = _total(in_scope, _of_type(TransactionType.EXPENSE))
    investment = _total(in_scope, _of_type(TransactionType.INVESTMENT))
    net_profit = income - expense

    partner_investments = []
    for partner in snapshot.partners:
        invested = _total(
            in_scope,
            lambda t: t.type == TransactionType.INVESTMENT and t.partner_id == partner.id,
        )
        if invested > 0:
            partner_investments.append(PartnerShare(
                partner_id=partner.id,
                name=partner.name,
                color=partner.color,
                invested=invested,
                share_percent=_percent(invested, investment),
            ))

    return ProjectStatement(
        project_id=project.id,
        name=project.name,
        month=filters.month,
        income=income,
        expense=expense,
        investment=investment,
        net_profit=net_profit,
        roi_percent=_percent(net_profit, investment) if investment > 0 else 0.0,
        partner_investments=partner_investments,
        recent=recent_activity(in_scope, recent_limit),
        transaction_count=len(in_scope),
    )


def partner_statements(
    snapshot: LedgerSnapshot,
    filters: Optional[LedgerFilter] = None,
) -> PartnerStatementReport:
    """
    Investment-like transactions per partner within the filter.

    Partners with nothing in scope are left out unless that partner was
    asked for explicitly. share_percent is always the partner's share of
    the whole ledger, not of the filtered view.
    """
    filters = filters or LedgerFilter()
    total_investment = global_totals(snapshot.transactions).total_investment
    in_scope = [
        t for t in filter_transactions(snapshot.transactions, filters)
        if t.counts_as_investment
    ]

    if filters.partner_id:
        partners = [p for p in snapshot.partners if p.id == filters.partner_id]
    else:
        partners = list(snapshot.partners)

    statements = []
    for partner in partners:
        investments = sorted(
            (t for t in in_scope if t.partner_id == partner.id),
            key=lambda t: t.date,
        )
        if not investments and not filters.partner_id:
            continue

        by_project: dict[str, list[Transaction]] = defaultdict(list)
        for t in investments:
            by_project[t.project_id].append(t)

        statements.append(PartnerStatement(
            partner=partner,
            investments=investments,
            by_project=dict(by_project),
            total_invested=_total(investments, lambda t: True),
            share_percent=_percent(
                partner_invested(snapshot.transactions, partner.id),
                total_investment,
            ),
        ))

    return PartnerStatementReport(
        filters=filters,
        statements=statements,
        displayed_total=sum((s.total_invested for s in statements), ZERO),
    )


def portfolio_overview(
    snapshot: LedgerSnapshot,
    recent_limit: Optional[int] = None,
) -> PortfolioOverview:
    """Everything the dashboard needs in one call."""
    return PortfolioOverview(
        totals=global_totals(snapshot.transactions),
        shares=ownership_shares(snapshot),
        performance=project_performance(snapshot),
        recent=recent_activity(snapshot.transactions, recent_limit),
    )
