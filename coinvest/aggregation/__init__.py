"""Read-only summaries of the ledger."""

from coinvest.aggregation.engine import (
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

__all__ = [
    "filter_transactions",
    "global_totals",
    "ownership_shares",
    "partner_invested",
    "partner_statements",
    "portfolio_overview",
    "project_performance",
    "project_statement",
    "recent_activity",
]
