"""AI Agents package."""

from coinvest.agents.portfolio_analyst import PortfolioAnalysis, PortfolioAnalyst

__all__ = [
    "PortfolioAnalysis",
    "PortfolioAnalyst",
]
