"""
Portfolio Analyst

DESIGN DECISION: The LLM is a COMMENTATOR, not a calculator.
Every figure in the prompt comes from the aggregation engine. The model
is asked to comment on those figures (ROI, risks, suggestions) and is
never asked to compute or look anything up.

CRITICAL BOUNDARIES:
- CAN: Summarize and comment on figures it is given
- CANNOT: Change the ledger
- CANNOT: Invent figures that are not in the prompt
"""

from decimal import Decimal
from typing import Optional

import google.generativeai as genai
import structlog
from pydantic import BaseModel, Field, ValidationError

from coinvest.aggregation import project_performance
from coinvest.audit import AuditLogger
from coinvest.config import get_settings
from coinvest.models.ledger import LedgerSnapshot, TransactionType


logger = structlog.get_logger(__name__)

NO_API_KEY_MESSAGE = "Set GEMINI_API_KEY to enable AI analysis."
EMPTY_RESPONSE_MESSAGE = "The portfolio could not be analyzed right now."
SERVICE_ERROR_MESSAGE = "Could not reach the AI service. Please try again later."


class PortfolioAnalysis(BaseModel):
    """Commentary on the portfolio."""

    response: str = Field(
        description="Text shown to the user"
    )
    ai_generated: bool = Field(
        description="False when a fixed fallback message was returned"
    )


class PortfolioAnalyst:
    """
    AI agent that comments on the portfolio.

    Works without configuration: if no Gemini key is set, analyze()
    returns a fixed message instead of calling the model.
    """

    def __init__(
        self,
        model: Optional[genai.GenerativeModel] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._model = model
        self._audit_logger = audit_logger
        if self._model is None:
            self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI, if a key is available."""
        try:
            settings = get_settings().gemini
        except ValidationError:
            logger.info("portfolio_analyst_disabled", reason="no Gemini API key")
            return

        genai.configure(api_key=settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=settings.model_name,
            generation_config={
                "temperature": settings.temperature,
                "max_output_tokens": settings.max_tokens,
            }
        )

    @property
    def is_enabled(self) -> bool:
        return self._model is not None

    def build_prompt(self, snapshot: LedgerSnapshot) -> str:
        """Prompt with per-project figures and the total invested."""
        lines = []
        statuses = {p.id: p.status.value for p in snapshot.projects}

        for perf in project_performance(snapshot):
            investment = sum(
                (
                    t.amount for t in snapshot.transactions
                    if t.project_id == perf.project_id
                    and t.type == TransactionType.INVESTMENT
                ),
                Decimal("0"),
            )
            lines.append(
                f"Project: {perf.name}, Status: {statuses[perf.project_id]}, "
                f"Income: {perf.income}, Expense: {perf.expense}, Investment: {investment}"
            )

        total_investment = sum(
            (t.amount for t in snapshot.transactions if t.type == TransactionType.INVESTMENT),
            Decimal("0"),
        )
        projects = "\n".join(lines) or "No projects yet"

        return f"""Analyze the following investment portfolio and give a concise, insightful summary.
Focus on ROI, risk warnings and suggestions for improvement.
Keep the tone professional yet encouraging.

IMPORTANT: Use ONLY the figures below. Do NOT invent any numbers.

Overall Stats:
Total Investment: {total_investment}

Projects:
{projects}"""

    async def analyze(self, snapshot: LedgerSnapshot) -> PortfolioAnalysis:
        """Ask the model for commentary on the current snapshot."""
        if self._model is None:
            return PortfolioAnalysis(response=NO_API_KEY_MESSAGE, ai_generated=False)

        try:
            response = await self._model.generate_content_async(self.build_prompt(snapshot))
            text = (response.text or "").strip()
        except Exception as e:
            logger.warning("portfolio_analysis_failed", error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="gemini",
                    error_message=str(e),
                )
            return PortfolioAnalysis(response=SERVICE_ERROR_MESSAGE, ai_generated=False)

        if not text:
            return PortfolioAnalysis(response=EMPTY_RESPONSE_MESSAGE, ai_generated=False)
        return PortfolioAnalysis(response=text, ai_generated=True)
