"""Tests for the portfolio analyst and display formatting (no real API calls)."""

import pytest
from decimal import Decimal

from coinvest.agents import PortfolioAnalyst
from coinvest.agents.portfolio_analyst import (
    EMPTY_RESPONSE_MESSAGE,
    NO_API_KEY_MESSAGE,
    SERVICE_ERROR_MESSAGE,
)
from coinvest.audit import AuditLogger
from coinvest.formatting import format_money, format_percent
from coinvest.models.ledger import seed_snapshot


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    """Stands in for genai.GenerativeModel."""

    def __init__(self, text="Healthy portfolio.", error=None):
        self.text = text
        self.error = error
        self.prompts = []

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return FakeResponse(self.text)


class TestPortfolioAnalyst:
    """Tests for PortfolioAnalyst."""

    def test_prompt_contains_figures(self):
        """Test that the prompt carries aggregated figures only."""
        prompt = PortfolioAnalyst(model=FakeModel()).build_prompt(seed_snapshot())

        assert "Total Investment: 800000" in prompt
        assert "Project: Coffee Shop, Status: active" in prompt
        assert "Investment: 800000" in prompt
        assert "Do NOT invent any numbers" in prompt

    @pytest.mark.asyncio
    async def test_analyze(self):
        """Test a successful analysis."""
        model = FakeModel()
        analysis = await PortfolioAnalyst(model=model).analyze(seed_snapshot())

        assert analysis.ai_generated
        assert analysis.response == "Healthy portfolio."
        assert len(model.prompts) == 1

    @pytest.mark.asyncio
    async def test_service_error(self, audit_storage):
        """Test that a failing model gives a fixed message and is audited."""
        model = FakeModel(error=RuntimeError("quota"))
        analyst = PortfolioAnalyst(model=model, audit_logger=AuditLogger(audit_storage))
        analysis = await analyst.analyze(seed_snapshot())

        assert not analysis.ai_generated
        assert analysis.response == SERVICE_ERROR_MESSAGE
        assert audit_storage.types() == ["external_service_error"]
        assert audit_storage.events[0].details == {"service": "gemini"}

    @pytest.mark.asyncio
    async def test_empty_response(self):
        """Test a blank model answer."""
        analysis = await PortfolioAnalyst(model=FakeModel(text="  ")).analyze(seed_snapshot())
        assert analysis.response == EMPTY_RESPONSE_MESSAGE

    @pytest.mark.asyncio
    async def test_disabled_without_key(self):
        """Test that no model means no call and a fixed message."""
        analyst = PortfolioAnalyst(model=FakeModel())
        analyst._model = None

        analysis = await analyst.analyze(seed_snapshot())

        assert not analyst.is_enabled
        assert analysis.response == NO_API_KEY_MESSAGE


class TestFormatting:
    """Tests for display helpers."""

    @pytest.mark.parametrize("amount,expected", [
        (Decimal("1250000"), "฿1,250,000"),
        (Decimal("999.5"), "฿1,000"),
        (0, "฿0"),
        (Decimal("-2500"), "-฿2,500"),
    ])
    def test_format_money_thb(self, amount, expected):
        """Test baht formatting."""
        assert format_money(amount, "THB") == expected

    def test_format_money_other_currency(self):
        """Test that other currencies show their code."""
        assert format_money(1500, "USD") == "1,500 USD"

    def test_format_percent(self):
        """Test one decimal place."""
        assert format_percent(62.5) == "62.5%"
        assert format_percent(0) == "0.0%"
