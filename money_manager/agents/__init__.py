"""AI Agents package."""

from money_manager.agents.advisor import (
    AdvisorError,
    FinancialAdvisorAgent,
    format_amount,
    format_financial_data,
)

__all__ = [
    "AdvisorError",
    "FinancialAdvisorAgent",
    "format_amount",
    "format_financial_data",
]
