"""
Financial Advisor Agent

DESIGN DECISION: The advisor is an external collaborator.
The ledger never depends on it; it only reads a plain-text snapshot of
accounts and loans and streams back advice.

CRITICAL BOUNDARIES:
- CAN: Explain balances, loans and upcoming installments
- CAN: Suggest budgeting and repayment strategies
- CANNOT: Write anything to storage
- CANNOT: Invent figures that are not in the snapshot

The LLM is an ANALYST of the data it is given, not an ORACLE.
"""

from collections.abc import AsyncIterator
from datetime import date
from decimal import Decimal
from typing import Any, Optional

import google.generativeai as genai
import structlog

from money_manager.amortization.summary import next_unpaid_entry
from money_manager.config import GeminiSettings, get_settings
from money_manager.models.account import Account
from money_manager.models.loan import LoanWithSchedule

logger = structlog.get_logger(__name__)

SYSTEM_INSTRUCTION = """You are a senior financial analyst managing a household's money.

GOAL: Make every unit of capital work, close spending leaks, and secure long-term
financial safety for the client.

RULES:
- Treat personal finance like a business: income, expenses, net savings.
- Apply 50/30/20, zero-based budgeting and similar methods where useful.
- Be direct and precise. Flag dangerous patterns (spending above 80% of income,
  high-interest consumer debt, no emergency fund).
- Use ONLY the figures in the financial data. If something is not there, say so.
- Suggest concrete cuts and next month's allocation with numbers.

Answer in Markdown, short and to the point."""


class AdvisorError(Exception):
    """The advice model failed or returned nothing."""
    pass


def format_amount(amount: Decimal, separator: str = ".") -> str:
    """Whole-unit amount with digit grouping, e.g. 1.200.000."""
    grouped = f"{int(amount):,}"
    return grouped.replace(",", separator)


def format_financial_data(
    accounts: list[Account],
    loans: list[LoanWithSchedule],
    as_of: Optional[date] = None,
    currency_code: str = "VND",
    separator: str = ".",
) -> str:
    """
    Build the plain-text financial snapshot sent with every question.

    Args:
        accounts: All accounts; debt-only accounts show negative debt
        loans: Loans with schedules
        as_of: Snapshot date (defaults to today)
        currency_code: Currency label for amounts
        separator: Digit grouping separator

    Returns:
        Multi-section text: accounts, then loans
    """
    as_of = as_of or date.today()

    def money(amount: Decimal) -> str:
        sign = "-" if amount < 0 else ""
        return f"{sign}{format_amount(abs(amount), separator)} {currency_code}"

    lines = [f"CURRENT FINANCIAL DATA (as of {as_of.isoformat()})", ""]

    lines.append("[ACCOUNTS]")
    if not accounts:
        lines.append("(no accounts)")
    for account in accounts:
        lines.append(f"- {account.name} ({account.type.value}): {money(account.display_balance)}")
    lines.append("")

    lines.append("[LOANS]")
    if not loans:
        lines.append("(no loans)")
    for loan in loans:
        line = (
            f"- {loan.name}: remaining {money(loan.remaining_balance)}, "
            f"rate {loan.interest_rate}%"
        )
        entry = next_unpaid_entry(loan.schedule)
        if entry is not None:
            line += f", next payment {money(entry.total_payment)} on {entry.payment_date.isoformat()}"
        lines.append(line)

    return "\n".join(lines) + "\n"


class FinancialAdvisorAgent:
    """
    Streams financial advice from Gemini.

    RESPONSIBILITIES:
    - Send the question with the formatted snapshot
    - Yield the answer as it arrives

    BOUNDARIES:
    - NEVER persists data
    - NEVER answers without the snapshot
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model: Optional[Any] = None,
    ):
        """
        Args:
            settings: Gemini settings. Loaded from the environment if None.
            model: A ready GenerativeModel-like object; skips configuration
        """
        self._settings = settings
        self._model = model
        if self._model is None:
            self._settings = settings or get_settings().gemini
            self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            system_instruction=SYSTEM_INSTRUCTION,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    @staticmethod
    def build_prompt(question: str, context: str) -> str:
        return f"""{context}
QUESTION:
{question.strip()}"""

    async def stream_advice(self, question: str, context: str) -> AsyncIterator[str]:
        """
        Ask a question about the given snapshot.

        Args:
            question: The user's question
            context: Output of format_financial_data()

        Yields:
            Text chunks of the answer

        Raises:
            AdvisorError: If the question is empty or the model fails
        """
        if not question or not question.strip():
            raise AdvisorError("Question is empty")

        prompt = self.build_prompt(question, context)
        received = False

        try:
            response = await self._model.generate_content_async(prompt, stream=True)
            async for chunk in response:
                text = getattr(chunk, "text", "")
                if text:
                    received = True
                    yield text
        except AdvisorError:
            raise
        except Exception as e:
            logger.error("advice_generation_failed", error=str(e))
            raise AdvisorError(f"Advice generation failed: {e}") from e

        if not received:
            raise AdvisorError("The model returned an empty answer")

    async def ask(self, question: str, context: str) -> str:
        """Collect the streamed answer into one string."""
        parts = [chunk async for chunk in self.stream_advice(question, context)]
        return "".join(parts)
