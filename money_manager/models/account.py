"""
Account Models

Accounts are owned by the wider finance tracker, not by the loan ledger.
The ledger only needs enough of them to:
1. Check that a loan is funded from a bank or credit account
2. Check funds before paying an installment from an account
3. Describe balances to the advisor
4. Adjust a sibling balance in the same batch as a ledger write
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AccountType(str, Enum):
    """Kinds of accounts in the tracker."""
    BANK = "bank"
    CREDIT = "credit"
    WALLET_GROUP = "wallet_group"
    WALLET = "wallet"


# Only these can be the source of a loan
LOAN_SOURCE_TYPES = frozenset({AccountType.BANK, AccountType.CREDIT})


class Account(BaseModel):
    """A bank account, credit card, wallet group or wallet."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str
    name: str = Field(..., min_length=1, max_length=200)
    type: AccountType
    parent_id: Optional[str] = Field(
        default=None,
        description="Bank of a credit card, or group of a wallet"
    )
    balance: Optional[Decimal] = None
    current_debt: Optional[Decimal] = Field(
        default=None,
        description="Outstanding debt, credit accounts only"
    )

    @property
    def display_balance(self) -> Decimal:
        """Balance, or negative debt for accounts that only track debt."""
        if self.balance is not None:
            return self.balance
        return -(self.current_debt or Decimal("0"))

    @property
    def can_fund_loans(self) -> bool:
        return self.type in LOAN_SOURCE_TYPES


class AccountAdjustment(BaseModel):
    """
    A sibling update to an account's balance field.

    The caller decides the effect (e.g. paying an installment from a bank
    account); the ledger just writes it in the same atomic batch.
    """

    account_id: str = Field(..., min_length=1)
    field: str = Field(
        default="balance",
        pattern="^(balance|current_debt)$"
    )
    delta: Decimal
