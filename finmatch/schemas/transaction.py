"""Transaction schemas consumed by the engine."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel


class Transaction(BaseModel):
    """Normalized transaction handed to the engine by import or manual entry.

    The engine never mutates it; decisions are returned separately.
    """
    id: int
    account_id: int
    amount: Decimal  # signed: negative = debit, positive = credit
    posted_date: date
    description: str
    user_description: str | None = None
    existing_category_id: int | None = None
    user_id: int | None = None
    account_name: str | None = None
    account_type: str | None = None  # checking, savings, credit_card ...
    transaction_type: str | None = None
    reference_number: str | None = None
    notes: str | None = None
    bank_category: str | None = None  # category supplied by the bank feed
    import_source: str | None = None  # csv, ofx, akahu, manual
    is_transfer: bool = False
    is_reconciled: bool = False

    model_config = {"frozen": True, "from_attributes": True}

    @property
    def display_description(self) -> str:
        return self.user_description or self.description


class BankStatementLine(BaseModel):
    """A line reported by the bank, used as the external side of reconciliation."""
    id: str
    amount: Decimal
    posted_date: date
    description: str
    reference_number: str | None = None

    model_config = {"frozen": True}
