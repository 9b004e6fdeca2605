"""Category schemas."""

from pydantic import BaseModel, Field

from finmatch.config import settings


class Category(BaseModel):
    id: int
    name: str
    parent_id: int | None = None
    parent_name: str | None = None
    color: str | None = None
    description: str | None = None

    model_config = {"from_attributes": True}


class BankCategoryMapping(BaseModel):
    """Mapping from a bank-supplied category name to a user category."""
    bank_category: str
    category_id: int
    confidence: float = Field(default_factory=lambda: settings.bank_category_default_confidence)
    is_excluded: bool = False  # excluded mappings never produce a signal
