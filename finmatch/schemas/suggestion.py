"""Rule suggestion schemas."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from finmatch.schemas.rule import RuleType


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class SuggestionSample(BaseModel):
    transaction_id: int
    description: str
    amount: Decimal
    posted_date: date
    category_id: int | None = None


class RuleSuggestion(BaseModel):
    id: int | None = None
    user_id: int
    name: str
    pattern: str
    type: RuleType = RuleType.CONTAINS
    suggested_category_id: int
    confidence_score: float
    match_count: int
    samples: list[SuggestionSample] = Field(default_factory=list)  # most recent first
    transaction_ids: list[int] = Field(default_factory=list)
    status: SuggestionStatus = SuggestionStatus.PENDING
    created_at: datetime | None = None
    processed_at: datetime | None = None
    created_rule_id: int | None = None
