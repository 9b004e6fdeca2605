"""Categorization rule schemas."""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class RuleType(str, Enum):
    """Legacy single-pattern match mode."""
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    EQUALS = "equals"
    REGEX = "regex"


class RuleLogic(str, Enum):
    ALL = "all"
    ANY = "any"


class ConditionField(str, Enum):
    DESCRIPTION = "description"
    USER_DESCRIPTION = "user_description"
    AMOUNT = "amount"
    ACCOUNT_TYPE = "account_type"
    ACCOUNT_NAME = "account_name"
    TRANSACTION_TYPE = "transaction_type"
    REFERENCE_NUMBER = "reference_number"
    NOTES = "notes"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    BETWEEN = "between"  # value = "min,max", inclusive
    REGEX = "regex"


class RuleCondition(BaseModel):
    field: ConditionField
    operator: ConditionOperator
    value: str
    case_sensitive: bool = False
    order: int = 0  # display order only


class Rule(BaseModel):
    """A user-authored (or accepted AI-suggested) categorization rule.

    ``match_count`` and ``correction_count`` are the only fields the engine
    updates; everything else is owned by rule CRUD.
    """
    id: int
    user_id: int
    category_id: int
    name: str = ""
    pattern: str = ""
    type: RuleType = RuleType.CONTAINS
    is_case_sensitive: bool = False
    conditions: list[RuleCondition] = Field(default_factory=list)
    logic: RuleLogic = RuleLogic.ALL
    priority: int = 0  # lower evaluates first
    confidence_score: float | None = None  # None = derived from the match
    is_active: bool = True
    min_amount: Decimal | None = None  # compared against |amount|
    max_amount: Decimal | None = None
    account_types: list[str] | None = None
    match_count: int = 0
    correction_count: int = 0
    is_ai_generated: bool = False

    model_config = {"from_attributes": True}

    @property
    def accuracy_rate(self) -> float:
        total = self.match_count + self.correction_count
        if total == 0:
            return 1.0
        return self.match_count / total


class RuleMatch(BaseModel):
    """One rule that matched a transaction, with its computed confidence."""
    rule_id: int
    rule_name: str
    category_id: int
    confidence: float
    priority: int
    reason: str = ""
