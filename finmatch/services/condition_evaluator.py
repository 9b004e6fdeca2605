"""Rule condition evaluation.

Conditions are a closed (field, operator) pair dispatched by enum. Text
fields accept string operators; Amount accepts numeric operators and is
compared on its absolute value. Anything else, or any malformed value, is
a non-match: one bad condition must not abort a batch.
"""

import re
from decimal import Decimal, InvalidOperation
from functools import lru_cache

import structlog

from finmatch.schemas.rule import ConditionField, ConditionOperator, RuleCondition, RuleLogic
from finmatch.schemas.transaction import Transaction

logger = structlog.get_logger()

TEXT_FIELDS = {
    ConditionField.DESCRIPTION: "description",
    ConditionField.USER_DESCRIPTION: "user_description",
    ConditionField.ACCOUNT_TYPE: "account_type",
    ConditionField.ACCOUNT_NAME: "account_name",
    ConditionField.TRANSACTION_TYPE: "transaction_type",
    ConditionField.REFERENCE_NUMBER: "reference_number",
    ConditionField.NOTES: "notes",
}

TEXT_OPERATORS = frozenset({
    ConditionOperator.EQUALS,
    ConditionOperator.NOT_EQUALS,
    ConditionOperator.CONTAINS,
    ConditionOperator.NOT_CONTAINS,
    ConditionOperator.STARTS_WITH,
    ConditionOperator.ENDS_WITH,
    ConditionOperator.REGEX,
})

NUMERIC_OPERATORS = frozenset({
    ConditionOperator.EQUALS,
    ConditionOperator.NOT_EQUALS,
    ConditionOperator.GREATER_THAN,
    ConditionOperator.LESS_THAN,
    ConditionOperator.GREATER_THAN_OR_EQUAL,
    ConditionOperator.LESS_THAN_OR_EQUAL,
    ConditionOperator.BETWEEN,
})


@lru_cache(maxsize=512)
def compile_pattern(pattern: str, case_sensitive: bool) -> re.Pattern | None:
    """Compile a user regex once; None when it is invalid."""
    try:
        return re.compile(pattern, 0 if case_sensitive else re.IGNORECASE)
    except re.error:
        logger.debug("invalid_rule_regex", pattern=pattern)
        return None


def match_text(value: str, pattern: str, operator: ConditionOperator, case_sensitive: bool = False) -> bool:
    """Apply a string operator. Shared with legacy single-pattern rules."""
    if operator == ConditionOperator.REGEX:
        compiled = compile_pattern(pattern, case_sensitive)
        return bool(compiled and compiled.search(value))

    if not case_sensitive:
        value = value.casefold()
        pattern = pattern.casefold()

    if operator == ConditionOperator.EQUALS:
        return value == pattern
    if operator == ConditionOperator.NOT_EQUALS:
        return value != pattern
    if operator == ConditionOperator.CONTAINS:
        return pattern in value
    if operator == ConditionOperator.NOT_CONTAINS:
        return pattern not in value
    if operator == ConditionOperator.STARTS_WITH:
        return value.startswith(pattern)
    if operator == ConditionOperator.ENDS_WITH:
        return value.endswith(pattern)
    return False


def _parse_decimal(raw: str) -> Decimal | None:
    try:
        value = Decimal(raw.strip().replace("$", "").replace(" ", ""))
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


def match_amount(amount: Decimal, raw_value: str, operator: ConditionOperator) -> bool:
    amount = abs(amount)

    if operator == ConditionOperator.BETWEEN:
        bounds = raw_value.replace("..", ",").split(",")
        if len(bounds) != 2:
            return False
        low, high = _parse_decimal(bounds[0]), _parse_decimal(bounds[1])
        if low is None or high is None:
            return False
        return min(low, high) <= amount <= max(low, high)

    target = _parse_decimal(raw_value)
    if target is None:
        return False
    if operator == ConditionOperator.EQUALS:
        return amount == target
    if operator == ConditionOperator.NOT_EQUALS:
        return amount != target
    if operator == ConditionOperator.GREATER_THAN:
        return amount > target
    if operator == ConditionOperator.LESS_THAN:
        return amount < target
    if operator == ConditionOperator.GREATER_THAN_OR_EQUAL:
        return amount >= target
    if operator == ConditionOperator.LESS_THAN_OR_EQUAL:
        return amount <= target
    return False


class ConditionEvaluator:
    """Evaluate typed rule conditions against a transaction."""

    def evaluate(self, condition: RuleCondition, transaction: Transaction) -> bool:
        if not condition.value:
            logger.debug("condition_malformed", field=condition.field, reason="empty value")
            return False

        if condition.field == ConditionField.AMOUNT:
            if condition.operator not in NUMERIC_OPERATORS:
                logger.debug("condition_unsupported", field=condition.field, operator=condition.operator)
                return False
            return match_amount(transaction.amount, condition.value, condition.operator)

        attribute = TEXT_FIELDS.get(condition.field)
        if attribute is None or condition.operator not in TEXT_OPERATORS:
            logger.debug("condition_unsupported", field=condition.field, operator=condition.operator)
            return False

        value = getattr(transaction, attribute)
        if not value:
            return False
        return match_text(value, condition.value, condition.operator, condition.case_sensitive)

    def evaluate_all(
        self,
        conditions: list[RuleCondition],
        logic: RuleLogic,
        transaction: Transaction,
    ) -> bool:
        """ALL/ANY reduction. An empty list matches nothing."""
        if not conditions:
            return False
        results = (self.evaluate(c, transaction) for c in conditions)
        if logic == RuleLogic.ANY:
            return any(results)
        return all(results)
