"""Categorization rule engine.

Finds every active rule matching a transaction and scores it. Rules come
in two shapes that coexist:
  - condition rules: typed conditions reduced with ALL/ANY
  - legacy rules: a single pattern + match type on the description
"""

import structlog

from finmatch.config import settings
from finmatch.schemas.rule import ConditionOperator, Rule, RuleMatch, RuleType
from finmatch.schemas.transaction import Transaction
from finmatch.services.condition_evaluator import ConditionEvaluator, match_text

logger = structlog.get_logger()

_LEGACY_OPERATORS = {
    RuleType.CONTAINS: ConditionOperator.CONTAINS,
    RuleType.STARTS_WITH: ConditionOperator.STARTS_WITH,
    RuleType.ENDS_WITH: ConditionOperator.ENDS_WITH,
    RuleType.EQUALS: ConditionOperator.EQUALS,
    RuleType.REGEX: ConditionOperator.REGEX,
}


class RuleEngine:
    def __init__(
        self,
        evaluator: ConditionEvaluator | None = None,
        default_confidence: float | None = None,
    ) -> None:
        self.evaluator = evaluator or ConditionEvaluator()
        self.default_confidence = (
            default_confidence if default_confidence is not None else settings.rules_default_confidence
        )

    # ── Matching ───────────────────────────────────────

    def find_matches(self, transaction: Transaction, rules: list[Rule]) -> list[RuleMatch]:
        """All matching rules, ordered by priority, then confidence desc, then rule id."""
        matches = []
        for rule in rules:
            if not self.matches(rule, transaction):
                continue
            matches.append(RuleMatch(
                rule_id=rule.id,
                rule_name=rule.name or rule.pattern,
                category_id=rule.category_id,
                confidence=self.confidence_for(rule, transaction),
                priority=rule.priority,
                reason=self._describe(rule),
            ))
        matches.sort(key=lambda m: (m.priority, -m.confidence, m.rule_id))
        return matches

    def best_match(self, transaction: Transaction, rules: list[Rule]) -> RuleMatch | None:
        """First match wins."""
        matches = self.find_matches(transaction, rules)
        return matches[0] if matches else None

    def matches(self, rule: Rule, transaction: Transaction) -> bool:
        if not rule.is_active:
            return False

        amount = abs(transaction.amount)
        if rule.min_amount is not None and amount < rule.min_amount:
            return False
        if rule.max_amount is not None and amount > rule.max_amount:
            return False
        if rule.account_types:
            allowed = {t.strip().lower() for t in rule.account_types}
            if (transaction.account_type or "").lower() not in allowed:
                return False

        if rule.conditions:
            return self.evaluator.evaluate_all(rule.conditions, rule.logic, transaction)
        return self._matches_pattern(rule, transaction.description)

    @staticmethod
    def _matches_pattern(rule: Rule, description: str) -> bool:
        """Legacy single-criterion mode."""
        if not rule.pattern or not description:
            return False
        return match_text(description, rule.pattern, _LEGACY_OPERATORS[rule.type], rule.is_case_sensitive)

    # ── Confidence ─────────────────────────────────────

    def confidence_for(self, rule: Rule, transaction: Transaction) -> float:
        """Explicit rule confidence, or one derived from how specific the match is.

        Either way it is scaled by the rule's historical accuracy.
        """
        if rule.confidence_score is not None:
            return round(max(0.0, min(1.0, rule.confidence_score * rule.accuracy_rate)), 4)

        confidence = self.default_confidence * rule.accuracy_rate
        if not rule.conditions and rule.pattern:
            description = transaction.description.casefold()
            pattern = rule.pattern.casefold()
            if rule.type == RuleType.EQUALS and description == pattern:
                confidence *= 1.2
            elif rule.type == RuleType.CONTAINS and description == pattern:
                confidence = 1.0
            elif len(pattern) >= 4 and description:
                ratio = len(pattern) / len(description)
                if ratio >= 0.6:
                    confidence *= 1.15
                elif ratio >= 0.4:
                    confidence *= 1.1
            if len(pattern) < 3:
                confidence *= 0.8
        return round(max(0.1, min(1.0, confidence)), 4)

    @staticmethod
    def _describe(rule: Rule) -> str:
        if rule.conditions:
            return f"Matched {len(rule.conditions)} condition(s) ({rule.logic.value})"
        return f"Description {rule.type.value.replace('_', ' ')} '{rule.pattern}'"
