"""Rule suggestion mining.

Looks at a user's categorized history and proposes "Contains" rules for
description patterns that keep landing in the same category:

1. Extract a signature from each description: its leading keywords, after
   dropping stop words, short tokens and store numbers.
2. Group transactions by signature; small groups are ignored.
3. For each group, the dominant category must be consistent enough.
4. Confidence blends consistency, intra-group text similarity and how
   much of the history the group covers.

Mining is a pure function of its inputs: same history, rules and
exclusions give the same suggestions in the same order.
"""

import re
from collections import defaultdict

import structlog

from finmatch.config import settings
from finmatch.schemas.rule import Rule, RuleType
from finmatch.schemas.suggestion import RuleSuggestion, SuggestionSample
from finmatch.schemas.transaction import Transaction
from finmatch.services.rule_engine import RuleEngine
from finmatch.services.text_similarity import mean_pairwise_similarity

logger = structlog.get_logger()

STOP_WORDS = frozenset({
    "THE", "AND", "OR", "BUT", "IN", "ON", "AT", "TO", "FOR", "OF", "WITH", "BY",
    "PURCHASE", "PAYMENT", "TRANSACTION", "DEBIT", "CREDIT", "CARD", "ACCOUNT",
    "DATE", "TIME", "LOCATION", "STORE", "SHOP", "INC", "LLC", "LTD", "CO", "CORP",
})

_TOKEN = re.compile(r"[A-Z0-9][A-Z0-9'&]*")

MIN_CONSISTENCY = 0.6
OVERLAP_CUTOFF = 0.7
# share of the history at which a group's size stops adding confidence
COVERAGE_SATURATION = 0.05


def extract_keywords(description: str) -> list[str]:
    """Meaningful tokens of a description, in order."""
    keywords = []
    for token in _TOKEN.findall(description.upper()):
        token = token.strip("'&")
        if len(token) <= 3 or token in STOP_WORDS:
            continue
        digits = sum(ch.isdigit() for ch in token)
        if digits * 2 >= len(token):
            continue
        keywords.append(token)
    return keywords


def signature(description: str, tokens: int = 1) -> str | None:
    keywords = extract_keywords(description)
    if not keywords:
        return None
    return " ".join(keywords[:tokens])


class RuleSuggestionMiner:
    def __init__(
        self,
        engine: RuleEngine | None = None,
        min_match_count: int | None = None,
        min_confidence: float | None = None,
        min_history: int | None = None,
        sample_size: int | None = None,
        coverage_cutoff: float | None = None,
        signature_tokens: int = 1,
    ) -> None:
        self.engine = engine or RuleEngine()
        self.min_match_count = (
            min_match_count if min_match_count is not None else settings.suggestion_min_match_count
        )
        self.min_confidence = min_confidence if min_confidence is not None else settings.suggestion_min_confidence
        self.min_history = min_history if min_history is not None else settings.suggestion_min_history
        self.sample_size = sample_size if sample_size is not None else settings.suggestion_sample_size
        self.coverage_cutoff = (
            coverage_cutoff if coverage_cutoff is not None else settings.suggestion_rule_coverage_cutoff
        )
        self.signature_tokens = signature_tokens

    def mine(
        self,
        user_id: int,
        transactions: list[Transaction],
        existing_rules: list[Rule] | None = None,
        excluded_patterns: set[str] | None = None,
        excluded_transaction_sets: list[set[int]] | None = None,
        min_confidence: float | None = None,
    ) -> list[RuleSuggestion]:
        """Return new suggestions, best first."""
        min_confidence = self.min_confidence if min_confidence is None else min_confidence
        history = [t for t in transactions if t.existing_category_id is not None]
        if len(history) < self.min_history:
            logger.info("suggestion_mining_skipped", user_id=user_id, history=len(history), required=self.min_history)
            return []

        excluded = {p.upper() for p in excluded_patterns or set()}
        groups: dict[str, list[Transaction]] = defaultdict(list)
        for txn in history:
            key = signature(txn.display_description, self.signature_tokens)
            if key and key not in excluded:
                groups[key].append(txn)

        suggestions = []
        for pattern, group in groups.items():
            if len(group) < self.min_match_count:
                continue
            suggestion = self._build(user_id, pattern, group, len(history))
            if suggestion is None or suggestion.confidence_score < min_confidence:
                continue
            if self._covered_by_rules(group, existing_rules or []):
                logger.debug("suggestion_covered_by_rules", pattern=pattern)
                continue
            if self._overlaps(set(suggestion.transaction_ids), excluded_transaction_sets or []):
                logger.debug("suggestion_overlaps_existing", pattern=pattern)
                continue
            suggestions.append(suggestion)

        suggestions.sort(key=lambda s: (-s.confidence_score, -s.match_count, s.pattern))
        logger.info(
            "suggestions_mined",
            user_id=user_id,
            history=len(history),
            groups=len(groups),
            suggestions=len(suggestions),
        )
        return suggestions

    def _build(
        self, user_id: int, pattern: str, group: list[Transaction], total: int
    ) -> RuleSuggestion | None:
        counts: dict[int, int] = defaultdict(int)
        for txn in group:
            counts[txn.existing_category_id] += 1
        # most frequent; lowest id on ties
        category_id = max(counts, key=lambda c: (counts[c], -c))
        consistency = counts[category_id] / len(group)
        if consistency < MIN_CONSISTENCY:
            return None

        similarity = mean_pairwise_similarity([t.display_description for t in group])
        size_score = min(1.0, (len(group) / total) / COVERAGE_SATURATION)
        confidence = consistency * (0.5 + 0.3 * similarity + 0.2 * size_score)

        recent = sorted(group, key=lambda t: (t.posted_date, t.id), reverse=True)
        return RuleSuggestion(
            user_id=user_id,
            name=f"{pattern.title()} Transactions",
            pattern=pattern,
            type=RuleType.CONTAINS,
            suggested_category_id=category_id,
            confidence_score=round(confidence, 4),
            match_count=len(group),
            samples=[
                SuggestionSample(
                    transaction_id=t.id,
                    description=t.display_description,
                    amount=t.amount,
                    posted_date=t.posted_date,
                    category_id=t.existing_category_id,
                )
                for t in recent[: self.sample_size]
            ],
            transaction_ids=sorted(t.id for t in group),
        )

    def _covered_by_rules(self, group: list[Transaction], rules: list[Rule]) -> bool:
        if not rules:
            return False
        covered = sum(1 for t in group if self.engine.best_match(t, rules) is not None)
        return covered / len(group) >= self.coverage_cutoff

    @staticmethod
    def _overlaps(ids: set[int], others: list[set[int]]) -> bool:
        for other in others:
            if not other:
                continue
            if len(ids & other) / min(len(ids), len(other)) > OVERLAP_CUTOFF:
                return True
        return False
