"""Weighted match scorer shared by transfer detection and reconciliation.

A pair of transaction-like sides is run through a fixed, ordered list of
criteria. The amount criterion is a hard gate: when the relative
difference exceeds the tolerance the pair scores 0 and nothing else is
evaluated. Every other criterion adds a weighted contribution; the sum is
capped to [0, 1].
"""

import re
from decimal import Decimal
from functools import lru_cache

import structlog

from finmatch.schemas.matching import CriterionResult, MatchScore, MatchScoringConfig, MatchSide
from finmatch.services import text_similarity

logger = structlog.get_logger()


@lru_cache(maxsize=256)
def _word_pattern(word: str) -> re.Pattern:
    return re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE)


class WeightedMatchScorer:
    """Score a (left, right) pair against a ``MatchScoringConfig``."""

    def __init__(self, config: MatchScoringConfig | None = None) -> None:
        self.config = config or MatchScoringConfig()
        self._criteria = [
            self._amount,
            self._date,
            self._text,
            self._cross_reference,
            self._round_amount,
        ]

    def score(self, left: MatchSide, right: MatchSide) -> MatchScore:
        reasons: list[str] = []
        breakdown: dict[str, float] = {}
        total = 0.0

        for criterion in self._criteria:
            result = criterion(left, right)
            if result.blocking:
                return MatchScore(
                    confidence=0.0,
                    reasons=result.reasons,
                    breakdown={result.name: 0.0},
                    rejected=True,
                )
            if result.contribution > 0:
                breakdown[result.name] = round(result.contribution, 4)
                total += result.contribution
            reasons.extend(result.reasons)

        return MatchScore(
            confidence=round(min(1.0, max(0.0, total)), 4),
            reasons=reasons,
            breakdown=breakdown,
            text_similarity=text_similarity.similarity(left.description, right.description),
        )

    # ── Criteria ───────────────────────────────────────

    def _amounts(self, left: MatchSide, right: MatchSide) -> tuple[Decimal, Decimal]:
        if self.config.compare_absolute_amounts:
            return abs(left.amount), abs(right.amount)
        return left.amount, right.amount

    def _amount(self, left: MatchSide, right: MatchSide) -> CriterionResult:
        a, b = self._amounts(left, right)
        largest = max(abs(a), abs(b))
        relative = float(abs(a - b) / largest) if largest else 0.0

        if relative > self.config.amount_tolerance:
            return CriterionResult(
                name="amount",
                blocking=True,
                reasons=[f"Amount difference {relative:.2%} exceeds {self.config.amount_tolerance:.2%}"],
            )
        if relative == 0:
            reason = "Exact amount match"
        else:
            reason = f"Amount match within {relative:.2%}"
        return CriterionResult(
            name="amount",
            contribution=self.config.amount_weight * (1 - relative),
            reasons=[reason],
        )

    def _date(self, left: MatchSide, right: MatchSide) -> CriterionResult:
        days = abs((left.posted_date - right.posted_date).days)
        for max_days in sorted(self.config.date_weights):
            if days <= max_days:
                reason = "Same day transaction" if days == 0 else f"Within {days} day(s)"
                return CriterionResult(
                    name="date",
                    contribution=self.config.date_weights[max_days],
                    reasons=[reason],
                )
        return CriterionResult(name="date")

    def _text(self, left: MatchSide, right: MatchSide) -> CriterionResult:
        reasons = []
        sim = text_similarity.similarity(left.description, right.description)
        contribution = self.config.text_weight * sim
        if sim >= text_similarity.HIGH_SIMILARITY_THRESHOLD:
            reasons.append(f"Highly similar descriptions ({sim:.2f})")
        elif sim >= text_similarity.SIMILAR_THRESHOLD:
            reasons.append(f"Similar descriptions ({sim:.2f})")

        all_text = f"{left.description} {right.description}"
        for keyword in self.config.keywords:
            if _word_pattern(keyword).search(all_text):
                contribution += self.config.keyword_weight
                reasons.append(f"Contains keyword: {keyword}")
        if self.config.from_to_pattern and _word_pattern("FROM").search(all_text) and _word_pattern("TO").search(all_text):
            contribution += self.config.keyword_weight
            reasons.append("Contains FROM/TO pattern")

        return CriterionResult(
            name="text",
            contribution=min(contribution, self.config.text_weight),
            reasons=reasons,
        )

    def _cross_reference(self, left: MatchSide, right: MatchSide) -> CriterionResult:
        weight = self.config.cross_reference_weight
        if weight <= 0:
            return CriterionResult(name="cross_reference")

        contribution = 0.0
        reasons = []
        if left.account_name and left.account_name.casefold() in right.description.casefold():
            contribution += weight
            reasons.append(f"Description mentions account: {left.account_name}")
        if right.account_name and right.account_name.casefold() in left.description.casefold():
            contribution += weight
            reasons.append(f"Description mentions account: {right.account_name}")
        return CriterionResult(name="cross_reference", contribution=contribution, reasons=reasons)

    def _round_amount(self, left: MatchSide, right: MatchSide) -> CriterionResult:
        weight = self.config.round_amount_weight
        if weight <= 0 or not is_round_amount(left.amount):
            return CriterionResult(name="round_amount")
        return CriterionResult(name="round_amount", contribution=weight, reasons=["Round amount"])


def is_round_amount(amount: Decimal) -> bool:
    """Whole-dollar amounts; every multiple of 25 is one too."""
    value = abs(amount)
    return value > 0 and value % 1 == 0
