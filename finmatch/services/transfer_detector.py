"""Transfer detection between a user's own accounts.

A transfer shows up as a debit on one account and a credit of (almost) the
same amount on another, a few days apart at most. Candidate pairs are
scored with the weighted match scorer using transfer weights.
"""

import time

import structlog

from finmatch.schemas.matching import MatchCandidate, MatchSide, TransferDetectionConfig
from finmatch.schemas.transaction import Transaction
from finmatch.services.date_window import pairs_within_window
from finmatch.services.match_scorer import WeightedMatchScorer

logger = structlog.get_logger()


def to_side(transaction: Transaction) -> MatchSide:
    return MatchSide(
        id=transaction.id,
        amount=transaction.amount,
        posted_date=transaction.posted_date,
        description=transaction.display_description,
        account_id=transaction.account_id,
        account_name=transaction.account_name,
    )


def deduplicate_candidates(candidates: list[MatchCandidate]) -> list[MatchCandidate]:
    """Keep one candidate per unordered pair: the highest-confidence one."""
    best: dict[frozenset, MatchCandidate] = {}
    for candidate in candidates:
        current = best.get(candidate.pair_key)
        if current is None or candidate.confidence > current.confidence:
            best[candidate.pair_key] = candidate
    return list(best.values())


def sort_candidates(candidates: list[MatchCandidate]) -> list[MatchCandidate]:
    return sorted(
        candidates,
        key=lambda c: (-c.confidence, c.posted_date, str(c.left_id), str(c.right_id)),
    )


class TransferDetector:
    def __init__(self, config: TransferDetectionConfig | None = None) -> None:
        self.config = config or TransferDetectionConfig.from_settings()
        self.scorer = WeightedMatchScorer(self.config.scoring)

    def find_candidates(self, transactions: list[Transaction]) -> list[MatchCandidate]:
        start_time = time.perf_counter()
        eligible = [t for t in transactions if not t.is_transfer and t.amount != 0]
        debits = [t for t in eligible if t.amount < 0]
        credits = [t for t in eligible if t.amount > 0]

        candidates = []
        evaluated = 0
        for debit, credit in pairs_within_window(
            debits, credits, lambda t: t.posted_date, self.config.date_tolerance_days
        ):
            if debit.account_id == credit.account_id:
                continue
            evaluated += 1
            candidate = self.score_pair(debit, credit)
            if candidate is not None and candidate.confidence >= self.config.min_confidence:
                candidates.append(candidate)

        result = sort_candidates(deduplicate_candidates(candidates))
        logger.info(
            "transfer_candidates_found",
            transactions=len(transactions),
            pairs_evaluated=evaluated,
            candidates=len(result),
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        return result

    def score_pair(self, debit: Transaction, credit: Transaction) -> MatchCandidate | None:
        score = self.scorer.score(to_side(debit), to_side(credit))
        if score.rejected:
            return None
        return MatchCandidate(
            left_id=debit.id,
            right_id=credit.id,
            confidence=score.confidence,
            matching_criteria=score.reasons,
            amount=abs(debit.amount),
            posted_date=debit.posted_date,
            breakdown=score.breakdown,
        )
