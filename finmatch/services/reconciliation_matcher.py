"""Reconciliation of recorded transactions against bank statement lines.

Both sides carry signed amounts in the same convention, so amounts are
compared as-is. A candidate is "exact" when amount and date are equal and
descriptions are highly similar, or when its confidence alone is high
enough; everything else is "fuzzy".
"""

import time

import structlog

from finmatch.schemas.matching import (
    MatchCandidate,
    MatchMethod,
    MatchSide,
    ReconciliationConfig,
    ReconciliationResult,
)
from finmatch.schemas.transaction import BankStatementLine, Transaction
from finmatch.services.date_window import pairs_within_window
from finmatch.services.match_scorer import WeightedMatchScorer
from finmatch.services.transfer_detector import deduplicate_candidates, sort_candidates, to_side

logger = structlog.get_logger()


class ReconciliationMatcher:
    def __init__(self, config: ReconciliationConfig | None = None) -> None:
        self.config = config or ReconciliationConfig.from_settings()
        self.scorer = WeightedMatchScorer(self.config.scoring)

    def find_matches(
        self, internal: list[Transaction], external: list[BankStatementLine]
    ) -> list[MatchCandidate]:
        """Every (internal, external) candidate above the minimum confidence, best first."""
        start_time = time.perf_counter()
        open_items = [t for t in internal if not t.is_reconciled]

        candidates = []
        for txn, line in pairs_within_window(
            open_items, external, lambda item: item.posted_date, self.config.date_tolerance_days
        ):
            candidate = self.score_pair(txn, line)
            if candidate is not None and candidate.confidence >= self.config.min_confidence:
                candidates.append(candidate)

        result = sort_candidates(deduplicate_candidates(candidates))
        logger.info(
            "reconciliation_candidates_found",
            internal=len(open_items),
            external=len(external),
            candidates=len(result),
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        return result

    def score_pair(self, txn: Transaction, line: BankStatementLine) -> MatchCandidate | None:
        external_side = MatchSide(
            id=line.id,
            amount=line.amount,
            posted_date=line.posted_date,
            description=line.description,
        )
        score = self.scorer.score(to_side(txn), external_side)
        if score.rejected:
            return None

        exact = (
            txn.amount == line.amount
            and txn.posted_date == line.posted_date
            and score.text_similarity >= self.config.exact_similarity
        ) or score.confidence >= self.config.exact_confidence
        return MatchCandidate(
            left_id=txn.id,
            right_id=line.id,
            confidence=score.confidence,
            matching_criteria=score.reasons,
            amount=line.amount,
            posted_date=line.posted_date,
            method=MatchMethod.EXACT if exact else MatchMethod.FUZZY,
            breakdown=score.breakdown,
        )

    @staticmethod
    def assign(candidates: list[MatchCandidate]) -> list[MatchCandidate]:
        """Greedy one-to-one assignment: exact matches first, then by confidence."""
        ordered = sorted(
            candidates,
            key=lambda c: (c.method != MatchMethod.EXACT, -c.confidence, str(c.left_id), str(c.right_id)),
        )
        used_left: set = set()
        used_right: set = set()
        assigned = []
        for candidate in ordered:
            if candidate.left_id in used_left or candidate.right_id in used_right:
                continue
            used_left.add(candidate.left_id)
            used_right.add(candidate.right_id)
            assigned.append(candidate)
        return assigned

    def reconcile(
        self, internal: list[Transaction], external: list[BankStatementLine]
    ) -> ReconciliationResult:
        matches = self.assign(self.find_matches(internal, external))
        matched_left = {m.left_id for m in matches}
        matched_right = {m.right_id for m in matches}
        result = ReconciliationResult(
            matches=matches,
            unmatched_internal=[t.id for t in internal if not t.is_reconciled and t.id not in matched_left],
            unmatched_external=[line.id for line in external if line.id not in matched_right],
        )
        logger.info(
            "reconciliation_completed",
            matched=len(matches),
            exact=sum(1 for m in matches if m.method == MatchMethod.EXACT),
            unmatched_internal=len(result.unmatched_internal),
            unmatched_external=len(result.unmatched_external),
        )
        return result
