"""Review workflow for classification candidates.

Candidates are held classifications below the auto-apply threshold. The
user accepts, rejects or overrides them; overriding a rule-sourced
candidate feeds the rule's correction counter.
"""

from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from finmatch.config import settings
from finmatch.core.exceptions import AlreadyProcessedError, ForbiddenError, NotFoundError, ValidationError
from finmatch.repositories.base import CandidateStore, CorrectionSink
from finmatch.schemas.classification import (
    CandidateStatus,
    ClassificationCandidate,
    ClassificationOutcome,
    OutcomeState,
)

logger = structlog.get_logger()


class CandidateService:
    def __init__(
        self,
        store: CandidateStore,
        correction_sink: CorrectionSink | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.correction_sink = correction_sink
        self._now = clock or (lambda: datetime.now(timezone.utc))

    async def create_from_outcomes(
        self, outcomes: list[ClassificationOutcome], user_id: int
    ) -> list[ClassificationCandidate]:
        """Persist the pending candidates of a pipeline run."""
        candidates = [
            ClassificationCandidate(
                user_id=user_id,
                transaction_id=o.transaction_id,
                category_id=o.category_id,
                confidence=o.confidence,
                source=o.source,
                reason=o.reason,
                rule_id=o.rule_id,
            )
            for o in outcomes
            if o.state == OutcomeState.CANDIDATE
        ]
        if not candidates:
            return []
        saved = await self.store.add_candidates(candidates)
        logger.info("candidates_created", user_id=user_id, count=len(saved))
        return saved

    async def list_pending(self, user_id: int) -> list[ClassificationCandidate]:
        pending = await self.store.list_pending(user_id)
        return sorted(pending, key=lambda c: (-c.confidence, c.id))

    async def accept(
        self, candidate_id: int, user_id: int, applied_by: str = "user"
    ) -> ClassificationCandidate:
        candidate = await self._get_pending(candidate_id, user_id)
        candidate = candidate.model_copy(update={
            "status": CandidateStatus.ACCEPTED,
            "processed_at": self._now(),
            "processed_by": applied_by,
            "applied_category_id": candidate.category_id,
        })
        await self.store.update_candidate(candidate)
        if candidate.rule_id is not None and self.correction_sink is not None:
            await self.correction_sink.record_match(candidate.rule_id, candidate.transaction_id)
        logger.info("candidate_accepted", candidate_id=candidate_id, transaction_id=candidate.transaction_id)
        return candidate

    async def reject(
        self, candidate_id: int, user_id: int, rejected_by: str = "user"
    ) -> ClassificationCandidate:
        candidate = await self._get_pending(candidate_id, user_id)
        candidate = candidate.model_copy(update={
            "status": CandidateStatus.REJECTED,
            "processed_at": self._now(),
            "processed_by": rejected_by,
        })
        await self.store.update_candidate(candidate)
        logger.info("candidate_rejected", candidate_id=candidate_id, transaction_id=candidate.transaction_id)
        return candidate

    async def override(
        self, candidate_id: int, user_id: int, new_category_id: int
    ) -> ClassificationCandidate:
        """Reject the proposal in favour of a user-chosen category."""
        if new_category_id <= 0:
            raise ValidationError(f"Invalid category id: {new_category_id}")
        candidate = await self._get_pending(candidate_id, user_id)
        if new_category_id == candidate.category_id:
            return await self.accept(candidate_id, user_id)

        candidate = candidate.model_copy(update={
            "status": CandidateStatus.REJECTED,
            "processed_at": self._now(),
            "processed_by": "user",
            "applied_category_id": new_category_id,
        })
        await self.store.update_candidate(candidate)
        if candidate.rule_id is not None and self.correction_sink is not None:
            await self.correction_sink.record_correction(
                candidate.rule_id, candidate.transaction_id, new_category_id
            )
        logger.info(
            "candidate_overridden",
            candidate_id=candidate_id,
            rule_id=candidate.rule_id,
            new_category_id=new_category_id,
        )
        return candidate

    async def auto_apply_high_confidence(
        self, user_id: int, threshold: float | None = None
    ) -> list[ClassificationCandidate]:
        """Accept every pending candidate at or above the threshold."""
        threshold = threshold if threshold is not None else settings.auto_apply_threshold
        applied = []
        for candidate in await self.list_pending(user_id):
            if candidate.can_auto_apply(threshold):
                applied.append(await self.accept(candidate.id, user_id, applied_by="auto"))
        logger.info("candidates_auto_applied", user_id=user_id, count=len(applied), threshold=threshold)
        return applied

    async def _get_pending(self, candidate_id: int, user_id: int) -> ClassificationCandidate:
        candidate = await self.store.get_candidate(candidate_id)
        if candidate is None:
            raise NotFoundError("ClassificationCandidate")
        if candidate.user_id != user_id:
            raise ForbiddenError()
        if candidate.status != CandidateStatus.PENDING:
            raise AlreadyProcessedError("ClassificationCandidate")
        return candidate
