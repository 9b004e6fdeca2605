"""Rule suggestion lifecycle: generate, accept, reject.

Generated suggestions are stored as pending. While a suggestion is
pending, or for a cooldown after it was rejected, its pattern is excluded
from mining, so re-running generation on unchanged data returns the same
set instead of piling up duplicates.
"""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import structlog

from finmatch.config import settings
from finmatch.core.exceptions import AlreadyProcessedError, ForbiddenError, NotFoundError, ValidationError
from finmatch.repositories.base import RuleStore, SuggestionStore, TransactionHistorySource
from finmatch.schemas.rule import Rule
from finmatch.schemas.suggestion import RuleSuggestion, SuggestionStatus
from finmatch.services.rule_suggestion_miner import RuleSuggestionMiner

logger = structlog.get_logger()


class RuleSuggestionService:
    def __init__(
        self,
        history: TransactionHistorySource,
        store: SuggestionStore,
        rules: RuleStore,
        miner: RuleSuggestionMiner | None = None,
        cooldown_days: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.history = history
        self.store = store
        self.rules = rules
        self.miner = miner or RuleSuggestionMiner()
        self.cooldown = timedelta(days=cooldown_days if cooldown_days is not None else settings.suggestion_cooldown_days)
        self._now = clock or (lambda: datetime.now(timezone.utc))

    async def generate(
        self, user_id: int, limit: int = 10, min_confidence: float | None = None
    ) -> list[RuleSuggestion]:
        """Mine new suggestions and return the pending ones, best first."""
        min_confidence = min_confidence if min_confidence is not None else settings.suggestion_min_confidence

        transactions = await self.history.get_categorized_transactions(user_id)
        existing = await self.store.list_suggestions(user_id)
        active_rules = await self.rules.get_active_rules(user_id)

        cooldown_start = self._now() - self.cooldown
        pending = [s for s in existing if s.status == SuggestionStatus.PENDING]
        recently_rejected = [
            s for s in existing
            if s.status == SuggestionStatus.REJECTED and s.processed_at and s.processed_at >= cooldown_start
        ]

        mined = self.miner.mine(
            user_id,
            transactions,
            existing_rules=active_rules,
            excluded_patterns={s.pattern for s in pending + recently_rejected},
            excluded_transaction_sets=[set(s.transaction_ids) for s in pending],
            min_confidence=min_confidence,
        )
        created = await self.store.add_suggestions(mined) if mined else []

        result = [s for s in pending + created if s.confidence_score >= min_confidence]
        result.sort(key=lambda s: (-s.confidence_score, -s.match_count, s.pattern))

        logger.info(
            "rule_suggestions_generated",
            user_id=user_id,
            created=len(created),
            pending=len(pending),
            returned=min(len(result), limit),
        )
        return result[:limit]

    async def accept(
        self,
        suggestion_id: int,
        user_id: int,
        category_id: int | None = None,
        name: str | None = None,
        priority: int = 0,
    ) -> Rule:
        """Turn a pending suggestion into an active rule."""
        if category_id is not None and category_id <= 0:
            raise ValidationError(f"Invalid category id: {category_id}")
        suggestion = await self._get_pending(suggestion_id, user_id)

        rule = Rule(
            id=await self.rules.next_rule_id(),
            user_id=user_id,
            category_id=category_id or suggestion.suggested_category_id,
            name=name or suggestion.name,
            pattern=suggestion.pattern,
            type=suggestion.type,
            priority=priority,
            is_ai_generated=True,
        )
        await self.rules.add_rule(rule)

        await self.store.update_suggestion(suggestion.model_copy(update={
            "status": SuggestionStatus.ACCEPTED,
            "processed_at": self._now(),
            "created_rule_id": rule.id,
        }))
        logger.info("rule_suggestion_accepted", suggestion_id=suggestion_id, rule_id=rule.id, pattern=rule.pattern)
        return rule

    async def reject(self, suggestion_id: int, user_id: int) -> RuleSuggestion:
        """Dismiss a suggestion; its pattern is not proposed again during the cooldown."""
        suggestion = await self._get_pending(suggestion_id, user_id)
        rejected = suggestion.model_copy(update={
            "status": SuggestionStatus.REJECTED,
            "processed_at": self._now(),
        })
        await self.store.update_suggestion(rejected)
        logger.info("rule_suggestion_rejected", suggestion_id=suggestion_id, pattern=suggestion.pattern)
        return rejected

    async def _get_pending(self, suggestion_id: int, user_id: int) -> RuleSuggestion:
        suggestion = await self.store.get_suggestion(suggestion_id)
        if suggestion is None:
            raise NotFoundError("RuleSuggestion")
        if suggestion.user_id != user_id:
            raise ForbiddenError()
        if suggestion.status != SuggestionStatus.PENDING:
            raise AlreadyProcessedError("RuleSuggestion")
        return suggestion
