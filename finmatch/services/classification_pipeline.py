"""Classification pipeline.

Routes every transaction through the fixed stage order
Rules -> BankCategory -> ML -> LLM and produces exactly one outcome for it:

  - AutoApplied: a stage reached the auto-apply threshold; later stages
    are never invoked for that transaction
  - Candidate: the best proposal at or above the candidate threshold,
    held for review. A later stage only replaces a kept candidate with a
    strictly higher confidence, so on ties the earlier stage wins
  - Unresolved: nothing usable was found

Transactions are classified concurrently and independently. Each one
yields its own partial metrics, which are summed once the batch is done.
A failing or slow stage is "no signal" for that transaction only.
"""

import asyncio
import time
from decimal import Decimal
from functools import reduce

import structlog

from finmatch.config import settings
from finmatch.core.exceptions import ConfigurationError
from finmatch.repositories.base import CategoryLookup, CorrectionSink, RuleSource
from finmatch.schemas.classification import (
    BatchResult,
    CandidateStatus,
    ClassificationOutcome,
    OutcomeState,
    PipelineMetrics,
    StageName,
    StageResult,
    UserContext,
)
from finmatch.schemas.transaction import Transaction
from finmatch.services.classifier_stages import ClassifierStage, DisabledStage, RulesStage

logger = structlog.get_logger()

_STAGE_COUNTERS = {
    StageName.RULES.value: "processed_by_rules",
    StageName.BANK_CATEGORY.value: "processed_by_bank_category",
    StageName.ML.value: "processed_by_ml",
    StageName.LLM.value: "processed_by_llm",
}

# LLM calls avoided when the stage resolves a transaction
_STAGE_COST_SAVINGS = {
    StageName.RULES.value: Decimal("0.005"),
    StageName.BANK_CATEGORY.value: Decimal("0.005"),
    StageName.ML.value: Decimal("0.004"),
}


class ClassificationPipeline:
    def __init__(
        self,
        rule_source: RuleSource,
        category_lookup: CategoryLookup,
        rules: ClassifierStage | None = None,
        bank_category: ClassifierStage | None = None,
        statistical: ClassifierStage | None = None,
        language_model: ClassifierStage | None = None,
        correction_sink: CorrectionSink | None = None,
        auto_apply_threshold: float | None = None,
        candidate_threshold: float | None = None,
        stage_timeout: float | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        self.rule_source = rule_source
        self.category_lookup = category_lookup
        self.correction_sink = correction_sink
        # Order is fixed by cost and reliability.
        self.stages: list[ClassifierStage] = [
            rules or RulesStage(),
            bank_category or DisabledStage(StageName.BANK_CATEGORY),
            statistical or DisabledStage(StageName.ML),
            language_model or DisabledStage(StageName.LLM),
        ]
        self.auto_apply_threshold = auto_apply_threshold if auto_apply_threshold is not None else settings.auto_apply_threshold
        self.candidate_threshold = candidate_threshold if candidate_threshold is not None else settings.candidate_threshold
        self.stage_timeout = stage_timeout if stage_timeout is not None else settings.stage_timeout
        self.max_concurrency = max_concurrency or settings.classification_max_concurrency

        if not 0 < self.candidate_threshold <= self.auto_apply_threshold <= 1:
            raise ConfigurationError(
                f"Invalid thresholds: candidate={self.candidate_threshold}, auto_apply={self.auto_apply_threshold}"
            )

    async def classify_batch(self, transactions: list[Transaction], user_id: int) -> BatchResult:
        start_time = time.perf_counter()
        if not transactions:
            return BatchResult(outcomes=[], metrics=PipelineMetrics())

        logger.info(
            "classification_batch_started",
            user_id=user_id,
            total=len(transactions),
            transaction_ids=[t.id for t in transactions],
        )
        errors: list[str] = []
        context = await self._build_context(user_id, errors)

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(transaction: Transaction) -> tuple[ClassificationOutcome, PipelineMetrics]:
            async with semaphore:
                try:
                    return await self._classify_one(transaction, context)
                except ConfigurationError:
                    raise
                except Exception as e:
                    logger.error("transaction_classification_failed", transaction_id=transaction.id, error=str(e))
                    outcome = ClassificationOutcome(
                        transaction_id=transaction.id,
                        state=OutcomeState.UNRESOLVED,
                        errors=[f"Classification failed: {e}"],
                    )
                    return outcome, self._metrics(outcome, None, 0)

        tasks = [asyncio.create_task(bounded(t)) for t in transactions]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            # one failure aborts the batch; no stage call may outlive it
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        outcomes = [outcome for outcome, _ in results]
        await self._fill_category_names(outcomes, errors)
        metrics = reduce(PipelineMetrics.merge, (partial for _, partial in results), PipelineMetrics())
        for outcome in outcomes:
            errors.extend(f"transaction {outcome.transaction_id}: {e}" for e in outcome.errors)

        await self._record_rule_matches(outcomes, errors)

        metrics.processing_time_ms = round((time.perf_counter() - start_time) * 1000, 2)
        logger.info(
            "classification_batch_completed",
            user_id=user_id,
            total=metrics.total_transactions,
            auto_applied=metrics.auto_applied,
            candidates=metrics.candidates,
            unresolved=metrics.unresolved,
            processed_by_rules=metrics.processed_by_rules,
            processed_by_bank_category=metrics.processed_by_bank_category,
            processed_by_ml=metrics.processed_by_ml,
            processed_by_llm=metrics.processed_by_llm,
            success_rate=round(metrics.success_rate, 4),
            estimated_cost_savings=str(metrics.estimated_cost_savings),
            duration_ms=metrics.processing_time_ms,
        )
        if errors:
            logger.warning("classification_batch_errors", user_id=user_id, count=len(errors), errors=errors[:20])

        return BatchResult(outcomes=outcomes, metrics=metrics, errors=errors)

    # ── Per-transaction state machine ──────────────────

    async def _classify_one(
        self, transaction: Transaction, context: UserContext
    ) -> tuple[ClassificationOutcome, PipelineMetrics]:
        stages_run: list[str] = []
        errors: list[str] = []
        kept: StageResult | None = None
        kept_stage: ClassifierStage | None = None
        failed_calls = 0

        for stage in self.stages:
            if not stage.enabled:
                continue
            if kept is not None and stage.leftovers_only:
                logger.debug("stage_skipped_candidate_kept", stage=stage.name, transaction_id=transaction.id)
                continue

            stages_run.append(stage.name)
            errors_before = len(errors)
            result = await self._run_stage(stage, transaction, context, errors)
            if result is None:
                failed_calls += len(errors) - errors_before
                continue

            confidence = max(0.0, min(1.0, result.confidence))
            result = result.model_copy(update={"confidence": confidence})

            if confidence >= self.auto_apply_threshold and stage.can_auto_apply:
                outcome = self._outcome(transaction, context, result, OutcomeState.AUTO_APPLIED, stages_run, errors)
                return outcome, self._metrics(outcome, stage, failed_calls)

            if confidence >= self.candidate_threshold and (kept is None or confidence > kept.confidence):
                kept, kept_stage = result, stage

        if kept is not None:
            outcome = self._outcome(transaction, context, kept, OutcomeState.CANDIDATE, stages_run, errors)
            return outcome, self._metrics(outcome, kept_stage, failed_calls)

        outcome = ClassificationOutcome(
            transaction_id=transaction.id,
            state=OutcomeState.UNRESOLVED,
            stages_run=stages_run,
            errors=errors,
        )
        return outcome, self._metrics(outcome, None, failed_calls)

    async def _run_stage(
        self,
        stage: ClassifierStage,
        transaction: Transaction,
        context: UserContext,
        errors: list[str],
    ) -> StageResult | None:
        timeout = min(stage.timeout, self.stage_timeout) if stage.timeout else self.stage_timeout
        try:
            return await asyncio.wait_for(stage.classify(transaction, context), timeout=timeout)
        except ConfigurationError:
            raise
        except asyncio.TimeoutError:
            logger.warning("classifier_stage_timeout", stage=stage.name, transaction_id=transaction.id, timeout=timeout)
            errors.append(f"{stage.name} timed out after {timeout}s")
        except Exception as e:
            logger.warning("classifier_stage_failed", stage=stage.name, transaction_id=transaction.id, error=str(e))
            errors.append(f"{stage.name} failed: {e}")
        return None

    def _outcome(
        self,
        transaction: Transaction,
        context: UserContext,
        result: StageResult,
        state: OutcomeState,
        stages_run: list[str],
        errors: list[str],
    ) -> ClassificationOutcome:
        return ClassificationOutcome(
            transaction_id=transaction.id,
            state=state,
            category_id=result.category_id,
            category_name=context.category_name(result.category_id),
            confidence=result.confidence,
            source=result.stage,
            status=CandidateStatus.PENDING if state == OutcomeState.CANDIDATE else None,
            reason=result.reason,
            rule_id=result.rule_id,
            stages_run=stages_run,
            errors=errors,
        )

    @staticmethod
    def _metrics(
        outcome: ClassificationOutcome, stage: ClassifierStage | None, failed_calls: int
    ) -> PipelineMetrics:
        metrics = PipelineMetrics(total_transactions=1, failed_stage_calls=failed_calls)
        if outcome.state == OutcomeState.UNRESOLVED or stage is None:
            metrics.unresolved = 1
            return metrics

        if outcome.state == OutcomeState.AUTO_APPLIED:
            metrics.auto_applied = 1
        else:
            metrics.candidates = 1
        counter = _STAGE_COUNTERS.get(stage.name)
        if counter:
            setattr(metrics, counter, 1)
        metrics.estimated_cost_savings = _STAGE_COST_SAVINGS.get(stage.name, Decimal("0"))
        metrics.category_distribution = {outcome.category_id: 1}
        return metrics

    # ── Collaborators ──────────────────────────────────

    async def _build_context(self, user_id: int, errors: list[str]) -> UserContext:
        try:
            rules = await self.rule_source.get_active_rules(user_id)
        except Exception as e:
            logger.warning("rule_source_failed", user_id=user_id, error=str(e))
            errors.append(f"Rule source failed: {e}")
            rules = []
        try:
            categories = await self.category_lookup.list_categories(user_id)
        except Exception as e:
            logger.warning("category_lookup_failed", user_id=user_id, error=str(e))
            errors.append(f"Category lookup failed: {e}")
            categories = []
        return UserContext(user_id=user_id, rules=rules, categories=categories)

    async def _fill_category_names(self, outcomes: list[ClassificationOutcome], errors: list[str]) -> None:
        """Look up names the user's category list did not carry."""
        missing = sorted({
            o.category_id for o in outcomes if o.category_id is not None and o.category_name is None
        })
        names: dict[int, str] = {}
        for category_id in missing:
            try:
                category = await self.category_lookup.get_category(category_id)
            except Exception as e:
                logger.warning("category_lookup_failed", category_id=category_id, error=str(e))
                errors.append(f"Category lookup for {category_id} failed: {e}")
                continue
            if category is not None:
                names[category_id] = category.name

        for outcome in outcomes:
            if outcome.category_name is None and outcome.category_id in names:
                outcome.category_name = names[outcome.category_id]

    async def _record_rule_matches(self, outcomes: list[ClassificationOutcome], errors: list[str]) -> None:
        """Bump match counters for rules whose decision was applied."""
        if self.correction_sink is None:
            return
        for outcome in outcomes:
            if outcome.state != OutcomeState.AUTO_APPLIED or outcome.rule_id is None:
                continue
            try:
                await self.correction_sink.record_match(outcome.rule_id, outcome.transaction_id)
            except Exception as e:
                logger.warning("rule_match_record_failed", rule_id=outcome.rule_id, error=str(e))
                errors.append(f"Recording match for rule {outcome.rule_id} failed: {e}")
