"""Classification and matching engine: the operations exposed to callers.

Wires the components from settings and collaborators:
  - classify_batch: Rules -> BankCategory -> ML -> LLM pipeline
  - find_transfer_candidates / find_reconciliation_matches: pairwise scoring
  - generate_rule_suggestions: mining over categorized history
"""

import structlog

from finmatch.config import settings
from finmatch.core.exceptions import ConfigurationError
from finmatch.repositories.base import (
    BankCategoryMapper,
    CandidateStore,
    CategoryLookup,
    CorrectionSink,
    LanguageModelClassifier,
    RuleStore,
    StatisticalClassifier,
    SuggestionStore,
    TransactionHistorySource,
)
from finmatch.schemas.classification import BatchResult, ClassificationCandidate
from finmatch.schemas.matching import MatchCandidate, ReconciliationConfig, ReconciliationResult, TransferDetectionConfig
from finmatch.schemas.rule import Rule
from finmatch.schemas.suggestion import RuleSuggestion
from finmatch.schemas.transaction import BankStatementLine, Transaction
from finmatch.services.candidate_service import CandidateService
from finmatch.services.classification_pipeline import ClassificationPipeline
from finmatch.services.classifier_stages import (
    BankCategoryStage,
    LanguageModelStage,
    RulesStage,
    StatisticalModelStage,
)
from finmatch.services.llm_classifier import get_language_model_classifier
from finmatch.services.reconciliation_matcher import ReconciliationMatcher
from finmatch.services.rule_engine import RuleEngine
from finmatch.services.rule_suggestion_service import RuleSuggestionService
from finmatch.services.transfer_detector import TransferDetector

logger = structlog.get_logger()


class ClassificationEngine:
    def __init__(
        self,
        rule_store: RuleStore,
        category_lookup: CategoryLookup,
        statistical_classifier: StatisticalClassifier | None = None,
        language_model: LanguageModelClassifier | None = None,
        correction_sink: CorrectionSink | None = None,
        bank_category_mapper: BankCategoryMapper | None = None,
        history_source: TransactionHistorySource | None = None,
        suggestion_store: SuggestionStore | None = None,
        candidate_store: CandidateStore | None = None,
    ) -> None:
        self.rule_store = rule_store
        self.rule_engine = RuleEngine()

        if language_model is None and settings.llm_enabled:
            language_model = get_language_model_classifier()
        if statistical_classifier is not None and not settings.ml_enabled:
            logger.info("statistical_stage_disabled")
            statistical_classifier = None

        self.pipeline = ClassificationPipeline(
            rule_source=rule_store,
            category_lookup=category_lookup,
            rules=RulesStage(self.rule_engine),
            bank_category=BankCategoryStage(bank_category_mapper) if bank_category_mapper else None,
            statistical=StatisticalModelStage(statistical_classifier) if statistical_classifier else None,
            language_model=LanguageModelStage(language_model) if language_model else None,
            correction_sink=correction_sink,
        )
        self.candidates = (
            CandidateService(candidate_store, correction_sink) if candidate_store is not None else None
        )
        self.suggestions = (
            RuleSuggestionService(history_source, suggestion_store, rule_store)
            if history_source is not None and suggestion_store is not None
            else None
        )

    # ── Classification ─────────────────────────────────

    async def classify_batch(self, transactions: list[Transaction], user_id: int) -> BatchResult:
        """Classify a batch; pending candidates are persisted when a store is configured."""
        result = await self.pipeline.classify_batch(transactions, user_id)
        if self.candidates is not None:
            try:
                await self.candidates.create_from_outcomes(result.outcomes, user_id)
            except Exception as e:
                logger.error("candidate_persist_failed", user_id=user_id, error=str(e))
                result.errors.append(f"Persisting candidates failed: {e}")
        return result

    async def accept_candidate(self, candidate_id: int, user_id: int) -> ClassificationCandidate:
        return await self._candidate_service().accept(candidate_id, user_id)

    async def reject_candidate(self, candidate_id: int, user_id: int) -> ClassificationCandidate:
        return await self._candidate_service().reject(candidate_id, user_id)

    async def override_candidate(
        self, candidate_id: int, user_id: int, new_category_id: int
    ) -> ClassificationCandidate:
        return await self._candidate_service().override(candidate_id, user_id, new_category_id)

    # ── Matching ───────────────────────────────────────

    def find_transfer_candidates(
        self, transactions: list[Transaction], config: TransferDetectionConfig | None = None
    ) -> list[MatchCandidate]:
        return TransferDetector(config).find_candidates(transactions)

    def find_reconciliation_matches(
        self,
        internal: list[Transaction],
        external: list[BankStatementLine],
        config: ReconciliationConfig | None = None,
    ) -> list[MatchCandidate]:
        return ReconciliationMatcher(config).find_matches(internal, external)

    def reconcile(
        self,
        internal: list[Transaction],
        external: list[BankStatementLine],
        config: ReconciliationConfig | None = None,
    ) -> ReconciliationResult:
        return ReconciliationMatcher(config).reconcile(internal, external)

    # ── Rule suggestions ───────────────────────────────

    async def generate_rule_suggestions(
        self, user_id: int, limit: int = 10, min_confidence: float | None = None
    ) -> list[RuleSuggestion]:
        return await self._suggestion_service().generate(user_id, limit, min_confidence)

    async def accept_rule_suggestion(
        self, suggestion_id: int, user_id: int, category_id: int | None = None
    ) -> Rule:
        return await self._suggestion_service().accept(suggestion_id, user_id, category_id=category_id)

    async def reject_rule_suggestion(self, suggestion_id: int, user_id: int) -> RuleSuggestion:
        return await self._suggestion_service().reject(suggestion_id, user_id)

    # ── Helpers ─────────────────────────────────────────

    def _candidate_service(self) -> CandidateService:
        if self.candidates is None:
            raise ConfigurationError("No candidate store configured")
        return self.candidates

    def _suggestion_service(self) -> RuleSuggestionService:
        if self.suggestions is None:
            raise ConfigurationError("Rule suggestions need a history source and a suggestion store")
        return self.suggestions
