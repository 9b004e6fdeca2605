"""Classifier stages of the classification pipeline.

Each stage answers "which category, and how sure?" for one transaction,
or None when it has no signal. Stages never reference each other; the
pipeline owns their order.
"""

from abc import ABC, abstractmethod

import structlog

from finmatch.config import settings
from finmatch.repositories.base import BankCategoryMapper, LanguageModelClassifier, StatisticalClassifier
from finmatch.schemas.classification import StageName, StageResult, UserContext
from finmatch.schemas.transaction import Transaction
from finmatch.services.rule_engine import RuleEngine

logger = structlog.get_logger()


class ClassifierStage(ABC):
    """Abstract base for pipeline stages."""

    name: str
    # only run when no earlier stage produced a candidate
    leftovers_only: bool = False
    can_auto_apply: bool = True
    enabled: bool = True
    timeout: float | None = None  # own bound; the pipeline timeout still caps it

    @abstractmethod
    async def classify(self, transaction: Transaction, context: UserContext) -> StageResult | None:
        """Return a proposal for the transaction, or None when there is no signal."""


class RulesStage(ClassifierStage):
    name = StageName.RULES.value

    def __init__(self, engine: RuleEngine | None = None) -> None:
        self.engine = engine or RuleEngine()

    async def classify(self, transaction: Transaction, context: UserContext) -> StageResult | None:
        match = self.engine.best_match(transaction, context.rules)
        if match is None:
            return None
        return StageResult(
            category_id=match.category_id,
            confidence=match.confidence,
            stage=self.name,
            reason=f"Rule '{match.rule_name}': {match.reason}",
            rule_id=match.rule_id,
        )


class BankCategoryStage(ClassifierStage):
    name = StageName.BANK_CATEGORY.value

    def __init__(self, mapper: BankCategoryMapper) -> None:
        self.mapper = mapper

    async def classify(self, transaction: Transaction, context: UserContext) -> StageResult | None:
        if not transaction.bank_category:
            return None
        mapping = await self.mapper.resolve(
            transaction.bank_category,
            transaction.user_id or context.user_id,
            transaction.import_source,
        )
        if mapping is None or mapping.is_excluded or mapping.category_id <= 0:
            return None
        return StageResult(
            category_id=mapping.category_id,
            confidence=mapping.confidence,
            stage=self.name,
            reason=f"Bank category '{transaction.bank_category}'",
        )


class StatisticalModelStage(ClassifierStage):
    name = StageName.ML.value

    def __init__(self, classifier: StatisticalClassifier) -> None:
        self.classifier = classifier

    async def classify(self, transaction: Transaction, context: UserContext) -> StageResult | None:
        prediction = await self.classifier.classify(transaction)
        if prediction is None:
            return None
        return StageResult(
            category_id=prediction.category_id,
            confidence=prediction.confidence,
            stage=self.name,
            reason=prediction.explanation or "Similar to previously categorized transactions",
        )


class LanguageModelStage(ClassifierStage):
    """Most expensive stage: only for transactions nothing else could place."""

    name = StageName.LLM.value
    leftovers_only = True

    def __init__(self, classifier: LanguageModelClassifier, can_auto_apply: bool | None = None) -> None:
        self.classifier = classifier
        self.can_auto_apply = settings.llm_auto_apply if can_auto_apply is None else can_auto_apply
        self.timeout = settings.llm_timeout

    async def classify(self, transaction: Transaction, context: UserContext) -> StageResult | None:
        prediction = await self.classifier.classify(transaction, context)
        if prediction is None:
            return None
        return StageResult(
            category_id=prediction.category_id,
            confidence=prediction.confidence,
            stage=self.name,
            reason="Language model suggestion",
            extra={"explanation": prediction.explanation} if prediction.explanation else {},
        )


class DisabledStage(ClassifierStage):
    """Placeholder for an unconfigured stage; the pipeline skips it."""

    enabled = False

    def __init__(self, name: StageName) -> None:
        self.name = name.value

    async def classify(self, transaction: Transaction, context: UserContext) -> StageResult | None:
        return None
