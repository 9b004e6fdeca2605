"""Pydantic schemas exchanged with the engine."""

from finmatch.schemas.category import BankCategoryMapping, Category
from finmatch.schemas.classification import (
    BatchResult,
    CandidateStatus,
    ClassificationCandidate,
    ClassificationOutcome,
    OutcomeState,
    PipelineMetrics,
    Prediction,
    StageName,
    StageResult,
    UserContext,
)
from finmatch.schemas.matching import (
    MatchCandidate,
    MatchMethod,
    MatchScoringConfig,
    ReconciliationConfig,
    TransferDetectionConfig,
)
from finmatch.schemas.rule import (
    ConditionField,
    ConditionOperator,
    Rule,
    RuleCondition,
    RuleLogic,
    RuleMatch,
    RuleType,
)
from finmatch.schemas.suggestion import RuleSuggestion, SuggestionStatus
from finmatch.schemas.transaction import BankStatementLine, Transaction

__all__ = [
    "Transaction",
    "BankStatementLine",
    "Category",
    "BankCategoryMapping",
    "Rule",
    "RuleCondition",
    "RuleMatch",
    "RuleType",
    "RuleLogic",
    "ConditionField",
    "ConditionOperator",
    "StageName",
    "StageResult",
    "Prediction",
    "OutcomeState",
    "CandidateStatus",
    "ClassificationOutcome",
    "ClassificationCandidate",
    "PipelineMetrics",
    "BatchResult",
    "UserContext",
    "MatchCandidate",
    "MatchMethod",
    "MatchScoringConfig",
    "TransferDetectionConfig",
    "ReconciliationConfig",
    "RuleSuggestion",
    "SuggestionStatus",
]
