"""Classification pipeline schemas."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from finmatch.schemas.category import Category
from finmatch.schemas.rule import Rule


class StageName(str, Enum):
    """Pipeline stages, in their fixed evaluation order."""
    RULES = "Rules"
    BANK_CATEGORY = "BankCategory"
    ML = "ML"
    LLM = "LLM"


class OutcomeState(str, Enum):
    AUTO_APPLIED = "auto_applied"
    CANDIDATE = "candidate"
    UNRESOLVED = "unresolved"


class CandidateStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ConfidenceBand(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    VERY_LOW = "very_low"

    @classmethod
    def for_score(cls, score: float) -> "ConfidenceBand":
        if score >= 0.9:
            return cls.HIGH
        if score >= 0.7:
            return cls.MEDIUM
        if score >= 0.5:
            return cls.LOW
        return cls.VERY_LOW


class Prediction(BaseModel):
    """What an external classifier returns: a category and how sure it is."""
    category_id: int
    confidence: float
    explanation: str = ""


class StageResult(BaseModel):
    """A stage's proposal for one transaction."""
    category_id: int
    confidence: float
    stage: str
    reason: str = ""
    rule_id: int | None = None
    # provider-specific passthrough (e.g. raw LLM explanation)
    extra: dict[str, Any] = Field(default_factory=dict)


class ClassificationOutcome(BaseModel):
    """Exactly one per transaction per pipeline run."""
    transaction_id: int
    state: OutcomeState
    category_id: int | None = None
    category_name: str | None = None
    confidence: float | None = None
    source: str | None = None  # stage name
    status: CandidateStatus | None = None  # only for candidates
    reason: str = ""
    rule_id: int | None = None
    stages_run: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def band(self) -> ConfidenceBand | None:
        if self.confidence is None:
            return None
        return ConfidenceBand.for_score(self.confidence)


class PipelineMetrics(BaseModel):
    """Batch-level counters. Built per transaction and merged at the end."""
    total_transactions: int = 0
    processed_by_rules: int = 0
    processed_by_bank_category: int = 0
    processed_by_ml: int = 0
    processed_by_llm: int = 0
    auto_applied: int = 0
    candidates: int = 0
    unresolved: int = 0
    failed_stage_calls: int = 0
    estimated_cost_savings: Decimal = Decimal("0")
    category_distribution: dict[int, int] = Field(default_factory=dict)
    processing_time_ms: float = 0.0

    @property
    def success_rate(self) -> float:
        if self.total_transactions == 0:
            return 0.0
        return (self.auto_applied + self.candidates) / self.total_transactions

    def merge(self, other: "PipelineMetrics") -> "PipelineMetrics":
        """Return a new metrics object summing both sides."""
        distribution = dict(self.category_distribution)
        for category_id, count in other.category_distribution.items():
            distribution[category_id] = distribution.get(category_id, 0) + count
        return PipelineMetrics(
            total_transactions=self.total_transactions + other.total_transactions,
            processed_by_rules=self.processed_by_rules + other.processed_by_rules,
            processed_by_bank_category=self.processed_by_bank_category + other.processed_by_bank_category,
            processed_by_ml=self.processed_by_ml + other.processed_by_ml,
            processed_by_llm=self.processed_by_llm + other.processed_by_llm,
            auto_applied=self.auto_applied + other.auto_applied,
            candidates=self.candidates + other.candidates,
            unresolved=self.unresolved + other.unresolved,
            failed_stage_calls=self.failed_stage_calls + other.failed_stage_calls,
            estimated_cost_savings=self.estimated_cost_savings + other.estimated_cost_savings,
            category_distribution=distribution,
            processing_time_ms=self.processing_time_ms + other.processing_time_ms,
        )


class BatchResult(BaseModel):
    outcomes: list[ClassificationOutcome]
    metrics: PipelineMetrics
    errors: list[str] = Field(default_factory=list)


class ClassificationCandidate(BaseModel):
    """A held classification awaiting user confirmation."""
    id: int | None = None
    user_id: int
    transaction_id: int
    category_id: int
    confidence: float
    source: str
    reason: str = ""
    rule_id: int | None = None
    status: CandidateStatus = CandidateStatus.PENDING
    created_at: datetime | None = None
    processed_at: datetime | None = None
    processed_by: str | None = None
    applied_category_id: int | None = None

    def can_auto_apply(self, threshold: float = 0.95) -> bool:
        return self.status == CandidateStatus.PENDING and self.confidence >= threshold


class UserContext(BaseModel):
    """Per-batch, read-only data shared by every stage for one user."""
    user_id: int
    rules: list[Rule] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)

    def category_name(self, category_id: int) -> str | None:
        for category in self.categories:
            if category.id == category_id:
                return category.name
        return None
