"""Pairwise match scoring schemas (transfers and reconciliation)."""

from datetime import date
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from finmatch.config import settings


class MatchMethod(str, Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"


class MatchSide(BaseModel):
    """One side of a scored pair, reduced to the fields the scorer reads."""
    id: int | str
    amount: Decimal
    posted_date: date
    description: str = ""
    account_id: int | None = None
    account_name: str | None = None

    model_config = {"frozen": True}


class MatchScoringConfig(BaseModel):
    """Weights and thresholds of the weighted match scorer."""
    amount_tolerance: float = 0.05  # relative difference; above = rejected
    compare_absolute_amounts: bool = True
    amount_weight: float = 0.40
    # max day difference -> contribution; first key >= delta wins
    date_weights: dict[int, float] = Field(default_factory=lambda: {0: 0.20, 1: 0.10})
    text_weight: float = 0.30
    keyword_weight: float = 0.10
    keywords: list[str] = Field(default_factory=list)
    from_to_pattern: bool = False
    cross_reference_weight: float = 0.10
    round_amount_weight: float = 0.05

    model_config = {"frozen": True}


class CriterionResult(BaseModel):
    name: str
    contribution: float = 0.0
    reasons: list[str] = Field(default_factory=list)
    blocking: bool = False


class MatchScore(BaseModel):
    confidence: float
    reasons: list[str] = Field(default_factory=list)
    breakdown: dict[str, float] = Field(default_factory=dict)
    rejected: bool = False
    text_similarity: float = 0.0


class MatchCandidate(BaseModel):
    """A scored pair: debit/credit for transfers, internal/external for reconciliation."""
    left_id: int | str
    right_id: int | str
    confidence: float
    matching_criteria: list[str] = Field(default_factory=list)
    amount: Decimal
    posted_date: date
    method: MatchMethod = MatchMethod.FUZZY
    breakdown: dict[str, float] = Field(default_factory=dict)

    @property
    def pair_key(self) -> frozenset:
        return frozenset((self.left_id, self.right_id))


class TransferDetectionConfig(BaseModel):
    date_tolerance_days: int = 3
    min_confidence: float = 0.5
    scoring: MatchScoringConfig = Field(default_factory=MatchScoringConfig)

    model_config = {"frozen": True}

    @classmethod
    def from_settings(cls) -> "TransferDetectionConfig":
        return cls(
            date_tolerance_days=settings.transfer_date_tolerance_days,
            min_confidence=settings.transfer_min_confidence,
            scoring=MatchScoringConfig(
                amount_tolerance=settings.transfer_amount_tolerance,
                keywords=settings.transfer_keywords_list,
                from_to_pattern=True,
            ),
        )


class ReconciliationConfig(BaseModel):
    date_tolerance_days: int = 3
    min_confidence: float = 0.5
    exact_similarity: float = 0.8
    exact_confidence: float = 0.95
    scoring: MatchScoringConfig = Field(
        default_factory=lambda: MatchScoringConfig(
            compare_absolute_amounts=False,
            date_weights={0: 0.30, 1: 0.27, 2: 0.24, 3: 0.21},
            cross_reference_weight=0.0,
            round_amount_weight=0.0,
        )
    )

    model_config = {"frozen": True}

    @classmethod
    def from_settings(cls) -> "ReconciliationConfig":
        default = cls()
        return cls(
            date_tolerance_days=settings.reconciliation_date_tolerance_days,
            min_confidence=settings.reconciliation_min_confidence,
            scoring=default.scoring.model_copy(
                update={"amount_tolerance": settings.reconciliation_amount_tolerance}
            ),
        )


class ReconciliationResult(BaseModel):
    matches: list[MatchCandidate] = Field(default_factory=list)
    unmatched_internal: list[int] = Field(default_factory=list)
    unmatched_external: list[str] = Field(default_factory=list)
