"""Collaborator contracts consumed by the engine.

Persistence, rule CRUD and model hosting live outside the engine; these
protocols are the only surface it relies on.
"""

from typing import Protocol

from finmatch.schemas.category import BankCategoryMapping, Category
from finmatch.schemas.classification import ClassificationCandidate, Prediction, UserContext
from finmatch.schemas.rule import Rule
from finmatch.schemas.suggestion import RuleSuggestion
from finmatch.schemas.transaction import Transaction


class RuleSource(Protocol):
    async def get_active_rules(self, user_id: int) -> list[Rule]: ...


class RuleStore(RuleSource, Protocol):
    async def add_rule(self, rule: Rule) -> Rule: ...

    async def next_rule_id(self) -> int: ...


class CategoryLookup(Protocol):
    """Names come from ``list_categories``; ``get_category`` fills in any id the list lacks."""

    async def get_category(self, category_id: int) -> Category | None: ...

    async def list_categories(self, user_id: int) -> list[Category]: ...


class CorrectionSink(Protocol):
    """Write-only feedback channel for rule health counters."""

    async def record_correction(self, rule_id: int, transaction_id: int, new_category_id: int) -> None: ...

    async def record_match(self, rule_id: int, transaction_id: int) -> None: ...


class StatisticalClassifier(Protocol):
    async def classify(self, transaction: Transaction) -> Prediction | None: ...


class LanguageModelClassifier(Protocol):
    async def classify(self, transaction: Transaction, context: UserContext) -> Prediction | None: ...


class BankCategoryMapper(Protocol):
    async def resolve(
        self, bank_category: str, user_id: int | None, provider: str | None = None
    ) -> BankCategoryMapping | None: ...


class TransactionHistorySource(Protocol):
    async def get_categorized_transactions(self, user_id: int) -> list[Transaction]: ...


class SuggestionStore(Protocol):
    async def list_suggestions(self, user_id: int) -> list[RuleSuggestion]: ...

    async def get_suggestion(self, suggestion_id: int) -> RuleSuggestion | None: ...

    async def add_suggestions(self, suggestions: list[RuleSuggestion]) -> list[RuleSuggestion]: ...

    async def update_suggestion(self, suggestion: RuleSuggestion) -> RuleSuggestion: ...


class CandidateStore(Protocol):
    async def add_candidates(self, candidates: list[ClassificationCandidate]) -> list[ClassificationCandidate]: ...

    async def get_candidate(self, candidate_id: int) -> ClassificationCandidate | None: ...

    async def list_pending(self, user_id: int) -> list[ClassificationCandidate]: ...

    async def update_candidate(self, candidate: ClassificationCandidate) -> ClassificationCandidate: ...
