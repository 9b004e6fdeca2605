"""In-memory collaborators.

Used by the test-suite and by callers that keep their data in process.
Each store hands out copies so the engine never shares mutable state with
it.
"""

import itertools
from datetime import datetime, timezone

import structlog

from finmatch.config import settings
from finmatch.core.exceptions import ConfigurationError, NotFoundError
from finmatch.schemas.category import BankCategoryMapping, Category
from finmatch.schemas.classification import CandidateStatus, ClassificationCandidate
from finmatch.schemas.rule import Rule
from finmatch.schemas.suggestion import RuleSuggestion
from finmatch.schemas.transaction import Transaction

logger = structlog.get_logger()


class InMemoryRuleRepository:
    """Rule source, rule store and correction sink over a dict."""

    def __init__(self, rules: list[Rule] | None = None) -> None:
        self._rules: dict[int, Rule] = {r.id: r.model_copy(deep=True) for r in rules or []}
        self.corrections: list[tuple[int, int, int]] = []

    async def get_active_rules(self, user_id: int) -> list[Rule]:
        return [
            r.model_copy(deep=True)
            for r in self._rules.values()
            if r.user_id == user_id and r.is_active
        ]

    async def get_rule(self, rule_id: int) -> Rule:
        rule = self._rules.get(rule_id)
        if rule is None:
            raise NotFoundError("Rule")
        return rule.model_copy(deep=True)

    async def add_rule(self, rule: Rule) -> Rule:
        self._rules[rule.id] = rule.model_copy(deep=True)
        return rule

    async def next_rule_id(self) -> int:
        return max(self._rules, default=0) + 1

    async def record_match(self, rule_id: int, transaction_id: int) -> None:
        rule = self._rules.get(rule_id)
        if rule is None:
            logger.debug("rule_match_unknown_rule", rule_id=rule_id, transaction_id=transaction_id)
            return
        rule.match_count += 1

    async def record_correction(self, rule_id: int, transaction_id: int, new_category_id: int) -> None:
        rule = self._rules.get(rule_id)
        if rule is None:
            logger.debug("rule_correction_unknown_rule", rule_id=rule_id, transaction_id=transaction_id)
            return
        rule.correction_count += 1
        self.corrections.append((rule_id, transaction_id, new_category_id))


class InMemoryCategoryRepository:
    def __init__(self, categories: list[Category] | None = None) -> None:
        self._categories = {c.id: c for c in categories or []}

    async def get_category(self, category_id: int) -> Category | None:
        return self._categories.get(category_id)

    async def list_categories(self, user_id: int) -> list[Category]:
        return sorted(self._categories.values(), key=lambda c: c.id)


class InMemoryBankCategoryMapper:
    """Bank category name -> user category, keyed case-insensitively."""

    def __init__(
        self,
        mappings: list[BankCategoryMapping] | None = None,
        providers: list[str] | None = None,
    ) -> None:
        self._mappings = {m.bank_category.strip().lower(): m for m in mappings or []}
        self._providers = set(providers if providers is not None else settings.bank_category_providers_list)

    async def resolve(
        self, bank_category: str, user_id: int | None, provider: str | None = None
    ) -> BankCategoryMapping | None:
        if provider is not None and provider.lower() not in self._providers:
            raise ConfigurationError(f"Unsupported bank category provider: {provider}")
        return self._mappings.get(bank_category.strip().lower())


class InMemoryTransactionHistory:
    def __init__(self, transactions: list[Transaction] | None = None) -> None:
        self._transactions = list(transactions or [])

    async def get_categorized_transactions(self, user_id: int) -> list[Transaction]:
        return [
            t for t in self._transactions
            if t.existing_category_id is not None and t.user_id in (None, user_id)
        ]


class InMemorySuggestionStore:
    def __init__(self) -> None:
        self._suggestions: dict[int, RuleSuggestion] = {}
        self._ids = itertools.count(1)

    async def list_suggestions(self, user_id: int) -> list[RuleSuggestion]:
        return [s.model_copy(deep=True) for s in self._suggestions.values() if s.user_id == user_id]

    async def get_suggestion(self, suggestion_id: int) -> RuleSuggestion | None:
        suggestion = self._suggestions.get(suggestion_id)
        return suggestion.model_copy(deep=True) if suggestion else None

    async def add_suggestions(self, suggestions: list[RuleSuggestion]) -> list[RuleSuggestion]:
        saved = []
        for suggestion in suggestions:
            stored = suggestion.model_copy(update={
                "id": next(self._ids),
                "created_at": suggestion.created_at or datetime.now(timezone.utc),
            })
            self._suggestions[stored.id] = stored
            saved.append(stored.model_copy(deep=True))
        return saved

    async def update_suggestion(self, suggestion: RuleSuggestion) -> RuleSuggestion:
        if suggestion.id not in self._suggestions:
            raise NotFoundError("RuleSuggestion")
        self._suggestions[suggestion.id] = suggestion.model_copy(deep=True)
        return suggestion


class InMemoryCandidateStore:
    def __init__(self) -> None:
        self._candidates: dict[int, ClassificationCandidate] = {}
        self._ids = itertools.count(1)

    async def add_candidates(self, candidates: list[ClassificationCandidate]) -> list[ClassificationCandidate]:
        saved = []
        for candidate in candidates:
            stored = candidate.model_copy(update={
                "id": next(self._ids),
                "created_at": candidate.created_at or datetime.now(timezone.utc),
            })
            self._candidates[stored.id] = stored
            saved.append(stored.model_copy())
        return saved

    async def get_candidate(self, candidate_id: int) -> ClassificationCandidate | None:
        candidate = self._candidates.get(candidate_id)
        return candidate.model_copy() if candidate else None

    async def list_pending(self, user_id: int) -> list[ClassificationCandidate]:
        return [
            c.model_copy()
            for c in self._candidates.values()
            if c.user_id == user_id and c.status == CandidateStatus.PENDING
        ]

    async def update_candidate(self, candidate: ClassificationCandidate) -> ClassificationCandidate:
        if candidate.id not in self._candidates:
            raise NotFoundError("ClassificationCandidate")
        self._candidates[candidate.id] = candidate.model_copy()
        return candidate
