"""Shared test fixtures."""

import asyncio
import itertools
from datetime import date
from decimal import Decimal

import pytest

from finmatch.repositories.memory import (
    InMemoryCandidateStore,
    InMemoryCategoryRepository,
    InMemoryRuleRepository,
    InMemorySuggestionStore,
    InMemoryTransactionHistory,
)
from finmatch.schemas.category import Category
from finmatch.schemas.classification import StageResult, UserContext
from finmatch.schemas.rule import Rule
from finmatch.schemas.transaction import Transaction
from finmatch.services.classifier_stages import ClassifierStage

USER_ID = 1
GROCERIES = 10
SHOPPING = 11
DINING = 12
ENTERTAINMENT = 13


class CountingStage(ClassifierStage):
    """Stage stub returning a fixed result and counting its calls."""

    def __init__(
        self,
        name: str,
        category_id: int | None = None,
        confidence: float = 0.0,
        error: Exception | None = None,
        delay: float = 0.0,
        leftovers_only: bool = False,
        can_auto_apply: bool = True,
    ) -> None:
        self.name = name
        self.category_id = category_id
        self.confidence = confidence
        self.error = error
        self.delay = delay
        self.leftovers_only = leftovers_only
        self.can_auto_apply = can_auto_apply
        self.calls: list[int] = []

    async def classify(self, transaction: Transaction, context: UserContext) -> StageResult | None:
        self.calls.append(transaction.id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.category_id is None:
            return None
        return StageResult(category_id=self.category_id, confidence=self.confidence, stage=self.name)


@pytest.fixture
def make_transaction():
    """Factory for transactions with sensible defaults and unique ids."""
    ids = itertools.count(1)

    def _make(
        description: str = "UNKNOWN MERCHANT XYZ",
        amount: str | Decimal = "-25.00",
        posted_date: date = date(2024, 3, 15),
        **kwargs,
    ) -> Transaction:
        kwargs.setdefault("id", next(ids))
        kwargs.setdefault("account_id", 100)
        kwargs.setdefault("user_id", USER_ID)
        return Transaction(
            description=description,
            amount=Decimal(str(amount)),
            posted_date=posted_date,
            **kwargs,
        )

    return _make


@pytest.fixture
def categories():
    return [
        Category(id=GROCERIES, name="Groceries"),
        Category(id=SHOPPING, name="Shopping"),
        Category(id=DINING, name="Dining Out"),
        Category(id=ENTERTAINMENT, name="Entertainment", parent_name="Leisure"),
    ]


@pytest.fixture
def category_repo(categories):
    return InMemoryCategoryRepository(categories)


@pytest.fixture
def rule_repo():
    return InMemoryRuleRepository([
        Rule(id=1, user_id=USER_ID, name="Walmart", pattern="WALMART", confidence_score=0.98, category_id=GROCERIES),
        Rule(id=2, user_id=USER_ID, name="Target", pattern="TARGET", confidence_score=0.80, category_id=SHOPPING),
    ])


@pytest.fixture
def suggestion_store():
    return InMemorySuggestionStore()


@pytest.fixture
def candidate_store():
    return InMemoryCandidateStore()


@pytest.fixture
def history(make_transaction):
    """Categorized history with three recurring merchants and some noise."""
    txns = []
    for day in range(1, 7):
        txns.append(make_transaction(
            f"WALMART STORE #45{day:02d}", "-54.20", date(2024, 1, day * 4), existing_category_id=GROCERIES
        ))
    for day in range(1, 5):
        txns.append(make_transaction(
            "NETFLIX.COM SUBSCRIPTION", "-15.99", date(2024, day, 2), existing_category_id=ENTERTAINMENT
        ))
    for day in range(1, 4):
        txns.append(make_transaction(
            f"STARBUCKS {day}", "-5.75", date(2024, 2, day), existing_category_id=DINING
        ))
    txns.append(make_transaction("CORNER DELI", "-9.10", date(2024, 2, 10), existing_category_id=DINING))
    txns.append(make_transaction("BOOKSHOP ONLINE", "-22.00", date(2024, 2, 11), existing_category_id=SHOPPING))
    return txns


@pytest.fixture
def history_source(history):
    return InMemoryTransactionHistory(history)
