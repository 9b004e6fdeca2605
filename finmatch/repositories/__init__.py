"""Collaborator contracts and their in-memory implementations."""

from finmatch.repositories.memory import (
    InMemoryBankCategoryMapper,
    InMemoryCandidateStore,
    InMemoryCategoryRepository,
    InMemoryRuleRepository,
    InMemorySuggestionStore,
    InMemoryTransactionHistory,
)

__all__ = [
    "InMemoryRuleRepository",
    "InMemoryCategoryRepository",
    "InMemoryBankCategoryMapper",
    "InMemoryTransactionHistory",
    "InMemorySuggestionStore",
    "InMemoryCandidateStore",
]
