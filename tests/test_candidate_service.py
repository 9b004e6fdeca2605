"""Classification candidate workflow tests."""

import pytest

from finmatch.core.exceptions import AlreadyProcessedError, ForbiddenError, NotFoundError, ValidationError
from finmatch.schemas.classification import CandidateStatus, ClassificationOutcome, OutcomeState
from finmatch.services.candidate_service import CandidateService

from tests.conftest import DINING, GROCERIES, SHOPPING, USER_ID


def outcome(transaction_id, state, category_id=None, confidence=None, source=None, rule_id=None):
    return ClassificationOutcome(
        transaction_id=transaction_id,
        state=state,
        category_id=category_id,
        confidence=confidence,
        source=source,
        rule_id=rule_id,
    )


@pytest.fixture
def service(candidate_store, rule_repo):
    return CandidateService(candidate_store, correction_sink=rule_repo)


@pytest.fixture
async def candidates(service):
    return await service.create_from_outcomes(
        [
            outcome(1, OutcomeState.CANDIDATE, SHOPPING, 0.8, "Rules", rule_id=2),
            outcome(2, OutcomeState.AUTO_APPLIED, GROCERIES, 0.98, "Rules", rule_id=1),
            outcome(3, OutcomeState.UNRESOLVED),
            outcome(4, OutcomeState.CANDIDATE, DINING, 0.96, "LLM"),
        ],
        USER_ID,
    )


@pytest.mark.asyncio
async def test_only_candidates_are_persisted(candidates):
    assert [c.transaction_id for c in candidates] == [1, 4]
    assert all(c.status == CandidateStatus.PENDING for c in candidates)
    assert all(c.id is not None for c in candidates)


@pytest.mark.asyncio
async def test_accept_records_rule_match(service, candidates, rule_repo):
    accepted = await service.accept(candidates[0].id, USER_ID)

    assert accepted.status == CandidateStatus.ACCEPTED
    assert accepted.applied_category_id == SHOPPING
    assert (await rule_repo.get_rule(2)).match_count == 1


@pytest.mark.asyncio
async def test_override_records_correction(service, candidates, rule_repo):
    overridden = await service.override(candidates[0].id, USER_ID, GROCERIES)

    assert overridden.status == CandidateStatus.REJECTED
    assert overridden.applied_category_id == GROCERIES
    rule = await rule_repo.get_rule(2)
    assert rule.correction_count == 1
    assert rule_repo.corrections == [(2, 1, GROCERIES)]


@pytest.mark.asyncio
async def test_reject_then_reprocess_raises(service, candidates):
    await service.reject(candidates[0].id, USER_ID)
    with pytest.raises(AlreadyProcessedError):
        await service.accept(candidates[0].id, USER_ID)


@pytest.mark.asyncio
async def test_unknown_and_foreign_candidates(service, candidates):
    with pytest.raises(NotFoundError):
        await service.accept(999, USER_ID)
    with pytest.raises(ForbiddenError):
        await service.reject(candidates[0].id, USER_ID + 1)


@pytest.mark.asyncio
async def test_auto_apply_high_confidence(service, candidates):
    applied = await service.auto_apply_high_confidence(USER_ID, threshold=0.95)

    assert [c.transaction_id for c in applied] == [4]
    pending = await service.list_pending(USER_ID)
    assert [c.transaction_id for c in pending] == [1]


@pytest.mark.asyncio
async def test_override_rejects_invalid_category(service, candidates):
    with pytest.raises(ValidationError):
        await service.override(candidates[0].id, USER_ID, 0)
    assert [c.transaction_id for c in await service.list_pending(USER_ID)] == [4, 1]
