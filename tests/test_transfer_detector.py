"""Transfer detection and date window tests."""

import itertools
from datetime import date, timedelta
from decimal import Decimal

import pytest

from finmatch.schemas.matching import MatchCandidate
from finmatch.services.date_window import bucket_by_date, pairs_within_window
from finmatch.services.transfer_detector import TransferDetector, deduplicate_candidates, sort_candidates

CHECKING = 1
SAVINGS = 2


@pytest.fixture
def detector():
    return TransferDetector()


@pytest.fixture
def transfer_pair(make_transaction):
    debit = make_transaction(
        "TRANSFER TO SAVINGS", "-500.00", date(2024, 1, 10), account_id=CHECKING, account_name="Checking"
    )
    credit = make_transaction(
        "TRANSFER FROM CHECKING", "500.00", date(2024, 1, 11), account_id=SAVINGS, account_name="Savings"
    )
    return debit, credit


def candidate(left_id, right_id, confidence, day=1):
    return MatchCandidate(
        left_id=left_id,
        right_id=right_id,
        confidence=confidence,
        amount=Decimal("10"),
        posted_date=date(2024, 1, day),
    )


# ── Detector ───────────────────────────────────────

def test_detects_transfer_between_own_accounts(detector, transfer_pair):
    debit, credit = transfer_pair
    candidates = detector.find_candidates([debit, credit])

    assert len(candidates) == 1
    found = candidates[0]
    assert (found.left_id, found.right_id) == (debit.id, credit.id)
    assert found.confidence == 1.0
    assert found.amount == Decimal("500.00")
    assert "Exact amount match" in found.matching_criteria
    assert "Contains keyword: TRANSFER" in found.matching_criteria
    assert "Contains FROM/TO pattern" in found.matching_criteria
    assert "Description mentions account: Checking" in found.matching_criteria
    assert "Round amount" in found.matching_criteria


def test_amount_outside_tolerance_yields_no_candidate(detector, make_transaction):
    debit = make_transaction("TRANSFER TO SAVINGS", "-100.00", account_id=CHECKING)
    credit = make_transaction("TRANSFER FROM CHECKING", "150.00", account_id=SAVINGS)
    assert detector.find_candidates([debit, credit]) == []


def test_same_account_pairs_are_skipped(detector, make_transaction):
    debit = make_transaction("TRANSFER OUT", "-200.00", account_id=CHECKING)
    credit = make_transaction("TRANSFER IN", "200.00", account_id=CHECKING)
    assert detector.find_candidates([debit, credit]) == []


def test_known_transfers_and_zero_amounts_are_skipped(detector, make_transaction):
    transactions = [
        make_transaction("TRANSFER TO SAVINGS", "-50.00", account_id=CHECKING, is_transfer=True),
        make_transaction("TRANSFER FROM CHECKING", "50.00", account_id=SAVINGS),
        make_transaction("ADJUSTMENT", "0.00", account_id=CHECKING),
    ]
    assert detector.find_candidates(transactions) == []


def test_pairs_outside_date_window_are_ignored(detector, make_transaction):
    debit = make_transaction("TRANSFER TO SAVINGS", "-75.00", date(2024, 1, 10), account_id=CHECKING)
    near = make_transaction("TRANSFER FROM CHECKING", "75.00", date(2024, 1, 13), account_id=SAVINGS)
    far = make_transaction("TRANSFER FROM CHECKING", "75.00", date(2024, 1, 14), account_id=SAVINGS)

    candidates = detector.find_candidates([debit, near, far])

    assert [c.right_id for c in candidates] == [near.id]


def test_weak_pairs_fall_below_min_confidence(detector, make_transaction):
    debit = make_transaction("GROCERY", "-42.17", date(2024, 1, 10), account_id=CHECKING)
    credit = make_transaction("PAYROLL", "42.17", date(2024, 1, 13), account_id=SAVINGS)
    assert detector.find_candidates([debit, credit]) == []


def test_candidates_sorted_by_confidence(detector, transfer_pair, make_transaction):
    weaker_debit = make_transaction("ATM", "-60.00", date(2024, 1, 10), account_id=CHECKING)
    weaker_credit = make_transaction("DEPOSIT", "60.00", date(2024, 1, 10), account_id=SAVINGS)

    candidates = detector.find_candidates([weaker_credit, *transfer_pair, weaker_debit])

    assert [c.confidence for c in candidates] == sorted((c.confidence for c in candidates), reverse=True)
    assert candidates[0].left_id == transfer_pair[0].id


def test_results_do_not_depend_on_input_order(detector, transfer_pair, make_transaction):
    extra = [
        make_transaction("TRANSFER TO SAVINGS", "-20.00", date(2024, 1, 12), account_id=CHECKING),
        make_transaction("TRANSFER FROM CHECKING", "20.00", date(2024, 1, 12), account_id=SAVINGS),
    ]
    transactions = [*transfer_pair, *extra]
    assert detector.find_candidates(transactions) == detector.find_candidates(list(reversed(transactions)))


def test_deduplicate_keeps_best_per_unordered_pair():
    result = deduplicate_candidates([candidate(1, 2, 0.6), candidate(2, 1, 0.8), candidate(3, 4, 0.7)])
    assert sorted((c.left_id, c.right_id, c.confidence) for c in result) == [(2, 1, 0.8), (3, 4, 0.7)]


def test_sort_breaks_ties_by_date_then_ids():
    ordered = sort_candidates([candidate(5, 6, 0.9, day=2), candidate(3, 4, 0.9, day=1), candidate(1, 2, 0.95)])
    assert [(c.left_id, c.right_id) for c in ordered] == [(1, 2), (3, 4), (5, 6)]


# ── Date window ────────────────────────────────────

def test_bucket_by_date_anchors_on_first_item():
    days = [date(2024, 1, d) for d in (9, 1, 4, 2, 5)]
    buckets = bucket_by_date(days, lambda d: d, tolerance=3)
    assert [[d.day for d in bucket] for bucket in buckets] == [[1, 2, 4], [5], [9]]


def test_pairs_across_adjacent_buckets_are_found():
    left = [date(2024, 1, 3)]
    right = [date(2024, 1, 1), date(2024, 1, 5)]
    pairs = list(pairs_within_window(left, right, lambda d: d, tolerance=3))
    assert sorted((a.day, b.day) for a, b in pairs) == [(3, 1), (3, 5)]


def test_pairs_within_window_matches_all_pairs_scan():
    start = date(2024, 1, 1)
    offsets = [0, 1, 1, 3, 4, 7, 8, 8, 12, 15, 16, 20]
    left = [("L", i, start + timedelta(days=d)) for i, d in enumerate(offsets[::2])]
    right = [("R", i, start + timedelta(days=d)) for i, d in enumerate(offsets[1::2])]

    found = sorted(pairs_within_window(left, right, lambda item: item[2], tolerance=3))
    expected = sorted(
        (a, b) for a, b in itertools.product(left, right) if abs((a[2] - b[2]).days) <= 3
    )
    assert found == expected
