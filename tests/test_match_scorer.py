"""Weighted match scorer tests."""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from finmatch.schemas.matching import MatchScoringConfig, MatchSide
from finmatch.services.match_scorer import WeightedMatchScorer, is_round_amount

DAY = date(2024, 5, 10)


def side(id, amount, description="", days=0, account_name=None):
    return MatchSide(
        id=id,
        amount=Decimal(amount),
        posted_date=DAY + timedelta(days=days),
        description=description,
        account_name=account_name,
    )


def test_amount_gate_rejects_large_difference_regardless_of_other_signals():
    scorer = WeightedMatchScorer()
    score = scorer.score(
        side(1, "-100.00", "Grocery Store Purchase"),
        side(2, "150.00", "Grocery Store Purchase"),
    )
    assert score.confidence == 0.0
    assert score.rejected is True
    assert list(score.breakdown) == ["amount"]


def test_amount_within_tolerance_is_not_rejected():
    scorer = WeightedMatchScorer()
    score = scorer.score(side(1, "-100.00"), side(2, "104.00"))
    assert score.rejected is False
    assert score.breakdown["amount"] == pytest.approx(0.4 * (1 - 4 / 104), abs=1e-4)


def test_date_tiers():
    scorer = WeightedMatchScorer()
    same_day = scorer.score(side(1, "-10.10"), side(2, "10.10"))
    next_day = scorer.score(side(1, "-10.10"), side(2, "10.10", days=1))
    later = scorer.score(side(1, "-10.10"), side(2, "10.10", days=2))
    assert same_day.breakdown["date"] == 0.20
    assert next_day.breakdown["date"] == 0.10
    assert "date" not in later.breakdown
    assert "Same day transaction" in same_day.reasons


def test_cross_reference_fires_in_both_directions():
    scorer = WeightedMatchScorer()
    score = scorer.score(
        side(1, "-80.10", "Payment to Savings", account_name="Checking"),
        side(2, "80.10", "Deposit from Checking", account_name="Savings"),
    )
    assert score.breakdown["cross_reference"] == pytest.approx(0.2)
    assert len([r for r in score.reasons if r.startswith("Description mentions account")]) == 2


def test_round_amount_bonus():
    scorer = WeightedMatchScorer()
    round_score = scorer.score(side(1, "-200.00", days=0), side(2, "200.00", days=5))
    odd_score = scorer.score(side(1, "-200.37", days=0), side(2, "200.37", days=5))
    assert round_score.breakdown["round_amount"] == 0.05
    assert "round_amount" not in odd_score.breakdown


def test_keywords_add_to_text_but_are_capped():
    config = MatchScoringConfig(keywords=["TRANSFER", "XFER", "SAVINGS", "INTERNAL"], from_to_pattern=True)
    score = WeightedMatchScorer(config).score(
        side(1, "-50.00", "INTERNAL TRANSFER TO SAVINGS XFER"),
        side(2, "50.00", "INTERNAL TRANSFER FROM CHECKING"),
    )
    assert score.breakdown["text"] == pytest.approx(0.30)


def test_score_never_exceeds_one():
    config = MatchScoringConfig(
        amount_weight=0.6,
        date_weights={0: 0.5},
        text_weight=0.5,
        cross_reference_weight=0.3,
        round_amount_weight=0.2,
    )
    score = WeightedMatchScorer(config).score(
        side(1, "-100.00", "to Savings", account_name="Checking"),
        side(2, "100.00", "from Checking", account_name="Savings"),
    )
    assert score.confidence == 1.0


@pytest.mark.parametrize(
    "left, right, days",
    [
        ("-100.00", "100.00", 0),
        ("-99.99", "101.00", 3),
        ("-0.01", "0.01", 0),
        ("0", "0", 0),
        ("-5000", "1", 1),
        ("-42.42", "42.00", 10),
    ],
)
def test_score_is_bounded(left, right, days):
    score = WeightedMatchScorer().score(side(1, left, "ABC"), side(2, right, "ABD", days=days))
    assert 0.0 <= score.confidence <= 1.0


def test_signed_comparison_rejects_opposite_signs():
    config = MatchScoringConfig(compare_absolute_amounts=False)
    score = WeightedMatchScorer(config).score(side(1, "-100.00"), side(2, "100.00"))
    assert score.rejected is True


@pytest.mark.parametrize(
    "amount, expected",
    [("100.00", True), ("-25", True), ("75.00", True), ("10.50", False), ("0", False), ("99.99", False)],
)
def test_is_round_amount(amount, expected):
    assert is_round_amount(Decimal(amount)) is expected
