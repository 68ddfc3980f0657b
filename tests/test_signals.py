# tests/test_signals.py
from datetime import timedelta

import pytest

from seller_radar.domain.metrics import months_between, round_half_up, safe_ratio, scale_score
from seller_radar.domain.property import EngagementEvent, EngagementSignals
from seller_radar.domain.signals import (
    build_seller_signals,
    compute_engagement_intent,
    compute_life_event_score,
    household_income,
)

from fixtures.properties import AS_OF, make_property


def test_scale_score_clamps_and_inverts():
    assert scale_score(6, 1, 11) == pytest.approx(50.0)
    assert scale_score(50, 1, 11) == 100.0
    assert scale_score(10, 10, 90, invert=True) == 100.0
    assert scale_score(None, 0, 1) is None


def test_safe_ratio_guards_denominator():
    assert safe_ratio(1.0, 0.0) is None
    assert safe_ratio(None, 5.0) is None
    assert safe_ratio(1.0, 4.0) == 0.25


def test_equity_signals():
    s = build_seller_signals(make_property(), AS_OF)
    assert s.equity_ratio == pytest.approx(0.5)
    assert s.equity_velocity == pytest.approx(8.3)
    # no loan on file -> unknown, not zero
    assert s.loan_to_value is None
    assert s.mortgage_pressure is None


def test_high_ltv_and_payment_burden_flags():
    prop = make_property(
        loan_balance=360_000,
        monthly_mortgage_payment=4_500,
        household_income_band="125k-150k",
    )
    s = build_seller_signals(prop, AS_OF)
    assert s.loan_to_value == pytest.approx(0.9)
    # 54k / 137.5k
    assert s.mortgage_pressure == 39.0
    assert "high-ltv" in s.flags
    assert "payment-burden" in s.flags


def test_unknown_income_band_uses_default():
    assert household_income("unknown-band") == 140_000.0
    assert household_income("75k-100k") == 140_000.0
    assert household_income(None) is None


def test_life_event_score_averages_weights():
    assert compute_life_event_score(["job-relocation", "promotion-announced"]) == 90.0
    assert compute_life_event_score([]) is None
    s = build_seller_signals(make_property(life_event_signals=["job-relocation"]), AS_OF)
    assert "life-event-disruption" in s.flags


def test_engagement_intent_bonuses():
    engagement = EngagementSignals(
        multi_channel_score=50,
        high_intent_events=[
            EngagementEvent(type="valuation-request", occurred_at=AS_OF - timedelta(days=10)),
            EngagementEvent(type="agent-search", occurred_at=AS_OF - timedelta(days=60)),
            EngagementEvent(type="old", occurred_at=AS_OF - timedelta(days=200)),
            # future-dated events are ignored
            EngagementEvent(type="future", occurred_at=AS_OF + timedelta(days=3)),
        ],
    )
    prop = make_property(engagement=engagement)
    assert compute_engagement_intent(prop, AS_OF) == pytest.approx(62.0)


def test_engagement_intent_missing():
    assert compute_engagement_intent(make_property(), AS_OF) is None


def test_recent_sale_scores_low_recency():
    recent = build_seller_signals(make_property(last_sale_date=AS_OF - timedelta(days=200)), AS_OF)
    old = build_seller_signals(make_property(last_sale_date=AS_OF - timedelta(days=4000)), AS_OF)
    assert recent.transaction_recency_score == 0.0
    assert old.transaction_recency_score == 100.0


def test_round_half_up_differs_from_bankers_rounding():
    assert round_half_up(62.5) == 63.0
    assert round_half_up(-2.5) == -2.0
    assert round_half_up(6.25, 1) == 6.3
    assert round_half_up(6.24, 1) == 6.2


def test_months_between_ignores_day_of_month():
    assert months_between(AS_OF, AS_OF.replace(year=2018, month=11, day=30)) == 67
    assert months_between(AS_OF, AS_OF.replace(day=28)) == 0


def test_life_event_score_rounds_halves_up():
    # mean weight 0.625
    assert compute_life_event_score(["retirement-planning", "unknown-tag"]) == 63.0


def test_equity_velocity_rounds_halves_up():
    # 25% equity over 4 years = 6.25
    s = build_seller_signals(make_property(estimated_equity=100_000, years_in_home=4), AS_OF)
    assert s.equity_velocity == 6.3
