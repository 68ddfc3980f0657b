# src/seller_radar/domain/signals.py
"""
Seller signal derivation.

Every signal degrades to None on missing inputs instead of raising; callers
treat None as "exclude", never as zero. Flags are descriptive only.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from seller_radar.domain.metrics import (
    clamp,
    days_between,
    round_half_up,
    safe_ratio,
    scale_score,
    years_between,
)
from seller_radar.domain.property import PropertyOpportunity

INCOME_BAND_TO_AVERAGE: dict[str, float] = {
    "100k-125k": 112_500.0,
    "125k-150k": 137_500.0,
    "150k-175k": 162_500.0,
    "150k-200k": 175_000.0,
    "175k-200k": 187_500.0,
    "200k+": 225_000.0,
}
DEFAULT_INCOME = 140_000.0

LIFE_EVENT_WEIGHTS: dict[str, float] = {
    "job-relocation": 1.0,
    "promotion-announced": 0.8,
    "remote-work-shift": 0.6,
    "kids-off-to-college": 0.7,
    "downsizing-research": 0.65,
    "retirement-planning": 0.75,
    "retirement-countdown": 0.85,
    "expecting-child": 0.9,
    "growing-family": 0.95,
    "capital-gains-planning": 0.5,
    "portfolio-rebalance": 0.55,
    "new-business-launch": 0.4,
}
DEFAULT_LIFE_EVENT_WEIGHT = 0.5

# engagement intent
BASE_ENGAGEMENT_WEIGHT = 0.8
RECENT_EVENT_BONUS = 15.0   # <= 30 days
WARM_EVENT_BONUS = 7.0      # 31-90 days


@dataclass
class SellerSignals:
    equity_ratio: float | None
    equity_velocity: float | None
    loan_to_value: float | None
    mortgage_pressure: float | None
    digital_engagement_score: float | None
    neighborhood_momentum: float | None
    life_event_score: float | None
    listing_momentum: float | None
    transaction_recency_score: float | None
    refinance_intensity: float | None
    engagement_intent_score: float | None
    flags: list[str] = field(default_factory=list)


def household_income(band: str | None) -> float | None:
    if not band:
        return None
    return INCOME_BAND_TO_AVERAGE.get(band, DEFAULT_INCOME)


def compute_life_event_score(life_event_signals: list[str] | None) -> float | None:
    if not life_event_signals:
        return None
    total = sum(LIFE_EVENT_WEIGHTS.get(s, DEFAULT_LIFE_EVENT_WEIGHT) for s in life_event_signals)
    normalized = total / len(life_event_signals)
    return round_half_up(min(1.0, normalized) * 100)


def compute_engagement_intent(prop: PropertyOpportunity, as_of: date) -> float | None:
    engagement = prop.engagement
    base = engagement.multi_channel_score if engagement is not None else None
    if base is None:
        base = prop.digital_engagement_score

    events = engagement.high_intent_events if engagement is not None else []
    if base is None and not events:
        return None

    bonus = 0.0
    for event in events:
        age = days_between(as_of, event.occurred_at)
        if age < 0:
            continue
        if age <= 30:
            bonus += RECENT_EVENT_BONUS
        elif age <= 90:
            bonus += WARM_EVENT_BONUS

    return min(100.0, BASE_ENGAGEMENT_WEIGHT * float(base or 0.0) + bonus)


def _listing_momentum(prop: PropertyOpportunity, as_of: date) -> float | None:
    if prop.listing_score is None:
        return None
    bonus = 0.0
    if prop.last_listing_date is not None:
        months = days_between(as_of, prop.last_listing_date) / 30.4
        if 0 <= months <= 12:
            bonus = 20.0
        elif 0 <= months <= 36:
            bonus = 10.0
    return min(100.0, 0.8 * prop.listing_score + bonus)


def build_seller_signals(prop: PropertyOpportunity, as_of: date) -> SellerSignals:
    equity_ratio = safe_ratio(prop.estimated_equity, prop.market_value)
    equity_velocity = (
        round_half_up((equity_ratio * 100.0) / prop.years_in_home, 1)
        if equity_ratio is not None and prop.years_in_home > 0
        else None
    )
    loan_to_value = safe_ratio(prop.loan_balance, prop.market_value)

    income = household_income(prop.household_income_band)
    mortgage_pressure = (
        round_half_up(prop.monthly_mortgage_payment * 12.0 / income * 100.0)
        if prop.monthly_mortgage_payment and income
        else None
    )

    neighborhood_momentum = (
        round_half_up(min(prop.neighbors_listed_12_months * 8.0, 100.0))
        if prop.neighbors_listed_12_months is not None
        else None
    )

    life_event_score = compute_life_event_score(prop.life_event_signals)

    transaction_recency = (
        scale_score(years_between(as_of, prop.last_sale_date), 1.0, 10.0)
        if prop.last_sale_date is not None
        else None
    )

    refinance_intensity = (
        clamp(prop.refinance_count_5y * 25.0, 0.0, 100.0)
        if prop.refinance_count_5y is not None
        else None
    )

    engagement_intent = compute_engagement_intent(prop, as_of)

    flags: list[str] = []
    if loan_to_value is not None and loan_to_value > 0.8:
        flags.append("high-ltv")
    if mortgage_pressure is not None and mortgage_pressure > 35:
        flags.append("payment-burden")
    if life_event_score is not None and life_event_score >= 70:
        flags.append("life-event-disruption")
    if neighborhood_momentum is not None and neighborhood_momentum >= 60:
        flags.append("neighborhood-turnover")
    if engagement_intent is not None and engagement_intent >= 75:
        flags.append("high-intent-engagement")
    if refinance_intensity is not None and refinance_intensity >= 75:
        flags.append("serial-refinancer")

    return SellerSignals(
        equity_ratio=equity_ratio,
        equity_velocity=equity_velocity,
        loan_to_value=loan_to_value,
        mortgage_pressure=mortgage_pressure,
        digital_engagement_score=prop.digital_engagement_score,
        neighborhood_momentum=neighborhood_momentum,
        life_event_score=life_event_score,
        listing_momentum=_listing_momentum(prop, as_of),
        transaction_recency_score=transaction_recency,
        refinance_intensity=refinance_intensity,
        engagement_intent_score=engagement_intent,
        flags=flags,
    )
