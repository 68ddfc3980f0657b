# src/seller_radar/services/features.py
"""
Feature vector assembly.

FEATURES is the ordered contract shared by training and scoring. Every
missing input is written as 0.0 at assembly time; that conflates "unknown"
with "zero" inside the model and is kept for parity with persisted models.
"""
from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from seller_radar.adapters.logging_utils import get_logger
from seller_radar.domain.errors import FeatureMismatchError
from seller_radar.domain.metrics import clamp, days_between, months_between, round_half_up
from seller_radar.domain.property import MarketData, PropertyOpportunity
from seller_radar.domain.signals import (
    DEFAULT_INCOME,
    SellerSignals,
    build_seller_signals,
    household_income,
)
from seller_radar.domain.vectors import SellerFeatureVector, TrainingExample

CORE_FEATURES = [
    "equity_ratio", "equity_velocity", "loan_to_value", "mortgage_pressure",
    "digital_engagement_score", "neighborhood_momentum", "life_event_score",
    "listing_momentum", "transaction_recency_score", "refinance_intensity",
    "engagement_intent_score",
    "years_in_home", "listing_score", "estimated_equity", "equity_upside",
    "loan_balance", "owner_age", "market_value", "assessed_value",
    "monthly_mortgage_payment", "loan_interest_rate", "household_income",
    "neighbors_listed_12_months", "life_event_count",
]

MARKET_FEATURES = [
    "market_health_score", "affordability_score", "investment_potential",
    "market_velocity_normalized", "inventory_tightness", "mortgage_rate_trend",
    "unemployment_local", "market_competitiveness", "price_appreciation_local",
    "median_days_on_market_local",
]

TEMPORAL_FEATURES = [
    "months_since_last_sale", "days_since_last_engagement", "seasonal_selling_window",
    "time_since_refinance", "age_of_listing_history",
]

COMPARATIVE_FEATURES = [
    "equity_ratio_vs_neighborhood", "value_vs_neighborhood_median",
    "years_in_home_vs_area_average", "appreciation_vs_market",
    "debt_ratio_vs_neighborhood", "listing_score_vs_neighborhood",
]

FINANCIAL_FEATURES = [
    "debt_service_ratio", "payment_to_income_ratio", "tax_burden_ratio",
    "assessed_value_ratio", "refinance_urgency_score", "negative_equity_risk",
    "property_age",
]

INTERACTION_FEATURES = [
    "equity_ratio_x_years_in_home", "market_heat_x_equity_ratio",
    "life_event_x_engagement", "age_x_equity",
    "mortgage_pressure_x_market_velocity", "neighborhood_momentum_x_listing_score",
    "debt_ratio_x_income_pressure", "refinance_signal_x_equity_growth",
]

FEATURES: list[str] = (
    CORE_FEATURES
    + MARKET_FEATURES
    + TEMPORAL_FEATURES
    + COMPARATIVE_FEATURES
    + FINANCIAL_FEATURES
    + INTERACTION_FEATURES
)

MARKET_HEALTH_SCORES: dict[str, float] = {"excellent": 100.0, "good": 75.0, "fair": 50.0, "poor": 25.0}

# month -> seasonal listing window score, peaking in May/June
SEASONAL_WINDOW: dict[int, float] = {
    1: 30.0, 2: 30.0, 3: 70.0, 4: 85.0, 5: 100.0, 6: 100.0,
    7: 85.0, 8: 70.0, 9: 50.0, 10: 50.0, 11: 50.0, 12: 30.0,
}

# area baselines the comparative block measures against
AREA_EQUITY_RATIO = 0.3
AREA_OWNERSHIP_YEARS = 9.0
AREA_LOAN_TO_VALUE = 0.7
AREA_LISTING_SCORE = 70.0

# long-run 30y mortgage rate, percent
HISTORICAL_MORTGAGE_RATE = 5.5

Values = dict[str, float | None]

logger = get_logger(__name__)


def _bounded(value: float) -> float:
    return clamp(value, 0.0, 100.0)


def _percent(ratio: float | None) -> float | None:
    return round_half_up(ratio * 1000) / 10 if ratio is not None else None


def _equity_ratio(prop: PropertyOpportunity) -> float | None:
    return prop.estimated_equity / prop.market_value if prop.market_value > 0 else None


def _loan_to_value(prop: PropertyOpportunity) -> float | None:
    if prop.loan_balance and prop.market_value > 0:
        return prop.loan_balance / prop.market_value
    return None


def _core(prop: PropertyOpportunity, s: SellerSignals) -> Values:
    return {
        "equity_ratio": _percent(s.equity_ratio),
        "equity_velocity": s.equity_velocity,
        "loan_to_value": _percent(s.loan_to_value),
        "mortgage_pressure": s.mortgage_pressure,
        "digital_engagement_score": s.digital_engagement_score,
        "neighborhood_momentum": s.neighborhood_momentum,
        "life_event_score": s.life_event_score,
        "listing_momentum": s.listing_momentum,
        "transaction_recency_score": s.transaction_recency_score,
        "refinance_intensity": s.refinance_intensity,
        "engagement_intent_score": s.engagement_intent_score,
        "years_in_home": prop.years_in_home,
        "listing_score": prop.listing_score,
        "estimated_equity": prop.estimated_equity,
        "equity_upside": prop.equity_upside,
        "loan_balance": prop.loan_balance,
        "owner_age": prop.owner_age,
        "market_value": prop.market_value,
        "assessed_value": prop.assessed_value,
        "monthly_mortgage_payment": prop.monthly_mortgage_payment,
        "loan_interest_rate": prop.loan_interest_rate,
        "household_income": household_income(prop.household_income_band),
        "neighbors_listed_12_months": (
            float(prop.neighbors_listed_12_months)
            if prop.neighbors_listed_12_months is not None
            else None
        ),
        "life_event_count": float(len(prop.life_event_signals)),
    }


def market_competitiveness(sold_above_list: float | None, median_dom: float | None) -> float | None:
    """Share sold above list (x200) plus half of a DOM score where 0 days -> 100, 90+ -> 0."""
    dom_score = max(0.0, 100.0 - (median_dom / 90.0) * 100.0) if median_dom is not None else None
    if sold_above_list is not None and dom_score is not None:
        return _bounded(sold_above_list * 200.0 + dom_score * 0.5)
    if sold_above_list is not None:
        # not clamped when DOM is unknown
        return sold_above_list * 200.0
    return dom_score


def _market(market: MarketData | None) -> Values:
    if market is None:
        return dict.fromkeys(MARKET_FEATURES)

    redfin, hud, economic, insights = market.redfin, market.hud, market.economic, market.insights

    health = insights.market_health if insights else None
    affordability = insights.affordability_score if insights else None
    potential = insights.investment_potential if insights else None
    velocity = insights.market_velocity if insights else None

    supply = redfin.months_of_supply if redfin else None
    sold_above = redfin.sold_above_list if redfin else None
    dom = redfin.median_dom if redfin else None
    rate = economic.mortgage_rate_30y if economic else None
    unemployment = economic.unemployment_rate if economic else None
    appreciation = hud.price_appreciation if hud else None

    return {
        "market_health_score": MARKET_HEALTH_SCORES.get(health) if health else None,
        "affordability_score": _bounded(affordability) if affordability is not None else None,
        "investment_potential": _bounded(potential) if potential is not None else None,
        "market_velocity_normalized": _bounded(velocity) if velocity is not None else None,
        # 0 months of supply -> 100, 8+ months -> 0
        "inventory_tightness": (
            _bounded(100.0 - (supply / 8.0) * 100.0) if supply is not None else None
        ),
        # 3% -> 100, 7%+ -> 0
        "mortgage_rate_trend": (
            _bounded(100.0 - ((rate - 3.0) / 4.0) * 100.0) if rate is not None else None
        ),
        "unemployment_local": (
            _bounded(100.0 - (unemployment / 10.0) * 100.0) if unemployment is not None else None
        ),
        "market_competitiveness": market_competitiveness(sold_above, dom),
        "price_appreciation_local": (
            _bounded((appreciation + 5.0) * 5.0) if appreciation is not None else None
        ),
        "median_days_on_market_local": dom,
    }


def _months_since(as_of: date, when: date | None) -> float | None:
    return float(max(0, months_between(as_of, when))) if when is not None else None


def _temporal(prop: PropertyOpportunity, as_of: date) -> Values:
    last_engagement = prop.engagement.last_engagement_date if prop.engagement else None
    return {
        "months_since_last_sale": _months_since(as_of, prop.last_sale_date),
        "days_since_last_engagement": (
            float(max(0, days_between(as_of, last_engagement))) if last_engagement else None
        ),
        "seasonal_selling_window": SEASONAL_WINDOW[as_of.month],
        "time_since_refinance": _months_since(as_of, prop.last_refinance_date),
        "age_of_listing_history": _months_since(as_of, prop.last_listing_date),
    }


def _comparative(prop: PropertyOpportunity, market: MarketData | None) -> Values:
    if market is None:
        return dict.fromkeys(COMPARATIVE_FEATURES)

    median_value = market.census.median_home_value if market.census else None
    market_appreciation = market.hud.price_appreciation if market.hud else None

    equity_ratio = _equity_ratio(prop)
    ltv = _loan_to_value(prop)
    upside_pct = (
        prop.equity_upside / prop.market_value * 100.0
        if prop.equity_upside and prop.market_value > 0
        else None
    )

    return {
        "equity_ratio_vs_neighborhood": (
            (equity_ratio - AREA_EQUITY_RATIO) / AREA_EQUITY_RATIO * 100.0
            if equity_ratio is not None
            else None
        ),
        "value_vs_neighborhood_median": (
            round_half_up((prop.market_value - median_value) / median_value * 1000) / 10
            if median_value and prop.market_value
            else None
        ),
        "years_in_home_vs_area_average": (
            round_half_up((prop.years_in_home - AREA_OWNERSHIP_YEARS) / AREA_OWNERSHIP_YEARS * 1000)
            / 10
        ),
        "appreciation_vs_market": (
            round_half_up(upside_pct - market_appreciation, 1)
            if upside_pct is not None and market_appreciation is not None
            else None
        ),
        "debt_ratio_vs_neighborhood": (
            round_half_up((ltv - AREA_LOAN_TO_VALUE) / AREA_LOAN_TO_VALUE * 1000) / 10
            if ltv is not None
            else None
        ),
        "listing_score_vs_neighborhood": round_half_up(prop.listing_score - AREA_LISTING_SCORE, 1),
    }


def refinance_urgency(
    loan_interest_rate: float | None,
    equity_ratio: float | None,
    ltv: float | None,
) -> float | None:
    """
    Pressure to refinance rather than sell: an above-average loan rate on a
    home with more than 20% equity and under 80% LTV. None otherwise.
    """
    rate = loan_interest_rate if loan_interest_rate is not None else HISTORICAL_MORTGAGE_RATE
    rate_diff = rate - HISTORICAL_MORTGAGE_RATE
    if rate_diff > 0.5 and equity_ratio is not None and equity_ratio > 0.2 and ltv is not None and ltv < 0.8:
        return min(100.0, max(0.0, rate_diff * 20.0 + equity_ratio * 30.0))
    return None


def negative_equity_risk(equity_ratio: float | None) -> float | None:
    if equity_ratio is None:
        return None
    if equity_ratio < 0:
        return min(100.0, abs(equity_ratio) * 100.0)
    if equity_ratio < 0.1:
        return min(100.0, (0.1 - equity_ratio) * 1000.0)
    return None


def _financial(prop: PropertyOpportunity, market: MarketData | None, as_of: date) -> Values:
    monthly_income = (household_income(prop.household_income_band) or DEFAULT_INCOME) / 12.0
    debt_service = (
        prop.monthly_mortgage_payment / monthly_income * 100.0
        if prop.monthly_mortgage_payment and monthly_income > 0
        else None
    )
    equity_ratio = _equity_ratio(prop)
    year_built = market.census.median_year_built if market and market.census else None

    return {
        "debt_service_ratio": debt_service,
        "payment_to_income_ratio": debt_service,
        "tax_burden_ratio": (
            prop.annual_property_tax / prop.market_value * 100.0
            if prop.annual_property_tax and prop.market_value > 0
            else None
        ),
        "assessed_value_ratio": (
            prop.assessed_value / prop.market_value
            if prop.assessed_value and prop.market_value > 0
            else None
        ),
        "refinance_urgency_score": refinance_urgency(
            prop.loan_interest_rate, equity_ratio, _loan_to_value(prop)
        ),
        "negative_equity_risk": negative_equity_risk(equity_ratio),
        "property_age": float(as_of.year - year_built) if year_built else None,
    }


def _interactions(prop: PropertyOpportunity, s: SellerSignals, values: Values) -> Values:
    equity_ratio = _equity_ratio(prop)
    equity_pct = equity_ratio * 100.0 if equity_ratio is not None else None
    velocity = values["market_velocity_normalized"]

    def scaled(a: float | None, b: float | None) -> float | None:
        # a is a 0-100 score used as a weight on b
        if a is None or b is None:
            return None
        return (a / 100.0) * b

    return {
        "equity_ratio_x_years_in_home": (
            equity_pct * prop.years_in_home / 10.0
            if equity_pct is not None and prop.years_in_home > 0
            else None
        ),
        "market_heat_x_equity_ratio": scaled(velocity, equity_pct),
        "life_event_x_engagement": scaled(s.life_event_score, s.engagement_intent_score),
        "age_x_equity": scaled(prop.owner_age, equity_pct),
        "mortgage_pressure_x_market_velocity": scaled(s.mortgage_pressure, velocity),
        "neighborhood_momentum_x_listing_score": scaled(s.neighborhood_momentum, prop.listing_score),
        "debt_ratio_x_income_pressure": (
            s.loan_to_value * 100.0 * (s.mortgage_pressure / 100.0)
            if s.loan_to_value is not None and s.mortgage_pressure is not None
            else None
        ),
        "refinance_signal_x_equity_growth": (
            scaled(s.refinance_intensity, max(0.0, s.equity_velocity * 10.0))
            if s.equity_velocity is not None
            else None
        ),
    }


def build_seller_feature_vector(
    prop: PropertyOpportunity,
    market: MarketData | None,
    as_of: date,
    signals: SellerSignals | None = None,
) -> SellerFeatureVector:
    """Assemble the FEATURES-ordered vector for one property."""
    s = signals or build_seller_signals(prop, as_of)

    values: Values = {}
    values.update(_core(prop, s))
    values.update(_market(market))
    values.update(_temporal(prop, as_of))
    values.update(_comparative(prop, market))
    values.update(_financial(prop, market, as_of))
    values.update(_interactions(prop, s, values))

    return SellerFeatureVector(
        feature_names=tuple(FEATURES),
        values=tuple(0.0 if values[name] is None else float(values[name]) for name in FEATURES),
        label=prop.seller_outcome,
    )


def resolve_feature_vector(
    prop: PropertyOpportunity,
    market: MarketData | None,
    as_of: date,
) -> SellerFeatureVector:
    """Precomputed features win (feature store); otherwise assemble fresh."""
    if prop.seller_features is not None:
        return prop.seller_features
    return build_seller_feature_vector(prop, market, as_of)


def ensure_feature_contract(vector_names: Iterable[str], expected: Iterable[str]) -> None:
    got = list(vector_names)
    want = list(expected)
    if got != want:
        raise FeatureMismatchError(
            f"feature contract mismatch: got {len(got)} features, expected {len(want)}"
        )


def bias_attributes(prop: PropertyOpportunity) -> dict[str, str]:
    attrs = {"priority": prop.priority}
    if prop.owner_type:
        attrs["owner_type"] = prop.owner_type
    if prop.household_income_band:
        attrs["income_band"] = prop.household_income_band
    return attrs


def build_training_examples(
    properties: Iterable[PropertyOpportunity],
    market_lookup,
    as_of: date,
) -> list[TrainingExample]:
    """
    Labeled properties -> training examples.

    market_lookup: callable(property) -> MarketData | None, or None for no market context.
    """
    examples: list[TrainingExample] = []
    for prop in properties:
        if prop.seller_outcome not in (0, 1):
            continue
        market = market_lookup(prop) if market_lookup is not None else None
        vector = resolve_feature_vector(prop, market, as_of)
        if list(vector.feature_names) != FEATURES:
            logger.warning(
                "training_example_feature_mismatch",
                extra={"context": {"property_id": prop.id, "n_features": len(vector.feature_names)}},
            )
            continue
        examples.append(
            TrainingExample(
                property_id=prop.id,
                features=vector.values,
                label=prop.seller_outcome,
                attributes=bias_attributes(prop),
            )
        )
    return examples
