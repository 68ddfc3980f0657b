# src/seller_radar/services/scoring.py
"""
Seller-propensity scoring.

Four heuristic components are blended by confidence-weighted average. When a
trained model is available its probability is blended in (0.6 heuristic /
0.4 model by default). A property whose feature vector does not match the
model's feature contract is scored on heuristics only.
"""
from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from seller_radar.adapters.config import config
from seller_radar.adapters.logging_utils import get_logger
from seller_radar.adapters.market_data import MarketDataCache
from seller_radar.adapters.model_io import ModelRegistry
from seller_radar.domain.errors import FeatureMismatchError, ModelSchemaError
from seller_radar.domain.metrics import (
    clamp,
    is_missing,
    round_half_up,
    safe_ratio,
    scale_score,
    years_between,
)
from seller_radar.domain.model_weights import SellerModelWeights
from seller_radar.domain.ports import LocationKey, MarketDataProvider
from seller_radar.domain.property import MarketData, PropertyOpportunity
from seller_radar.domain.scores import (
    ComponentResult,
    DataAvailability,
    Geography,
    ModelPrediction,
    SellerPropensityAnalysis,
    SellerPropensityScore,
)
from seller_radar.domain.signals import build_seller_signals
from seller_radar.services.features import resolve_feature_vector
from seller_radar.services.geography import build_geography_rankings, summarize_scores
from seller_radar.services.inference import predict_probability

logger = get_logger(__name__)

COMPONENT_WEIGHTS: dict[str, float] = {
    "owner_equity_readiness": 0.4,
    "market_heat": 0.3,
    "affordability_pressure": 0.2,
    "macro_economic_momentum": 0.1,
}

NEUTRAL_SCORE = 50.0


@dataclass(frozen=True)
class WeightedMetric:
    id: str
    value: float | None   # already on a 0-100 scale, None when unavailable
    weight: float


def _pct(value: float) -> str:
    return f"{round_half_up(value * 100):.0f}%"


def combine_metrics(metrics: Sequence[WeightedMetric]) -> tuple[float, float, list[str]]:
    """
    Weighted blend of the available sub-metrics.

    Returns (score, confidence, missing_ids). With nothing available the
    score is the neutral 50 at confidence 0.
    """
    total_weight = sum(m.weight for m in metrics)
    available = [m for m in metrics if not is_missing(m.value)]
    used_weight = sum(m.weight for m in available)
    missing = [m.id for m in metrics if is_missing(m.value)]

    if not metrics or used_weight <= 0:
        return NEUTRAL_SCORE, 0.0, missing

    score = sum(float(m.value) * m.weight for m in available) / used_weight  # type: ignore[arg-type]
    confidence = used_weight / total_weight * 100.0
    return clamp(score, 0.0, 100.0), clamp(confidence, 0.0, 100.0), missing


def _component(
    metrics: Sequence[WeightedMetric],
    drivers: list[str],
    risks: list[str],
) -> ComponentResult:
    score, confidence, missing = combine_metrics(metrics)
    return ComponentResult(
        score=score,
        confidence=confidence,
        metrics={m.id: m.value for m in metrics},
        missing_metrics=missing,
        drivers=drivers,
        risks=risks,
    )


# ----------------------------
# Components
# ----------------------------

def compute_owner_equity_readiness(prop: PropertyOpportunity, as_of: date) -> ComponentResult:
    drivers: list[str] = []
    risks: list[str] = []

    equity_ratio = safe_ratio(prop.estimated_equity, prop.market_value)
    upside_ratio = safe_ratio(prop.equity_upside, prop.market_value)
    years = prop.years_in_home

    if equity_ratio is not None:
        if equity_ratio >= 0.55:
            drivers.append(f"~{_pct(equity_ratio)} equity cushion")
        elif equity_ratio < 0.3:
            risks.append(f"Limited equity (~{_pct(equity_ratio)})")

    if years >= 5:
        drivers.append(f"{years:g} years in home")
    elif years < 3:
        risks.append("Short ownership tenure (<3 years)")

    listing = prop.listing_score
    if listing >= 80:
        drivers.append(f"High internal listing readiness ({listing:g})")
    elif listing < 60:
        risks.append(f"Low listing readiness ({listing:g})")

    if upside_ratio is not None and upside_ratio >= 0.2:
        drivers.append(f"Strong appreciation upside (~{_pct(upside_ratio)})")

    metrics = [
        WeightedMetric(
            "equity_ratio",
            clamp(equity_ratio * 120.0, 0.0, 100.0) if equity_ratio is not None else None,
            0.35,
        ),
        WeightedMetric("tenure", scale_score(years, 1.0, 12.0), 0.3),
        WeightedMetric("listing_score", clamp(listing, 0.0, 100.0), 0.2),
        WeightedMetric(
            "upside_ratio",
            clamp(upside_ratio * 140.0, 0.0, 100.0) if upside_ratio is not None else None,
            0.15,
        ),
    ]
    result = _component(metrics, drivers, risks)

    if prop.last_sale_date is not None:
        years_since_sale = years_between(as_of, prop.last_sale_date)
        sale_score = scale_score(years_since_sale, 1.0, 10.0)
        if sale_score is not None:
            result.score = clamp(result.score * 0.9 + sale_score * 0.1, 0.0, 100.0)
            result.metrics["sale_recency"] = sale_score
        if years_since_sale < 2:
            result.risks.append("Recent transaction history (<24 months)")

    return result


def compute_market_heat(market: MarketData | None) -> ComponentResult:
    redfin = market.redfin if market else None
    hud = market.hud if market else None
    insights = market.insights if market else None
    drivers: list[str] = []
    risks: list[str] = []

    dom = redfin.median_dom if redfin else None
    supply = redfin.months_of_supply if redfin else None
    above_list = redfin.sold_above_list if redfin else None
    price_drops = redfin.price_drops if redfin else None
    velocity = insights.market_velocity if insights else None
    appreciation = hud.price_appreciation if hud else None

    if dom is not None:
        if dom <= 30:
            drivers.append(f"Fast market velocity (DOM {dom:.0f} days)")
        elif dom > 60:
            risks.append(f"Slower market (DOM {dom:.0f} days)")
    if supply is not None:
        if supply <= 3:
            drivers.append(f"Tight inventory ({supply:.1f} months of supply)")
        elif supply > 5:
            risks.append(f"Elevated inventory ({supply:.1f} months of supply)")
    if above_list is not None and above_list >= 0.25:
        drivers.append(f"{_pct(above_list)} of homes selling above list price")
    if price_drops is not None and price_drops > 0.3:
        risks.append(f"High share of price drops ({_pct(price_drops)})")
    if appreciation is not None and appreciation > 5:
        drivers.append(f"Recent HUD price appreciation {appreciation:.1f}%")

    metrics = [
        WeightedMetric("median_dom", scale_score(dom, 10.0, 90.0, invert=True), 0.3),
        WeightedMetric("months_of_supply", scale_score(supply, 1.0, 8.0, invert=True), 0.25),
        WeightedMetric(
            "sold_above_list",
            clamp(above_list * 200.0, 0.0, 100.0) if above_list is not None else None,
            0.2,
        ),
        WeightedMetric("price_drops", scale_score(price_drops, 0.05, 0.4, invert=True), 0.15),
        WeightedMetric(
            "market_velocity",
            clamp(velocity, 0.0, 100.0) if velocity is not None else None,
            0.05,
        ),
        WeightedMetric("price_appreciation", scale_score(appreciation, -5.0, 15.0), 0.05),
    ]
    return _component(metrics, drivers, risks)


def compute_affordability_pressure(market: MarketData | None) -> ComponentResult:
    hud = market.hud if market else None
    census = market.census if market else None
    drivers: list[str] = []
    risks: list[str] = []

    index = hud.affordability_index if hud else None
    income_to_price = hud.income_to_price_ratio if hud else None
    cost_burdened = hud.cost_burdened_households if hud else None
    price_to_income = (
        safe_ratio(census.median_home_value, census.median_household_income) if census else None
    )
    occupancy = census.occupancy_rate if census else None

    if index is not None:
        if index < 100:
            drivers.append(f"Affordability pressure (index {index:.0f})")
        elif index > 120:
            risks.append(f"Highly affordable market (index {index:.0f})")
    if income_to_price is not None and income_to_price >= 4:
        drivers.append(f"Favorable income-to-price ratio ({income_to_price:.1f}x)")
    if cost_burdened is not None and cost_burdened >= 20:
        drivers.append(f"{cost_burdened:.1f}% cost-burdened households")
    if price_to_income is not None and price_to_income >= 6:
        drivers.append(f"High price-to-income ratio ({price_to_income:.1f}x)")
    if occupancy is not None and occupancy < 90:
        risks.append(f"Lower occupancy rate ({occupancy:.1f}%)")

    metrics = [
        WeightedMetric("affordability_index", scale_score(index, 60.0, 140.0, invert=True), 0.3),
        WeightedMetric("income_to_price", scale_score(income_to_price, 2.0, 6.0), 0.25),
        WeightedMetric("cost_burdened", scale_score(cost_burdened, 5.0, 35.0), 0.2),
        WeightedMetric("price_to_income", scale_score(price_to_income, 3.0, 9.0), 0.15),
        WeightedMetric("occupancy", scale_score(occupancy, 85.0, 99.0), 0.1),
    ]
    return _component(metrics, drivers, risks)


def compute_macro_economic_momentum(market: MarketData | None) -> ComponentResult:
    econ = market.economic if market else None
    drivers: list[str] = []
    risks: list[str] = []

    rate = econ.mortgage_rate_30y if econ else None
    unemployment = econ.unemployment_rate if econ else None
    gdp = econ.gdp_growth if econ else None
    confidence = econ.consumer_confidence if econ else None
    ownership = econ.home_ownership_rate if econ else None

    if rate is not None:
        if rate <= 4.75:
            drivers.append(f"Favorable mortgage environment ({rate:.2f}%)")
        elif rate >= 6.5:
            risks.append(f"High mortgage rates ({rate:.2f}%)")
    if unemployment is not None:
        if unemployment <= 4.5:
            drivers.append(f"Healthy employment ({unemployment:.1f}%)")
        elif unemployment >= 6.5:
            risks.append(f"Elevated unemployment ({unemployment:.1f}%)")
    if gdp is not None and gdp < 0:
        risks.append(f"Negative GDP growth ({gdp:.1f}%)")

    metrics = [
        WeightedMetric("mortgage_rate_30y", scale_score(rate, 3.0, 8.0, invert=True), 0.35),
        WeightedMetric("unemployment_rate", scale_score(unemployment, 3.0, 10.0, invert=True), 0.3),
        WeightedMetric("gdp_growth", scale_score(gdp, -2.0, 6.0), 0.15),
        WeightedMetric("consumer_confidence", scale_score(confidence, 60.0, 120.0), 0.1),
        WeightedMetric("home_ownership_rate", scale_score(ownership, 60.0, 70.0), 0.1),
    ]
    return _component(metrics, drivers, risks)


def aggregate_components(
    components: dict[str, ComponentResult],
    weights: dict[str, float] = COMPONENT_WEIGHTS,
) -> tuple[float, float]:
    """Confidence-weighted (score, confidence) over the components."""
    effective = {k: w * components[k].confidence / 100.0 for k, w in weights.items() if k in components}
    denom = sum(effective.values())
    total = sum(w for k, w in weights.items() if k in components)

    score = (
        sum(components[k].score * e for k, e in effective.items()) / denom
        if denom > 0
        else NEUTRAL_SCORE
    )
    confidence = denom / total * 100.0 if total > 0 else 0.0
    return clamp(score, 0.0, 100.0), clamp(confidence, 0.0, 100.0)


def blend_with_model(
    heuristic_score: float,
    heuristic_confidence: float,
    probability: float,
    *,
    heuristic_weight: float | None = None,
    model_weight: float | None = None,
    confidence_bonus: float | None = None,
) -> tuple[float, float]:
    hw = config.HEURISTIC_BLEND_WEIGHT if heuristic_weight is None else heuristic_weight
    mw = config.MODEL_BLEND_WEIGHT if model_weight is None else model_weight
    bonus = config.MODEL_CONFIDENCE_BONUS if confidence_bonus is None else confidence_bonus

    score = hw * heuristic_score + mw * probability * 100.0
    confidence = min(100.0, hw * heuristic_confidence + bonus)
    return clamp(score, 0.0, 100.0), clamp(confidence, 0.0, 100.0)


# ----------------------------
# Property context
# ----------------------------

def resolve_region(prop: PropertyOpportunity, market: MarketData | None) -> str:
    if prop.msa:
        return prop.msa
    redfin = market.redfin if market else None
    if redfin and redfin.region_type == "city" and redfin.region_name:
        state = redfin.state_code or prop.state
        return f"{redfin.region_name}, {state}" if state else redfin.region_name
    if prop.city and prop.state:
        return f"{prop.city}, {prop.state}"
    return prop.city or prop.state


def build_geography(prop: PropertyOpportunity, market: MarketData | None) -> Geography:
    coordinates = None
    if prop.latitude is not None or prop.longitude is not None:
        coordinates = {"lat": prop.latitude, "lng": prop.longitude}
    return Geography(
        state=prop.state,
        city=prop.city,
        region=resolve_region(prop, market),
        zip=prop.zip,
        county=prop.county,
        neighborhood=prop.neighborhood,
        county_fips=prop.county_fips,
        msa=prop.msa,
        coordinates=coordinates,
    )


def _property_summary(prop: PropertyOpportunity) -> dict[str, float | None]:
    return {
        "market_value": prop.market_value,
        "estimated_equity": prop.estimated_equity,
        "equity_upside": prop.equity_upside,
        "years_in_home": prop.years_in_home,
        "listing_score": prop.listing_score,
    }


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


# ----------------------------
# Engine
# ----------------------------

class SellerPropensityEngine:
    """
    Scores properties for one scoring session.

    The market-data cache belongs to the engine instance; create one engine
    per batch (or pass a fresh cache) to isolate market snapshots.
    """

    def __init__(
        self,
        market_data: MarketDataProvider | None = None,
        registry: ModelRegistry | None = None,
        *,
        model: SellerModelWeights | None = None,
        cache: MarketDataCache | None = None,
        as_of: date | None = None,
    ) -> None:
        self.market_data = market_data
        self.registry = registry
        self.cache = cache if cache is not None else MarketDataCache()
        self.as_of = as_of or datetime.now(timezone.utc).date()
        self._model = model

    @property
    def model(self) -> SellerModelWeights | None:
        if self._model is not None:
            return self._model
        if self.registry is not None:
            return self.registry.current()
        return None

    async def market_data_for(self, prop: PropertyOpportunity) -> MarketData | None:
        if self.market_data is None:
            return None
        location = LocationKey.for_property(prop)
        if location is None:
            return None
        return await self.cache.get(location, self.market_data)

    def _predict(
        self,
        prop: PropertyOpportunity,
        market: MarketData | None,
        model: SellerModelWeights,
    ) -> float | None:
        vector = resolve_feature_vector(prop, market, self.as_of)
        try:
            return predict_probability(model, vector)
        except (FeatureMismatchError, ModelSchemaError) as e:
            logger.warning(
                "model_feature_mismatch",
                extra={"context": {"property_id": prop.id, "model_id": model.id, "error": str(e)}},
            )
            return None

    async def score_property(
        self,
        prop: PropertyOpportunity,
        model: SellerModelWeights | None = None,
    ) -> SellerPropensityScore:
        market = await self.market_data_for(prop)
        model = model if model is not None else self.model

        components = {
            "owner_equity_readiness": compute_owner_equity_readiness(prop, self.as_of),
            "market_heat": compute_market_heat(market),
            "affordability_pressure": compute_affordability_pressure(market),
            "macro_economic_momentum": compute_macro_economic_momentum(market),
        }
        score, confidence = aggregate_components(components)

        prediction: ModelPrediction | None = None
        if model is not None:
            probability = self._predict(prop, market, model)
            if probability is not None:
                score, confidence = blend_with_model(score, confidence, probability)
                prediction = ModelPrediction(
                    probability=round_half_up(probability, 4),
                    score=int(round_half_up(probability * 100.0)),
                    model_id=model.id,
                    algorithm=model.algorithm,
                )

        signals = build_seller_signals(prop, self.as_of)
        drivers = _dedupe([d for c in components.values() for d in c.drivers])
        risks = _dedupe([r for c in components.values() for r in c.risks])
        missing = _dedupe([m for c in components.values() for m in c.missing_metrics])

        return SellerPropensityScore(
            property_id=prop.id,
            overall_score=int(round_half_up(score)),
            confidence=int(round_half_up(confidence)),
            components=components,
            drivers=drivers,
            risk_flags=risks,
            signal_flags=list(signals.flags),
            model_prediction=prediction,
            property_details={
                "address": prop.address,
                "owner": prop.owner,
                "priority": prop.priority,
            },
            data_availability=DataAvailability(
                coverage_score=int(round_half_up(confidence)),
                missing_metrics=missing,
                sources={
                    "redfin": bool(market and market.redfin),
                    "census": bool(market and market.census),
                    "hud": bool(market and market.hud),
                    "economic": bool(market and market.economic),
                },
            ),
            geography=build_geography(prop, market),
            property_summary=_property_summary(prop),
            market_data=market.model_dump(by_alias=True) if market is not None else None,
        )

    async def score_and_rank(
        self,
        properties: Sequence[PropertyOpportunity],
        limit: int | None = None,
    ) -> SellerPropensityAnalysis:
        # one model snapshot for the whole batch
        model = self.model
        scores = list(
            await asyncio.gather(*(self.score_property(p, model) for p in properties))
        )
        scores.sort(key=lambda s: s.overall_score, reverse=True)

        if limit is None:
            limit = config.SCORING_LIMIT_DEFAULT
        selected = scores[:limit] if limit and limit > 0 else scores

        logger.info(
            "seller_scoring_complete",
            extra={
                "context": {
                    "properties": len(properties),
                    "returned": len(selected),
                    "model_id": model.id if model else None,
                    "market_keys_cached": len(self.cache),
                }
            },
        )

        return SellerPropensityAnalysis(
            generated_at=datetime.now(timezone.utc).isoformat(),
            sample_size=len(selected),
            scores=selected,
            rankings=build_geography_rankings(selected),
            summary=summarize_scores(selected),
            component_weights=dict(COMPONENT_WEIGHTS),
            model_metadata=_model_metadata(model),
            inputs={
                "as_of": self.as_of.isoformat(),
                "limit": limit or None,
                "property_ids": [p.id for p in properties],
            },
        )


def _model_metadata(model: SellerModelWeights | None) -> dict[str, Any] | None:
    if model is None:
        return None
    return {
        "id": model.id,
        "algorithm": model.algorithm,
        "trained_at": model.trained_at.isoformat(),
        "training_size": model.training_size,
        "validation_size": model.validation_size,
        "metrics": model.metrics.model_dump(),
        "feature_count": len(model.feature_names),
    }
