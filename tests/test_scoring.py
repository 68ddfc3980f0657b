# tests/test_scoring.py
import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, settings, strategies as st

from seller_radar.adapters.market_data import StaticMarketDataProvider
from seller_radar.domain.model_weights import LogisticParameters, SellerModelWeights
from seller_radar.domain.vectors import SellerFeatureVector
from seller_radar.services.features import FEATURES
from seller_radar.services.scoring import (
    COMPONENT_WEIGHTS,
    SellerPropensityEngine,
    WeightedMetric,
    aggregate_components,
    combine_metrics,
    compute_macro_economic_momentum,
    compute_market_heat,
    compute_owner_equity_readiness,
)

from fixtures.properties import AS_OF, hot_market, make_property


def _neutral_model(feature_names=FEATURES) -> SellerModelWeights:
    """All-zero weights: probability 0.5 for every property."""
    n = len(feature_names)
    return SellerModelWeights(
        id="seller-logistic-regression-neutral",
        algorithm="logistic-regression",
        model_parameters=LogisticParameters(coefficients=[0.0] * n, intercept=0.0),
        feature_names=list(feature_names),
        feature_means=[0.0] * n,
        feature_std_devs=[1.0] * n,
        trained_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )


def _score(prop, **engine_kwargs):
    engine = SellerPropensityEngine(as_of=AS_OF, **engine_kwargs)
    return asyncio.run(engine.score_property(prop))


def test_combine_metrics_redistributes_weight():
    score, confidence, missing = combine_metrics(
        [WeightedMetric("a", 80.0, 0.3), WeightedMetric("b", None, 0.6), WeightedMetric("c", 40.0, 0.1)]
    )
    assert score == pytest.approx((80 * 0.3 + 40 * 0.1) / 0.4)
    assert confidence == pytest.approx(40.0)
    assert missing == ["b"]


def test_combine_metrics_without_data_is_neutral():
    assert combine_metrics([]) == (50.0, 0.0, [])
    assert combine_metrics([WeightedMetric("a", None, 1.0)]) == (50.0, 0.0, ["a"])


def test_components_without_market_data_are_neutral():
    for component in (compute_market_heat(None), compute_macro_economic_momentum(None)):
        assert component.score == 50.0
        assert component.confidence == 0.0
        assert component.drivers == []


def test_owner_equity_readiness_scenario():
    result = compute_owner_equity_readiness(make_property(), AS_OF)
    # 60 * .35 + (5/11 * 100) * .3 + 85 * .2 + 0 * .15
    assert result.score == pytest.approx(21 + 300 / 11 * 0.5 + 17, rel=1e-9)
    assert result.confidence == 100.0
    assert result.metrics["equity_ratio"] == pytest.approx(60.0)
    assert "6 years in home" in result.drivers
    assert "High internal listing readiness (85)" in result.drivers


def test_recent_sale_nudges_score_down():
    base = compute_owner_equity_readiness(make_property(), AS_OF)
    recent = compute_owner_equity_readiness(
        make_property(last_sale_date=AS_OF - timedelta(days=300)), AS_OF
    )
    assert recent.score == pytest.approx(base.score * 0.9)
    assert "Recent transaction history (<24 months)" in recent.risks


def test_no_market_data_scenario_is_dominated_by_equity():
    result = _score(make_property())
    comps = result.components

    for key in ("market_heat", "affordability_pressure", "macro_economic_momentum"):
        assert comps[key].score == 50.0
        assert comps[key].confidence == 0.0

    # only owner-equity readiness carries confidence, so it sets the score
    assert result.overall_score == round(comps["owner_equity_readiness"].score)
    assert result.confidence == 40
    assert result.model_prediction is None
    assert result.data_availability.sources == {
        "redfin": False, "census": False, "hud": False, "economic": False,
    }
    assert result.geography.region == "San Francisco, CA"


def test_hot_market_components():
    heat = compute_market_heat(hot_market())
    assert heat.confidence == 100.0
    assert "Fast market velocity (DOM 18 days)" in heat.drivers
    assert "55% of homes selling above list price" in heat.drivers

    macro = compute_macro_economic_momentum(hot_market())
    assert "High mortgage rates (6.80%)" in macro.risks
    assert "Healthy employment (3.9%)" in macro.drivers


def test_market_data_is_used_and_region_comes_from_redfin():
    provider = StaticMarketDataProvider({"zip:94102": hot_market()})
    result = _score(make_property(city="SF"), market_data=provider)
    assert result.confidence == 100
    assert result.data_availability.coverage_score == 100
    assert result.data_availability.missing_metrics == []
    assert result.geography.region == "San Francisco, CA"
    assert result.market_data["redfin"]["medianDom"] == 18


def test_msa_wins_region():
    result = _score(make_property(msa="San Francisco-Oakland-Berkeley"))
    assert result.geography.region == "San Francisco-Oakland-Berkeley"


def test_model_blend():
    heuristic = _score(make_property())
    blended = _score(make_property(), model=_neutral_model())

    oer = heuristic.components["owner_equity_readiness"].score
    assert blended.overall_score == round(0.6 * oer + 0.4 * 50)
    # 0.6 * 40 + 40
    assert blended.confidence == 64
    assert blended.model_prediction.score == 50
    assert blended.model_prediction.probability == 0.5
    assert blended.model_prediction.model_id == "seller-logistic-regression-neutral"


def test_feature_mismatch_falls_back_to_heuristics():
    heuristic = _score(make_property())
    mismatched = _score(make_property(), model=_neutral_model(FEATURES[:-1]))
    assert mismatched.model_prediction is None
    assert mismatched.overall_score == heuristic.overall_score
    assert mismatched.confidence == heuristic.confidence


def test_stored_vector_with_wrong_names_falls_back():
    stored = SellerFeatureVector(feature_names=("equity_ratio",), values=(0.5,))
    result = _score(make_property(seller_features=stored), model=_neutral_model())
    assert result.model_prediction is None


def test_scoring_is_idempotent():
    provider = StaticMarketDataProvider({"zip:94102": hot_market()})
    engine = SellerPropensityEngine(provider, model=_neutral_model(), as_of=AS_OF)
    prop = make_property(last_sale_date=AS_OF - timedelta(days=900))

    first = asyncio.run(engine.score_property(prop))
    second = asyncio.run(engine.score_property(prop))
    assert first.to_dict() == second.to_dict()
    assert json.dumps(first.to_dict(), default=str)


def test_aggregate_with_zero_confidence_is_neutral():
    comps = {
        "market_heat": compute_market_heat(None),
        "macro_economic_momentum": compute_macro_economic_momentum(None),
    }
    assert aggregate_components(comps) == (50.0, 0.0)


def test_score_and_rank_orders_and_limits():
    props = [
        make_property(id="low", estimated_equity=20_000, years_in_home=1, listing_score=20),
        make_property(id="high", estimated_equity=380_000, years_in_home=15, listing_score=95),
        make_property(id="mid", zip="78701", city="Austin", state="TX"),
    ]
    engine = SellerPropensityEngine(as_of=AS_OF)
    analysis = asyncio.run(engine.score_and_rank(props))

    assert [s.property_id for s in analysis.scores] == ["high", "mid", "low"]
    assert analysis.sample_size == 3
    assert analysis.component_weights == COMPONENT_WEIGHTS
    assert analysis.model_metadata is None
    assert analysis.inputs["property_ids"] == ["low", "high", "mid"]

    top = asyncio.run(SellerPropensityEngine(as_of=AS_OF).score_and_rank(props, limit=1))
    assert [s.property_id for s in top.scores] == ["high"]


@given(
    market_value=st.floats(min_value=1.0, max_value=5_000_000.0),
    equity=st.floats(min_value=-1_000_000.0, max_value=10_000_000.0),
    upside=st.floats(min_value=-500_000.0, max_value=5_000_000.0),
    years=st.floats(min_value=0.0, max_value=80.0),
    listing=st.floats(min_value=0.0, max_value=100.0),
)
@settings(max_examples=50, deadline=None)
def test_scores_stay_in_bounds(market_value, equity, upside, years, listing):
    prop = make_property(
        market_value=market_value,
        estimated_equity=equity,
        equity_upside=upside,
        years_in_home=years,
        listing_score=listing,
    )
    result = _score(prop, model=_neutral_model())
    assert 0 <= result.overall_score <= 100
    assert 0 <= result.confidence <= 100
    for comp in result.components.values():
        assert 0.0 <= comp.score <= 100.0
        assert 0.0 <= comp.confidence <= 100.0
