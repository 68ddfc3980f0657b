import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from seller_radar.adapters.model_io import ModelRegistry, migrate_payload, parse_model
from seller_radar.domain.errors import ModelSchemaError
from seller_radar.domain.model_weights import (
    BoostingParameters,
    DecisionStump,
    LogisticParameters,
    SellerModelWeights,
)
from seller_radar.services.features import FEATURES
from seller_radar.services.scoring import SellerPropensityEngine

from fixtures.properties import AS_OF, make_property


def _model(trained_at=None, **overrides) -> SellerModelWeights:
    base = dict(
        id="seller-logistic-regression-test",
        algorithm="logistic-regression",
        model_parameters=LogisticParameters(coefficients=[0.1] * 60, intercept=-0.2),
        feature_names=list(FEATURES),
        feature_means=[0.0] * 60,
        feature_std_devs=[1.0] * 60,
        trained_at=trained_at or datetime(2024, 5, 1, tzinfo=timezone.utc),
        training_size=16,
        validation_size=4,
        hyperparameters={"learning_rate": 0.04},
    )
    base.update(overrides)
    return SellerModelWeights(**base)


def _v1_payload() -> dict:
    return {
        "id": "legacy-model",
        "algorithm": "gradient-boosting-placeholder",
        "coefficients": [0.0] * 60,
        "intercept": 0.3,
        "featureNames": list(FEATURES),
        "featureMeans": [0.0] * 60,
        "featureStdDevs": [1.0] * 60,
        "trainedAt": "2023-01-01T00:00:00Z",
        "metrics": {"auc": 0.7},
    }


def test_load_latest_returns_none_when_empty(registry):
    assert registry.load_latest() is None
    assert registry.current() is None
    assert registry.load_history() == []


def test_persist_and_load_round_trip(registry):
    model = _model()
    path = registry.persist(model)

    assert path.exists()
    assert path.name.startswith("logistic-regression-")
    assert registry.latest_path.exists()

    loaded = ModelRegistry(registry.root).load_latest()
    assert loaded == model
    assert json.loads(registry.latest_path.read_text())["modelParameters"]["type"] == "logistic-regression"


def test_boosting_parameters_round_trip(registry):
    params = BoostingParameters(
        base_score=-0.1,
        learning_rate=0.18,
        stumps=[DecisionStump(feature_index=3, threshold=0.5, left_value=-0.4, right_value=0.6)],
    )
    model = _model(algorithm="gradient-boosting", model_parameters=params, id="seller-gb")
    registry.persist(model)
    loaded = ModelRegistry(registry.root).load_latest()
    assert isinstance(loaded.model_parameters, BoostingParameters)
    assert loaded.model_parameters.stumps[0].feature_index == 3


def test_history_is_newest_first_and_trimmed(registry):
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    for i in range(5):
        registry.persist(_model(trained_at=start + timedelta(days=i), id=f"m-{i}"))

    history = registry.load_history()
    assert [h["id"] for h in history] == ["m-4", "m-3", "m-2"]
    assert {"id", "algorithm", "trainedAt", "fileName", "metrics", "hyperparameters"} <= set(history[0])


def test_corrupt_latest_returns_none(registry):
    registry.root.mkdir(parents=True)
    registry.latest_path.write_text("{not json")
    assert registry.load_latest() is None

    registry.latest_path.write_text(json.dumps({"schemaVersion": 2, "id": "x"}))
    assert registry.load_latest() is None


def test_current_is_memoized_until_refresh(registry):
    registry.persist(_model(id="first"))
    reader = ModelRegistry(registry.root)
    assert reader.current().id == "first"

    registry.persist(_model(id="second", trained_at=datetime(2024, 6, 1, tzinfo=timezone.utc)))
    assert reader.current().id == "first"
    reader.refresh()
    assert reader.current().id == "second"


def test_v1_payload_is_migrated():
    model = parse_model(_v1_payload())
    assert model.schema_version == 2
    assert model.algorithm == "logistic-regression"
    assert isinstance(model.model_parameters, LogisticParameters)
    assert model.model_parameters.intercept == 0.3
    # missing metric fields default to 0
    assert model.metrics.auc == 0.7
    assert model.metrics.f1 == 0.0
    assert model.training_size == 0


def test_unknown_parameter_type_with_coefficients_is_logistic():
    raw = _model().to_json_dict()
    raw["modelParameters"]["type"] = "experimental"
    raw["algorithm"] = "experimental"
    model = parse_model(raw)
    assert model.algorithm == "logistic-regression"


def test_newer_schema_is_rejected():
    raw = _model().to_json_dict()
    raw["schemaVersion"] = 99
    with pytest.raises(ModelSchemaError):
        migrate_payload(raw)


def test_v1_without_coefficients_is_rejected():
    raw = _v1_payload()
    del raw["coefficients"]
    with pytest.raises(ModelSchemaError):
        parse_model(raw)


def _partial_payload() -> dict:
    payload = _model().to_json_dict()
    payload["featureMeans"] = []
    payload["featureStdDevs"] = []
    return payload


def test_parameters_must_cover_every_feature():
    with pytest.raises(ModelSchemaError, match="standardization stats"):
        parse_model(_partial_payload())

    payload = _model().to_json_dict()
    payload["modelParameters"]["coefficients"] = [0.1] * 59
    with pytest.raises(ModelSchemaError, match="coefficients"):
        parse_model(payload)

    payload = _model().to_json_dict()
    payload["modelParameters"] = {
        "type": "gradient-boosting",
        "baseScore": 0.0,
        "learningRate": 0.1,
        "stumps": [{"featureIndex": 60, "threshold": 0.0, "leftValue": -1.0, "rightValue": 1.0}],
    }
    with pytest.raises(ModelSchemaError, match="feature index"):
        parse_model(payload)


def test_partial_model_file_leaves_batch_on_heuristics(registry):
    registry.root.mkdir(parents=True)
    registry.latest_path.write_text(json.dumps(_partial_payload()))

    engine = SellerPropensityEngine(registry=ModelRegistry(registry.root), as_of=AS_OF)
    analysis = asyncio.run(engine.score_and_rank([make_property(id="a"), make_property(id="b")]))

    assert {s.property_id for s in analysis.scores} == {"a", "b"}
    assert all(s.model_prediction is None for s in analysis.scores)
    assert analysis.model_metadata is None


def test_persist_leaves_no_temp_files(registry):
    registry.persist(_model())
    registry.persist(_model(id="again", trained_at=datetime(2024, 6, 1, tzinfo=timezone.utc)))

    assert not list(registry.root.glob("*.tmp"))
    assert json.loads(registry.latest_path.read_text())["id"] == "again"
    assert len(json.loads(registry.history_path.read_text())) == 2
