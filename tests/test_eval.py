import numpy as np
import pytest
from hypothesis import assume, given, settings, strategies as st
from sklearn.metrics import roc_auc_score

from seller_radar.domain.vectors import TrainingExample
from seller_radar.services.eval import (
    bias_audit,
    classification_metrics,
    cross_validate,
    log_loss,
    roc_auc,
)
from seller_radar.services.features import FEATURES
from seller_radar.services.trainer import LogisticOptions, train_logistic_regression

from fixtures.properties import separable_example, separable_examples


@given(
    pairs=st.lists(
        st.tuples(st.integers(min_value=0, max_value=1), st.integers(min_value=0, max_value=10)),
        min_size=2,
        max_size=40,
    )
)
@settings(max_examples=60, deadline=None)
def test_roc_auc_matches_sklearn(pairs):
    labels = [y for y, _ in pairs]
    # coarse probabilities so ties actually happen
    probs = [p / 10.0 for _, p in pairs]
    assume(0 < sum(labels) < len(labels))
    assert roc_auc(labels, probs) == pytest.approx(roc_auc_score(labels, probs))


def test_roc_auc_single_class_is_uninformative():
    assert roc_auc([1, 1, 1], [0.2, 0.5, 0.9]) == 0.5


def test_log_loss_clamps_probabilities():
    value = log_loss([1, 0], [0.0, 1.0])
    assert np.isfinite(value)
    assert value > 30


def test_classification_metrics_counts():
    m = classification_metrics([1, 1, 0, 0], [0.9, 0.4, 0.6, 0.1])
    assert m.accuracy == 0.5
    assert m.precision == 0.5
    assert m.recall == 0.5
    assert m.f1 == 0.5
    assert m.auc == 0.75


def test_classification_metrics_empty():
    m = classification_metrics([], [])
    assert m.accuracy == 0.0 and m.auc == 0.0


def _fast_train(ds):
    return train_logistic_regression(ds, LogisticOptions(iterations=50), evaluate=False)


def test_cross_validation_three_disjoint_folds(rng):
    examples = separable_examples(12)
    seen: list[set[str]] = []

    def recording_train(ds):
        seen.append({e.property_id for e in ds.validation})
        assert not seen[-1] & {e.property_id for e in ds.train}
        return _fast_train(ds)

    report = cross_validate(examples, recording_train, feature_names=list(FEATURES), folds=3, rng=rng)
    assert report.folds == 3
    assert len(report.scores) == 3
    assert [s.validation_size for s in report.scores] == [4, 4, 4]
    assert all(s.train_size == 8 for s in report.scores)

    # validation folds partition the dataset
    assert set().union(*seen) == {e.property_id for e in examples}
    assert sum(len(s) for s in seen) == 12


def test_cross_validation_fold_count_is_bounded(rng):
    report = cross_validate(separable_examples(12), _fast_train, feature_names=list(FEATURES), folds=10, rng=rng)
    assert report.folds == 6
    assert cross_validate(separable_examples(5), _fast_train, feature_names=list(FEATURES), folds=3, rng=rng) is None


def test_cross_validation_is_reproducible_by_seed():
    examples = separable_examples(12)
    a = cross_validate(examples, _fast_train, feature_names=list(FEATURES), folds=3, rng=np.random.default_rng(11))
    b = cross_validate(examples, _fast_train, feature_names=list(FEATURES), folds=3, rng=np.random.default_rng(11))
    assert a.model_dump() == b.model_dump()


def test_bias_audit_lift_is_zero_for_identical_groups(separable_dataset):
    model = _fast_train(separable_dataset)
    base = separable_examples(10)
    # the same rows under two owner types: both groups mirror the population
    examples = [
        TrainingExample(e.property_id + g, e.features, e.label, {"owner_type": g, "priority": "medium"})
        for e in base
        for g in ("individual", "trust")
    ]
    audit = bias_audit(model, examples)
    assert audit.global_mean > 0

    by_field = {(e.field, e.group): e for e in audit.entries}
    assert by_field[("owner_type", "individual")].lift == pytest.approx(0.0, abs=1e-9)
    assert by_field[("owner_type", "trust")].lift == pytest.approx(0.0, abs=1e-9)
    assert by_field[("priority", "medium")].count == 20
    # income_band is absent on every example
    assert not [e for e in audit.entries if e.field == "income_band"]


def test_bias_audit_detects_skewed_group(separable_dataset):
    model = _fast_train(separable_dataset)
    sellers = [separable_example(i, 1, group="trust") for i in range(5)]
    others = [separable_example(i, 0, group="individual") for i in range(5)]
    audit = bias_audit(model, sellers + others)
    lifts = {e.group: e.lift for e in audit.entries if e.field == "owner_type"}
    assert lifts["trust"] > 0 > lifts["individual"]
