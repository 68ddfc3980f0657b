import asyncio
import json

from seller_radar.services.backtest import (
    BACKTEST_THRESHOLDS,
    build_confusion_matrix,
    run_backtest,
    write_backtest_report,
)
from seller_radar.services.scoring import SellerPropensityEngine

from fixtures.properties import AS_OF, labeled_properties, make_property


def test_confusion_matrix_counts():
    entries = [(1, 90.0), (1, 50.0), (0, 70.0), (0, 20.0)]
    m = build_confusion_matrix(entries, 65)
    assert (m.tp, m.fp, m.tn, m.fn) == (1, 1, 1, 1)
    assert m.precision == 0.5
    assert m.recall == 0.5
    assert m.accuracy == 0.5
    assert m.f1 == 0.5


def test_confusion_matrix_empty():
    m = build_confusion_matrix([], 45)
    assert m.accuracy == 0.0 and m.f1 == 0.0


def test_run_backtest_scores_labeled_properties(tmp_path):
    props = labeled_properties(8) + [make_property(id="unlabeled")]
    engine = SellerPropensityEngine(as_of=AS_OF)
    report = asyncio.run(run_backtest(props, engine))

    assert report.total_examples == 8
    assert [m.threshold for m in report.thresholds] == list(BACKTEST_THRESHOLDS)
    for m in report.thresholds:
        assert m.tp + m.fp + m.tn + m.fn == 8

    out = write_backtest_report(report, tmp_path / "reports" / "seller-backtest.json")
    payload = json.loads(out.read_text())
    assert payload["total_examples"] == 8
    assert "details" not in payload
    assert (tmp_path / "reports" / "seller-backtest_details.csv").exists()


def test_run_backtest_without_labels_returns_none():
    engine = SellerPropensityEngine(as_of=AS_OF)
    assert asyncio.run(run_backtest([make_property()], engine)) is None
