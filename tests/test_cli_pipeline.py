# tests/test_cli_pipeline.py
import json

from typer.testing import CliRunner

from entrypoints.cli.pipeline import app

from fixtures.properties import hot_market, labeled_properties

runner = CliRunner()


def _write_inputs(tmp_path, n=12):
    props_path = tmp_path / "properties.json"
    props_path.write_text(
        json.dumps([p.model_dump(mode="json", by_alias=True) for p in labeled_properties(n)])
    )
    market_path = tmp_path / "market.json"
    market_path.write_text(json.dumps({"zip:94102": hot_market().model_dump(by_alias=True)}))
    return props_path, market_path


def test_train_score_backtest(tmp_path):
    props, market = _write_inputs(tmp_path)
    models = tmp_path / "models"

    result = runner.invoke(
        app,
        ["train", "--properties", str(props), "--market", str(market),
         "--model-dir", str(models), "--as-of", "2024-06-01", "--seed", "5"],
    )
    assert result.exit_code == 0, result.output
    assert "Trained" in result.output
    assert (models / "latest.json").exists()
    assert (models / "registry.json").exists()

    out = tmp_path / "analysis.json"
    result = runner.invoke(
        app,
        ["score", "--properties", str(props), "--market", str(market), "--model-dir", str(models),
         "--output", str(out), "--limit", "5", "--as-of", "2024-06-01"],
    )
    assert result.exit_code == 0, result.output
    analysis = json.loads(out.read_text())
    assert analysis["sample_size"] == 5
    assert analysis["model_metadata"] is not None
    assert all(s["model_prediction"] is not None for s in analysis["scores"])

    report = tmp_path / "backtest.json"
    result = runner.invoke(
        app,
        ["backtest", "--properties", str(props), "--model-dir", str(models),
         "--output", str(report), "--as-of", "2024-06-01"],
    )
    assert result.exit_code == 0, result.output
    assert json.loads(report.read_text())["total_examples"] == 12


def test_build_features_then_train_from_store(tmp_path):
    props, market = _write_inputs(tmp_path)
    store = tmp_path / "store" / "latest.csv"

    result = runner.invoke(
        app,
        ["build-features", "--properties", str(props), "--market", str(market),
         "--output", str(store), "--as-of", "2024-06-01"],
    )
    assert result.exit_code == 0, result.output
    assert store.exists()

    result = runner.invoke(
        app, ["train", "--feature-store", str(store), "--model-dir", str(tmp_path / "models")]
    )
    assert result.exit_code == 0, result.output


def test_train_with_too_few_examples_exits_nonzero(tmp_path):
    props, _ = _write_inputs(tmp_path, n=4)
    result = runner.invoke(
        app, ["train", "--properties", str(props), "--model-dir", str(tmp_path / "models")]
    )
    assert result.exit_code == 1
    assert "no model trained" in result.output


def test_bad_as_of_is_rejected(tmp_path):
    props, _ = _write_inputs(tmp_path)
    result = runner.invoke(app, ["score", "--properties", str(props), "--as-of", "June 1st"])
    assert result.exit_code != 0
