from __future__ import annotations

import sys
from datetime import date
from pathlib import Path
from typing import Optional

import typer
from loguru import logger

from seller_radar.adapters.logging_utils import set_log_level
from seller_radar.pipelines.core import (
    backtest_engine,
    build_feature_store,
    score_properties,
    train_models,
)

app = typer.Typer(help="Seller-propensity pipeline (features, training, scoring, backtest).")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override SELLER_RADAR_LOG_LEVEL"),
) -> None:
    if log_level:
        level = log_level.upper()
        set_log_level(level)
        logger.remove()
        logger.add(sys.stderr, level=level)


def _as_of(value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise typer.BadParameter(f"expected YYYY-MM-DD, got {value!r}") from e


@app.command("build-features")
def build_features_cmd(
    properties: Path = typer.Option(..., "--properties", help="Property file (.json, .jsonl, .csv, .parquet)"),
    market: Optional[Path] = typer.Option(None, "--market", help="Market-data snapshot JSON keyed by location"),
    output: Optional[Path] = typer.Option(None, "--output", help="Feature store path (csv or parquet)"),
    as_of: Optional[str] = typer.Option(None, "--as-of", help="Reference date, YYYY-MM-DD"),
) -> None:
    """
    Assemble seller feature vectors and write them to the feature store.
    """
    path = build_feature_store(properties, market, output, _as_of(as_of))
    typer.echo(f"Feature store written to {path}")


@app.command()
def train(
    properties: Optional[Path] = typer.Option(None, "--properties", help="Labeled property file"),
    market: Optional[Path] = typer.Option(None, "--market", help="Market-data snapshot JSON"),
    feature_store: Optional[Path] = typer.Option(
        None, "--feature-store", help="Train from a feature store instead of raw properties"
    ),
    model_dir: Optional[Path] = typer.Option(None, "--model-dir", help="Model registry directory"),
    as_of: Optional[str] = typer.Option(None, "--as-of", help="Reference date, YYYY-MM-DD"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed for split and folds"),
) -> None:
    """
    Train logistic and boosted candidates and persist the better one.
    """
    if properties is None and feature_store is None:
        raise typer.BadParameter("pass --properties or --feature-store")

    model = train_models(properties, market, feature_store, model_dir, _as_of(as_of), seed)
    if model is None:
        typer.echo("Not enough labeled examples; no model trained.")
        raise typer.Exit(code=1)
    typer.echo(f"Trained {model.algorithm} model {model.id} (auc={model.metrics.auc:.3f})")


@app.command()
def score(
    properties: Path = typer.Option(..., "--properties", help="Property file"),
    market: Optional[Path] = typer.Option(None, "--market", help="Market-data snapshot JSON"),
    model_dir: Optional[Path] = typer.Option(None, "--model-dir", help="Model registry directory"),
    feature_store: Optional[Path] = typer.Option(None, "--feature-store", help="Use stored feature vectors"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Return only the top N properties"),
    output: Optional[Path] = typer.Option(None, "--output", help="Where to write the analysis JSON"),
    as_of: Optional[str] = typer.Option(None, "--as-of", help="Reference date, YYYY-MM-DD"),
) -> None:
    """
    Score and rank properties, then write the analysis JSON.
    """
    analysis = score_properties(properties, market, model_dir, feature_store, limit, output, _as_of(as_of))
    typer.echo(
        f"Scored {analysis.sample_size} properties "
        f"(average {analysis.summary.average_score}, median {analysis.summary.median_score})"
    )


@app.command()
def backtest(
    properties: Path = typer.Option(..., "--properties", help="Labeled property file"),
    market: Optional[Path] = typer.Option(None, "--market", help="Market-data snapshot JSON"),
    model_dir: Optional[Path] = typer.Option(None, "--model-dir", help="Model registry directory"),
    output: Optional[Path] = typer.Option(
        None, "--output", help="Backtest summary path (default: <reports>/seller-backtest.json)"
    ),
    as_of: Optional[str] = typer.Option(None, "--as-of", help="Reference date, YYYY-MM-DD"),
) -> None:
    """
    Score labeled properties and report confusion matrices at fixed thresholds.
    """
    report = backtest_engine(properties, market, model_dir, output, _as_of(as_of))
    if report is None:
        typer.echo("No labeled properties available for backtesting.")
        raise typer.Exit(code=1)
    typer.echo(f"Backtested {report.total_examples} labeled properties")


if __name__ == "__main__":
    app()
