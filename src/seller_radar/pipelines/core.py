# src/seller_radar/pipelines/core.py

from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone
from pathlib import Path

import numpy as np
from loguru import logger

from seller_radar.adapters.config import config
from seller_radar.adapters.feature_store import SellerFeatureStore, build_feature_records
from seller_radar.adapters.market_data import StaticMarketDataProvider
from seller_radar.adapters.model_io import ModelRegistry
from seller_radar.adapters.storage import read_records, write_json
from seller_radar.domain.model_weights import SellerModelWeights
from seller_radar.domain.property import PropertyOpportunity
from seller_radar.domain.scores import SellerPropensityAnalysis
from seller_radar.services.backtest import BacktestReport, run_backtest, write_backtest_report
from seller_radar.services.features import build_training_examples
from seller_radar.services.scoring import SellerPropensityEngine
from seller_radar.services.trainer import (
    BoostingOptions,
    LogisticOptions,
    prepare_training_dataset,
    select_best_model,
    train_gradient_boosting,
    train_logistic_regression,
)

REPORTS_DIR = Path(config.REPORTS_DIR)

# production candidate settings
LOGISTIC_CANDIDATE = LogisticOptions(learning_rate=0.04, iterations=1200, regularization=0.0005)
BOOSTING_CANDIDATE = BoostingOptions(learning_rate=0.18, iterations=160, min_samples_leaf=2)


def _today() -> date:
    return datetime.now(timezone.utc).date()


# ---------------------------
# 1. INPUTS
# ---------------------------

def load_properties(path: Path) -> list[PropertyOpportunity]:
    if not path.exists():
        raise FileNotFoundError(f"Property file not found at {path}.")
    properties = [PropertyOpportunity.model_validate(r) for r in read_records(path)]
    logger.info("Loaded properties", path=str(path), n_properties=len(properties))
    return properties


def load_market_data(path: Path | None) -> StaticMarketDataProvider | None:
    if path is None:
        return None
    provider = StaticMarketDataProvider.from_json(path)
    logger.info("Loaded market data snapshot", path=str(path))
    return provider


# ---------------------------
# 2. FEATURE STORE
# ---------------------------

def build_feature_store(
    properties_path: Path,
    market_path: Path | None = None,
    output_path: Path | None = None,
    as_of: date | None = None,
) -> Path:
    properties = load_properties(properties_path)
    provider = load_market_data(market_path)
    lookup = provider.lookup_property if provider is not None else None

    records = build_feature_records(properties, lookup, as_of or _today())
    store = SellerFeatureStore(output_path)
    path = store.write(records)

    labeled = sum(1 for r in records if r.vector.label in (0, 1))
    logger.info("Feature store built", path=str(path), records=len(records), labeled=labeled)
    return path


# ---------------------------
# 3. MODEL TRAINING
# ---------------------------

def train_models(
    properties_path: Path | None = None,
    market_path: Path | None = None,
    feature_store_path: Path | None = None,
    model_dir: Path | None = None,
    as_of: date | None = None,
    seed: int | None = None,
) -> SellerModelWeights | None:
    """
    Train both candidates, keep the better one and persist it.

    Examples come from the feature store when `feature_store_path` is given,
    otherwise they are assembled from the property file.
    """
    if feature_store_path is not None:
        examples = SellerFeatureStore(feature_store_path).training_examples()
        source = str(feature_store_path)
    elif properties_path is not None:
        properties = load_properties(properties_path)
        provider = load_market_data(market_path)
        lookup = provider.lookup_property if provider is not None else None
        examples = build_training_examples(properties, lookup, as_of or _today())
        source = str(properties_path)
    else:
        raise ValueError("Provide either properties_path or feature_store_path.")

    logger.info("Starting seller model training", source=source, n_examples=len(examples))

    rng = np.random.default_rng(config.RANDOM_SEED if seed is None else seed)
    dataset = prepare_training_dataset(examples, rng=rng)
    if dataset is None:
        logger.warning("Not enough labeled examples; no model trained", n_examples=len(examples))
        return None

    candidates = [
        train_logistic_regression(dataset, LOGISTIC_CANDIDATE, rng=rng),
        train_gradient_boosting(dataset, BOOSTING_CANDIDATE, rng=rng),
    ]
    for c in candidates:
        if c is not None:
            cv = c.evaluation.cross_validation if c.evaluation else None
            logger.info(
                "Candidate trained",
                model_id=c.id,
                algorithm=c.algorithm,
                auc=round(c.metrics.auc, 4),
                f1=round(c.metrics.f1, 4),
                cv_auc=round(cv.mean("auc"), 4) if cv else None,
            )

    best = select_best_model(candidates)
    if best is None:
        return None

    path = ModelRegistry(model_dir).persist(best)
    logger.info("Seller model persisted", model_id=best.id, algorithm=best.algorithm, path=str(path))
    return best


# ---------------------------
# 4. SCORING
# ---------------------------

def score_properties(
    properties_path: Path,
    market_path: Path | None = None,
    model_dir: Path | None = None,
    feature_store_path: Path | None = None,
    limit: int | None = None,
    output_path: Path | None = None,
    as_of: date | None = None,
) -> SellerPropensityAnalysis:
    properties = load_properties(properties_path)
    if feature_store_path is not None:
        properties = SellerFeatureStore(feature_store_path).attach_features(properties)

    engine = SellerPropensityEngine(
        load_market_data(market_path),
        ModelRegistry(model_dir),
        as_of=as_of or _today(),
    )
    analysis = asyncio.run(engine.score_and_rank(properties, limit=limit))

    output_path = output_path or REPORTS_DIR / "seller-propensity.json"
    write_json(analysis.to_dict(), output_path)
    logger.info(
        "Scoring completed",
        n_scored=analysis.sample_size,
        average_score=analysis.summary.average_score,
        output_path=str(output_path),
    )
    return analysis


# ---------------------------
# 5. BACKTEST
# ---------------------------

def backtest_engine(
    properties_path: Path,
    market_path: Path | None = None,
    model_dir: Path | None = None,
    output_path: Path | None = None,
    as_of: date | None = None,
) -> BacktestReport | None:
    properties = load_properties(properties_path)
    engine = SellerPropensityEngine(
        load_market_data(market_path),
        ModelRegistry(model_dir),
        as_of=as_of or _today(),
    )
    report = asyncio.run(run_backtest(properties, engine))
    if report is None:
        return None

    write_backtest_report(report, output_path or REPORTS_DIR / "seller-backtest.json")
    return report
