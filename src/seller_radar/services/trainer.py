# src/seller_radar/services/trainer.py
"""
Offline trainers for the seller-propensity model.

Two interchangeable algorithms share one split contract:
  - batch gradient-descent logistic regression
  - additive gradient-boosted decision stumps on a logistic loss

Both train on z-scored features and persist the training-set stats with
the weights so scoring reapplies the exact same transform.
"""
from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

import numpy as np

from seller_radar.adapters.config import config
from seller_radar.adapters.logging_utils import get_logger
from seller_radar.domain.model_weights import (
    BoostingParameters,
    DecisionStump,
    LogisticParameters,
    ModelEvaluation,
    SellerModelWeights,
)
from seller_radar.domain.vectors import TrainingDataset, TrainingExample
from seller_radar.services import eval as evaluation
from seller_radar.services.features import FEATURES
from seller_radar.services.inference import sigmoid
from seller_radar.services.standardize import fit, transform

logger = get_logger(__name__)

MIN_LABELED_EXAMPLES = 6
# AUC margin a candidate needs before it beats another on AUC alone
AUC_SELECTION_MARGIN = 0.005


@dataclass(frozen=True)
class LogisticOptions:
    learning_rate: float = 0.05
    iterations: int = 1500
    regularization: float = 0.0005


@dataclass(frozen=True)
class BoostingOptions:
    learning_rate: float = 0.1
    iterations: int = 120
    min_samples_leaf: int = 2


def _rng(rng: np.random.Generator | None) -> np.random.Generator:
    return rng if rng is not None else np.random.default_rng(config.RANDOM_SEED)


def _min_examples() -> int:
    return max(MIN_LABELED_EXAMPLES, int(config.MIN_TRAINING_EXAMPLES))


# ---------------------------------------------------------------------------
# Dataset
# ---------------------------------------------------------------------------


def prepare_training_dataset(
    examples: Sequence[TrainingExample],
    *,
    feature_names: Sequence[str] = FEATURES,
    rng: np.random.Generator | None = None,
    validation_fraction: float | None = None,
) -> TrainingDataset | None:
    """
    Shuffle labeled examples and split them train/validation (default 80/20).

    Returns None when fewer than the minimum number of labeled examples
    remain after dropping rows that break the feature contract.
    """
    names = list(feature_names)
    kept: list[TrainingExample] = []
    for example in examples:
        if example.label not in (0, 1):
            continue
        if len(example.features) != len(names):
            logger.warning(
                "training_example_rejected",
                extra={
                    "context": {
                        "property_id": example.property_id,
                        "n_features": len(example.features),
                        "expected": len(names),
                    }
                },
            )
            continue
        kept.append(example)

    if len(kept) < _min_examples():
        logger.warning(
            "training_dataset_insufficient",
            extra={"context": {"labeled": len(kept), "required": _min_examples()}},
        )
        return None

    fraction = config.VALIDATION_FRACTION if validation_fraction is None else validation_fraction
    order = _rng(rng).permutation(len(kept))
    shuffled = [kept[i] for i in order]

    split = max(1, int(math.floor(len(shuffled) * (1.0 - fraction))))
    split = min(split, len(shuffled) - 1)

    dataset = TrainingDataset(
        train=shuffled[:split],
        validation=shuffled[split:],
        feature_names=names,
    )
    logger.info(
        "training_dataset_prepared",
        extra={
            "context": {
                "train": len(dataset.train),
                "validation": len(dataset.validation),
                "positive_rate": float(np.mean([e.label for e in shuffled])),
            }
        },
    )
    return dataset


def _matrix(examples: Sequence[TrainingExample]) -> tuple[np.ndarray, np.ndarray]:
    X = np.asarray([list(e.features) for e in examples], dtype=float)
    y = np.asarray([e.label for e in examples], dtype=float)
    return X, y


# ---------------------------------------------------------------------------
# Logistic regression
# ---------------------------------------------------------------------------


def _fit_logistic(Z: np.ndarray, y: np.ndarray, opts: LogisticOptions) -> tuple[np.ndarray, float]:
    n, d = Z.shape
    weights = np.zeros(d, dtype=float)
    intercept = 0.0

    for _ in range(opts.iterations):
        error = sigmoid(Z @ weights + intercept) - y
        intercept -= opts.learning_rate * float(error.sum()) / n
        weights -= opts.learning_rate * ((Z.T @ error) / n + opts.regularization * weights)

    return weights, intercept


# ---------------------------------------------------------------------------
# Gradient-boosted stumps
# ---------------------------------------------------------------------------


def find_best_stump(
    Z: np.ndarray,
    residual: np.ndarray,
    min_samples_leaf: int,
) -> DecisionStump | None:
    """
    Single-feature, single-threshold split minimising the summed squared error
    of the residuals around each side's mean.

    For every feature the rows are sorted once and every midpoint between
    distinct consecutive values is scored in O(n) with prefix sums of the
    residual and residual**2. Returns None when no split leaves at least
    `min_samples_leaf` rows on both sides.
    """
    n, d = Z.shape
    leaf = max(1, int(min_samples_leaf))
    if n < 2 * leaf:
        return None

    total = float(residual.sum())
    total_sq = float((residual * residual).sum())
    # split after sorted position i: left = [0..i], right = [i+1..n-1]
    positions = np.arange(leaf - 1, n - leaf)

    best: DecisionStump | None = None
    best_sse = math.inf

    for j in range(d):
        order = np.argsort(Z[:, j], kind="mergesort")
        xs = Z[order, j]
        rs = residual[order]
        csum = np.cumsum(rs)
        csq = np.cumsum(rs * rs)

        idx = positions[xs[positions] < xs[positions + 1]]
        if idx.size == 0:
            continue

        left_n = idx + 1.0
        right_n = n - left_n
        left_sum = csum[idx]
        right_sum = total - left_sum
        sse = (csq[idx] - left_sum * left_sum / left_n) + (
            (total_sq - csq[idx]) - right_sum * right_sum / right_n
        )

        k = int(np.argmin(sse))
        if sse[k] < best_sse:
            i = int(idx[k])
            best_sse = float(sse[k])
            best = DecisionStump(
                feature_index=j,
                threshold=float((xs[i] + xs[i + 1]) / 2.0),
                left_value=float(left_sum[k] / left_n[k]),
                right_value=float(right_sum[k] / right_n[k]),
            )

    return best


def _fit_boosting(Z: np.ndarray, y: np.ndarray, opts: BoostingOptions) -> BoostingParameters:
    positive_rate = float(np.clip(y.mean(), 1e-6, 1.0 - 1e-6))
    base_score = math.log(positive_rate / (1.0 - positive_rate))

    running = np.full(Z.shape[0], base_score, dtype=float)
    stumps: list[DecisionStump] = []

    for _ in range(opts.iterations):
        residual = y - sigmoid(running)
        stump = find_best_stump(Z, residual, opts.min_samples_leaf)
        if stump is None:
            break
        column = Z[:, stump.feature_index]
        running += opts.learning_rate * np.where(
            column <= stump.threshold, stump.left_value, stump.right_value
        )
        stumps.append(stump)

    return BoostingParameters(
        base_score=base_score,
        learning_rate=opts.learning_rate,
        stumps=stumps,
    )


# ---------------------------------------------------------------------------
# Shared training flow
# ---------------------------------------------------------------------------


def _model_id(algorithm: str, trained_at: datetime) -> str:
    return f"seller-{algorithm}-{trained_at.strftime('%Y%m%dT%H%M%S%f')}"


def _train(
    dataset: TrainingDataset,
    algorithm: str,
    hyperparameters: dict,
    fit_params,
    *,
    evaluate: bool,
    rng: np.random.Generator | None,
    cv_folds: int | None,
    retrain,
    notes: str,
) -> SellerModelWeights | None:
    if dataset.size < _min_examples() or not dataset.train:
        logger.warning(
            "seller_model_not_trained",
            extra={"context": {"algorithm": algorithm, "examples": dataset.size}},
        )
        return None

    X, y = _matrix(dataset.train)
    stats = fit(X)
    params = fit_params(transform(X, stats), y)

    trained_at = datetime.now(timezone.utc)
    model = SellerModelWeights(
        id=_model_id(algorithm, trained_at),
        algorithm=algorithm,
        model_parameters=params,
        feature_names=list(dataset.feature_names),
        feature_means=list(stats.means),
        feature_std_devs=list(stats.std_devs),
        trained_at=trained_at,
        training_size=len(dataset.train),
        validation_size=len(dataset.validation),
        hyperparameters=hyperparameters,
        notes=notes,
    )
    model = model.model_copy(
        update={"metrics": evaluation.evaluate_model(model, dataset.validation)}
    )

    if evaluate:
        generator = _rng(rng)
        cv = evaluation.cross_validate(
            dataset.all_examples(),
            retrain,
            feature_names=list(dataset.feature_names),
            folds=cv_folds if cv_folds is not None else config.CV_FOLDS,
            rng=generator,
        )
        audit = evaluation.bias_audit(model, dataset.all_examples())
        model = model.model_copy(
            update={"evaluation": ModelEvaluation(cross_validation=cv, bias_audit=audit)}
        )

    logger.info(
        "seller_model_trained",
        extra={
            "context": {
                "model_id": model.id,
                "algorithm": algorithm,
                "train": model.training_size,
                "validation": model.validation_size,
                "auc": model.metrics.auc,
                "f1": model.metrics.f1,
            }
        },
    )
    return model


def train_logistic_regression(
    dataset: TrainingDataset,
    options: LogisticOptions | None = None,
    *,
    evaluate: bool = True,
    rng: np.random.Generator | None = None,
    cv_folds: int | None = None,
) -> SellerModelWeights | None:
    opts = options or LogisticOptions()

    def _params(Z: np.ndarray, y: np.ndarray) -> LogisticParameters:
        weights, intercept = _fit_logistic(Z, y, opts)
        return LogisticParameters(coefficients=[float(w) for w in weights], intercept=intercept)

    return _train(
        dataset,
        "logistic-regression",
        asdict(opts),
        _params,
        evaluate=evaluate,
        rng=rng,
        cv_folds=cv_folds,
        retrain=lambda fold: train_logistic_regression(fold, opts, evaluate=False),
        notes="Full-batch gradient descent logistic regression",
    )


def train_gradient_boosting(
    dataset: TrainingDataset,
    options: BoostingOptions | None = None,
    *,
    evaluate: bool = True,
    rng: np.random.Generator | None = None,
    cv_folds: int | None = None,
) -> SellerModelWeights | None:
    opts = options or BoostingOptions()

    return _train(
        dataset,
        "gradient-boosting",
        asdict(opts),
        lambda Z, y: _fit_boosting(Z, y, opts),
        evaluate=evaluate,
        rng=rng,
        cv_folds=cv_folds,
        retrain=lambda fold: train_gradient_boosting(fold, opts, evaluate=False),
        notes="Gradient-boosted decision stumps on logistic loss",
    )


def select_best_model(
    candidates: Sequence[SellerModelWeights | None],
) -> SellerModelWeights | None:
    """
    Higher AUC wins when it leads by more than AUC_SELECTION_MARGIN;
    otherwise higher F1 wins, ties going to the later candidate.
    """
    best: SellerModelWeights | None = None
    for current in candidates:
        if current is None:
            continue
        if best is None:
            best = current
            continue
        if current.metrics.auc > best.metrics.auc + AUC_SELECTION_MARGIN:
            best = current
        elif best.metrics.auc > current.metrics.auc + AUC_SELECTION_MARGIN:
            continue
        elif current.metrics.f1 >= best.metrics.f1:
            best = current
    return best
