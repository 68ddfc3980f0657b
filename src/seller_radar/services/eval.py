# src/seller_radar/services/eval.py
from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Sequence

import numpy as np
from numpy.typing import ArrayLike

from seller_radar.adapters.logging_utils import get_logger
from seller_radar.domain.model_weights import (
    BiasAudit,
    BiasAuditEntry,
    ClassificationMetrics,
    CrossValidationReport,
    FoldResult,
    SellerModelWeights,
)
from seller_radar.domain.vectors import TrainingDataset, TrainingExample
from seller_radar.services.inference import predict_probabilities

logger = get_logger(__name__)

PROBABILITY_EPS = 1e-15
MIN_CV_EXAMPLES = 6

# categorical attributes monitored for disparate model output
BIAS_FIELDS: tuple[str, ...] = ("owner_type", "priority", "income_band")

TrainFn = Callable[[TrainingDataset], SellerModelWeights | None]


def log_loss(y_true: ArrayLike, p_hat: ArrayLike) -> float:
    y = np.asarray(y_true, dtype=float).ravel()
    p = np.clip(np.asarray(p_hat, dtype=float).ravel(), PROBABILITY_EPS, 1.0 - PROBABILITY_EPS)
    if y.size == 0:
        return 0.0
    return float(-np.mean(y * np.log(p) + (1.0 - y) * np.log(1.0 - p)))


def roc_auc(y_true: ArrayLike, p_hat: ArrayLike) -> float:
    """
    Share of (positive, negative) pairs ranked correctly; ties count half.

    Pairwise O(P*N). Returns 0.5 when either class is absent.
    """
    y = np.asarray(y_true, dtype=float).ravel()
    p = np.asarray(p_hat, dtype=float).ravel()
    pos = p[y == 1]
    neg = p[y == 0]
    if pos.size == 0 or neg.size == 0:
        return 0.5

    diff = pos[:, None] - neg[None, :]
    wins = float(np.count_nonzero(diff > 0))
    ties = float(np.count_nonzero(diff == 0))
    return (wins + 0.5 * ties) / float(pos.size * neg.size)


def classification_metrics(
    y_true: ArrayLike,
    p_hat: ArrayLike,
    threshold: float = 0.5,
) -> ClassificationMetrics:
    y = np.asarray(y_true, dtype=int).ravel()
    p = np.asarray(p_hat, dtype=float).ravel()
    if y.size == 0:
        return ClassificationMetrics()

    pred = (p >= threshold).astype(int)
    tp = int(np.sum((pred == 1) & (y == 1)))
    fp = int(np.sum((pred == 1) & (y == 0)))
    tn = int(np.sum((pred == 0) & (y == 0)))
    fn = int(np.sum((pred == 0) & (y == 1)))

    accuracy = (tp + tn) / y.size
    precision = 0.0 if tp + fp == 0 else tp / (tp + fp)
    recall = 0.0 if tp + fn == 0 else tp / (tp + fn)
    f1 = 0.0 if precision + recall == 0 else 2 * precision * recall / (precision + recall)

    return ClassificationMetrics(
        accuracy=accuracy,
        precision=precision,
        recall=recall,
        f1=f1,
        log_loss=log_loss(y, p),
        auc=roc_auc(y, p),
    )


def evaluate_model(
    model: SellerModelWeights,
    examples: Sequence[TrainingExample],
) -> ClassificationMetrics:
    if not examples:
        return ClassificationMetrics()
    probs = predict_probabilities(model, [list(e.features) for e in examples])
    return classification_metrics([e.label for e in examples], probs)


def cross_validate(
    examples: Sequence[TrainingExample],
    train_fn: TrainFn,
    *,
    feature_names: list[str],
    folds: int,
    rng: np.random.Generator,
) -> CrossValidationReport | None:
    """
    k-fold cross-validation over shuffled examples.

    k = min(folds, n // 2), at least 2. `train_fn` must not run its own
    cross-validation or bias audit.
    """
    n = len(examples)
    if n < MIN_CV_EXAMPLES:
        logger.info("cross_validation_skipped", extra={"context": {"examples": n}})
        return None

    k = max(2, min(int(folds), n // 2))
    order = rng.permutation(n)
    chunks = np.array_split(order, k)

    scores: list[FoldResult] = []
    for fold_idx, held_out in enumerate(chunks):
        held = set(int(i) for i in held_out)
        validation = [examples[i] for i in held_out]
        train = [examples[i] for i in range(n) if i not in held]

        model = train_fn(
            TrainingDataset(train=list(train), validation=validation, feature_names=feature_names)
        )
        if model is None:
            logger.warning(
                "cross_validation_fold_untrained",
                extra={"context": {"fold": fold_idx, "train_size": len(train)}},
            )
            continue

        scores.append(
            FoldResult(
                fold=fold_idx,
                train_size=len(train),
                validation_size=len(validation),
                metrics=model.metrics,
            )
        )

    return CrossValidationReport(folds=k, scores=scores)


def bias_audit(
    model: SellerModelWeights,
    examples: Sequence[TrainingExample],
    fields: Sequence[str] = BIAS_FIELDS,
) -> BiasAudit | None:
    """
    Mean predicted probability per group and its lift over the global mean.

    lift = group_mean / global_mean - 1. Skipped when the global mean is 0.
    """
    if not examples:
        return None

    probs = predict_probabilities(model, [list(e.features) for e in examples])
    global_mean = float(np.mean(probs))
    if global_mean == 0.0:
        logger.info("bias_audit_skipped", extra={"context": {"reason": "zero_global_mean"}})
        return None

    entries: list[BiasAuditEntry] = []
    for field in fields:
        buckets: dict[str, list[float]] = defaultdict(list)
        for example, prob in zip(examples, probs):
            group = example.attributes.get(field)
            if group is None or str(group).strip() == "":
                continue
            buckets[str(group)].append(float(prob))

        for group in sorted(buckets):
            values = buckets[group]
            mean_p = float(np.mean(values))
            entries.append(
                BiasAuditEntry(
                    field=field,
                    group=group,
                    count=len(values),
                    mean_probability=mean_p,
                    lift=mean_p / global_mean - 1.0,
                )
            )

    return BiasAudit(global_mean=global_mean, entries=entries)
