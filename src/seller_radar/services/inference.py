# src/seller_radar/services/inference.py
from __future__ import annotations

from collections.abc import Sequence

import numpy as np
from numpy.typing import ArrayLike

from seller_radar.domain.errors import FeatureMismatchError, ModelSchemaError
from seller_radar.domain.model_weights import (
    BoostingParameters,
    LogisticParameters,
    SellerModelWeights,
)
from seller_radar.domain.vectors import SellerFeatureVector
from seller_radar.services.features import ensure_feature_contract
from seller_radar.services.standardize import StandardizationStats, transform


def sigmoid(z: ArrayLike) -> np.ndarray:
    """Numerically stable logistic function (no overflow for large |z|)."""
    z = np.asarray(z, dtype=float)
    e = np.exp(-np.abs(z))
    return np.where(z >= 0, 1.0 / (1.0 + e), e / (1.0 + e))


def model_stats(model: SellerModelWeights) -> StandardizationStats:
    return StandardizationStats(
        means=tuple(model.feature_means),
        std_devs=tuple(model.feature_std_devs),
    )


def logits(model: SellerModelWeights, standardized: np.ndarray) -> np.ndarray:
    """Raw model output for already-standardized rows (2-D)."""
    params = model.model_parameters

    if isinstance(params, LogisticParameters):
        coef = np.asarray(params.coefficients, dtype=float)
        if coef.shape[0] != standardized.shape[1]:
            raise FeatureMismatchError(
                f"model has {coef.shape[0]} coefficients, rows have {standardized.shape[1]} features"
            )
        return standardized @ coef + params.intercept

    if isinstance(params, BoostingParameters):
        out = np.full(standardized.shape[0], params.base_score, dtype=float)
        for stump in params.stumps:
            if stump.feature_index >= standardized.shape[1]:
                raise FeatureMismatchError(
                    f"stump references feature {stump.feature_index} outside the vector"
                )
            column = standardized[:, stump.feature_index]
            out += params.learning_rate * np.where(
                column <= stump.threshold, stump.left_value, stump.right_value
            )
        return out

    raise ModelSchemaError(f"unsupported model parameters: {type(params).__name__}")


def predict_probabilities(
    model: SellerModelWeights,
    rows: Sequence[Sequence[float]] | np.ndarray,
) -> np.ndarray:
    """Probabilities for raw (unstandardized) rows ordered like model.feature_names."""
    X = np.asarray(rows, dtype=float)
    if X.size == 0:
        return np.asarray([], dtype=float)
    if X.ndim == 1:
        X = X.reshape(1, -1)
    if X.shape[1] != len(model.feature_names):
        raise FeatureMismatchError(
            f"rows have {X.shape[1]} features, model expects {len(model.feature_names)}"
        )
    return sigmoid(logits(model, transform(X, model_stats(model))))


def predict_probability(model: SellerModelWeights, vector: SellerFeatureVector) -> float:
    ensure_feature_contract(vector.feature_names, model.feature_names)
    return float(predict_probabilities(model, [list(vector.values)])[0])
