# src/seller_radar/domain/model_weights.py
"""
Persisted seller-propensity model artifact (schema version 2).

JSON keys are camelCase; `modelParameters` is a tagged union on `type`.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

SCHEMA_VERSION = 2

Algorithm = Literal["logistic-regression", "gradient-boosting"]


class _Schema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        protected_namespaces=(),
    )


class ClassificationMetrics(_Schema):
    accuracy: float = 0.0
    precision: float = 0.0
    recall: float = 0.0
    f1: float = 0.0
    log_loss: float = 0.0
    auc: float = 0.0


# ----------------------------
# Model parameters (tagged variants)
# ----------------------------

class LogisticParameters(_Schema):
    type: Literal["logistic-regression"] = "logistic-regression"
    coefficients: list[float]
    intercept: float = 0.0


class DecisionStump(_Schema):
    feature_index: int
    threshold: float
    left_value: float
    right_value: float


class BoostingParameters(_Schema):
    type: Literal["gradient-boosting"] = "gradient-boosting"
    base_score: float = 0.0
    learning_rate: float
    stumps: list[DecisionStump] = Field(default_factory=list)


ModelParameters = Annotated[
    Union[LogisticParameters, BoostingParameters],
    Field(discriminator="type"),
]


# ----------------------------
# Evaluation block
# ----------------------------

class FoldResult(_Schema):
    fold: int
    train_size: int
    validation_size: int
    metrics: ClassificationMetrics


class CrossValidationReport(_Schema):
    folds: int
    scores: list[FoldResult] = Field(default_factory=list)

    def mean(self, metric: str) -> float:
        if not self.scores:
            return 0.0
        return sum(getattr(s.metrics, metric) for s in self.scores) / len(self.scores)


class BiasAuditEntry(_Schema):
    field: str
    group: str
    count: int
    mean_probability: float
    lift: float


class BiasAudit(_Schema):
    global_mean: float
    entries: list[BiasAuditEntry] = Field(default_factory=list)


class ModelEvaluation(_Schema):
    cross_validation: CrossValidationReport | None = None
    bias_audit: BiasAudit | None = None


# ----------------------------
# Artifact
# ----------------------------

class SellerModelWeights(_Schema):
    schema_version: int = SCHEMA_VERSION
    id: str
    algorithm: Algorithm
    model_parameters: ModelParameters
    feature_names: list[str]
    feature_means: list[float]
    feature_std_devs: list[float]
    trained_at: datetime
    training_size: int = 0
    validation_size: int = 0
    metrics: ClassificationMetrics = Field(default_factory=ClassificationMetrics)
    hyperparameters: dict[str, float | int | str] = Field(default_factory=dict)
    evaluation: ModelEvaluation | None = None
    notes: str | None = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        protected_namespaces=(),
        frozen=True,
    )

    @model_validator(mode="after")
    def _parameters_match_features(self) -> "SellerModelWeights":
        n = len(self.feature_names)
        if len(self.feature_means) != n or len(self.feature_std_devs) != n:
            raise ValueError(
                f"standardization stats cover {len(self.feature_means)}/{len(self.feature_std_devs)} "
                f"features, model names {n}"
            )
        params = self.model_parameters
        if isinstance(params, LogisticParameters) and len(params.coefficients) != n:
            raise ValueError(f"{len(params.coefficients)} coefficients for {n} features")
        if isinstance(params, BoostingParameters):
            for stump in params.stumps:
                if not 0 <= stump.feature_index < n:
                    raise ValueError(f"stump feature index {stump.feature_index} outside {n} features")
        return self

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
