# src/seller_radar/domain/vectors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from seller_radar.domain.errors import FeatureMismatchError

Label = Literal[0, 1]


@dataclass(frozen=True)
class SellerFeatureVector:
    """
    Ordered, named numeric features for one property.

    The order of `feature_names` is a contract shared by training and scoring;
    a vector whose names/values disagree in length is rejected on construction.
    """
    feature_names: tuple[str, ...]
    values: tuple[float, ...]
    label: Label | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "feature_names", tuple(self.feature_names))
        object.__setattr__(self, "values", tuple(float(v) for v in self.values))
        if len(self.feature_names) != len(self.values):
            raise FeatureMismatchError(
                f"feature vector has {len(self.feature_names)} names but {len(self.values)} values"
            )

    def as_dict(self) -> dict[str, float]:
        return dict(zip(self.feature_names, self.values))


@dataclass(frozen=True)
class TrainingExample:
    property_id: str
    features: tuple[float, ...]
    label: Label
    # grouping attributes used by the bias audit (owner_type, priority, income_band)
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass
class TrainingDataset:
    train: list[TrainingExample]
    validation: list[TrainingExample]
    feature_names: list[str]

    @property
    def size(self) -> int:
        return len(self.train) + len(self.validation)

    def all_examples(self) -> list[TrainingExample]:
        return [*self.train, *self.validation]
