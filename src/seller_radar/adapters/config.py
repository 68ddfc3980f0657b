# src/seller_radar/adapters/config.py
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    # App & logging
    ENV: str = Field(default="dev")
    LOG_LEVEL: str = Field(default="INFO")

    # persistence
    MODEL_DIR: str = Field(default="predictions-data/models/seller-propensity")
    FEATURE_STORE_PATH: str = Field(default="predictions-data/feature-store/seller/latest.csv")
    REPORTS_DIR: str = Field(default="predictions-data/reports")
    REGISTRY_MAX_ENTRIES: int = Field(default=50)

    # -----------------------------
    # Training defaults
    # -----------------------------
    MIN_TRAINING_EXAMPLES: int = Field(default=6)
    VALIDATION_FRACTION: float = Field(default=0.2)
    CV_FOLDS: int = Field(default=5)
    RANDOM_SEED: int = Field(default=42)

    # -----------------------------
    # Heuristic / model blend
    # -----------------------------
    HEURISTIC_BLEND_WEIGHT: float = Field(default=0.6)
    MODEL_BLEND_WEIGHT: float = Field(default=0.4)
    MODEL_CONFIDENCE_BONUS: float = Field(default=40.0)

    # 0 means "return every scored property"
    SCORING_LIMIT_DEFAULT: int = Field(default=0)

    model_config = SettingsConfigDict(
        env_prefix="SELLER_RADAR_",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator(
        "VALIDATION_FRACTION",
        "HEURISTIC_BLEND_WEIGHT",
        "MODEL_BLEND_WEIGHT",
        mode="before",
    )
    @classmethod
    def _to_fraction(cls, v: Any) -> Any:
        if v is None:
            return v
        if isinstance(v, str):
            v = v.strip().replace("%", "")
        try:
            f = float(v)
        except Exception as err:
            raise ValueError("value must be numeric or percent-like") from err
        if f > 1.0:
            f = f / 100.0
        if f < 0:
            raise ValueError("fraction must be non-negative")
        return f

    @field_validator("VALIDATION_FRACTION")
    @classmethod
    def _validation_below_one(cls, v: float) -> float:
        if v >= 1.0:
            raise ValueError("VALIDATION_FRACTION must be < 1")
        return v

    @field_validator("MIN_TRAINING_EXAMPLES", mode="before")
    @classmethod
    def _min_examples_floor(cls, v: Any) -> int:
        # the split/cross-validation contract needs at least 6 labeled rows
        return max(int(v), 6)

    @field_validator("CV_FOLDS", "REGISTRY_MAX_ENTRIES", mode="before")
    @classmethod
    def _positive_int(cls, v: Any) -> int:
        i = int(v)
        if i < 1:
            raise ValueError("must be >= 1")
        return i

    @model_validator(mode="after")
    def _blend_sums_to_one(self) -> "AppConfig":
        total = self.HEURISTIC_BLEND_WEIGHT + self.MODEL_BLEND_WEIGHT
        if abs(total - 1.0) > 1e-9:
            raise ValueError("HEURISTIC_BLEND_WEIGHT + MODEL_BLEND_WEIGHT must equal 1")
        return self


config = AppConfig()
