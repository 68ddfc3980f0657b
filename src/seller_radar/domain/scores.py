# src/seller_radar/domain/scores.py
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

GeographyLevel = Literal["state", "region", "zip", "county", "neighborhood"]


@dataclass
class ComponentResult:
    score: float          # 0-100
    confidence: float     # 0-100, share of sub-metric weight that had data
    metrics: dict[str, float | None]
    missing_metrics: list[str]
    drivers: list[str]
    risks: list[str]


@dataclass
class ModelPrediction:
    probability: float    # 0-1
    score: int            # probability * 100, rounded
    model_id: str
    algorithm: str


@dataclass
class Geography:
    state: str
    city: str
    region: str
    zip: str
    county: str | None = None
    neighborhood: str | None = None
    county_fips: str | None = None
    msa: str | None = None
    coordinates: dict[str, float | None] | None = None


@dataclass
class DataAvailability:
    coverage_score: int
    missing_metrics: list[str]
    sources: dict[str, bool]


@dataclass
class SellerPropensityScore:
    property_id: str
    overall_score: int
    confidence: int
    components: dict[str, ComponentResult]
    drivers: list[str]
    risk_flags: list[str]
    signal_flags: list[str]
    model_prediction: ModelPrediction | None
    property_details: dict[str, str]
    data_availability: DataAvailability
    geography: Geography
    property_summary: dict[str, float | None]
    market_data: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ScoreRange:
    min: float
    max: float


@dataclass
class TopProperty:
    property_id: str
    score: int


@dataclass
class GeographyRankingEntry:
    key: str
    label: str
    sample_size: int
    average_score: float
    median_score: float
    average_confidence: float
    score_range: ScoreRange
    top_properties: list[TopProperty] = field(default_factory=list)


@dataclass
class AnalysisSummary:
    average_score: float
    median_score: float
    average_confidence: float
    score_range: ScoreRange


@dataclass
class SellerPropensityAnalysis:
    generated_at: str
    sample_size: int
    scores: list[SellerPropensityScore]
    rankings: dict[str, list[GeographyRankingEntry]]
    summary: AnalysisSummary
    component_weights: dict[str, float]
    model_metadata: dict[str, Any] | None
    inputs: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
