# src/seller_radar/services/geography.py
from __future__ import annotations

from collections.abc import Sequence

from seller_radar.domain.metrics import round_half_up
from seller_radar.domain.scores import (
    AnalysisSummary,
    GeographyLevel,
    GeographyRankingEntry,
    ScoreRange,
    SellerPropensityScore,
    TopProperty,
)

GEOGRAPHY_LEVELS: tuple[GeographyLevel, ...] = ("state", "region", "zip", "county", "neighborhood")
TOP_PROPERTIES_PER_GROUP = 5


def median(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2.0
    return float(ordered[mid])


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def build_ranking_for_level(
    scores: Sequence[SellerPropensityScore],
    level: GeographyLevel,
) -> list[GeographyRankingEntry]:
    groups: dict[str, list[SellerPropensityScore]] = {}
    for score in scores:
        key = getattr(score.geography, level)
        if not key or not str(key).strip():
            continue
        groups.setdefault(str(key).strip(), []).append(score)

    entries: list[GeographyRankingEntry] = []
    for key, group in groups.items():
        values = [float(s.overall_score) for s in group]
        top = sorted(group, key=lambda s: s.overall_score, reverse=True)[:TOP_PROPERTIES_PER_GROUP]

        label = key
        if level == "region" and "," not in key and group[0].geography.state:
            label = f"{key}, {group[0].geography.state}"

        entries.append(
            GeographyRankingEntry(
                key=key,
                label=label,
                sample_size=len(group),
                average_score=round_half_up(_mean(values), 1),
                median_score=round_half_up(median(values), 1),
                average_confidence=round_half_up(_mean([float(s.confidence) for s in group])),
                score_range=ScoreRange(min=min(values), max=max(values)),
                top_properties=[TopProperty(property_id=s.property_id, score=s.overall_score) for s in top],
            )
        )

    entries.sort(key=lambda e: e.average_score, reverse=True)
    return entries


def build_geography_rankings(
    scores: Sequence[SellerPropensityScore],
) -> dict[str, list[GeographyRankingEntry]]:
    return {level: build_ranking_for_level(scores, level) for level in GEOGRAPHY_LEVELS}


def summarize_scores(scores: Sequence[SellerPropensityScore]) -> AnalysisSummary:
    if not scores:
        return AnalysisSummary(
            average_score=0.0,
            median_score=0.0,
            average_confidence=0.0,
            score_range=ScoreRange(min=0.0, max=0.0),
        )

    values = [float(s.overall_score) for s in scores]
    return AnalysisSummary(
        average_score=round_half_up(_mean(values), 1),
        median_score=round_half_up(median(values), 1),
        average_confidence=round_half_up(_mean([float(s.confidence) for s in scores]), 1),
        score_range=ScoreRange(min=min(values), max=max(values)),
    )
