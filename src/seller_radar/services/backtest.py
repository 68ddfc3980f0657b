# seller_radar/services/backtest.py

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd
from loguru import logger

from seller_radar.adapters.storage import write_json
from seller_radar.domain.property import PropertyOpportunity
from seller_radar.domain.scores import SellerPropensityAnalysis
from seller_radar.services.scoring import SellerPropensityEngine

BACKTEST_THRESHOLDS = (45, 55, 65, 75, 85)


@dataclass
class ConfusionMatrix:
    threshold: float
    tp: int
    fp: int
    tn: int
    fn: int
    precision: float
    recall: float
    accuracy: float
    f1: float


@dataclass
class BacktestReport:
    generated_at: str
    total_examples: int
    thresholds: List[ConfusionMatrix]
    model_metadata: Dict[str, Any] | None
    details: List[Dict[str, Any]]

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out.pop("details")
        return out


def build_confusion_matrix(entries: Sequence[tuple[int, float]], threshold: float) -> ConfusionMatrix:
    """entries: (label, score on the 0-100 scale); score >= threshold predicts a sale."""
    tp = fp = tn = fn = 0
    for label, score in entries:
        predicted = score >= threshold
        if label == 1 and predicted:
            tp += 1
        elif label == 0 and predicted:
            fp += 1
        elif label == 0:
            tn += 1
        else:
            fn += 1

    precision = tp / (tp + fp) if tp + fp else 0.0
    recall = tp / (tp + fn) if tp + fn else 0.0
    accuracy = (tp + tn) / max(len(entries), 1)
    f1 = 2 * precision * recall / (precision + recall) if precision + recall else 0.0
    return ConfusionMatrix(threshold, tp, fp, tn, fn, precision, recall, accuracy, f1)


def backtest_analysis(
    analysis: SellerPropensityAnalysis,
    labels: Mapping[str, int],
    thresholds: Sequence[float] = BACKTEST_THRESHOLDS,
) -> BacktestReport:
    details: List[Dict[str, Any]] = []
    for score in analysis.scores:
        label = labels.get(score.property_id)
        if label is None:
            continue
        # model score when the model ran for this property, else the blended heuristic
        prediction = (
            score.model_prediction.score if score.model_prediction is not None else score.overall_score
        )
        details.append(
            {
                "property_id": score.property_id,
                "label": int(label),
                "score": float(prediction),
                "overall_score": score.overall_score,
                "confidence": score.confidence,
            }
        )

    entries = [(d["label"], d["score"]) for d in details]
    return BacktestReport(
        generated_at=datetime.now(timezone.utc).isoformat(),
        total_examples=len(entries),
        thresholds=[build_confusion_matrix(entries, t) for t in thresholds],
        model_metadata=analysis.model_metadata,
        details=details,
    )


async def run_backtest(
    properties: Sequence[PropertyOpportunity],
    engine: SellerPropensityEngine,
    thresholds: Sequence[float] = BACKTEST_THRESHOLDS,
) -> BacktestReport | None:
    """Score labeled properties and tabulate confusion matrices. None when nothing is labeled."""
    labeled = [p for p in properties if p.seller_outcome in (0, 1)]
    if not labeled:
        logger.warning("No labeled properties available for backtesting", n_properties=len(properties))
        return None

    logger.info("Starting seller backtest", n_labeled=len(labeled), thresholds=list(thresholds))
    analysis = await engine.score_and_rank(labeled, limit=0)
    labels = {p.id: int(p.seller_outcome) for p in labeled}  # type: ignore[arg-type]
    report = backtest_analysis(analysis, labels, thresholds)

    best = max(report.thresholds, key=lambda m: m.f1)
    logger.info(
        "Backtest completed",
        total_examples=report.total_examples,
        best_threshold=best.threshold,
        best_f1=round(best.f1, 4),
    )
    return report


def write_backtest_report(report: BacktestReport, output_path: Path) -> Path:
    """Writes the summary JSON plus a per-property details CSV next to it."""
    write_json(report.to_dict(), output_path)

    details_path = output_path.with_name(output_path.stem + "_details.csv")
    pd.DataFrame(report.details, columns=["property_id", "label", "score", "overall_score", "confidence"]).to_csv(
        details_path, index=False
    )
    logger.info("Backtest report written", summary_path=str(output_path), details_path=str(details_path))
    return output_path
