# src/seller_radar/adapters/feature_store.py
"""
Tabular feature store for seller vectors.

One row per property: id, optional label, bias-audit attributes, then one
column per feature in contract order. Reads are cached per file mtime.
"""
from __future__ import annotations

import os
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

import pandas as pd

from seller_radar.adapters.config import config
from seller_radar.adapters.logging_utils import get_logger
from seller_radar.adapters.storage import read_df, write_df
from seller_radar.domain.errors import FeatureMismatchError
from seller_radar.domain.property import MarketData, PropertyOpportunity
from seller_radar.domain.vectors import SellerFeatureVector, TrainingExample
from seller_radar.services.features import (
    FEATURES,
    bias_attributes,
    build_seller_feature_vector,
    ensure_feature_contract,
)

logger = get_logger(__name__)

ID_COLUMN = "property_id"
LABEL_COLUMN = "label"
ATTRIBUTE_COLUMNS = ("owner_type", "priority", "income_band")
META_COLUMNS = (ID_COLUMN, LABEL_COLUMN, *ATTRIBUTE_COLUMNS)


@dataclass(frozen=True)
class FeatureStoreRecord:
    property_id: str
    vector: SellerFeatureVector
    attributes: dict[str, str] = field(default_factory=dict)


def build_feature_records(
    properties: Iterable[PropertyOpportunity],
    market_lookup: Callable[[PropertyOpportunity], MarketData | None] | None,
    as_of: date,
) -> list[FeatureStoreRecord]:
    records: list[FeatureStoreRecord] = []
    for prop in properties:
        market = market_lookup(prop) if market_lookup is not None else None
        records.append(
            FeatureStoreRecord(
                property_id=prop.id,
                vector=build_seller_feature_vector(prop, market, as_of),
                attributes=bias_attributes(prop),
            )
        )
    return records


def records_to_frame(records: Sequence[FeatureStoreRecord]) -> pd.DataFrame:
    rows = []
    for rec in records:
        row: dict[str, object] = {
            ID_COLUMN: rec.property_id,
            LABEL_COLUMN: rec.vector.label,
        }
        for col in ATTRIBUTE_COLUMNS:
            row[col] = rec.attributes.get(col)
        row.update(rec.vector.as_dict())
        rows.append(row)

    columns = list(META_COLUMNS) + (list(records[0].vector.feature_names) if records else FEATURES)
    df = pd.DataFrame(rows, columns=columns)
    df[LABEL_COLUMN] = pd.to_numeric(df[LABEL_COLUMN], errors="coerce")
    return df


def _row_to_record(row: pd.Series, feature_columns: list[str]) -> FeatureStoreRecord:
    label = row.get(LABEL_COLUMN)
    attrs = {
        col: str(row[col])
        for col in ATTRIBUTE_COLUMNS
        if col in row and not pd.isna(row[col]) and str(row[col]).strip()
    }
    return FeatureStoreRecord(
        property_id=str(row[ID_COLUMN]),
        vector=SellerFeatureVector(
            feature_names=tuple(feature_columns),
            values=tuple(0.0 if pd.isna(row[c]) else float(row[c]) for c in feature_columns),
            label=None if label is None or pd.isna(label) else int(label),
        ),
        attributes=attrs,
    )


class SellerFeatureStore:
    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path or config.FEATURE_STORE_PATH)
        self._frame: pd.DataFrame | None = None
        self._index: dict[str, FeatureStoreRecord] | None = None
        self._mtime: float | None = None

    def write(self, records: Sequence[FeatureStoreRecord]) -> Path:
        df = records_to_frame(records)
        write_df(df, str(self.path))
        self.clear_cache()
        logger.info(
            "feature_store_written",
            extra={"context": {"path": str(self.path), "records": len(df)}},
        )
        return self.path

    def clear_cache(self) -> None:
        self._frame = None
        self._index = None
        self._mtime = None

    def snapshot(self) -> pd.DataFrame | None:
        if not self.path.exists():
            return None
        mtime = os.stat(self.path).st_mtime
        if self._frame is not None and self._mtime == mtime:
            return self._frame

        df = read_df(str(self.path))
        if ID_COLUMN not in df.columns:
            raise FeatureMismatchError(f"{self.path} has no {ID_COLUMN!r} column")
        df[ID_COLUMN] = df[ID_COLUMN].astype(str)

        self._frame = df
        self._index = None
        self._mtime = mtime
        return df

    @property
    def feature_columns(self) -> list[str]:
        df = self.snapshot()
        if df is None:
            return []
        return [c for c in df.columns if c not in META_COLUMNS]

    def _records_by_id(self) -> dict[str, FeatureStoreRecord]:
        df = self.snapshot()
        if df is None:
            return {}
        if self._index is None:
            cols = self.feature_columns
            self._index = {
                rec.property_id: rec
                for rec in (_row_to_record(row, cols) for _, row in df.iterrows())
            }
        return self._index

    def records(self) -> list[FeatureStoreRecord]:
        return list(self._records_by_id().values())

    def get_record(self, property_id: str) -> FeatureStoreRecord | None:
        return self._records_by_id().get(property_id)

    def attach_features(self, properties: Iterable[PropertyOpportunity]) -> list[PropertyOpportunity]:
        """Copy properties with stored vectors set as `seller_features` where present."""
        out: list[PropertyOpportunity] = []
        for prop in properties:
            rec = self.get_record(prop.id)
            out.append(prop.model_copy(update={"seller_features": rec.vector}) if rec else prop)
        return out

    def training_examples(self, expected: Sequence[str] = FEATURES) -> list[TrainingExample]:
        ensure_feature_contract(self.feature_columns, expected)
        return [
            TrainingExample(
                property_id=rec.property_id,
                features=rec.vector.values,
                label=rec.vector.label,
                attributes=rec.attributes,
            )
            for rec in self.records()
            if rec.vector.label in (0, 1)
        ]
