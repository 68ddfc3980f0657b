# src/seller_radar/adapters/model_io.py
"""
File-backed model registry.

Layout under the registry directory:
  <algorithm>-<timestamp>.json   immutable artifact per training run
  latest.json                    copy of the current artifact
  registry.json                  newest-first history, trimmed
"""
from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from seller_radar.adapters.config import config
from seller_radar.adapters.logging_utils import get_logger
from seller_radar.adapters.storage import write_json
from seller_radar.domain.errors import ModelSchemaError
from seller_radar.domain.model_weights import SCHEMA_VERSION, SellerModelWeights

logger = get_logger(__name__)

LATEST_FILE = "latest.json"
HISTORY_FILE = "registry.json"
_UNSET = object()


# ---------------------------------------------------------------------------
# Schema migrations
# ---------------------------------------------------------------------------


def migrate_v1_to_v2(raw: dict[str, Any]) -> dict[str, Any]:
    """
    v1 artifacts stored flat `coefficients`/`intercept` and used algorithm
    strings such as 'gradient-boosting-placeholder' for what was always a
    logistic model.
    """
    out = dict(raw)
    coefficients = out.pop("coefficients", None)
    intercept = out.pop("intercept", 0.0)
    if not isinstance(coefficients, list):
        raise ModelSchemaError("v1 model payload has no coefficient list")

    out["modelParameters"] = {
        "type": "logistic-regression",
        "coefficients": coefficients,
        "intercept": float(intercept or 0.0),
    }
    out["algorithm"] = "logistic-regression"
    out["schemaVersion"] = 2
    return out


MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    1: migrate_v1_to_v2,
}

_KNOWN_PARAMETER_TYPES = {"logistic-regression", "gradient-boosting"}
_METRIC_KEYS = ("accuracy", "precision", "recall", "f1", "logLoss", "auc")


def _detect_version(raw: dict[str, Any]) -> int:
    version = raw.get("schemaVersion")
    if version is None:
        return 2 if "modelParameters" in raw else 1
    try:
        return int(version)
    except (TypeError, ValueError) as err:
        raise ModelSchemaError(f"invalid schemaVersion: {version!r}") from err


def _fill_current_defaults(raw: dict[str, Any]) -> dict[str, Any]:
    out = dict(raw)

    params = out.get("modelParameters")
    if not isinstance(params, dict):
        raise ModelSchemaError("model payload has no modelParameters")
    if params.get("type") not in _KNOWN_PARAMETER_TYPES:
        if isinstance(params.get("coefficients"), list):
            params = {**params, "type": "logistic-regression"}
        else:
            raise ModelSchemaError(f"unknown model parameter type: {params.get('type')!r}")
    out["modelParameters"] = params
    # the parameter tag is authoritative for the algorithm
    out["algorithm"] = params["type"]

    metrics = out.get("metrics") if isinstance(out.get("metrics"), dict) else {}
    out["metrics"] = {k: (metrics.get(k) if metrics.get(k) is not None else 0.0) for k in _METRIC_KEYS}

    for key in ("trainingSize", "validationSize"):
        if out.get(key) is None:
            out[key] = 0
    if not out.get("trainedAt"):
        out["trainedAt"] = datetime(1970, 1, 1, tzinfo=timezone.utc).isoformat()
    if not out.get("hyperparameters"):
        out["hyperparameters"] = {}
    out["schemaVersion"] = SCHEMA_VERSION
    return out


def migrate_payload(raw: dict[str, Any]) -> dict[str, Any]:
    """Upgrade a stored payload to the current schema version, one step at a time."""
    if not isinstance(raw, dict):
        raise ModelSchemaError("model payload must be a JSON object")

    version = _detect_version(raw)
    if version > SCHEMA_VERSION:
        raise ModelSchemaError(f"model schema v{version} is newer than supported v{SCHEMA_VERSION}")

    payload = raw
    while version < SCHEMA_VERSION:
        step = MIGRATIONS.get(version)
        if step is None:
            raise ModelSchemaError(f"no migration from schema v{version}")
        payload = step(payload)
        version += 1
    return _fill_current_defaults(payload)


def parse_model(raw: dict[str, Any]) -> SellerModelWeights:
    try:
        return SellerModelWeights.model_validate(migrate_payload(raw))
    except ValidationError as err:
        raise ModelSchemaError(str(err)) from err


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ModelRegistry:
    def __init__(
        self,
        root: str | Path | None = None,
        max_entries: int | None = None,
    ) -> None:
        self.root = Path(root if root is not None else config.MODEL_DIR)
        self.max_entries = int(max_entries if max_entries is not None else config.REGISTRY_MAX_ENTRIES)
        self._current: Any = _UNSET

    @property
    def latest_path(self) -> Path:
        return self.root / LATEST_FILE

    @property
    def history_path(self) -> Path:
        return self.root / HISTORY_FILE

    def persist(self, model: SellerModelWeights, file_name: str | None = None) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)

        stamp = model.trained_at.strftime("%Y%m%dT%H%M%S%f")
        name = file_name or f"{model.algorithm}-{stamp}.json"
        target = self.root / name

        payload = model.to_json_dict()
        write_json(payload, target)
        write_json(payload, self.latest_path)
        self._append_history(model, name)
        self._current = model

        logger.info(
            "model_registry_persisted",
            extra={"context": {"model_id": model.id, "path": str(target)}},
        )
        return target

    def load_latest(self) -> SellerModelWeights | None:
        """
        Best-effort load of latest.json.

        None when nothing has been persisted yet, or when the file cannot be
        read or migrated (logged, not raised).
        """
        path = self.latest_path
        if not path.exists():
            logger.info("model_registry_empty", extra={"context": {"path": str(path)}})
            return None

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return parse_model(raw)
        except (OSError, json.JSONDecodeError, ModelSchemaError) as e:
            logger.warning(
                "model_registry_load_failed",
                extra={"context": {"path": str(path), "error": str(e)}},
            )
        return None

    def current(self) -> SellerModelWeights | None:
        """Latest model, read once per registry instance."""
        if self._current is _UNSET:
            self._current = self.load_latest()
        return self._current

    def refresh(self) -> None:
        self._current = _UNSET

    def load_history(self) -> list[dict[str, Any]]:
        path = self.history_path
        if not path.exists():
            return []
        try:
            parsed = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning(
                "model_registry_history_unreadable",
                extra={"context": {"path": str(path), "error": str(e)}},
            )
            return []
        return parsed if isinstance(parsed, list) else []

    def _append_history(self, model: SellerModelWeights, file_name: str) -> None:
        data = model.to_json_dict()
        entry = {
            "id": data["id"],
            "algorithm": data["algorithm"],
            "trainedAt": data["trainedAt"],
            "fileName": file_name,
            "metrics": data["metrics"],
            "hyperparameters": data["hyperparameters"],
        }
        history = self.load_history()
        history.append(entry)
        history.sort(key=lambda e: str(e.get("trainedAt", "")), reverse=True)
        write_json(history[: self.max_entries], self.history_path)
