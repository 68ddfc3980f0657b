import json
from pathlib import Path
from typing import Any

import pandas as pd


def read_df(path: str) -> pd.DataFrame:
    if path.endswith(".parquet"):
        return pd.read_parquet(path)
    # ids and zips stay strings
    return pd.read_csv(path, dtype={"property_id": str})

def write_df(df: pd.DataFrame, path: str):
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    if path.endswith(".parquet"):
        df.to_parquet(path, index=False)
    else:
        df.to_csv(path, index=False)


def read_json(path: str | Path) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def write_json(payload: Any, path: str | Path) -> Path:
    """Write atomically (tmp file + replace) so readers never see half a file."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_suffix(target.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
    tmp.replace(target)
    return target


def read_records(path: str | Path) -> list[dict[str, Any]]:
    """
    Load a list of JSON objects from .json (array, or {"properties": [...]}),
    .jsonl, or a csv/parquet table.
    """
    p = Path(path)
    if p.suffix == ".jsonl":
        return [json.loads(line) for line in p.read_text(encoding="utf-8").splitlines() if line.strip()]
    if p.suffix == ".json":
        payload = read_json(p)
        if isinstance(payload, dict):
            payload = payload.get("properties", [])
        return list(payload)
    df = read_df(str(p))
    return [
        {k: v for k, v in row.items() if not (isinstance(v, float) and pd.isna(v))}
        for row in df.to_dict(orient="records")
    ]
