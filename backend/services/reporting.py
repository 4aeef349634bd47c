import json
from datetime import date, datetime
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

FORMATS = ("table", "csv", "json")


def _json_safe(value: Any):
    if value is None:
        return None
    if isinstance(value, np.generic):
        value = value.item()
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(value, float):
        if value != value or value == float("inf") or value == float("-inf"):
            return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _clean_json_row(row: dict) -> dict:
    return {k: _json_safe(v) for k, v in row.items()}


def to_records(df: pd.DataFrame) -> list[dict]:
    if df is None or df.empty:
        return []
    return [_clean_json_row(r) for r in df.astype(object).to_dict(orient="records")]


def render(results: dict[str, pd.DataFrame], fmt: str = "table") -> str:
    fmt = (fmt or "table").strip().lower()
    if fmt not in FORMATS:
        raise ValueError(f"format must be one of: {', '.join(FORMATS)}")

    if fmt == "json":
        payload = {name: to_records(df) for name, df in results.items()}
        return json.dumps(payload, indent=2)

    blocks = []
    for name, df in results.items():
        if fmt == "csv":
            blocks.append(f"# {name}\n{df.to_csv(index=False)}")
        else:
            body = df.to_string(index=False, na_rep="NULL") if not df.empty else "(no rows)"
            blocks.append(f"== {name} ==\n{body}\n")
    return "\n".join(blocks)


def write_results(results: dict[str, pd.DataFrame], output: str | Path, fmt: str) -> list[Path]:
    """
    Write results to disk. CSV output goes to one file per metric inside
    `output` (a directory); JSON goes to a single file.
    """
    output = Path(output)
    fmt = (fmt or "csv").strip().lower()

    if fmt == "csv":
        output.mkdir(parents=True, exist_ok=True)
        written = []
        for name, df in results.items():
            path = output / f"{name}.csv"
            df.to_csv(path, index=False)
            written.append(path)
        return written

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(render(results, fmt), encoding="utf-8")
    return [output]
