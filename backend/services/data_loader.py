import logging
import re
from pathlib import Path

import numpy as np
import pandas as pd
from sqlalchemy import insert
from sqlalchemy.orm import Session

from services.analytics_repository import (
    TABLE_MODELS,
    invalidate_dataframe_cache,
    table_columns,
)

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".csv", ".xlsx", ".xls")

# every model column is required except the ones listed here
OPTIONAL_COLUMNS = {
    "customers": set(),
    "orders": {"row_id", "segment", "quantity"},
    "locations": {"country_region"},
    "products": set(),
}


class DataLoadError(ValueError):
    pass


# ---------- READING ----------

def normalize_column_name(name) -> str:
    cleaned = str(name).strip().lower()
    cleaned = re.sub(r"[\s\-/]+", "_", cleaned)
    return re.sub(r"[^a-z0-9_]", "", cleaned)


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    df = df.loc[:, ~df.columns.astype(str).str.lower().str.startswith("unnamed")]
    return df.rename(columns={c: normalize_column_name(c) for c in df.columns})


def read_table_file(path: str | Path) -> pd.DataFrame:
    path = Path(path)
    name = path.name.lower()
    if not name.endswith(SUPPORTED_SUFFIXES):
        raise DataLoadError(f"{path}: only .csv, .xls, and .xlsx are supported")
    if not path.exists():
        raise DataLoadError(f"{path}: file not found")

    try:
        if name.endswith(".csv"):
            try:
                df = pd.read_csv(path, dtype=str)
            except UnicodeDecodeError:
                # Superstore exports are usually Latin-1
                df = pd.read_csv(path, dtype=str, encoding="ISO-8859-1")
        else:
            df = pd.read_excel(path, dtype=str)
    except (OSError, ValueError, pd.errors.ParserError) as exc:
        raise DataLoadError(f"{path}: failed to parse file: {exc}") from exc

    logger.info("Read %d rows from %s", len(df), path)
    return normalize_columns(df)


# ---------- CLEANING ----------

def _strip_strings(df: pd.DataFrame) -> pd.DataFrame:
    for col in df.columns:
        if pd.api.types.is_object_dtype(df[col]):
            df[col] = df[col].map(lambda v: v.strip() if isinstance(v, str) else v)
            df[col] = df[col].where(df[col] != "", None)
    return df


def _require_columns(df: pd.DataFrame, table: str) -> pd.DataFrame:
    columns = table_columns(table)
    missing = [
        c for c in columns
        if c not in df.columns and c not in OPTIONAL_COLUMNS[table]
    ]
    if missing:
        raise DataLoadError(f"{table}: missing required columns: {', '.join(missing)}")

    for col in columns:
        if col not in df.columns:
            df[col] = None
    return df[columns].copy()


def drop_header_rows(df: pd.DataFrame, key: str) -> pd.DataFrame:
    """Drop placeholder rows that repeat the field name, e.g. product_id == 'Product ID'."""
    if df.empty:
        return df
    is_header = df[key].map(
        lambda v: isinstance(v, str) and normalize_column_name(v) == key
    )
    dropped = int(is_header.sum())
    if dropped:
        logger.warning("Dropped %d header/placeholder rows (%s)", dropped, key)
    return df[~is_header]


def _drop_missing_keys(df: pd.DataFrame, key: str, table: str) -> pd.DataFrame:
    missing = df[key].isna()
    if missing.any():
        logger.warning("%s: dropped %d rows without %s", table, int(missing.sum()), key)
    return df[~missing]


def _drop_duplicate_keys(df: pd.DataFrame, key: str, table: str) -> pd.DataFrame:
    duplicated = df.duplicated(key, keep="first")
    if duplicated.any():
        logger.warning("%s: dropped %d rows with a duplicate %s", table, int(duplicated.sum()), key)
    return df[~duplicated]


def _to_integer(series: pd.Series) -> pd.Series:
    numeric = pd.to_numeric(series, errors="coerce")
    whole = numeric.where(numeric.isna() | (numeric == numeric.round()))
    return whole.astype("Int64")


def _to_date(series: pd.Series) -> pd.Series:
    try:
        parsed = pd.to_datetime(series, format="mixed", errors="coerce")
    except TypeError:
        parsed = pd.to_datetime(series, errors="coerce")
    return parsed.dt.date


def clean_customers(df: pd.DataFrame) -> pd.DataFrame:
    df = _strip_strings(_require_columns(df.copy(), "customers"))
    df = drop_header_rows(df, "customer_id")
    df = _drop_missing_keys(df, "customer_id", "customers")
    return _drop_duplicate_keys(df, "customer_id", "customers")


def clean_locations(df: pd.DataFrame) -> pd.DataFrame:
    """
    postal_code is loaded as text; rows that are not numeric (e.g. 'NA')
    are removed before the column is coerced to an integer.
    """
    df = _strip_strings(_require_columns(df.copy(), "locations"))
    df = drop_header_rows(df, "postal_code")

    postal = _to_integer(df["postal_code"])
    malformed = postal.isna()
    if malformed.any():
        logger.warning("locations: dropped %d rows with a non-numeric postal_code", int(malformed.sum()))
    df = df[~malformed].copy()
    df["postal_code"] = postal[~malformed]

    return _drop_duplicate_keys(df, "postal_code", "locations")


def clean_products(df: pd.DataFrame) -> pd.DataFrame:
    df = _strip_strings(_require_columns(df.copy(), "products"))
    df = drop_header_rows(df, "product_id")
    df = _drop_missing_keys(df, "product_id", "products")
    return _drop_duplicate_keys(df, "product_id", "products")


def clean_orders(df: pd.DataFrame) -> pd.DataFrame:
    df = _strip_strings(_require_columns(df.copy(), "orders"))
    df = drop_header_rows(df, "order_id")

    for col in ["order_date", "ship_date"]:
        df[col] = _to_date(df[col])
    for col in ["sales", "discount", "profit"]:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    for col in ["row_id", "quantity", "postal_code"]:
        df[col] = _to_integer(df[col])

    bad_dates = df["order_date"].isna()
    if bad_dates.any():
        logger.warning("orders: %d rows have no valid order_date", int(bad_dates.sum()))

    if df["row_id"].notna().any():
        df = _drop_missing_keys(df, "row_id", "orders")
        df = _drop_duplicate_keys(df, "row_id", "orders")
    else:
        df = df.drop(columns="row_id")
    return df


CLEANERS = {
    "customers": clean_customers,
    "orders": clean_orders,
    "locations": clean_locations,
    "products": clean_products,
}


# ---------- WRITING ----------

def _to_records(df: pd.DataFrame) -> list[dict]:
    df = df.astype(object).where(pd.notnull(df), None)
    return [
        {k: (v.item() if isinstance(v, np.generic) else v) for k, v in row.items()}
        for row in df.to_dict(orient="records")
    ]


def load_dataframe(db: Session, table: str, df: pd.DataFrame) -> int:
    """
    Clean `df` and replace the contents of `table` with it.
    Returns the number of rows inserted.
    """
    if table not in TABLE_MODELS:
        raise DataLoadError(f"Unknown table '{table}'. Expected one of: {', '.join(TABLE_MODELS)}")

    cleaned = CLEANERS[table](normalize_columns(df))
    records = _to_records(cleaned)
    model = TABLE_MODELS[table]

    try:
        deleted = db.query(model).delete(synchronize_session=False)
        if records:
            db.execute(insert(model), records)
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        invalidate_dataframe_cache(table)

    logger.info(
        "%s: replaced %d rows with %d rows (%d dropped while cleaning)",
        table,
        int(deleted or 0),
        len(records),
        len(df) - len(records),
    )
    return len(records)


def load_file(db: Session, table: str, path: str | Path) -> int:
    return load_dataframe(db, table, read_table_file(path))


def find_table_file(directory: str | Path, table: str) -> Path | None:
    directory = Path(directory)
    for suffix in SUPPORTED_SUFFIXES:
        candidate = directory / f"{table}{suffix}"
        if candidate.exists():
            return candidate
    return None


def load_directory(db: Session, directory: str | Path) -> dict[str, int]:
    """Load <table>.csv / .xlsx for each of the four tables found in `directory`."""
    directory = Path(directory)
    if not directory.is_dir():
        raise DataLoadError(f"{directory}: not a directory")

    loaded = {}
    for table in TABLE_MODELS:
        path = find_table_file(directory, table)
        if path is None:
            logger.warning("No file for table %s in %s", table, directory)
            continue
        loaded[table] = load_file(db, table, path)

    if not loaded:
        raise DataLoadError(f"{directory}: no customers/orders/locations/products files found")
    return loaded
