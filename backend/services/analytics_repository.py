import logging
import os
import threading
import time

import pandas as pd
from sqlalchemy import select
from sqlalchemy.orm import Session

from models.customers import Customer
from models.locations import Location
from models.orders import Order
from models.products import Product

logger = logging.getLogger(__name__)

TABLE_MODELS = {
    "customers": Customer,
    "orders": Order,
    "locations": Location,
    "products": Product,
}

_CACHE_TTL_SECONDS = int(os.getenv("ANALYTICS_CACHE_TTL", "300"))
_df_cache_lock = threading.Lock()
_df_cache: dict[tuple[str, str], tuple[float, pd.DataFrame]] = {}


def table_columns(table: str) -> list[str]:
    return [c.name for c in TABLE_MODELS[table].__table__.columns]


def _cache_key(db: Session, table: str) -> tuple[str, str]:
    bind = db.get_bind()
    return (
        f"{getattr(bind, 'url', '')}#{id(bind)}",
        (table or "").strip().lower(),
    )


def invalidate_dataframe_cache(table: str | None = None) -> None:
    with _df_cache_lock:
        if table is None:
            _df_cache.clear()
            return None

        name = table.strip().lower()
        for key in [k for k in _df_cache if k[1] == name]:
            _df_cache.pop(key, None)
    return None


def get_dataframe(db: Session, table: str, use_cache: bool = True) -> pd.DataFrame:
    """
    Read one of the four sales tables into a DataFrame.

    Columns follow the ORM model even when the table is empty.
    """
    if table not in TABLE_MODELS:
        raise KeyError(f"Unknown table '{table}'. Expected one of: {', '.join(TABLE_MODELS)}")

    key = _cache_key(db, table)
    now = time.time()
    if use_cache:
        with _df_cache_lock:
            cached = _df_cache.get(key)
            if cached is not None:
                expires_at, cached_df = cached
                if expires_at >= now:
                    return cached_df.copy(deep=False)
                _df_cache.pop(key, None)

    model = TABLE_MODELS[table]
    columns = table_columns(table)
    rows = db.execute(select(model.__table__)).mappings().all()
    df = pd.DataFrame([dict(r) for r in rows], columns=columns)
    logger.debug("Loaded %d rows from %s", len(df), table)

    if use_cache:
        with _df_cache_lock:
            _df_cache[key] = (now + _CACHE_TTL_SECONDS, df)
    return df.copy(deep=False)


def get_sales_frames(db: Session, use_cache: bool = True) -> dict[str, pd.DataFrame]:
    return {table: get_dataframe(db, table, use_cache=use_cache) for table in TABLE_MODELS}
