# tests/conftest.py
from __future__ import annotations

import os

# scripts import db.session, which builds its engine at import time
os.environ["DATABASE_URL"] = "sqlite://"

import pandas as pd
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db.base import Base
from services.analytics_repository import invalidate_dataframe_cache
from services.data_loader import load_dataframe


# ───────────────────────── a tiny superstore ───────────────────────── #

def build_customers() -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"customer_id": "C1", "customer_name": "Alice Archer"},
            {"customer_id": "C2", "customer_name": "Bob Baker"},
            {"customer_id": "C3", "customer_name": "Cara Cole"},
        ]
    )


def build_locations() -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"postal_code": 10001, "city": "New York City", "state": "New York",
             "region": "East", "country_region": "United States"},
            {"postal_code": 90001, "city": "Los Angeles", "state": "California",
             "region": "West", "country_region": "United States"},
        ]
    )


def build_products() -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"product_id": "P1", "category": "Furniture", "sub_category": "Chairs", "product_name": "Chair A"},
            {"product_id": "P2", "category": "Technology", "sub_category": "Phones", "product_name": "Phone B"},
            {"product_id": "P3", "category": "Office Supplies", "sub_category": "Paper", "product_name": "Paper C"},
        ]
    )


ORDER_ROWS = [
    # row_id, order_id, order_date, ship_date, ship_mode, customer, segment, postal, product, sales, qty, discount, profit
    (1, "O1", "2020-01-05", "2020-01-09", "Standard Class", "C1", "Consumer", 10001, "P1", 100.00, 2, 0.00, 20.00),
    (2, "O2", "2020-01-20", "2020-01-22", "Second Class", "C2", "Corporate", 90001, "P2", 50.00, 1, 0.10, 5.00),
    (3, "O3", "2020-02-03", "2020-02-08", "Standard Class", "C1", "Consumer", 10001, "P3", 200.00, 4, 0.20, -10.00),
    (4, "O4", "2020-03-15", "2020-03-16", "First Class", "C3", "Home Office", 90001, "P1", 150.00, 3, 0.35, -30.00),
    (5, "O5", "2021-01-10", "2021-01-14", "Standard Class", "C2", "Corporate", 10001, "P2", 80.00, 1, 0.00, 16.00),
]

ORDER_FIELDS = [
    "row_id", "order_id", "order_date", "ship_date", "ship_mode", "customer_id", "segment",
    "postal_code", "product_id", "sales", "quantity", "discount", "profit",
]


def build_orders(rows=ORDER_ROWS) -> pd.DataFrame:
    return pd.DataFrame(list(rows), columns=ORDER_FIELDS)


def make_orders(*rows: dict) -> pd.DataFrame:
    """Orders from partial dicts; unspecified fields get harmless defaults."""
    defaults = {
        "row_id": None, "order_id": "OX", "order_date": "2023-01-01", "ship_date": "2023-01-03",
        "ship_mode": "Standard Class", "customer_id": "C1", "segment": "Consumer",
        "postal_code": 10001, "product_id": "P1", "sales": 0.0, "quantity": 1,
        "discount": 0.0, "profit": 0.0,
    }
    records = []
    for i, row in enumerate(rows, start=1):
        record = {**defaults, "row_id": i, **row}
        records.append(record)
    return pd.DataFrame(records, columns=ORDER_FIELDS)


@pytest.fixture
def frames() -> dict[str, pd.DataFrame]:
    return {
        "customers": build_customers(),
        "orders": build_orders(),
        "locations": build_locations(),
        "products": build_products(),
    }


# ───────────────────────── database ───────────────────────── #

@pytest.fixture(autouse=True)
def _clear_cache():
    invalidate_dataframe_cache()
    yield
    invalidate_dataframe_cache()


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def loaded_db(db, frames):
    for table in ["customers", "locations", "products", "orders"]:
        load_dataframe(db, table, frames[table])
    return db
