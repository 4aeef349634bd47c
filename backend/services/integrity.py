import logging

import pandas as pd

from services.analytics_engine import (
    ORDER_COLUMNS,
    prepare_customers,
    prepare_locations,
    prepare_orders,
    prepare_products,
)

logger = logging.getLogger(__name__)

MISSING_FLAGS = ["missing_product", "missing_customer", "missing_location"]


def find_orphaned_orders(
    orders: pd.DataFrame,
    customers: pd.DataFrame,
    products: pd.DataFrame,
    locations: pd.DataFrame,
) -> pd.DataFrame:
    """
    Orders whose product, customer or location does not resolve.

    A row is flagged when the joined product_name, customer_name or city
    is absent, which also catches dimension rows that exist but are blank.
    Nothing is repaired; the result is a diagnostic report.
    """
    df = (
        prepare_orders(orders)
        .merge(
            prepare_products(products)[["product_id", "product_name"]].drop_duplicates("product_id"),
            on="product_id",
            how="left",
        )
        .merge(
            prepare_customers(customers)[["customer_id", "customer_name"]].drop_duplicates("customer_id"),
            on="customer_id",
            how="left",
        )
        .merge(
            prepare_locations(locations)[["postal_code", "city"]].drop_duplicates("postal_code"),
            on="postal_code",
            how="left",
        )
    )

    df["missing_product"] = df["product_name"].isna()
    df["missing_customer"] = df["customer_name"].isna()
    df["missing_location"] = df["city"].isna()

    flagged = df[df[MISSING_FLAGS].any(axis=1)].reset_index(drop=True)
    if not flagged.empty:
        logger.warning(
            "%d orders fail referential integrity (product=%d customer=%d location=%d)",
            len(flagged),
            int(flagged["missing_product"].sum()),
            int(flagged["missing_customer"].sum()),
            int(flagged["missing_location"].sum()),
        )
    return flagged[ORDER_COLUMNS + ["product_name", "customer_name", "city"] + MISSING_FLAGS]


def summarize(flagged: pd.DataFrame) -> dict:
    return {
        "orphaned_orders": int(len(flagged)),
        **{flag: int(flagged[flag].sum()) if flag in flagged else 0 for flag in MISSING_FLAGS},
    }
