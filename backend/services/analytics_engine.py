from decimal import ROUND_HALF_UP, Decimal

import numpy as np
import pandas as pd

from services.config import DiscountBands

ORDER_COLUMNS = [
    "row_id",
    "order_id",
    "order_date",
    "ship_date",
    "ship_mode",
    "customer_id",
    "segment",
    "postal_code",
    "product_id",
    "sales",
    "quantity",
    "discount",
    "profit",
]
CUSTOMER_COLUMNS = ["customer_id", "customer_name"]
LOCATION_COLUMNS = ["postal_code", "city", "state", "region", "country_region"]
PRODUCT_COLUMNS = ["product_id", "category", "sub_category", "product_name"]

ABOVE_AVERAGE = "Above the average"
BELOW_AVERAGE = "Below the average"

_NO_KEY = object()


# ---------- NORMALIZATION ----------

def _parse_series(series: pd.Series) -> pd.Series:
    try:
        return pd.to_datetime(series, format="mixed", errors="coerce")
    except TypeError:
        return pd.to_datetime(series, errors="coerce")


def _with_columns(df: pd.DataFrame | None, columns: list[str]) -> pd.DataFrame:
    if df is None:
        return pd.DataFrame(columns=columns)
    df = df.copy()
    for col in columns:
        if col not in df.columns:
            df[col] = None
    return df


def prepare_orders(orders: pd.DataFrame | None) -> pd.DataFrame:
    df = _with_columns(orders, ORDER_COLUMNS)

    for col in ["order_date", "ship_date"]:
        df[col] = _parse_series(df[col])

    for col in ["sales", "discount", "profit"]:
        df[col] = pd.to_numeric(df[col], errors="coerce").astype("float64")

    for col in ["quantity", "postal_code"]:
        df[col] = pd.to_numeric(df[col], errors="coerce").round().astype("Int64")

    return df


def prepare_locations(locations: pd.DataFrame | None) -> pd.DataFrame:
    df = _with_columns(locations, LOCATION_COLUMNS)
    df["postal_code"] = pd.to_numeric(df["postal_code"], errors="coerce").round().astype("Int64")
    return df


def prepare_products(products: pd.DataFrame | None) -> pd.DataFrame:
    return _with_columns(products, PRODUCT_COLUMNS)


def prepare_customers(customers: pd.DataFrame | None) -> pd.DataFrame:
    return _with_columns(customers, CUSTOMER_COLUMNS)


# ---------- NUMERIC HELPERS ----------

def round_half_up(series: pd.Series, digits: int = 2) -> pd.Series:
    """
    Round like PostgreSQL ROUND(numeric): halves go away from zero.

    Missing values (None, NaN, NA, inf) come back as pd.NA in a nullable
    Float64 series so they never masquerade as real numbers.
    """
    quantum = Decimal(1).scaleb(-digits)

    def _round(value):
        if pd.isna(value) or np.isinf(value):
            return pd.NA
        return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))

    return pd.Series(
        [_round(v) for v in series],
        index=series.index,
        dtype="Float64",
    )


def _as_float(series: pd.Series) -> np.ndarray:
    return pd.Series(series).astype("Float64").to_numpy(dtype="float64", na_value=np.nan)


def percent_change(current, previous):
    """100 * (current - previous) / previous, or NA when undefined."""
    if pd.isna(current) or pd.isna(previous) or previous == 0:
        return pd.NA
    return 100 * (current - previous) / previous


def _key(value):
    return None if pd.isna(value) else value


def iter_with_previous(keys, values):
    """
    Yield (value, previous_value) over rows already sorted by partition key
    and period. previous_value is None at the start of every partition.
    """
    prev_key, prev_value = _NO_KEY, None
    for key, value in zip(keys, values):
        key = _key(key)
        yield value, (prev_value if key == prev_key else None)
        prev_key, prev_value = key, value


def iter_dense_rank(keys, values):
    """
    Dense rank of values within each partition. Rows must be sorted by
    partition key, then by value descending. Ties share a rank and the
    next distinct value gets rank + 1.
    """
    prev_key, prev_value, rank = _NO_KEY, None, 0
    for key, value in zip(keys, values):
        key = _key(key)
        value = None if pd.isna(value) else value
        if key != prev_key:
            rank = 1
        elif value != prev_value:
            rank += 1
        yield rank
        prev_key, prev_value = key, value


def iter_trailing_sums(dates, amounts, months: int):
    """
    Sum of amounts over [date - months, date] for each row of one partition.
    dates must be ascending. Missing amounts are skipped; a window holding
    only missing amounts sums to NA.
    """
    offset = pd.DateOffset(months=months)
    dates = list(dates)
    amounts = list(amounts)
    window_start = 0
    for current, day in enumerate(dates):
        floor = day - offset
        while dates[window_start] < floor:
            window_start += 1
        window = [a for a in amounts[window_start : current + 1] if not pd.isna(a)]
        yield sum(window) if window else pd.NA


def _year_filter(df: pd.DataFrame, year: int) -> pd.DataFrame:
    return df[df["order_date"].dt.year == year]


def _year_month(dates: pd.Series) -> pd.Series:
    return dates.dt.strftime("%Y-%m")


def _sum(series: pd.Series):
    return series.sum(min_count=1)


# ---------- 1. MONTHLY SALES TREND ----------

def monthly_sales_trend(orders: pd.DataFrame, year: int) -> pd.DataFrame:
    df = _year_filter(prepare_orders(orders), year)
    df = df.assign(year_month=_year_month(df["order_date"]))

    result = (
        df.groupby("year_month", as_index=False)["sales"]
        .sum(min_count=1)
        .rename(columns={"sales": "monthly_sales"})
        .sort_values("year_month")
        .reset_index(drop=True)
    )
    result["monthly_sales"] = round_half_up(result["monthly_sales"])
    return result[["year_month", "monthly_sales"]]


# ---------- 2. MONTH-OVER-MONTH GROWTH BY REGION ----------

def monthly_growth_by_region(
    orders: pd.DataFrame,
    locations: pd.DataFrame,
) -> pd.DataFrame:
    df = prepare_orders(orders).merge(
        prepare_locations(locations)[["postal_code", "region"]],
        on="postal_code",
        how="left",
    )
    df = df.assign(year_month=_year_month(df["order_date"]))

    monthly = (
        df.groupby(["region", "year_month"], dropna=False, as_index=False)["sales"]
        .sum(min_count=1)
        .sort_values(["region", "year_month"], na_position="last", kind="mergesort")
        .reset_index(drop=True)
    )

    growth = [
        percent_change(current, previous)
        for current, previous in iter_with_previous(monthly["region"], monthly["sales"])
    ]

    result = monthly.rename(columns={"sales": "monthly_sales"})
    result["monthly_sales"] = round_half_up(result["monthly_sales"])
    result["monthly_growth_rate"] = round_half_up(pd.Series(growth, index=result.index, dtype="object"))
    return result[["region", "year_month", "monthly_sales", "monthly_growth_rate"]]


# ---------- 3. PROFITABILITY BY CATEGORY / SUB-CATEGORY ----------

def category_profitability(
    orders: pd.DataFrame,
    products: pd.DataFrame,
    year: int,
) -> pd.DataFrame:
    df = _year_filter(prepare_orders(orders), year).merge(
        prepare_products(products)[["product_id", "category", "sub_category"]],
        on="product_id",
        how="left",
    )

    result = (
        df.groupby(["category", "sub_category"], dropna=False, as_index=False)["profit"]
        .sum(min_count=1)
        .rename(columns={"profit": "total_profit"})
    )
    result["total_profit"] = round_half_up(result["total_profit"])
    result = result.sort_values(
        ["total_profit", "category", "sub_category"],
        ascending=[False, True, True],
        na_position="last",
        kind="mergesort",
    )
    return result.reset_index(drop=True)[["category", "sub_category", "total_profit"]]


# ---------- 4. TOP N PRODUCTS BY PROFIT PER REGION ----------

def top_products_by_region(
    orders: pd.DataFrame,
    products: pd.DataFrame,
    locations: pd.DataFrame,
    top_n: int = 5,
) -> pd.DataFrame:
    df = (
        prepare_orders(orders)
        .merge(
            prepare_products(products)[["product_id", "product_name"]],
            on="product_id",
            how="left",
        )
        .merge(
            prepare_locations(locations)[["postal_code", "region"]],
            on="postal_code",
            how="left",
        )
    )

    grouped = (
        df.groupby(["region", "product_name"], dropna=False, as_index=False)["profit"]
        .sum(min_count=1)
        .sort_values(
            ["region", "profit", "product_name"],
            ascending=[True, False, True],
            na_position="last",
            kind="mergesort",
        )
        .reset_index(drop=True)
    )

    # rank on the unrounded sums so rounding never creates ties
    grouped["rank"] = list(iter_dense_rank(grouped["region"], grouped["profit"]))
    grouped = grouped[grouped["rank"] <= top_n].reset_index(drop=True)

    grouped["total_profit"] = round_half_up(grouped["profit"])
    grouped["rank"] = grouped["rank"].astype("int64")
    return grouped[["region", "product_name", "total_profit", "rank"]]


# ---------- 5. TOP CUSTOMERS BY TOTAL SALES ----------

def top_customers(
    orders: pd.DataFrame,
    customers: pd.DataFrame,
    limit: int = 100,
) -> pd.DataFrame:
    df = prepare_orders(orders)
    names = prepare_customers(customers).drop_duplicates("customer_id").set_index("customer_id")["customer_name"]

    result = (
        df.groupby("customer_id", dropna=False, as_index=False)["sales"]
        .sum(min_count=1)
        .rename(columns={"sales": "total_sales"})
    )
    result["customer_name"] = result["customer_id"].map(names)
    result["total_sales"] = round_half_up(result["total_sales"])
    result = result.sort_values(
        ["total_sales", "customer_id"],
        ascending=[False, True],
        na_position="last",
        kind="mergesort",
    )
    return result.head(limit).reset_index(drop=True)[["customer_id", "customer_name", "total_sales"]]


# ---------- 6. ROLLING 12-MONTH SALES PER CUSTOMER ----------

def rolling_customer_sales(
    orders: pd.DataFrame,
    customers: pd.DataFrame,
    year: int,
    window_months: int = 12,
) -> pd.DataFrame:
    df = prepare_orders(orders)
    names = prepare_customers(customers).drop_duplicates("customer_id").set_index("customer_id")["customer_name"]

    daily = (
        df.groupby(["customer_id", "order_date"], as_index=False)["sales"]
        .sum(min_count=1)
        .rename(columns={"sales": "daily_sales"})
    )
    daily["daily_sales"] = round_half_up(daily["daily_sales"])
    daily = _year_filter(daily, year)
    daily = daily.sort_values(["customer_id", "order_date"], kind="mergesort")

    parts = []
    for customer_id, part in daily.groupby("customer_id", sort=True):
        rolling = list(iter_trailing_sums(part["order_date"], part["daily_sales"], window_months))
        parts.append(
            pd.DataFrame(
                {
                    "customer_id": customer_id,
                    "order_date": part["order_date"].to_numpy(),
                    "rolling_sum": pd.array(rolling, dtype="Float64"),
                }
            )
        )

    if parts:
        rolled = pd.concat(parts, ignore_index=True)
    else:
        rolled = pd.DataFrame(
            {
                "customer_id": pd.Series(dtype="object"),
                "order_date": pd.Series(dtype="datetime64[ns]"),
                "rolling_sum": pd.Series(dtype="Float64"),
            }
        )

    result = (
        rolled.groupby(["order_date", "customer_id"], as_index=False)["rolling_sum"]
        .max()
        .rename(columns={"rolling_sum": "highest_rolling"})
    )
    result["highest_rolling"] = round_half_up(result["highest_rolling"])
    result["customer_name"] = result["customer_id"].map(names)
    result["order_date"] = pd.to_datetime(result["order_date"]).dt.date
    result = result.sort_values(
        ["highest_rolling", "customer_id", "order_date"],
        ascending=[False, True, True],
        na_position="last",
        kind="mergesort",
    )
    return result.reset_index(drop=True)[["customer_id", "customer_name", "order_date", "highest_rolling"]]


# ---------- 7. PRODUCT SALES VS AVERAGE ----------

def product_sales_vs_average(
    orders: pd.DataFrame,
    products: pd.DataFrame,
    year: int,
) -> pd.DataFrame:
    df = _year_filter(prepare_orders(orders), year).merge(
        prepare_products(products)[["product_id", "product_name"]],
        on="product_id",
        how="left",
    )

    result = (
        df.groupby("product_name", dropna=False, as_index=False)["sales"]
        .sum(min_count=1)
        .rename(columns={"sales": "product_sales"})
    )
    result["product_sales"] = round_half_up(result["product_sales"])

    values = _as_float(result["product_sales"])
    average = np.nanmean(values) if np.isfinite(values).any() else np.nan

    result["pct_diff_from_avg_sales"] = round_half_up(
        pd.Series(
            [percent_change(v, average) for v in values],
            index=result.index,
            dtype="object",
        )
    )
    result["sales_performance"] = np.where(values > average, ABOVE_AVERAGE, BELOW_AVERAGE)
    result = result.sort_values(
        ["pct_diff_from_avg_sales", "product_name"],
        ascending=[False, True],
        na_position="last",
        kind="mergesort",
    )
    return result.reset_index(drop=True)[
        ["product_name", "product_sales", "pct_diff_from_avg_sales", "sales_performance"]
    ]


# ---------- 8a. AVERAGE SHIPPING TIME ----------

def average_shipping_time(orders: pd.DataFrame) -> pd.DataFrame:
    df = prepare_orders(orders)
    df = df.assign(ship_days=(df["ship_date"] - df["order_date"]).dt.days.astype("float64"))

    result = (
        df.groupby("ship_mode", dropna=False, as_index=False)["ship_days"]
        .mean()
        .rename(columns={"ship_days": "average_ship_time_days"})
    )
    result["average_ship_time_days"] = round_half_up(result["average_ship_time_days"], digits=0).astype("Int64")
    result = result.sort_values(
        ["average_ship_time_days", "ship_mode"],
        na_position="last",
        kind="mergesort",
    )
    return result.reset_index(drop=True)[["ship_mode", "average_ship_time_days"]]


# ---------- 8b. DISCOUNT BANDS AND PROFIT MARGIN ----------

def discount_band(discount: pd.Series, bands: DiscountBands | None = None) -> pd.Series:
    """
    No Discount:  d == 0
    Low:          0 < d <= low_max
    Medium:       low_max < d <= medium_max
    High:         anything else, missing discounts included
    """
    bands = bands or DiscountBands()
    labels = bands.labels
    values = _as_float(pd.to_numeric(pd.Series(discount), errors="coerce"))

    with np.errstate(invalid="ignore"):
        conditions = [
            values == 0,
            (values > 0) & (values <= bands.low_max),
            (values > bands.low_max) & (values <= bands.medium_max),
        ]
    return pd.Series(
        np.select(conditions, labels[:3], default=labels[3]),
        index=pd.Series(discount).index,
    )


def profit_margin(total_sales, total_profit):
    if pd.isna(total_sales) or pd.isna(total_profit) or total_sales == 0:
        return pd.NA
    return 100 * total_profit / total_sales


def discount_margin_analysis(
    orders: pd.DataFrame,
    bands: DiscountBands | None = None,
) -> pd.DataFrame:
    bands = bands or DiscountBands()
    df = prepare_orders(orders)
    df = df.assign(discount_band=discount_band(df["discount"], bands))

    result = df.groupby(["ship_mode", "discount_band"], dropna=False, as_index=False).agg(
        total_sales=("sales", _sum),
        total_profit=("profit", _sum),
    )

    result["profit_margin_pct"] = round_half_up(
        pd.Series(
            [
                profit_margin(s, p)
                for s, p in zip(result["total_sales"], result["total_profit"])
            ],
            index=result.index,
            dtype="object",
        )
    )
    result["total_sales"] = round_half_up(result["total_sales"])
    result["total_profit"] = round_half_up(result["total_profit"])

    band_order = pd.Categorical(result["discount_band"], categories=bands.labels, ordered=True)
    result = (
        result.assign(_band_order=band_order.codes)
        .sort_values(["ship_mode", "_band_order"], na_position="last", kind="mergesort")
        .drop(columns="_band_order")
    )
    return result.reset_index(drop=True)[
        ["ship_mode", "discount_band", "total_sales", "total_profit", "profit_margin_pct"]
    ]
