# tests/analytics_engine_test.py
from __future__ import annotations

from datetime import date

import pandas as pd
import pytest

from services.analytics_engine import (
    ABOVE_AVERAGE,
    BELOW_AVERAGE,
    average_shipping_time,
    category_profitability,
    discount_band,
    discount_margin_analysis,
    iter_dense_rank,
    iter_trailing_sums,
    monthly_growth_by_region,
    monthly_sales_trend,
    percent_change,
    product_sales_vs_average,
    rolling_customer_sales,
    round_half_up,
    top_customers,
    top_products_by_region,
)
from services.config import DiscountBands

from conftest import build_customers, build_locations, build_products, make_orders


# ───────────────────────── helpers ───────────────────────── #

def test_round_half_up_goes_away_from_zero():
    out = round_half_up(pd.Series([2.675, -2.675, 0.125, 1.005, None]))
    assert out.iloc[:4].tolist() == [2.68, -2.68, 0.13, 1.01]
    assert out.iloc[4] is pd.NA


def test_round_half_up_whole_days():
    out = round_half_up(pd.Series([4.5, 4.333, float("inf")]), digits=0)
    assert out.iloc[:2].tolist() == [5.0, 4.0]
    assert out.iloc[2] is pd.NA


def test_percent_change_undefined_cases():
    assert percent_change(150.0, 100.0) == 50.0
    assert percent_change(10.0, None) is pd.NA
    assert percent_change(10.0, 0) is pd.NA
    assert percent_change(None, 10.0) is pd.NA


def test_dense_rank_has_no_gap_after_tie():
    ranks = list(iter_dense_rank(["East"] * 3, [100, 100, 90]))
    assert ranks == [1, 1, 2]


def test_dense_rank_restarts_per_partition():
    ranks = list(iter_dense_rank(["East", "East", "West", "West"], [50, 40, 70, 70]))
    assert ranks == [1, 2, 1, 1]


def test_trailing_window_includes_its_lower_bound():
    dates = pd.to_datetime(["2022-01-15", "2023-01-15", "2023-01-16"])
    sums = list(iter_trailing_sums(dates, [10.0, 20.0, 5.0], months=12))
    # 2023-01-16 - 12 months = 2022-01-16, so the first row has left the window
    assert sums == [10.0, 30.0, 25.0]


def test_trailing_window_is_monotone_for_non_negative_sales():
    dates = pd.to_datetime(["2023-01-01", "2023-02-01", "2023-05-01", "2023-11-30"])
    sums = list(iter_trailing_sums(dates, [5.0, 0.0, 7.5, 1.25], months=12))
    assert sums == sorted(sums)


# ───────────────────────── 1. monthly trend ───────────────────────── #

def test_monthly_sales_trend(frames):
    out = monthly_sales_trend(frames["orders"], 2020)
    assert out["year_month"].tolist() == ["2020-01", "2020-02", "2020-03"]
    assert out["monthly_sales"].tolist() == [150.0, 200.0, 150.0]


def test_monthly_totals_add_up_to_yearly_sales(frames):
    orders = frames["orders"]
    out = monthly_sales_trend(orders, 2020)
    in_year = pd.to_datetime(orders["order_date"]).dt.year == 2020
    assert out["monthly_sales"].sum() == pytest.approx(orders.loc[in_year, "sales"].sum())


def test_monthly_sales_trend_for_year_without_orders(frames):
    out = monthly_sales_trend(frames["orders"], 1999)
    assert out.empty
    assert list(out.columns) == ["year_month", "monthly_sales"]


# ───────────────────────── 2. growth by region ───────────────────────── #

def test_monthly_growth_by_region(frames):
    out = monthly_growth_by_region(frames["orders"], frames["locations"])

    assert out["region"].tolist() == ["East", "East", "East", "West", "West"]
    assert out["year_month"].tolist() == ["2020-01", "2020-02", "2021-01", "2020-01", "2020-03"]
    assert out["monthly_sales"].tolist() == [100.0, 200.0, 80.0, 50.0, 150.0]

    growth = out["monthly_growth_rate"]
    assert growth.iloc[0] is pd.NA
    assert growth.iloc[3] is pd.NA
    assert growth.iloc[[1, 2, 4]].tolist() == [100.0, -60.0, 200.0]


def test_growth_after_a_zero_month_is_undefined():
    orders = make_orders(
        {"order_date": "2023-01-10", "sales": 0.0},
        {"order_date": "2023-02-10", "sales": 40.0},
    )
    out = monthly_growth_by_region(orders, build_locations())
    assert out["monthly_growth_rate"].isna().tolist() == [True, True]
    assert out["monthly_sales"].tolist() == [0.0, 40.0]


# ───────────────────────── 3. profitability ───────────────────────── #

def test_category_profitability_sorted_by_profit(frames):
    out = category_profitability(frames["orders"], frames["products"], 2020)
    assert out.to_dict(orient="list") == {
        "category": ["Technology", "Furniture", "Office Supplies"],
        "sub_category": ["Phones", "Chairs", "Paper"],
        "total_profit": [5.0, -10.0, -10.0],
    }


def test_category_profitability_uses_its_own_year(frames):
    out = category_profitability(frames["orders"], frames["products"], 2021)
    assert out["sub_category"].tolist() == ["Phones"]
    assert out["total_profit"].tolist() == [16.0]


# ───────────────────────── 4. top products ───────────────────────── #

def test_top_products_by_region(frames):
    out = top_products_by_region(frames["orders"], frames["products"], frames["locations"], top_n=5)
    assert out["region"].tolist() == ["East", "East", "East", "West", "West"]
    assert out["product_name"].tolist() == ["Chair A", "Phone B", "Paper C", "Phone B", "Chair A"]
    assert out["total_profit"].tolist() == [20.0, 16.0, -10.0, 5.0, -30.0]
    assert out["rank"].tolist() == [1, 2, 3, 1, 2]


def test_top_n_keeps_ties_with_dense_rank():
    products = pd.DataFrame(
        [
            {"product_id": f"P{i}", "category": "Furniture", "sub_category": "Chairs", "product_name": name}
            for i, name in enumerate(["Alpha", "Beta", "Gamma", "Delta"], start=1)
        ]
    )
    orders = make_orders(
        {"product_id": "P1", "profit": 100.0},
        {"product_id": "P2", "profit": 100.0},
        {"product_id": "P3", "profit": 90.0},
        {"product_id": "P4", "profit": 80.0},
    )
    out = top_products_by_region(orders, products, build_locations(), top_n=2)
    assert out["product_name"].tolist() == ["Alpha", "Beta", "Gamma"]
    assert out["rank"].tolist() == [1, 1, 2]


# ───────────────────────── 5. top customers ───────────────────────── #

def test_top_customers_with_three_customers(frames):
    out = top_customers(frames["orders"], frames["customers"])
    assert len(out) == 3
    assert out["customer_id"].tolist() == ["C1", "C3", "C2"]
    assert out["customer_name"].tolist() == ["Alice Archer", "Cara Cole", "Bob Baker"]
    assert out["total_sales"].tolist() == [300.0, 150.0, 130.0]


def test_top_customers_is_capped_and_sorted():
    orders = make_orders(*[{"customer_id": f"C{i:03d}", "sales": float(i)} for i in range(150)])
    out = top_customers(orders, build_customers(), limit=100)
    assert len(out) == 100
    totals = out["total_sales"].tolist()
    assert totals == sorted(totals, reverse=True)
    assert totals[0] == 149.0


# ───────────────────────── 6. rolling sales ───────────────────────── #

def test_rolling_customer_sales(frames):
    out = rolling_customer_sales(frames["orders"], frames["customers"], 2020)
    assert out["customer_id"].tolist() == ["C1", "C3", "C1", "C2"]
    assert out["order_date"].tolist() == [
        date(2020, 2, 3), date(2020, 3, 15), date(2020, 1, 5), date(2020, 1, 20)
    ]
    assert out["highest_rolling"].tolist() == [300.0, 150.0, 100.0, 50.0]
    assert out["customer_name"].iloc[0] == "Alice Archer"


def test_rolling_sales_sums_same_day_orders_once():
    orders = make_orders(
        {"order_date": "2023-03-01", "sales": 10.0},
        {"order_date": "2023-03-01", "sales": 5.0},
        {"order_date": "2023-04-01", "sales": 1.0},
    )
    out = rolling_customer_sales(orders, build_customers(), 2023)
    assert len(out) == 2
    assert out["highest_rolling"].tolist() == [16.0, 15.0]


def test_rolling_window_length_is_configurable():
    orders = make_orders(
        {"order_date": "2023-01-01", "sales": 10.0},
        {"order_date": "2023-06-01", "sales": 20.0},
        {"order_date": "2023-12-31", "sales": 30.0},
    )
    out = rolling_customer_sales(orders, build_customers(), 2023, window_months=3)
    by_date = dict(zip(out["order_date"], out["highest_rolling"]))
    assert by_date == {date(2023, 1, 1): 10.0, date(2023, 6, 1): 20.0, date(2023, 12, 31): 30.0}


def test_rolling_sales_only_counts_the_selected_year():
    orders = make_orders(
        {"order_date": "2022-12-15", "sales": 500.0},
        {"order_date": "2023-01-15", "sales": 20.0},
    )
    out = rolling_customer_sales(orders, build_customers(), 2023)
    assert out["highest_rolling"].tolist() == [20.0]


# ───────────────────────── 7. product vs average ───────────────────────── #

def test_product_sales_vs_average(frames):
    out = product_sales_vs_average(frames["orders"], frames["products"], 2020)
    assert out["product_name"].tolist() == ["Chair A", "Paper C", "Phone B"]
    assert out["product_sales"].tolist() == [250.0, 200.0, 50.0]
    assert out["pct_diff_from_avg_sales"].tolist() == [50.0, 20.0, -70.0]
    assert out["sales_performance"].tolist() == [ABOVE_AVERAGE, ABOVE_AVERAGE, BELOW_AVERAGE]


def test_product_deviation_is_undefined_when_average_is_zero():
    orders = make_orders({"product_id": "P1", "sales": 0.0}, {"product_id": "P2", "sales": 0.0})
    out = product_sales_vs_average(orders, build_products(), 2023)
    assert out["pct_diff_from_avg_sales"].isna().all()
    assert set(out["sales_performance"]) == {BELOW_AVERAGE}


# ───────────────────────── 8. shipping and discounts ───────────────────────── #

def test_average_shipping_time(frames):
    out = average_shipping_time(frames["orders"])
    assert out["ship_mode"].tolist() == ["First Class", "Second Class", "Standard Class"]
    assert out["average_ship_time_days"].tolist() == [1, 2, 4]


def test_discount_band_boundaries():
    bands = DiscountBands()
    labels = discount_band(pd.Series([0.0, 0.05, 0.10, 0.2, 0.30, 0.35, None]), bands).tolist()
    assert labels == [
        "No Discount",
        "Low (0-10%)",
        "Low (0-10%)",
        "Medium (10-30%)",
        "Medium (10-30%)",
        "High (>30%)",
        "High (>30%)",
    ]


def test_discount_band_thresholds_are_configurable():
    bands = DiscountBands(low_max=0.2, medium_max=0.5)
    labels = discount_band(pd.Series([0.15, 0.45, 0.6]), bands).tolist()
    assert labels == ["Low (0-20%)", "Medium (20-50%)", "High (>50%)"]


def test_discount_margin_analysis(frames):
    out = discount_margin_analysis(frames["orders"])
    assert out.to_dict(orient="list") == {
        "ship_mode": ["First Class", "Second Class", "Standard Class", "Standard Class"],
        "discount_band": ["High (>30%)", "Low (0-10%)", "No Discount", "Medium (10-30%)"],
        "total_sales": [150.0, 50.0, 180.0, 200.0],
        "total_profit": [-30.0, 5.0, 36.0, -10.0],
        "profit_margin_pct": [-20.0, 10.0, 20.0, -5.0],
    }


def test_margin_with_zero_sales_is_undefined_not_zero():
    orders = make_orders(
        {"ship_mode": "Same Day", "discount": 0.5, "sales": 0.0, "profit": -3.0},
        {"ship_mode": "Same Day", "discount": 0.0, "sales": 10.0, "profit": 0.0},
    )
    out = discount_margin_analysis(orders)
    margins = dict(zip(out["discount_band"], out["profit_margin_pct"]))
    assert margins["High (>30%)"] is pd.NA
    assert margins["No Discount"] == 0.0
