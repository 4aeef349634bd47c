# services/analytics/sales_engine.py

import logging
from typing import Callable

import pandas as pd
from sqlalchemy.orm import Session

from services import analytics_engine as metrics
from services.analytics.base_engine import BaseAnalyticsEngine
from services.analytics_repository import get_sales_frames
from services.config import AnalysisConfig
from services.integrity import find_orphaned_orders
from services.reporting import to_records

logger = logging.getLogger(__name__)

MetricFn = Callable[[dict[str, pd.DataFrame], AnalysisConfig], pd.DataFrame]

# name -> calculator(frames, config); each one is independent of the others
METRICS: dict[str, MetricFn] = {
    "monthly_sales_trend": lambda f, c: metrics.monthly_sales_trend(
        f["orders"], c.trend_year
    ),
    "monthly_growth_by_region": lambda f, c: metrics.monthly_growth_by_region(
        f["orders"], f["locations"]
    ),
    "category_profitability": lambda f, c: metrics.category_profitability(
        f["orders"], f["products"], c.profitability_year
    ),
    "top_products_by_region": lambda f, c: metrics.top_products_by_region(
        f["orders"], f["products"], f["locations"], c.top_n
    ),
    "top_customers": lambda f, c: metrics.top_customers(
        f["orders"], f["customers"], c.customer_limit
    ),
    "rolling_customer_sales": lambda f, c: metrics.rolling_customer_sales(
        f["orders"], f["customers"], c.rolling_year, c.rolling_window_months
    ),
    "product_sales_vs_average": lambda f, c: metrics.product_sales_vs_average(
        f["orders"], f["products"], c.product_year
    ),
    "average_shipping_time": lambda f, c: metrics.average_shipping_time(
        f["orders"]
    ),
    "discount_margin_analysis": lambda f, c: metrics.discount_margin_analysis(
        f["orders"], c.discount_bands
    ),
}

METRIC_NAMES = list(METRICS)


class SalesAnalyticsEngine(BaseAnalyticsEngine):
    """
    Runs the sales metrics against the customers/orders/locations/products
    tables. Data is read once per engine; every metric is a pure function
    of those frames and the config.
    """

    def __init__(
        self,
        db: Session,
        config: AnalysisConfig | None = None,
        frames: dict[str, pd.DataFrame] | None = None,
    ):
        super().__init__(db=db)
        self.config = config or AnalysisConfig()
        self._frames = frames

    # --------------------------------------------------
    # LOAD DATA
    # --------------------------------------------------

    def load_data(self) -> dict[str, pd.DataFrame]:
        if self._frames is None:
            self._frames = get_sales_frames(self.db)
            logger.info(
                "Loaded sales data: %s",
                ", ".join(f"{name}={len(df)}" for name, df in self._frames.items()),
            )
        return self._frames

    # --------------------------------------------------
    # METRICS
    # --------------------------------------------------

    def run(self, metric: str) -> pd.DataFrame:
        key = (metric or "").strip().lower()
        if key not in METRICS:
            raise KeyError(f"Unknown metric '{metric}'. Expected one of: {', '.join(METRIC_NAMES)}")

        logger.debug("Running metric %s", key)
        return METRICS[key](self.load_data(), self.config)

    def run_many(self, metrics_to_run: list[str] | None = None) -> dict[str, pd.DataFrame]:
        names = metrics_to_run or METRIC_NAMES
        return {name: self.run(name) for name in names}

    def compute(self, metrics_to_run: list[str] | None = None) -> dict:
        return {
            name: to_records(df)
            for name, df in self.run_many(metrics_to_run).items()
        }

    def check_integrity(self) -> pd.DataFrame:
        frames = self.load_data()
        return find_orphaned_orders(
            frames["orders"],
            frames["customers"],
            frames["products"],
            frames["locations"],
        )
