import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

load_dotenv()

ENV_OVERRIDES = {
    "trend_year": "SALES_TREND_YEAR",
    "profitability_year": "PROFITABILITY_YEAR",
    "rolling_year": "ROLLING_SALES_YEAR",
    "product_year": "PRODUCT_PERFORMANCE_YEAR",
    "top_n": "TOP_N_PRODUCTS",
    "customer_limit": "TOP_CUSTOMERS_LIMIT",
    "rolling_window_months": "ROLLING_WINDOW_MONTHS",
    "discount_low_max": "DISCOUNT_LOW_MAX",
    "discount_medium_max": "DISCOUNT_MEDIUM_MAX",
}

YEAR_FIELDS = ("trend_year", "profitability_year", "rolling_year", "product_year")


class DiscountBands(BaseModel):
    low_max: float = 0.10
    medium_max: float = 0.30

    @property
    def labels(self) -> list[str]:
        return [
            "No Discount",
            f"Low (0-{self.low_max * 100:g}%)",
            f"Medium ({self.low_max * 100:g}-{self.medium_max * 100:g}%)",
            f"High (>{self.medium_max * 100:g}%)",
        ]


class AnalysisConfig(BaseModel):
    """
    Parameters shared by the metric calculators.

    Each year-filtered calculator has its own year field; with_year()
    sets them all at once.
    """

    trend_year: int = 2020
    profitability_year: int = 2021
    rolling_year: int = 2023
    product_year: int = 2023
    top_n: int = Field(5, ge=1)
    customer_limit: int = Field(100, ge=1)
    rolling_window_months: int = Field(12, ge=1)
    discount_low_max: float = 0.10
    discount_medium_max: float = 0.30

    @model_validator(mode="after")
    def _check_discount_thresholds(self):
        if not 0 < self.discount_low_max < self.discount_medium_max:
            raise ValueError(
                "discount thresholds must satisfy 0 < discount_low_max < discount_medium_max"
            )
        return self

    @property
    def discount_bands(self) -> DiscountBands:
        return DiscountBands(
            low_max=self.discount_low_max,
            medium_max=self.discount_medium_max,
        )

    def with_year(self, year: int) -> "AnalysisConfig":
        return self.model_copy(update={name: year for name in YEAR_FIELDS})

    def with_overrides(self, **overrides) -> "AnalysisConfig":
        updates = {k: v for k, v in overrides.items() if v is not None}
        if not updates:
            return self
        # re-validate: model_copy skips validation
        return AnalysisConfig(**{**self.model_dump(), **updates})

    @classmethod
    def from_env(cls) -> "AnalysisConfig":
        values = {}
        for field, env_name in ENV_OVERRIDES.items():
            raw = os.getenv(env_name)
            if raw is None or not raw.strip():
                continue
            values[field] = raw.strip()
        return cls(**values)
