# services/analytics/__init__.py

from services.analytics.base_engine import BaseAnalyticsEngine
from services.analytics.sales_engine import METRIC_NAMES, METRICS, SalesAnalyticsEngine
