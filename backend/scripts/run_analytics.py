import argparse
import logging
import os

from pydantic import ValidationError

from db.base import Base
from db.session import SessionLocal, engine
from services.analytics import METRIC_NAMES, SalesAnalyticsEngine
from services.config import AnalysisConfig
from services.reporting import FORMATS, render, write_results

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run sales analytics reports.")
    parser.add_argument(
        "--metric",
        action="append",
        choices=METRIC_NAMES,
        help="metric to run (repeatable, default: all)",
    )
    parser.add_argument("--year", type=int, help="use this year for every year-filtered metric")
    parser.add_argument("--trend-year", type=int)
    parser.add_argument("--profitability-year", type=int)
    parser.add_argument("--rolling-year", type=int)
    parser.add_argument("--product-year", type=int)
    parser.add_argument("--top-n", type=int)
    parser.add_argument("--customer-limit", type=int)
    parser.add_argument("--discount-low", type=float, help="upper bound of the low discount band")
    parser.add_argument("--discount-medium", type=float, help="upper bound of the medium discount band")
    parser.add_argument("--format", choices=FORMATS, default="table")
    parser.add_argument("--output", help="CSV: output directory; JSON: output file")
    return parser


def build_config(args: argparse.Namespace) -> AnalysisConfig:
    config = AnalysisConfig.from_env()
    if args.year is not None:
        config = config.with_year(args.year)
    return config.with_overrides(
        trend_year=args.trend_year,
        profitability_year=args.profitability_year,
        rolling_year=args.rolling_year,
        product_year=args.product_year,
        top_n=args.top_n,
        customer_limit=args.customer_limit,
        discount_low_max=args.discount_low,
        discount_medium_max=args.discount_medium,
    )


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    args = build_parser().parse_args(argv)

    try:
        config = build_config(args)
    except ValidationError as exc:
        raise SystemExit(f"Invalid analysis settings:\n{exc}")

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        results = SalesAnalyticsEngine(db, config=config).run_many(args.metric)
    finally:
        db.close()

    if args.output:
        fmt = "csv" if args.format == "table" else args.format
        for path in write_results(results, args.output, fmt):
            logger.info("wrote %s", path)
    else:
        print(render(results, args.format))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
