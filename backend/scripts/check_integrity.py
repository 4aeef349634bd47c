import argparse
import logging
import os

from db.base import Base
from db.session import SessionLocal, engine
from services.analytics import SalesAnalyticsEngine
from services.integrity import summarize


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    parser = argparse.ArgumentParser(
        description="Report orders whose customer, product or postal code has no matching row."
    )
    parser.add_argument("--output", help="write flagged orders to this CSV file")
    args = parser.parse_args(argv)

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        flagged = SalesAnalyticsEngine(db).check_integrity()
    finally:
        db.close()

    summary = summarize(flagged)
    print(" ".join(f"{k}={v}" for k, v in summary.items()))

    if args.output:
        flagged.to_csv(args.output, index=False)
        print(f"wrote {len(flagged)} rows to {args.output}")

    # advisory: a non-zero exit lets callers stop before trusting the metrics
    return 1 if summary["orphaned_orders"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
