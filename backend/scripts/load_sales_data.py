import argparse
import logging
import os

from db.base import Base
from db.session import SessionLocal, engine
from services.analytics_repository import TABLE_MODELS
from services.data_loader import DataLoadError, load_directory, load_file

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Load customers/orders/locations/products exports into the sales database."
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--dir", help="directory holding <table>.csv or <table>.xlsx files")
    source.add_argument("--file", help="single .csv/.xlsx file (requires --table)")
    parser.add_argument("--table", choices=list(TABLE_MODELS))
    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.file and not args.table:
        parser.error("--file requires --table")

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        if args.dir:
            loaded = load_directory(db, args.dir)
        else:
            loaded = {args.table: load_file(db, args.table, args.file)}
    except DataLoadError as exc:
        raise SystemExit(str(exc))
    finally:
        db.close()

    for table, rows in loaded.items():
        print(f"{table}: {rows} rows loaded")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
