import argparse
import asyncio
import json

from sqlalchemy.orm import Session

from ..db import SessionLocal, init_db
from ..logging import configure_logging
from .tasks import run_sync


def job_sync_wrapper(category: str | None = None, sync_categories: bool = True):
    db: Session = SessionLocal()
    try:
        return asyncio.run(run_sync(db, category=category, sync_categories=sync_categories))
    finally:
        db.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Sync live markets into the database.")
    parser.add_argument("--category", default=None, help="Only sync this category slug.")
    parser.add_argument("--skip-categories", action="store_true", help="Do not refresh the categories table.")
    args = parser.parse_args(argv)

    configure_logging()
    init_db()
    result = job_sync_wrapper(category=args.category, sync_categories=not args.skip_categories)
    print(json.dumps(result, ensure_ascii=True))
    return 0 if result.get("ok") else 1


if __name__ == "__main__":
    raise SystemExit(main())
