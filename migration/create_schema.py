"""
Create the Campus Connect schema
- Creates all eight tables (users, events, registrations, merch, orders,
  order_items, reviews, favorites) that do not exist yet
- Optionally loads the demo seed rows into an empty database
- Or prints the DDL for a dialect without touching any database

Usage:
  python -m migration.create_schema --db sqlite:///path/to/campus.db --seed
  python -m migration.create_schema --ddl mysql
"""
import argparse
import logging
import sys

from sqlalchemy import func, inspect, select

from campus_connect import config, models
from campus_connect.db import init_db, make_engine, make_session_factory
from campus_connect.seed import load_seed

logger = logging.getLogger("migration.create_schema")


def create_schema(db_url: str, seed: bool = False):
    if db_url in ("sqlite://", "sqlite:///:memory:"):
        raise ValueError("Use a file-backed DB for the schema script")

    engine = make_engine(db_url, echo=config.echo_sql())
    try:
        init_db(engine)
        if seed:
            Session = make_session_factory(engine)
            with Session() as db:
                if db.scalar(select(func.count(models.User.id))):
                    raise RuntimeError("users table is not empty; refusing to load seed data")
                load_seed(db)
        return sorted(inspect(engine).get_table_names())
    finally:
        engine.dispose()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Create the Campus Connect schema")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--db", help="SQLAlchemy database URL (defaults to DATABASE_URL)")
    group.add_argument("--ddl", choices=sorted(models.DIALECTS), help="Print DDL for a dialect and exit")
    parser.add_argument("--seed", action="store_true", help="Load demo rows after creating tables")
    args = parser.parse_args(argv)

    logging.basicConfig(level=config.log_level(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.ddl:
        sys.stdout.write(models.render_ddl(args.ddl))
        return 0

    tables = create_schema(args.db or config.database_url(), seed=args.seed)
    logger.info("tables: %s", ", ".join(tables))
    return 0


if __name__ == "__main__":
    sys.exit(main())
