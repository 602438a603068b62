#!/usr/bin/env python3
"""
Initialize the Library Lending API database.

This script:
1. Creates all database tables
2. Optionally loads generated sample data
3. Verifies the expected tables exist

Usage:
    python scripts/init_database.py [--drop-existing] [--sample-data] [--database-url URL]
"""

import argparse
import logging
import sys

from sqlalchemy import inspect

from library_api.database import get_db_manager
from library_api.database.schema import Base
from library_api.database.seed import seed_database

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    """Main entry point for database initialization."""
    parser = argparse.ArgumentParser(description="Initialize the Library Lending API database")
    parser.add_argument(
        "--drop-existing",
        action="store_true",
        help="Drop existing tables before creating new ones",
    )
    parser.add_argument(
        "--sample-data",
        action="store_true",
        help="Replace the contents with generated sample data",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Random seed for sample data (default: 42)",
    )
    parser.add_argument(
        "--database-url",
        help="Override default database URL",
    )

    args = parser.parse_args()

    logger.info("Initializing database manager...")
    db_manager = get_db_manager(args.database_url)

    if not db_manager.verify_connection():
        logger.error("Failed to connect to database")
        sys.exit(1)

    try:
        if args.sample_data:
            logger.info("Loading sample data...")
            seed_database(db_manager, seed=args.seed)
        else:
            logger.info("Creating database schema...")
            db_manager.init_database(drop_existing=args.drop_existing)

        tables = set(inspect(db_manager.engine).get_table_names())
        logger.info("Tables: %s", ", ".join(sorted(tables)))

        missing_tables = set(Base.metadata.tables) - tables
        if missing_tables:
            logger.error("Missing expected tables: %s", missing_tables)
            sys.exit(1)

        logger.info("Database initialization complete")

    except Exception:
        logger.exception("Database initialization failed")
        sys.exit(1)
    finally:
        db_manager.close()


if __name__ == "__main__":
    main()
