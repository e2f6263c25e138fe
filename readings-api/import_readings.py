"""
Bulk import of vendor CSV exports into the readings database.

Imports the customer export first (readings reference customers), then each
reading export with its own, fresh import context.  Every file is parsed to
completion before anything is written, and each file is written in a single
transaction.

Usage:
    # Customers + readings:
    python import_readings.py --customers customers.csv heizung.csv strom.csv wasser.csv

    # Recreate the tables first:
    python import_readings.py --setup --customers customers.csv strom.csv

    # Parse only, no DB writes:
    python import_readings.py --dry-run --customers customers.csv strom.csv

Environment:
    DATABASE_URL      - PostgreSQL connection string
    IMPORT_PAGE_SIZE  - Rows per batched INSERT page (default: 500)
"""

import argparse
import logging
import sys
from collections import Counter

import psycopg2

from batch_writer import BatchWriteError
from csv_import import (
    ReadingParseError,
    import_customers_file,
    import_readings_file,
    parse_customer_file,
    parse_reading_file,
)
from db_setup import create_tables, drop_tables

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("import-readings")


def dry_run(customers_path, reading_paths) -> None:
    """Parse every file and report what would be inserted."""
    if customers_path:
        customers = parse_customer_file(customers_path)
        logger.info("DRY RUN: %s -> %d customers", customers_path, len(customers))
    for path in reading_paths:
        readings = parse_reading_file(path)
        kinds = Counter(r.kind_of_meter.value for r in readings)
        meters = sorted({r.meter_id for r in readings})
        logger.info("DRY RUN: %s -> %d readings %s meters=%s",
                    path, len(readings), dict(kinds), ", ".join(meters))


def run_import(conn, customers_path, reading_paths, setup: bool = False) -> tuple[int, int]:
    """Import all files over one connection. Returns (customer_rows, reading_rows)."""
    if setup:
        drop_tables(conn)
        create_tables(conn)

    customer_rows = 0
    if customers_path:
        customer_rows = import_customers_file(conn, customers_path)

    reading_rows = 0
    for path in reading_paths:
        reading_rows += import_readings_file(conn, path)
    return customer_rows, reading_rows


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Import customer and meter reading CSV exports")
    parser.add_argument("readings", nargs="*", help="Reading export files (semicolon separated)")
    parser.add_argument("--customers", default=None, help="Customer export file (comma separated)")
    parser.add_argument("--setup", action="store_true", help="Drop and recreate the tables first")
    parser.add_argument("--dry-run", action="store_true", help="Parse files without touching the database")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.customers and not args.readings:
        parser.error("nothing to import: pass --customers and/or reading files")

    logger.info("=" * 60)
    logger.info("METER READING IMPORT")
    logger.info("Customers: %s", args.customers or "-")
    logger.info("Readings:  %s", ", ".join(args.readings) or "-")
    logger.info("=" * 60)

    try:
        if args.dry_run:
            dry_run(args.customers, args.readings)
            return 0

        from readings_api import close_pool, get_connection
        try:
            with get_connection() as conn:
                customer_rows, reading_rows = run_import(
                    conn, args.customers, args.readings, setup=args.setup,
                )
        finally:
            close_pool()
    except (OSError, psycopg2.Error, ReadingParseError, BatchWriteError) as e:
        logger.error("Import failed: %s", e)
        return 1

    logger.info("=" * 60)
    logger.info("IMPORT COMPLETE")
    logger.info("  Customer rows inserted: %d", customer_rows)
    logger.info("  Reading rows inserted:  %d", reading_rows)
    logger.info("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
