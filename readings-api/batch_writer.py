"""
Bulk inserts for imported customers and readings.

One call = one transaction.  Rows go to PostgreSQL as multi-row
``INSERT ... VALUES`` pages via psycopg2.extras.execute_values and the
affected-row counts of all pages are summed.  Any storage error rolls the
whole batch back and is reported as a single BatchWriteError; the failing
row is only visible in the chained psycopg2 error.
"""

import logging
import os
from typing import Iterable, Iterator, List, Sequence

import psycopg2
import psycopg2.extras

from models import Customer, Reading

logger = logging.getLogger("readings-api.batch")

PAGE_SIZE = int(os.environ.get("IMPORT_PAGE_SIZE", "500"))

CUSTOMER_INSERT = """
    INSERT INTO customers (id, first_name, last_name, birth_date, gender)
    VALUES %s
"""

READING_INSERT = """
    INSERT INTO readings
        (id, comment, customer_id, date_of_reading,
         kind_of_meter, meter_count, meter_id, substitute)
    VALUES %s
"""


class BatchWriteError(Exception):
    """A batched insert failed; nothing from the batch was committed."""

    def __init__(self, table: str, row_count: int, cause: Exception):
        self.table = table
        self.row_count = row_count
        super().__init__(f"Batch insert of {row_count} rows into {table} failed: {cause}")


def customer_row(customer: Customer) -> tuple:
    return (
        customer.id, customer.first_name, customer.last_name,
        customer.birth_date, customer.gender.value,
    )


def reading_row(reading: Reading) -> tuple:
    return (
        reading.id, reading.comment, reading.customer.id, reading.date_of_reading,
        reading.kind_of_meter.value, reading.meter_count, reading.meter_id,
        reading.substitute,
    )


def _pages(rows: Sequence[tuple], size: int) -> Iterator[Sequence[tuple]]:
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


def _insert_batch(conn, table: str, sql: str, rows: List[tuple]) -> int:
    if not rows:
        return 0

    cur = conn.cursor()
    affected = 0
    try:
        for page in _pages(rows, PAGE_SIZE):
            # page_size=len(page) keeps each page to one statement so rowcount covers it
            psycopg2.extras.execute_values(cur, sql, page, page_size=len(page))
            affected += cur.rowcount
        conn.commit()
    except psycopg2.Error as e:
        conn.rollback()
        logger.error("Batch insert into %s failed (%d rows): %s", table, len(rows), e)
        raise BatchWriteError(table, len(rows), e) from e

    logger.info("Inserted %d/%d rows into %s", affected, len(rows), table)
    return affected


def insert_customers(conn, customers: Iterable[Customer]) -> int:
    """Insert customers in one transaction and return the affected-row count."""
    return _insert_batch(conn, "customers", CUSTOMER_INSERT, [customer_row(c) for c in customers])


def insert_readings(conn, readings: Iterable[Reading]) -> int:
    """Insert readings in one transaction and return the affected-row count."""
    return _insert_batch(conn, "readings", READING_INSERT, [reading_row(r) for r in readings])
