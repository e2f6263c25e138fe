"""
Reading repository and /readings endpoints.

Reads always join the owning customer, so every Reading returned here
carries a complete Customer.  Query-string dates use the dd.mm.yyyy form of
the vendor exports.
"""

import logging
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID, uuid4

import psycopg2
import psycopg2.errors
from fastapi import APIRouter, Depends, HTTPException, Query, status

from customers import RowCountError, expect_one_row
from models import KindOfMeter, Reading, ReadingInputWrapper, ReadingList, ReadingWrapper
from reading_query import (
    HydrationError,
    ReadingFilter,
    build_find_query,
    build_read_query,
    hydrate_reading,
    row_to_dict,
)

logger = logging.getLogger("readings-api.readings")

router = APIRouter(prefix="/readings", tags=["readings"])

QUERY_DATE_FORMAT = "%d.%m.%Y"


def _get_connection():
    from readings_api import get_connection
    return get_connection()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------

def create_reading(conn, reading: Reading) -> Reading:
    """Insert a reading for ``reading.customer.id``, assigning an id when none was given."""
    if reading.id is None:
        reading = reading.model_copy(update={"id": uuid4()})
    cursor = conn.cursor()
    cursor.execute("""
        INSERT INTO readings
            (id, comment, customer_id, date_of_reading,
             kind_of_meter, meter_count, meter_id, substitute)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
    """, (
        reading.id, reading.comment, reading.customer.id, reading.date_of_reading,
        reading.kind_of_meter.value, reading.meter_count, reading.meter_id,
        reading.substitute,
    ))
    expect_one_row(conn, cursor, "create", "readings", reading.id)
    return reading


def read_reading(conn, reading_id: UUID) -> Optional[Reading]:
    sql, params = build_read_query(reading_id)
    cursor = conn.cursor()
    cursor.execute(sql, params)
    row = cursor.fetchone()
    if row is None:
        return None
    return hydrate_reading(row_to_dict(cursor, row))


def update_reading(conn, reading: Reading) -> Reading:
    """Replace every field except the id."""
    cursor = conn.cursor()
    cursor.execute("""
        UPDATE readings
        SET comment = %s, customer_id = %s, date_of_reading = %s, kind_of_meter = %s,
            meter_count = %s, meter_id = %s, substitute = %s
        WHERE id = %s
    """, (
        reading.comment, reading.customer.id, reading.date_of_reading,
        reading.kind_of_meter.value, reading.meter_count, reading.meter_id,
        reading.substitute, reading.id,
    ))
    expect_one_row(conn, cursor, "update", "readings", reading.id)
    return reading


def delete_reading(conn, reading_id: UUID) -> None:
    cursor = conn.cursor()
    cursor.execute("DELETE FROM readings WHERE id = %s", (reading_id,))
    expect_one_row(conn, cursor, "delete", "readings", reading_id)


def find_readings(conn, filters: Optional[ReadingFilter] = None) -> List[Reading]:
    """All readings matching the filters, ordered by date of reading."""
    sql, params = build_find_query(filters)
    cursor = conn.cursor()
    cursor.execute(sql, params)
    return [hydrate_reading(row_to_dict(cursor, row)) for row in cursor.fetchall()]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

def parse_query_date(value: Optional[str], name: str) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), QUERY_DATE_FORMAT).date()
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Bad {name} date: {value} (expected dd.mm.yyyy)")


def reading_filter(
    customer: Optional[UUID] = Query(None, description="Customer id"),
    start: Optional[str] = Query(None, description="First day, dd.mm.yyyy (inclusive)"),
    end: Optional[str] = Query(None, description="Last day, dd.mm.yyyy (inclusive)"),
    kind_of_meter: Optional[KindOfMeter] = Query(None, alias="kindOfMeter"),
) -> ReadingFilter:
    """Query parameters shared by the search and export endpoints."""
    return ReadingFilter(
        customer_id=customer,
        start=parse_query_date(start, "start"),
        end=parse_query_date(end, "end"),
        kind_of_meter=kind_of_meter,
    )


@router.get("", response_model=ReadingList)
def get_readings(filters: ReadingFilter = Depends(reading_filter)):
    try:
        with _get_connection() as conn:
            readings = find_readings(conn, filters)
    except HydrationError as e:
        logger.error("Reading search failed: %s", e)
        raise HTTPException(status_code=500, detail=str(e)) from e
    logger.info("Reading search %s returned %d rows", filters, len(readings))
    return ReadingList(readings=readings)


@router.get("/{reading_id}", response_model=ReadingWrapper)
def get_reading(reading_id: UUID):
    try:
        with _get_connection() as conn:
            reading = read_reading(conn, reading_id)
    except HydrationError as e:
        logger.error("Reading %s could not be loaded: %s", reading_id, e)
        raise HTTPException(status_code=500, detail=str(e)) from e
    if reading is None:
        raise HTTPException(status_code=404, detail=f"Reading {reading_id} not found")
    return ReadingWrapper(reading=reading)


@router.post("", response_model=ReadingWrapper, status_code=status.HTTP_201_CREATED)
def post_reading(body: ReadingInputWrapper):
    customer_id = body.reading.customer.id
    try:
        with _get_connection() as conn:
            created = create_reading(conn, body.reading.to_reading())
            reading = read_reading(conn, created.id)
    except psycopg2.errors.ForeignKeyViolation as e:
        raise HTTPException(status_code=400, detail=f"Unknown customer {customer_id}") from e
    except psycopg2.IntegrityError as e:
        raise HTTPException(status_code=400, detail=f"Invalid reading: {e}") from e
    logger.info("Created reading %s for customer %s", created.id, customer_id)
    return ReadingWrapper(reading=reading)


@router.put("", response_model=ReadingWrapper)
def put_reading(body: ReadingInputWrapper):
    if body.reading.id is None:
        raise HTTPException(status_code=400, detail="Missing reading id")
    try:
        with _get_connection() as conn:
            update_reading(conn, body.reading.to_reading())
            reading = read_reading(conn, body.reading.id)
    except RowCountError as e:
        raise HTTPException(status_code=404, detail=f"Reading {body.reading.id} not found") from e
    except psycopg2.errors.ForeignKeyViolation as e:
        raise HTTPException(
            status_code=400, detail=f"Unknown customer {body.reading.customer.id}",
        ) from e
    logger.info("Updated reading %s", body.reading.id)
    return ReadingWrapper(reading=reading)


@router.delete("/{reading_id}")
def remove_reading(reading_id: UUID):
    try:
        with _get_connection() as conn:
            delete_reading(conn, reading_id)
    except RowCountError as e:
        raise HTTPException(status_code=404, detail=f"Reading {reading_id} not found") from e
    logger.info("Deleted reading %s", reading_id)
    return {"status": "deleted", "id": str(reading_id)}
