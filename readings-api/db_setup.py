"""
Table initialisation for the customers / readings schema.

Provides:
  - create_tables / truncate_tables / drop_tables (create + truncate before
    the startup import; drop + create for the importer CLI --setup)
  - DELETE /setupDB  - drop and recreate both tables
"""

import logging

from fastapi import APIRouter, HTTPException

logger = logging.getLogger("readings-api.setup")

router = APIRouter(tags=["setup"])


def _get_connection():
    from readings_api import get_connection
    return get_connection()


def create_tables(conn) -> None:
    """Create customers and readings if they don't exist."""
    cursor = conn.cursor()
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS customers (
            id          UUID PRIMARY KEY,
            first_name  VARCHAR(50) NOT NULL,
            last_name   VARCHAR(50) NOT NULL,
            birth_date  DATE,
            gender      VARCHAR(1) NOT NULL DEFAULT 'U'
        )
    """)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS readings (
            id               UUID PRIMARY KEY,
            comment          VARCHAR(255) NOT NULL DEFAULT '',
            customer_id      UUID NOT NULL REFERENCES customers (id) ON DELETE CASCADE,
            date_of_reading  DATE NOT NULL DEFAULT CURRENT_DATE,
            kind_of_meter    VARCHAR(20) NOT NULL DEFAULT 'UNBEKANNT',
            meter_count      DOUBLE PRECISION NOT NULL,
            meter_id         VARCHAR(50) NOT NULL,
            substitute       BOOLEAN NOT NULL DEFAULT FALSE
        )
    """)
    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_readings_customer_date
        ON readings (customer_id, date_of_reading)
    """)
    conn.commit()
    logger.info("Tables customers/readings ready")


def truncate_tables(conn) -> None:
    cursor = conn.cursor()
    cursor.execute("TRUNCATE TABLE readings, customers")
    conn.commit()
    logger.info("Truncated customers/readings")


def drop_tables(conn) -> None:
    cursor = conn.cursor()
    cursor.execute("DROP TABLE IF EXISTS readings, customers")
    conn.commit()
    logger.info("Dropped customers/readings")


@router.delete("/setupDB")
def setup_db():
    """Drop and recreate both tables (all data is lost)."""
    try:
        with _get_connection() as conn:
            drop_tables(conn)
            create_tables(conn)
    except Exception as e:
        logger.error("setupDB failed: %s", e)
        raise HTTPException(status_code=500, detail=str(e)) from e
    return {"status": "ok"}
