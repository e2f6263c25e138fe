"""
Meter Readings API
==================
FastAPI service providing:
  - Customer and meter reading CRUD on PostgreSQL
  - Filtered reading search (customer, date range, kind of meter)
  - Bulk import of vendor CSV exports (see import_readings.py)
  - Filtered reading export (CSV/XLSX)

Environment variables:
  DATABASE_URL           - PostgreSQL connection string
  READINGS_API_PORT      - Port to bind                    (default: 8080)
  DB_POOL_MIN            - Minimum pooled connections      (default: 1)
  DB_POOL_MAX            - Maximum pooled connections      (default: 10)
  IMPORT_PAGE_SIZE       - Rows per batched INSERT page    (default: 500)
  STARTUP_CUSTOMERS_CSV  - Customer export imported at startup (optional)
  STARTUP_READINGS_GLOB  - Reading exports imported at startup (optional)
  LOG_LEVEL              - Root log level                  (default: INFO)
"""

import glob
import logging
import os
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime
from typing import AsyncIterator, Optional

import psycopg2
import psycopg2.extras
import psycopg2.pool
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("readings-api")

PORT = int(os.environ.get("READINGS_API_PORT", "8080"))

DATABASE_URL = os.environ.get(
    "DATABASE_URL",
    "postgresql://readings@localhost:5432/readings",
)
POOL_MIN = int(os.environ.get("DB_POOL_MIN", "1"))
POOL_MAX = int(os.environ.get("DB_POOL_MAX", "10"))

STARTUP_CUSTOMERS_CSV = os.environ.get("STARTUP_CUSTOMERS_CSV", "")
STARTUP_READINGS_GLOB = os.environ.get("STARTUP_READINGS_GLOB", "")

psycopg2.extras.register_uuid()

# ---------------------------------------------------------------------------
# Database helpers
# ---------------------------------------------------------------------------

_pool: Optional[psycopg2.pool.ThreadedConnectionPool] = None


def _get_pool() -> psycopg2.pool.ThreadedConnectionPool:
    """Lazy-initialize the connection pool."""
    global _pool
    if _pool is None or _pool.closed:
        _pool = psycopg2.pool.ThreadedConnectionPool(
            minconn=POOL_MIN,
            maxconn=POOL_MAX,
            dsn=DATABASE_URL,
        )
    return _pool


@contextmanager
def get_connection():
    """Context manager for PostgreSQL connections from the pool.

    Anything left uncommitted when the block exits is rolled back, so a
    connection always goes back to the pool clean.
    """
    pool = _get_pool()
    conn = pool.getconn()
    try:
        yield conn
    finally:
        if not conn.closed:
            conn.rollback()
        pool.putconn(conn)


def close_pool() -> None:
    global _pool
    if _pool is not None and not _pool.closed:
        _pool.closeall()
    _pool = None


def run_startup_import() -> None:
    """Load the configured exports into empty tables before serving reads.

    The tables are truncated first, so a restart reloads the same files
    instead of colliding with the rows of the previous run.
    """
    from csv_import import import_customers_file, import_readings_file
    from db_setup import create_tables, truncate_tables

    with get_connection() as conn:
        create_tables(conn)
        truncate_tables(conn)
        if STARTUP_CUSTOMERS_CSV:
            import_customers_file(conn, STARTUP_CUSTOMERS_CSV)
        for path in sorted(glob.glob(STARTUP_READINGS_GLOB)) if STARTUP_READINGS_GLOB else []:
            import_readings_file(conn, path)


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    try:
        if STARTUP_CUSTOMERS_CSV or STARTUP_READINGS_GLOB:
            logger.info("Running startup import before accepting traffic")
            run_startup_import()
        yield
    finally:
        close_pool()


app = FastAPI(
    title="Meter Readings API",
    description="Customers, meter readings, filtered search, CSV import and export.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Mount sub-routers
# ---------------------------------------------------------------------------
from customers import router as customers_router
from readings import router as readings_router
from db_setup import router as setup_router
from exports import router as export_router

app.include_router(customers_router)
app.include_router(readings_router)
app.include_router(setup_router)
app.include_router(export_router)


# ---- Health ----

@app.get("/health")
def health():
    """Database reachability and row counts."""
    result = {"status": "ok", "timestamp": datetime.now().isoformat()}
    try:
        with get_connection() as conn:
            cursor = conn.cursor()
            for table, key in (("customers", "customer_count"), ("readings", "reading_count")):
                cursor.execute(f"SELECT COUNT(*) FROM {table}")
                result[key] = cursor.fetchone()[0]
    except psycopg2.Error as e:
        logger.error("Health check failed: %s", e)
        result["status"] = "db_error"
        result["error"] = str(e)
    return result


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    logger.info("=" * 60)
    logger.info("Meter Readings API (PostgreSQL)")
    logger.info("Database: %s", DATABASE_URL.split("@")[-1] if "@" in DATABASE_URL else DATABASE_URL)
    logger.info("Port: %d", PORT)
    logger.info("=" * 60)

    uvicorn.run(app, host="0.0.0.0", port=PORT, log_level="info")
