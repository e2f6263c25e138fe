"""
Reading export endpoint (CSV, XLSX).

Takes the same filters as GET /readings and flattens each reading with its
customer into one row.
"""

import csv
import io
import logging
from typing import List

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from openpyxl import Workbook

from models import Reading
from reading_query import ReadingFilter
from readings import find_readings, reading_filter

logger = logging.getLogger("readings-api.exports")

router = APIRouter(prefix="/export", tags=["export"])

EXPORT_COLUMNS = [
    "id", "customerId", "firstName", "lastName", "dateOfReading",
    "kindOfMeter", "meterCount", "meterId", "substitute", "comment",
]


def _get_connection():
    from readings_api import get_connection
    return get_connection()


def export_row(reading: Reading) -> list:
    return [
        str(reading.id),
        str(reading.customer.id),
        reading.customer.first_name,
        reading.customer.last_name,
        reading.date_of_reading.isoformat(),
        reading.kind_of_meter.value,
        reading.meter_count,
        reading.meter_id,
        reading.substitute,
        reading.comment,
    ]


@router.get("/readings")
def export_readings(
    format: str = Query("csv", pattern="^(csv|xlsx)$"),
    filters: ReadingFilter = Depends(reading_filter),
):
    """Export the filtered readings as CSV or XLSX."""
    with _get_connection() as conn:
        readings = find_readings(conn, filters)

    rows = [export_row(r) for r in readings]
    logger.info("Exporting %d readings as %s", len(rows), format)

    if format == "csv":
        return _export_csv("readings", EXPORT_COLUMNS, rows)
    else:
        return _export_xlsx("readings", EXPORT_COLUMNS, rows)


def _export_csv(name: str, columns: List[str], rows: list) -> StreamingResponse:
    """Generate CSV streaming response."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(columns)
    for row in rows:
        writer.writerow([str(v) if v is not None else "" for v in row])

    output.seek(0)
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={name}.csv"},
    )


def _export_xlsx(name: str, columns: List[str], rows: list) -> StreamingResponse:
    """Generate XLSX streaming response."""
    wb = Workbook()
    ws = wb.active
    ws.title = name[:31]
    ws.append(columns)
    for row in rows:
        ws.append(row)

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    return StreamingResponse(
        output,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={name}.xlsx"},
    )
