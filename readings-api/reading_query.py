"""
SQL for the reading read path: filter composition and row hydration.

``build_find_query`` is pure (returns SQL + params, leaves execution to the
caller).  Predicates are appended in a fixed order - customer, start, end,
kind - so placeholder positions only depend on which filters are present.

Every query selects the same joined column list (``READING_COLUMNS``), and
each result row becomes exactly one Reading with a fully populated Customer.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from pydantic import ValidationError

from models import Customer, Gender, KindOfMeter, Reading

READING_COLUMNS = """
    SELECT r.id              AS reading_id,
           r.comment         AS comment,
           r.date_of_reading AS date_of_reading,
           r.kind_of_meter   AS kind_of_meter,
           r.meter_count     AS meter_count,
           r.meter_id        AS meter_id,
           r.substitute      AS substitute,
           c.id              AS customer_id,
           c.first_name      AS first_name,
           c.last_name       AS last_name,
           c.birth_date      AS birth_date,
           c.gender          AS gender
    FROM readings r
    JOIN customers c ON r.customer_id = c.id
"""

ORDER_BY = "ORDER BY r.date_of_reading, r.id"


class HydrationError(ValueError):
    """A stored row holds a value the models cannot represent."""


@dataclass(frozen=True)
class ReadingFilter:
    """Optional, independently combinable filters for the reading search."""
    customer_id: Optional[UUID] = None
    start: Optional[date] = None          # inclusive
    end: Optional[date] = None            # inclusive
    kind_of_meter: Optional[KindOfMeter] = None

    def predicates(self) -> List[Tuple[str, Any]]:
        parts: List[Tuple[str, Any]] = []
        if self.customer_id is not None:
            parts.append(("r.customer_id = %s", self.customer_id))
        if self.start is not None:
            parts.append(("r.date_of_reading >= %s", self.start))
        if self.end is not None:
            parts.append(("r.date_of_reading <= %s", self.end))
        if self.kind_of_meter is not None:
            parts.append(("r.kind_of_meter = %s", self.kind_of_meter.value))
        return parts


def build_find_query(filters: Optional[ReadingFilter] = None) -> Tuple[str, List[Any]]:
    """Compose the joined reading query for the given filters."""
    predicates = (filters or ReadingFilter()).predicates()
    where_clauses = [clause for clause, _ in predicates]
    params = [value for _, value in predicates]

    where_sql = f"WHERE {' AND '.join(where_clauses)}\n" if where_clauses else ""
    return f"{READING_COLUMNS}{where_sql}{ORDER_BY}", params


def build_read_query(reading_id: UUID) -> Tuple[str, List[Any]]:
    return f"{READING_COLUMNS}WHERE r.id = %s", [reading_id]


# ---------------------------------------------------------------------------
# Hydration
# ---------------------------------------------------------------------------

def row_to_dict(cursor, row: Sequence[Any]) -> Dict[str, Any]:
    columns = [desc[0] for desc in cursor.description]
    return dict(zip(columns, row))


def _decode(enum_cls, value: Any, column: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise HydrationError(f"Unrecognised {column} value in database: {value!r}")


def hydrate_customer(row: Dict[str, Any], id_column: str = "id") -> Customer:
    try:
        return Customer(
            id=row[id_column],
            first_name=row["first_name"],
            last_name=row["last_name"],
            birth_date=row["birth_date"],
            gender=_decode(Gender, row["gender"], "gender"),
        )
    except ValidationError as e:
        raise HydrationError(f"Invalid customer row {row.get(id_column)}: {e}")


def hydrate_reading(row: Dict[str, Any]) -> Reading:
    """Build one Reading (with nested Customer) from one joined row."""
    customer = hydrate_customer(row, id_column="customer_id")
    try:
        return Reading(
            id=row["reading_id"],
            comment=row["comment"] or "",
            customer=customer,
            date_of_reading=row["date_of_reading"],
            kind_of_meter=_decode(KindOfMeter, row["kind_of_meter"], "kind_of_meter"),
            meter_count=row["meter_count"],
            meter_id=row["meter_id"],
            substitute=bool(row["substitute"]),
        )
    except ValidationError as e:
        raise HydrationError(f"Invalid reading row {row.get('reading_id')}: {e}")
