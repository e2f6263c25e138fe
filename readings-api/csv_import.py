"""
Parsers for the vendor CSV exports (customers and meter readings).

Reading exports are not tabular.  Context lines announce the customer, the
meter number and the unit of the following block; every other non-blank line
is a reading that inherits that context:

    Kunde;ec617965-88b4-4721-8158-ee36c38e4db3;
    Zählernummer;MST-af34569;
    Datum;Zählerstand in kWh;Kommentar
    01.01.2024;123,45;
    01.02.2024;150,10;Zählertausch: neue Nummer MST-b2000

Parsing is a fold: ``step(context, line)`` returns the next ``ImportContext``
and the reading emitted by that line (or None).  File I/O sits at the edges
(``parse_*_file`` / ``import_*_file``) so the state machine can be tested on
plain lists of strings.

Customer exports are ordinary comma-separated files:

    UUID,Anrede,Vorname,Nachname,Geburtsdatum
    ec617965-...,Herr,Pumukel,Kobold,21.02.1962
"""

import csv
import logging
import re
from dataclasses import dataclass, replace
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union
from uuid import UUID, uuid4

from pydantic import ValidationError

from batch_writer import insert_customers, insert_readings
from models import (
    SALUTATIONS,
    UNIT_LABELS,
    Customer,
    Gender,
    KindOfMeter,
    Reading,
    customer_ref,
)

logger = logging.getLogger("readings-api.import")

DATE_FORMAT = "%d.%m.%Y"

CUSTOMER_MARKER = "Kunde"
METER_NUMBER_MARKER = "Zählernummer"
UNIT_HEADER_MARKER = "Datum"
CUSTOMER_HEADER_CELL = "UUID"

METER_REPLACEMENT = re.compile(r"Zählertausch:\s*neue Nummer\s+(\S+)")


class ReadingParseError(ValueError):
    """A line could not be turned into a record; the whole file is rejected."""

    def __init__(self, message: str, line_number: int = 0, path: Optional[Path] = None):
        self.line_number = line_number
        self.path = path
        where = f"{path}:" if path else "line "
        super().__init__(f"{where}{line_number}: {message}" if line_number else message)


# ---------------------------------------------------------------------------
# Classified lines
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CustomerLine:
    customer_id: str


@dataclass(frozen=True)
class MeterNumberLine:
    meter_id: str


@dataclass(frozen=True)
class UnitHeaderLine:
    kind_of_meter: KindOfMeter


@dataclass(frozen=True)
class DataLine:
    date_text: str
    value_text: str
    comment: str


Line = Union[CustomerLine, MeterNumberLine, UnitHeaderLine, DataLine]


def split_reading_line(raw: str) -> List[str]:
    """Strip quotes and split into exactly three fields (marker/date, value, comment)."""
    fields = raw.rstrip("\r\n").replace('"', "").split(";", 2)
    return fields + [""] * (3 - len(fields))


def kind_for_unit(label: str) -> KindOfMeter:
    return UNIT_LABELS.get(label.strip(), KindOfMeter.unknown)


def classify_line(fields: List[str]) -> Optional[Line]:
    """Decide what a split reading line is.  Returns None for blank lines.

    Never rejects a line: anything that is not a known marker is a data line,
    and a malformed one only fails when its fields are parsed.
    """
    marker = fields[0].strip()
    if not marker:
        return None
    if marker == CUSTOMER_MARKER:
        return CustomerLine(customer_id=fields[1].strip())
    if marker == METER_NUMBER_MARKER:
        return MeterNumberLine(meter_id=fields[1].strip())
    if marker == UNIT_HEADER_MARKER:
        return UnitHeaderLine(kind_of_meter=kind_for_unit(fields[1]))
    return DataLine(date_text=marker, value_text=fields[1].strip(), comment=fields[2].strip())


# ---------------------------------------------------------------------------
# Import context
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImportContext:
    """Carry-over state of one file: active customer, meter number, meter kind."""
    customer_id: Optional[UUID] = None
    meter_id: str = ""
    kind_of_meter: KindOfMeter = KindOfMeter.unknown


def replacement_meter_id(comment: str) -> Optional[str]:
    """Return the new meter number announced in a comment, if any."""
    m = METER_REPLACEMENT.search(comment)
    return m.group(1) if m else None


def parse_date(text: str) -> date:
    try:
        return datetime.strptime(text.strip(), DATE_FORMAT).date()
    except ValueError:
        raise ReadingParseError(f"invalid date {text!r}, expected dd.mm.yyyy")


def parse_decimal(text: str) -> float:
    """Parse a measurement written with a decimal comma (``123,45``)."""
    try:
        return float(text.strip().replace(",", "."))
    except ValueError:
        raise ReadingParseError(f"invalid number {text!r}")


def parse_uuid(text: str) -> UUID:
    try:
        return UUID(text.strip())
    except ValueError:
        raise ReadingParseError(f"invalid customer id {text!r}")


# ---------------------------------------------------------------------------
# Record builder
# ---------------------------------------------------------------------------

def build_reading(line: DataLine, context: ImportContext) -> Reading:
    """Turn a data line into a Reading using the active context.

    Imported readings are always measured values (substitute=False).
    """
    if context.customer_id is None:
        raise ReadingParseError("reading before any customer line")

    reading_date = parse_date(line.date_text)
    meter_count = parse_decimal(line.value_text)
    try:
        return Reading(
            id=uuid4(),
            comment=line.comment,
            customer=customer_ref(context.customer_id),
            date_of_reading=reading_date,
            kind_of_meter=context.kind_of_meter,
            meter_count=meter_count,
            meter_id=context.meter_id,
            substitute=False,
        )
    except ValidationError as e:
        raise ReadingParseError(f"invalid reading: {e.errors()[0]['msg']}")


def step(context: ImportContext, line: Line) -> tuple[ImportContext, Optional[Reading]]:
    """Advance the context by one classified line."""
    if isinstance(line, CustomerLine):
        return replace(context, customer_id=parse_uuid(line.customer_id)), None
    if isinstance(line, MeterNumberLine):
        return replace(context, meter_id=line.meter_id), None
    if isinstance(line, UnitHeaderLine):
        return replace(context, kind_of_meter=line.kind_of_meter), None

    new_meter = replacement_meter_id(line.comment)
    if new_meter:
        context = replace(context, meter_id=new_meter)
    return context, build_reading(line, context)


def parse_reading_lines(lines: Iterable[str], path: Optional[Path] = None) -> Iterator[Reading]:
    """Lazily yield the readings of one export; the context starts empty."""
    context = ImportContext()
    for line_number, raw in enumerate(lines, start=1):
        line = classify_line(split_reading_line(raw))
        if line is None:
            continue
        try:
            context, reading = step(context, line)
        except ReadingParseError as e:
            raise ReadingParseError(str(e), line_number, path) from e
        if reading is not None:
            yield reading


def parse_reading_file(path: Union[str, Path]) -> List[Reading]:
    path = Path(path)
    with path.open("r", encoding="utf-8-sig", newline="") as fh:
        readings = list(parse_reading_lines(fh, path))
    logger.info("Parsed %d readings from %s", len(readings), path.name)
    return readings


# ---------------------------------------------------------------------------
# Customer export
# ---------------------------------------------------------------------------

def parse_customer_row(cells: List[str]) -> Customer:
    """Map ``UUID,Anrede,Vorname,Nachname[,Geburtsdatum]`` to a Customer."""
    if len(cells) < 4:
        raise ReadingParseError(f"expected at least 4 columns, got {len(cells)}")

    birth_text = cells[4].strip() if len(cells) > 4 else ""
    try:
        return Customer(
            id=parse_uuid(cells[0]),
            first_name=cells[2].strip(),
            last_name=cells[3].strip(),
            birth_date=parse_date(birth_text) if birth_text else None,
            gender=SALUTATIONS.get(cells[1].strip(), Gender.unspecified),
        )
    except ValidationError as e:
        raise ReadingParseError(f"invalid customer: {e.errors()[0]['msg']}")


def parse_customer_lines(lines: Iterable[str], path: Optional[Path] = None) -> Iterator[Customer]:
    for line_number, cells in enumerate(csv.reader(lines), start=1):
        if not cells or not cells[0].strip():
            continue
        if cells[0].strip() == CUSTOMER_HEADER_CELL:
            continue
        try:
            yield parse_customer_row(cells)
        except ReadingParseError as e:
            raise ReadingParseError(str(e), line_number, path) from e


def parse_customer_file(path: Union[str, Path]) -> List[Customer]:
    path = Path(path)
    with path.open("r", encoding="utf-8-sig", newline="") as fh:
        customers = list(parse_customer_lines(fh, path))
    logger.info("Parsed %d customers from %s", len(customers), path.name)
    return customers


# ---------------------------------------------------------------------------
# File -> database
# ---------------------------------------------------------------------------

def import_customers_file(conn, path: Union[str, Path]) -> int:
    """Parse a customer export completely, then insert it in one batch."""
    customers = parse_customer_file(path)
    inserted = insert_customers(conn, customers)
    logger.info("Imported %s: %d/%d customer rows", Path(path).name, inserted, len(customers))
    return inserted


def import_readings_file(conn, path: Union[str, Path]) -> int:
    """Parse a reading export completely, then insert it in one batch."""
    readings = parse_reading_file(path)
    inserted = insert_readings(conn, readings)
    logger.info("Imported %s: %d/%d reading rows", Path(path).name, inserted, len(readings))
    return inserted
