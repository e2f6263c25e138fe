"""
Pydantic models for the meter readings API.
"""

from datetime import date
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Enumerations (values are the canonical codes stored in PostgreSQL)
# ---------------------------------------------------------------------------

class Gender(str, Enum):
    male = "M"
    female = "W"
    diverse = "D"
    unspecified = "U"


class KindOfMeter(str, Enum):
    heating = "HEIZUNG"
    water = "WASSER"
    electricity = "STROM"
    unknown = "UNBEKANNT"


# Salutation column of the customer export -> gender
SALUTATIONS = {
    "Herr": Gender.male,
    "Frau": Gender.female,
}

# Unit label in a "Datum" header line of a reading export -> kind of meter
UNIT_LABELS = {
    "Zählerstand in MWh": KindOfMeter.heating,
    "Zählerstand in m³": KindOfMeter.water,
    "Zählerstand in kWh": KindOfMeter.electricity,
}


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Domain records
# ---------------------------------------------------------------------------

class Customer(_CamelModel):
    id: Optional[UUID] = None
    first_name: str = Field(..., max_length=50)
    last_name: str = Field(..., max_length=50)
    birth_date: Optional[date] = None
    gender: Gender = Gender.unspecified


class CustomerRef(_CamelModel):
    """Customer as referenced by a reading write; only the id is used."""
    id: UUID


class _ReadingFields(_CamelModel):
    id: Optional[UUID] = None
    comment: str = ""
    date_of_reading: date
    kind_of_meter: KindOfMeter = KindOfMeter.unknown
    meter_count: float = Field(..., ge=0)
    meter_id: str
    substitute: bool = False


class Reading(_ReadingFields):
    """A meter reading together with its owning customer.

    Readings built by the importer carry a customer that only has its ``id``
    filled in; readings coming back from the database carry the full row.
    """
    customer: Customer


class ReadingInput(_ReadingFields):
    """Reading as sent to POST/PUT /readings.

    The nested customer may be a bare ``{"id": ...}`` or a full customer;
    anything besides the id is ignored.
    """
    customer: CustomerRef

    def to_reading(self) -> Reading:
        return Reading(customer=customer_ref(self.customer.id),
                       **self.model_dump(exclude={"customer"}))


def customer_ref(customer_id: UUID) -> Customer:
    """Bare customer reference used for writes (names are not known yet)."""
    return Customer(id=customer_id, first_name="", last_name="")


# ---------------------------------------------------------------------------
# Request / response wrappers
# ---------------------------------------------------------------------------

class CustomerWrapper(BaseModel):
    customer: Customer


class CustomerList(BaseModel):
    customers: List[Customer]


class ReadingWrapper(BaseModel):
    reading: Reading


class ReadingInputWrapper(BaseModel):
    reading: ReadingInput


class ReadingList(BaseModel):
    readings: List[Reading]
