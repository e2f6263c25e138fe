from datetime import date
from uuid import UUID

import pytest

from conftest import CUSTOMER_ID, READING_ID, FakeConnection, as_result, reading_result_row
from customers import (
    RowCountError,
    create_customer,
    delete_customer,
    list_customers,
    read_customer,
    update_customer,
)
from db_setup import create_tables, drop_tables, truncate_tables
from models import Customer, Gender, KindOfMeter, Reading
from reading_query import ReadingFilter
from readings import (
    create_reading,
    delete_reading,
    find_readings,
    read_reading,
    update_reading,
)

CUSTOMER_COLUMNS = ["id", "first_name", "last_name", "birth_date", "gender"]


def erika(**overrides) -> Customer:
    fields = dict(id=CUSTOMER_ID, first_name="Erika", last_name="Mustermann",
                  birth_date=date(1962, 2, 21), gender=Gender.female)
    fields.update(overrides)
    return Customer(**fields)


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------

def test_create_customer_assigns_id_and_commits():
    conn = FakeConnection()

    created = create_customer(conn, erika(id=None))

    assert isinstance(created.id, UUID)
    sql, params = conn.executed[0]
    assert sql.startswith("INSERT INTO customers")
    assert params == [created.id, "Erika", "Mustermann", date(1962, 2, 21), "W"]
    assert conn.commits == 1


@pytest.mark.parametrize("birth_date", [date(1962, 2, 21), None])
def test_create_then_read_customer(birth_date):
    customer = erika(birth_date=birth_date)
    stored = {**customer.model_dump(), "gender": "W"}
    # the INSERT has no result set
    conn = FakeConnection(results=[([], []), as_result([stored], CUSTOMER_COLUMNS)])

    create_customer(conn, customer)
    assert read_customer(conn, CUSTOMER_ID) == customer


def test_read_missing_customer_returns_none():
    conn = FakeConnection(results=[(CUSTOMER_COLUMNS, [])])
    assert read_customer(conn, CUSTOMER_ID) is None


def test_list_customers_orders_by_name():
    rows = [
        {"id": CUSTOMER_ID, "first_name": "Hans", "last_name": "Schmidt",
         "birth_date": None, "gender": "M"},
    ]
    conn = FakeConnection(results=[as_result(rows, CUSTOMER_COLUMNS)])

    customers = list_customers(conn)

    assert [c.last_name for c in customers] == ["Schmidt"]
    assert "ORDER BY last_name, first_name, id" in conn.executed[0][0]


@pytest.mark.parametrize("rowcount", [0, 2])
def test_update_customer_requires_exactly_one_row(rowcount):
    conn = FakeConnection(rowcounts=[rowcount])

    with pytest.raises(RowCountError) as exc_info:
        update_customer(conn, erika())

    assert exc_info.value.rowcount == rowcount
    assert conn.rollbacks == 1
    assert conn.commits == 0


def test_update_customer_keeps_id_in_where_clause():
    conn = FakeConnection()
    update_customer(conn, erika(last_name="Musterfrau"))

    sql, params = conn.executed[0]
    assert sql.rstrip().endswith("WHERE id = %s")
    assert params[-1] == CUSTOMER_ID
    assert params[1] == "Musterfrau"


def test_delete_unknown_customer_raises():
    conn = FakeConnection(rowcounts=[0])
    with pytest.raises(RowCountError):
        delete_customer(conn, CUSTOMER_ID)


# ---------------------------------------------------------------------------
# Readings
# ---------------------------------------------------------------------------

def make_reading(**overrides) -> Reading:
    fields = dict(id=READING_ID, comment="Ablesung", customer=erika(),
                  date_of_reading=date(2024, 1, 1), kind_of_meter=KindOfMeter.electricity,
                  meter_count=123.45, meter_id="M-42")
    fields.update(overrides)
    return Reading(**fields)


def test_create_reading_stores_customer_id_and_codes():
    conn = FakeConnection()

    create_reading(conn, make_reading(id=None, substitute=True))

    _, params = conn.executed[0]
    assert isinstance(params[0], UUID)
    assert params[2:] == [CUSTOMER_ID, date(2024, 1, 1), "STROM", 123.45, "M-42", True]
    assert conn.commits == 1


def test_read_reading_hydrates_joined_row():
    conn = FakeConnection(results=[as_result([reading_result_row()])])

    reading = read_reading(conn, READING_ID)

    assert reading.id == READING_ID
    assert reading.customer.last_name == "Schmidt"
    assert conn.executed[0][1] == [READING_ID]


def test_read_missing_reading_returns_none():
    conn = FakeConnection(results=[as_result([])])
    assert read_reading(conn, READING_ID) is None


def test_update_unknown_reading_raises():
    conn = FakeConnection(rowcounts=[0])
    with pytest.raises(RowCountError):
        update_reading(conn, make_reading())
    assert conn.rollbacks == 1


def test_delete_reading():
    conn = FakeConnection()
    delete_reading(conn, READING_ID)
    assert conn.executed == [("DELETE FROM readings WHERE id = %s", [READING_ID])]
    assert conn.commits == 1


def test_find_readings_passes_filter_params_and_returns_rows_in_order():
    first = reading_result_row()
    second = reading_result_row(reading_id=UUID(int=7), date_of_reading=date(2024, 2, 1))
    conn = FakeConnection(results=[as_result([first, second])])
    filters = ReadingFilter(customer_id=CUSTOMER_ID, start=date(2024, 1, 1),
                            kind_of_meter=KindOfMeter.electricity)

    readings = find_readings(conn, filters)

    assert [r.date_of_reading for r in readings] == [date(2024, 1, 1), date(2024, 2, 1)]
    assert conn.executed[0][1] == [CUSTOMER_ID, date(2024, 1, 1), "STROM"]


def test_find_readings_is_repeatable():
    rows = [reading_result_row()]
    conn = FakeConnection(results=[as_result(rows), as_result(rows)])

    assert find_readings(conn) == find_readings(conn)
    assert conn.commits == 0


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

def test_table_setup_statements():
    conn = FakeConnection()

    drop_tables(conn)
    create_tables(conn)
    truncate_tables(conn)

    statements = [" ".join(sql.split()) for sql, _ in conn.executed]
    assert statements[0] == "DROP TABLE IF EXISTS readings, customers"
    assert statements[1].startswith("CREATE TABLE IF NOT EXISTS customers")
    assert "REFERENCES customers (id) ON DELETE CASCADE" in statements[2]
    assert statements[-1] == "TRUNCATE TABLE readings, customers"
    assert conn.commits == 3
