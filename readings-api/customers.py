"""
Customer repository and /customers endpoints.

Repository functions take an open connection as first argument and commit
their own write.  Single-row writes must touch exactly one row.
"""

import logging
from typing import List, Optional
from uuid import UUID, uuid4

import psycopg2
from fastapi import APIRouter, HTTPException, status

from models import Customer, CustomerList, CustomerWrapper
from reading_query import hydrate_customer, row_to_dict

logger = logging.getLogger("readings-api.customers")

router = APIRouter(prefix="/customers", tags=["customers"])

CUSTOMER_COLUMNS = "SELECT id, first_name, last_name, birth_date, gender FROM customers"


class RowCountError(Exception):
    """A single-row write affected zero or several rows."""

    def __init__(self, action: str, table: str, record_id, rowcount: int):
        self.rowcount = rowcount
        super().__init__(
            f"{action} on {table} {record_id} affected {rowcount} rows, expected exactly 1"
        )


def _get_connection():
    from readings_api import get_connection
    return get_connection()


def expect_one_row(conn, cursor, action: str, table: str, record_id) -> None:
    """Commit when exactly one row changed, otherwise roll back and raise."""
    if cursor.rowcount != 1:
        conn.rollback()
        raise RowCountError(action, table, record_id, cursor.rowcount)
    conn.commit()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------

def create_customer(conn, customer: Customer) -> Customer:
    """Insert a customer, assigning an id when none was given."""
    if customer.id is None:
        customer = customer.model_copy(update={"id": uuid4()})
    cursor = conn.cursor()
    cursor.execute(
        "INSERT INTO customers (id, first_name, last_name, birth_date, gender) "
        "VALUES (%s, %s, %s, %s, %s)",
        (customer.id, customer.first_name, customer.last_name,
         customer.birth_date, customer.gender.value),
    )
    expect_one_row(conn, cursor, "create", "customers", customer.id)
    return customer


def read_customer(conn, customer_id: UUID) -> Optional[Customer]:
    cursor = conn.cursor()
    cursor.execute(f"{CUSTOMER_COLUMNS} WHERE id = %s", (customer_id,))
    row = cursor.fetchone()
    if row is None:
        return None
    return hydrate_customer(row_to_dict(cursor, row))


def list_customers(conn) -> List[Customer]:
    cursor = conn.cursor()
    cursor.execute(f"{CUSTOMER_COLUMNS} ORDER BY last_name, first_name, id")
    return [hydrate_customer(row_to_dict(cursor, row)) for row in cursor.fetchall()]


def update_customer(conn, customer: Customer) -> Customer:
    """Replace every field except the id."""
    cursor = conn.cursor()
    cursor.execute(
        "UPDATE customers SET first_name = %s, last_name = %s, birth_date = %s, gender = %s "
        "WHERE id = %s",
        (customer.first_name, customer.last_name, customer.birth_date,
         customer.gender.value, customer.id),
    )
    expect_one_row(conn, cursor, "update", "customers", customer.id)
    return customer


def delete_customer(conn, customer_id: UUID) -> None:
    """Delete a customer; the customer's readings go with it (ON DELETE CASCADE)."""
    cursor = conn.cursor()
    cursor.execute("DELETE FROM customers WHERE id = %s", (customer_id,))
    expect_one_row(conn, cursor, "delete", "customers", customer_id)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("", response_model=CustomerList)
def get_customers():
    with _get_connection() as conn:
        return CustomerList(customers=list_customers(conn))


@router.get("/{customer_id}", response_model=Customer)
def get_customer(customer_id: UUID):
    with _get_connection() as conn:
        customer = read_customer(conn, customer_id)
    if customer is None:
        raise HTTPException(status_code=404, detail=f"Customer {customer_id} not found")
    logger.debug("Found customer %s %s %s", customer.id, customer.first_name, customer.last_name)
    return customer


@router.post("", response_model=CustomerWrapper, status_code=status.HTTP_201_CREATED)
def post_customer(body: CustomerWrapper):
    try:
        with _get_connection() as conn:
            customer = create_customer(conn, body.customer)
    except psycopg2.IntegrityError as e:
        raise HTTPException(status_code=400, detail=f"Invalid customer: {e}") from e
    logger.info("Created customer %s", customer.id)
    return CustomerWrapper(customer=customer)


@router.put("", response_model=CustomerWrapper)
def put_customer(body: CustomerWrapper):
    if body.customer.id is None:
        raise HTTPException(status_code=400, detail="Missing customer id")
    try:
        with _get_connection() as conn:
            customer = update_customer(conn, body.customer)
    except RowCountError as e:
        raise HTTPException(status_code=404, detail=f"Customer {body.customer.id} not found") from e
    logger.info("Updated customer %s", customer.id)
    return CustomerWrapper(customer=customer)


@router.delete("/{customer_id}")
def remove_customer(customer_id: UUID):
    try:
        with _get_connection() as conn:
            delete_customer(conn, customer_id)
    except RowCountError as e:
        raise HTTPException(status_code=404, detail=f"Customer {customer_id} not found") from e
    logger.info("Deleted customer %s", customer_id)
    return {"status": "deleted", "id": str(customer_id)}
