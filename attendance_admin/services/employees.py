from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime
from typing import Any

from attendance_admin.errors import ApiError
from attendance_admin.models import EMPLOYEES_COLLECTION
from attendance_admin.schemas import EmployeeCreate, EmployeeRead
from attendance_admin.services.identifiers import as_text, generate_random_pin
from attendance_admin.services.reconciliation import (
    ImportSummary,
    RowOutcome,
    RowResult,
    reconcile_rows,
)
from attendance_admin.store import SERVER_TIMESTAMP, DocumentSnapshot, DocumentStore, join_path

logger = logging.getLogger("attendance_admin.employees")

EMPLOYEE_IMPORT_COLUMNS = (
    "PIN",
    "Name",
    "Designation",
    "Department",
    "Email",
    "Phone",
    "Country",
    "Birthdate",
)
REQUIRED_EMPLOYEE_FIELDS = ("pin", "name", "designation", "department")


def employee_path(employee_id: str) -> str:
    return join_path(EMPLOYEES_COLLECTION, employee_id)


def _date_text(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return as_text(value).strip()


def _new_employee_fields() -> dict[str, Any]:
    return {
        "registrationCompleted": False,
        "profileCompleted": False,
        "faceRegistered": False,
        "createdAt": SERVER_TIMESTAMP,
        "lastUpdated": SERVER_TIMESTAMP,
    }


def build_employee_document(
    row: Mapping[str, Any],
    *,
    pin_generator: Callable[[], str] = generate_random_pin,
) -> dict[str, Any]:
    pin = as_text(row.get("PIN")).strip() or pin_generator()
    return {
        "pin": pin,
        "name": as_text(row.get("Name")).strip(),
        "designation": as_text(row.get("Designation")).strip(),
        "department": as_text(row.get("Department")).strip(),
        "email": as_text(row.get("Email")).strip(),
        "phone": as_text(row.get("Phone")).strip(),
        "country": as_text(row.get("Country")).strip(),
        "birthdate": _date_text(row.get("Birthdate")),
        **_new_employee_fields(),
    }


def pin_in_use(store: DocumentStore, pin: str) -> bool:
    return bool(store.query(EMPLOYEES_COLLECTION, where=("pin", pin), limit=1))


def import_employee_rows(
    store: DocumentStore,
    rows: Iterable[Mapping[str, Any]],
    *,
    pin_generator: Callable[[], str] = generate_random_pin,
) -> ImportSummary:
    def handle(row_number: int, row: Mapping[str, Any]) -> RowResult:
        document = build_employee_document(row, pin_generator=pin_generator)
        pin = document["pin"]
        # Read-then-write: a concurrent import can still slip a duplicate PIN in.
        if pin_in_use(store, pin):
            logger.info("employee_import_duplicate_pin", extra={"row_number": row_number, "pin": pin})
            return RowResult(row_number=row_number, outcome=RowOutcome.REJECTED_DUPLICATE, key=pin)

        employee_id = store.add(EMPLOYEES_COLLECTION, document)
        return RowResult(
            row_number=row_number,
            outcome=RowOutcome.INSERTED,
            key=pin,
            document_id=employee_id,
        )

    return reconcile_rows("employee", rows, handle)


def create_employee(store: DocumentStore, payload: EmployeeCreate) -> DocumentSnapshot:
    values = {key: value.strip() for key, value in payload.model_dump().items()}
    missing = [name for name in REQUIRED_EMPLOYEE_FIELDS if not values[name]]
    if missing:
        raise ApiError(
            status_code=422,
            code="VALIDATION_ERROR",
            message=f"Missing required fields: {', '.join(missing)}.",
        )

    if pin_in_use(store, values["pin"]):
        raise ApiError(
            status_code=409,
            code="PIN_IN_USE",
            message="This PIN is already in use. Please use a different PIN.",
        )

    employee_id = store.add(EMPLOYEES_COLLECTION, {**values, **_new_employee_fields()})
    logger.info("employee_created", extra={"employee_id": employee_id, "pin": values["pin"]})
    return store.get(employee_path(employee_id))


def list_employees(store: DocumentStore) -> list[DocumentSnapshot]:
    return store.query(EMPLOYEES_COLLECTION)


def get_employee(store: DocumentStore, employee_id: str) -> DocumentSnapshot:
    snapshot = store.get(employee_path(employee_id))
    if not snapshot.exists:
        raise ApiError(status_code=404, code="EMPLOYEE_NOT_FOUND", message="Employee not found.")
    return snapshot


def delete_employee(store: DocumentStore, employee_id: str) -> None:
    get_employee(store, employee_id)
    store.delete(employee_path(employee_id))
    logger.info("employee_deleted", extra={"employee_id": employee_id})


def to_employee_read(snapshot: DocumentSnapshot) -> EmployeeRead:
    data = snapshot.to_dict()
    registered = bool(data.get("registrationCompleted"))
    return EmployeeRead(
        id=snapshot.id,
        pin=as_text(data.get("pin")) or None,
        name=data.get("name"),
        designation=data.get("designation"),
        department=data.get("department"),
        email=data.get("email"),
        phone=as_text(data.get("phone")) or None,
        country=data.get("country"),
        birthdate=_date_text(data.get("birthdate")) or None,
        registration_completed=registered,
        status="Active" if registered else "Pending",
    )
