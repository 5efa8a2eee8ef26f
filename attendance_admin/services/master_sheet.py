"""MasterSheet employee records keyed by ``EMP`` + zero-padded employee number.

Duplicate detection during import queries the ``employeeNumber`` field, while
writes address the document identifier. The two normally agree; a document
whose identifier exists without a matching ``employeeNumber`` field would be
overwritten by an import. That gap is inherited from the stored data layout and
is left visible rather than patched here.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from attendance_admin.errors import ApiError, BatchCommitError
from attendance_admin.models import MASTER_SHEET_COLLECTION
from attendance_admin.schemas import MasterSheetEmployeeRead
from attendance_admin.services.identifiers import (
    as_text,
    master_sheet_document_id,
    pad_employee_number,
    to_master_sheet_id,
)
from attendance_admin.services.reconciliation import (
    ImportSummary,
    RowOutcome,
    RowResult,
    reconcile_rows,
)
from attendance_admin.services.timestamps import format_date
from attendance_admin.store import SERVER_TIMESTAMP, DocumentSnapshot, DocumentStore, join_path

logger = logging.getLogger("attendance_admin.master_sheet")

MASTER_SHEET_IMPORT_COLUMNS = ("EmployeeNumber", "Employee Name", "Designation", "Salary", "Created by")
OVERTIME_IMPORT_COLUMNS = ("Employee Number", "Employee Name", "Overtime")
DEFAULT_CREATED_BY = "Default"
DEFAULT_OVERTIME_LABEL = "Yes"


def master_sheet_path(document_id: str) -> str:
    return join_path(MASTER_SHEET_COLLECTION, document_id)


def parse_salary(value: Any) -> float:
    try:
        salary = float(as_text(value).strip().replace(",", ""))
    except ValueError:
        return 0.0
    return salary if math.isfinite(salary) else 0.0


def build_master_sheet_document(row: Mapping[str, Any]) -> dict[str, Any]:
    raw_number = as_text(row.get("EmployeeNumber")).strip()
    if not raw_number:
        raise ValueError("EmployeeNumber is required.")

    return {
        "employeeNumber": pad_employee_number(raw_number),
        "employeeName": as_text(row.get("Employee Name")).strip(),
        "designation": as_text(row.get("Designation")).strip(),
        "salary": parse_salary(row.get("Salary")),
        "createdBy": as_text(row.get("Created by")).strip() or DEFAULT_CREATED_BY,
        "createdOn": SERVER_TIMESTAMP,
    }


def employee_number_in_use(store: DocumentStore, employee_number: str) -> bool:
    return bool(store.query(MASTER_SHEET_COLLECTION, where=("employeeNumber", employee_number), limit=1))


def import_master_sheet_rows(store: DocumentStore, rows: Iterable[Mapping[str, Any]]) -> ImportSummary:
    def handle(row_number: int, row: Mapping[str, Any]) -> RowResult:
        document = build_master_sheet_document(row)
        employee_number = document["employeeNumber"]
        if employee_number_in_use(store, employee_number):
            logger.info(
                "master_sheet_import_duplicate",
                extra={"row_number": row_number, "employee_number": employee_number},
            )
            return RowResult(
                row_number=row_number,
                outcome=RowOutcome.REJECTED_DUPLICATE,
                key=employee_number,
            )

        document_id = master_sheet_document_id(employee_number)
        store.set(master_sheet_path(document_id), document)
        return RowResult(
            row_number=row_number,
            outcome=RowOutcome.INSERTED,
            key=employee_number,
            document_id=document_id,
        )

    return reconcile_rows("master_sheet", rows, handle)


def _overtime_fields(label: str) -> dict[str, Any]:
    return {
        "hasOvertime": True,
        "overtime": label,
        "overtimeUpdatedAt": SERVER_TIMESTAMP,
    }


def import_overtime_rows(store: DocumentStore, rows: Iterable[Mapping[str, Any]]) -> ImportSummary:
    def handle(row_number: int, row: Mapping[str, Any]) -> RowResult:
        # a blank number pads to EMP0000 and is reported like any unknown employee
        raw_number = as_text(row.get("Employee Number")).strip()
        document_id = to_master_sheet_id(raw_number)
        path = master_sheet_path(document_id)
        if not store.get(path).exists:
            logger.info("overtime_import_not_found", extra={"row_number": row_number, "document_id": document_id})
            return RowResult(
                row_number=row_number,
                outcome=RowOutcome.NOT_FOUND,
                key=raw_number,
                document_id=document_id,
            )

        label = as_text(row.get("Overtime")).strip() or DEFAULT_OVERTIME_LABEL
        store.update(path, _overtime_fields(label))
        return RowResult(
            row_number=row_number,
            outcome=RowOutcome.UPDATED,
            key=raw_number,
            document_id=document_id,
        )

    return reconcile_rows("overtime", rows, handle)


def list_master_sheet_employees(store: DocumentStore) -> list[DocumentSnapshot]:
    return store.query(MASTER_SHEET_COLLECTION, order_by="employeeNumber")


def get_master_sheet_employee(store: DocumentStore, document_id: str) -> DocumentSnapshot:
    snapshot = store.get(master_sheet_path(document_id))
    if not snapshot.exists:
        raise ApiError(
            status_code=404,
            code="MASTER_SHEET_EMPLOYEE_NOT_FOUND",
            message="Employee not found in MasterSheet.",
        )
    return snapshot


def delete_master_sheet_employee(store: DocumentStore, document_id: str) -> None:
    get_master_sheet_employee(store, document_id)
    store.delete(master_sheet_path(document_id))
    logger.info("master_sheet_employee_deleted", extra={"document_id": document_id})


def toggle_overtime(store: DocumentStore, document_id: str) -> dict[str, Any]:
    snapshot = get_master_sheet_employee(store, document_id)
    enabled = not bool(snapshot.get("hasOvertime"))
    label = "Yes" if enabled else "No"
    store.update(
        snapshot.path,
        {
            "hasOvertime": enabled,
            "overtime": label,
            "overtimeUpdatedAt": SERVER_TIMESTAMP,
        },
    )
    return {
        "id": snapshot.id,
        "employee_name": snapshot.get("employeeName"),
        "has_overtime": enabled,
        "overtime": label,
    }


def mark_selected_for_overtime(store: DocumentStore, document_ids: Sequence[str]) -> int:
    """Flag every selected employee in one atomic batch; all or none are updated."""
    selected = list(dict.fromkeys(item.strip() for item in document_ids if item and item.strip()))
    if not selected:
        raise ApiError(
            status_code=422,
            code="NO_EMPLOYEES_SELECTED",
            message="Please select employees first.",
        )

    batch = store.batch()
    for document_id in selected:
        batch.update(master_sheet_path(document_id), _overtime_fields(DEFAULT_OVERTIME_LABEL))

    try:
        updated = batch.commit()
    except BatchCommitError as exc:
        logger.exception("overtime_batch_failed", extra={"selected": len(selected)})
        raise ApiError(
            status_code=409,
            code="OVERTIME_BATCH_FAILED",
            message=f"Error updating overtime: {exc}",
        ) from exc

    logger.info("overtime_batch_committed", extra={"updated": updated})
    return updated


def to_master_sheet_read(snapshot: DocumentSnapshot) -> MasterSheetEmployeeRead:
    data = snapshot.to_dict()
    created_on = data.get("createdOn")
    return MasterSheetEmployeeRead(
        id=snapshot.id,
        employee_number=as_text(data.get("employeeNumber")) or None,
        employee_name=data.get("employeeName"),
        designation=data.get("designation"),
        salary=parse_salary(data.get("salary")),
        has_overtime=bool(data.get("hasOvertime")),
        overtime=data.get("overtime"),
        created_by=data.get("createdBy"),
        created_on=format_date(created_on) if created_on else None,
        line_manager_id=data.get("lineManagerId"),
        line_manager_name=data.get("lineManagerName"),
        line_manager_department=data.get("lineManagerDepartment"),
    )
