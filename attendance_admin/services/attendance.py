from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any

from attendance_admin.errors import ApiError
from attendance_admin.models import ATTENDANCE_SUBCOLLECTION, EMPLOYEES_COLLECTION, WorkStatus
from attendance_admin.services.durations import total_hours_display
from attendance_admin.services.timestamps import format_time
from attendance_admin.settings import get_settings
from attendance_admin.store import DocumentSnapshot, DocumentStore, join_path

NOT_CHECKED_IN = "Not checked in"
NOT_CHECKED_OUT = "Not checked out"
UNKNOWN = "Unknown"


@dataclass(frozen=True)
class AttendanceRow:
    employee_id: str
    employee_name: str
    date: str | None
    check_in: Any
    check_out: Any
    total_hours: str
    work_status: str
    location: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def attendance_collection(employee_id: str) -> str:
    return join_path(EMPLOYEES_COLLECTION, employee_id, ATTENDANCE_SUBCOLLECTION)


def to_attendance_row(employee_id: str, employee_name: str, record: Mapping[str, Any]) -> AttendanceRow:
    check_in = record.get("checkIn")
    check_out = record.get("checkOut")
    day = record.get("date")
    return AttendanceRow(
        employee_id=employee_id,
        employee_name=employee_name,
        date=str(day) if day else None,
        check_in=format_time(check_in) if check_in else NOT_CHECKED_IN,
        check_out=format_time(check_out) if check_out else NOT_CHECKED_OUT,
        total_hours=total_hours_display(record),
        work_status=record.get("workStatus") or WorkStatus.PENDING.value,
        location=record.get("location") or UNKNOWN,
    )


def _employee_name(employee: DocumentSnapshot) -> str:
    return employee.get("name") or UNKNOWN


def list_attendance(
    store: DocumentStore,
    *,
    employee_id: str | None = None,
    day: str | None = None,
    limit: int | None = None,
) -> list[AttendanceRow]:
    """Attendance rows newest day first.

    Without filters each employee contributes its latest ``limit`` records.
    An employee filter returns that employee's full history (optionally for one
    day); a day filter alone returns every employee's record for that day.
    """
    if employee_id:
        employee = store.get(join_path(EMPLOYEES_COLLECTION, employee_id))
        if not employee.exists:
            raise ApiError(status_code=404, code="EMPLOYEE_NOT_FOUND", message="Employee not found.")
        employees = [employee]
    else:
        employees = store.query(EMPLOYEES_COLLECTION)

    if limit is None and not employee_id and not day:
        limit = get_settings().attendance_recent_limit

    rows: list[AttendanceRow] = []
    for employee in employees:
        records = store.query(
            attendance_collection(employee.id),
            where=("date", day) if day else None,
            order_by="date",
            descending=True,
            limit=limit,
        )
        name = _employee_name(employee)
        rows.extend(to_attendance_row(employee.id, name, record.to_dict()) for record in records)

    rows.sort(key=lambda row: row.date or "", reverse=True)
    return rows
