from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date, datetime
from io import BytesIO
from typing import Any
from zipfile import BadZipFile

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet

from attendance_admin.errors import ApiError
from attendance_admin.models import WorkStatus
from attendance_admin.services.attendance import AttendanceRow
from attendance_admin.services.employees import EMPLOYEE_IMPORT_COLUMNS
from attendance_admin.services.identifiers import as_text
from attendance_admin.services.master_sheet import MASTER_SHEET_IMPORT_COLUMNS, OVERTIME_IMPORT_COLUMNS

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

ATTENDANCE_HEADERS = (
    "Employee",
    "Date",
    "Check In",
    "Check Out",
    "Total Hours",
    "Status",
    "Location",
)

EMPLOYEE_TEMPLATE_ROWS = [
    {
        "PIN": "1234",
        "Name": "John Doe",
        "Designation": "Software Developer",
        "Department": "IT Department",
        "Email": "john@example.com",
        "Phone": "+971501234567",
        "Country": "UAE",
        "Birthdate": "01/01/1990",
    }
]
MASTER_SHEET_TEMPLATE_ROWS = [
    {
        "EmployeeNumber": "0001",
        "Employee Name": "John Doe",
        "Designation": "Manager",
        "Salary": 12000,
        "Created by": "Default",
    }
]
OVERTIME_TEMPLATE_ROWS = [
    {"Employee Number": "2931", "Employee Name": "Jane Roe", "Overtime": "Yes"},
    {"Employee Number": "EMP0001", "Employee Name": "John Doe", "Overtime": "Yes"},
]

HEADER_FILL = PatternFill(fill_type="solid", fgColor="0B4F73")
ZEBRA_FILL = PatternFill(fill_type="solid", fgColor="F7FBFE")
WARNING_FILL = PatternFill(fill_type="solid", fgColor="FFF3CD")
SUCCESS_FILL = PatternFill(fill_type="solid", fgColor="E6F4EA")

HEADER_FONT = Font(bold=True, color="FFFFFF")

THIN_SIDE = Side(style="thin", color="D5E2EC")
THIN_BORDER = Border(left=THIN_SIDE, right=THIN_SIDE, top=THIN_SIDE, bottom=THIN_SIDE)


def read_sheet_rows(content: bytes) -> list[dict[str, Any]]:
    """Rows of the first worksheet keyed by the header row; empty cells are left out."""
    try:
        workbook = load_workbook(BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError, ValueError) as exc:
        raise ApiError(
            status_code=422,
            code="INVALID_WORKBOOK",
            message=f"Error reading Excel file: {exc}",
        ) from exc

    try:
        if not workbook.worksheets:
            return []
        values = workbook.worksheets[0].iter_rows(values_only=True)
        header = next(values, None)
        if header is None:
            return []
        columns = [as_text(cell).strip() or None for cell in header]

        rows: list[dict[str, Any]] = []
        for raw_row in values:
            row = {
                column: cell
                for column, cell in zip(columns, raw_row)
                if column is not None and cell is not None and cell != ""
            }
            if row:
                rows.append(row)
        return rows
    finally:
        workbook.close()


def _style_header(ws: Worksheet, row: int = 1) -> None:
    for cell in ws[row]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = THIN_BORDER


def _auto_width(ws: Worksheet) -> None:
    for column_cells in ws.iter_cols(min_row=1, max_row=ws.max_row, min_col=1, max_col=ws.max_column):
        col_letter = get_column_letter(column_cells[0].column)
        max_len = max(len("" if cell.value is None else str(cell.value)) for cell in column_cells)
        ws.column_dimensions[col_letter].width = min(max_len + 2, 45)


def _cell_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool, date, datetime)):
        return value
    return str(value)


def _to_bytes(wb: Workbook) -> bytes:
    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue()


def build_table_xlsx(
    *,
    sheet_title: str,
    headers: Sequence[str],
    rows: Sequence[Mapping[str, Any]],
    column_widths: Sequence[int] | None = None,
) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title
    ws.append(list(headers))
    for row in rows:
        ws.append([_cell_value(row.get(header)) for header in headers])

    _style_header(ws)
    ws.freeze_panes = "A2"
    if column_widths:
        for index, width in enumerate(column_widths, start=1):
            ws.column_dimensions[get_column_letter(index)].width = width
    else:
        _auto_width(ws)
    return _to_bytes(wb)


def build_employee_template_xlsx() -> bytes:
    return build_table_xlsx(
        sheet_title="Employees",
        headers=EMPLOYEE_IMPORT_COLUMNS,
        rows=EMPLOYEE_TEMPLATE_ROWS,
    )


def build_master_sheet_template_xlsx() -> bytes:
    return build_table_xlsx(
        sheet_title="MasterSheet_Employees",
        headers=MASTER_SHEET_IMPORT_COLUMNS,
        rows=MASTER_SHEET_TEMPLATE_ROWS,
    )


def build_overtime_template_xlsx() -> bytes:
    return build_table_xlsx(
        sheet_title="Overtime_Data",
        headers=OVERTIME_IMPORT_COLUMNS,
        rows=OVERTIME_TEMPLATE_ROWS,
        column_widths=(15, 30, 10),
    )


def build_attendance_xlsx(rows: Sequence[AttendanceRow]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Attendance"
    ws.append(list(ATTENDANCE_HEADERS))
    for row in rows:
        ws.append(
            [
                row.employee_name,
                row.date,
                _cell_value(row.check_in),
                _cell_value(row.check_out),
                row.total_hours,
                row.work_status,
                row.location,
            ]
        )

    _style_header(ws)
    status_col = ATTENDANCE_HEADERS.index("Status") + 1
    for row_idx in range(2, ws.max_row + 1):
        for col_idx in range(1, ws.max_column + 1):
            cell = ws.cell(row=row_idx, column=col_idx)
            cell.border = THIN_BORDER
            if row_idx % 2 == 0:
                cell.fill = ZEBRA_FILL
        status_cell = ws.cell(row=row_idx, column=status_col)
        status_cell.fill = SUCCESS_FILL if status_cell.value == WorkStatus.COMPLETED.value else WARNING_FILL

    if ws.max_row > 1:
        ws.auto_filter.ref = f"A1:{get_column_letter(ws.max_column)}{ws.max_row}"
    ws.freeze_panes = "A2"
    _auto_width(ws)
    return _to_bytes(wb)
