from __future__ import annotations

import unittest
from datetime import datetime, timezone

from attendance_admin.errors import ApiError
from attendance_admin.services.master_sheet import (
    delete_master_sheet_employee,
    import_master_sheet_rows,
    import_overtime_rows,
    list_master_sheet_employees,
    parse_salary,
    to_master_sheet_read,
    toggle_overtime,
)
from attendance_admin.services.reconciliation import RowOutcome
from attendance_admin.store import InMemoryDocumentStore

FIXED_NOW = datetime(2024, 3, 1, 6, 30, tzinfo=timezone.utc)
MASTER_SHEET = "MasterSheet/Employee-Data/employees"

ROWS = [
    {"EmployeeNumber": 7, "Employee Name": "Ayesha Khan", "Designation": "Technician", "Salary": "12,000"},
    {"EmployeeNumber": "0012", "Employee Name": "Omar Ali", "Designation": "Driver", "Created by": "HR"},
]


class MasterSheetImportTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryDocumentStore(clock=lambda: FIXED_NOW)

    def test_documents_are_keyed_by_padded_number(self) -> None:
        summary = import_master_sheet_rows(self.store, ROWS)

        self.assertEqual(summary.inserted, 2)
        self.assertEqual([item.document_id for item in summary.results], ["EMP0007", "EMP0012"])
        stored = self.store.get(f"{MASTER_SHEET}/EMP0007").to_dict()
        self.assertEqual(stored["employeeNumber"], "0007")
        self.assertEqual(stored["salary"], 12000.0)
        self.assertEqual(stored["createdBy"], "Default")
        self.assertEqual(stored["createdOn"], FIXED_NOW)
        self.assertEqual(self.store.get(f"{MASTER_SHEET}/EMP0012").get("createdBy"), "HR")

    def test_reimport_is_idempotent(self) -> None:
        import_master_sheet_rows(self.store, ROWS[:1])
        self.store.update(f"{MASTER_SHEET}/EMP0007", {"employeeName": "Edited"})

        summary = import_master_sheet_rows(self.store, [ROWS[0], {"EmployeeNumber": "7"}])
        self.assertEqual(summary.inserted, 0)
        self.assertEqual(summary.duplicates, 2)
        self.assertEqual(self.store.get(f"{MASTER_SHEET}/EMP0007").get("employeeName"), "Edited")

    def test_row_without_number_is_an_error(self) -> None:
        with self.assertLogs("attendance_admin.reconciliation", level="ERROR"):
            summary = import_master_sheet_rows(self.store, [{"Employee Name": "Nobody"}, ROWS[1]])
        self.assertEqual(summary.results[0].outcome, RowOutcome.ERROR)
        self.assertEqual(summary.results[1].outcome, RowOutcome.INSERTED)

    def test_parse_salary(self) -> None:
        self.assertEqual(parse_salary("1,250.50"), 1250.5)
        self.assertEqual(parse_salary(None), 0.0)
        self.assertEqual(parse_salary("n/a"), 0.0)

    def test_list_is_ordered_by_employee_number(self) -> None:
        import_master_sheet_rows(self.store, [ROWS[1], ROWS[0]])
        self.assertEqual([item.id for item in list_master_sheet_employees(self.store)], ["EMP0007", "EMP0012"])

    def test_read_model_formats_created_on(self) -> None:
        import_master_sheet_rows(self.store, ROWS[:1])
        read = to_master_sheet_read(self.store.get(f"{MASTER_SHEET}/EMP0007"))
        self.assertEqual(read.employee_number, "0007")
        self.assertRegex(read.created_on, r"^3/1/2024$")
        self.assertFalse(read.has_overtime)

    def test_delete(self) -> None:
        import_master_sheet_rows(self.store, ROWS[:1])
        delete_master_sheet_employee(self.store, "EMP0007")
        self.assertFalse(self.store.get(f"{MASTER_SHEET}/EMP0007").exists)
        with self.assertRaises(ApiError) as ctx:
            delete_master_sheet_employee(self.store, "EMP0007")
        self.assertEqual(ctx.exception.status_code, 404)


class OvertimeImportTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryDocumentStore(clock=lambda: FIXED_NOW)
        import_master_sheet_rows(self.store, ROWS)

    def test_updates_existing_and_counts_missing(self) -> None:
        rows = [
            {"Employee Number": "EMP0007", "Overtime": "Weekend"},
            {"Employee Number": 12},
            {"Employee Number": "9999"},
        ]
        summary = import_overtime_rows(self.store, rows)

        self.assertEqual([item.outcome for item in summary.results], [
            RowOutcome.UPDATED,
            RowOutcome.UPDATED,
            RowOutcome.NOT_FOUND,
        ])
        self.assertEqual(summary.results[2].document_id, "EMP9999")
        seven = self.store.get(f"{MASTER_SHEET}/EMP0007").to_dict()
        self.assertTrue(seven["hasOvertime"])
        self.assertEqual(seven["overtime"], "Weekend")
        self.assertEqual(seven["overtimeUpdatedAt"], FIXED_NOW)
        self.assertEqual(self.store.get(f"{MASTER_SHEET}/EMP0012").get("overtime"), "Yes")

    def test_never_creates_records(self) -> None:
        import_overtime_rows(self.store, [{"Employee Number": "emp0042"}])
        self.assertFalse(self.store.get(f"{MASTER_SHEET}/EMP0042").exists)
        self.assertEqual(len(list_master_sheet_employees(self.store)), 2)

    def test_blank_employee_number_is_not_found(self) -> None:
        summary = import_overtime_rows(self.store, [{"Employee Name": "Ayesha"}, {"Employee Number": "  "}])
        self.assertEqual(summary.errors, 0)
        self.assertEqual(summary.not_found, 2)
        self.assertEqual([result.document_id for result in summary.results], ["EMP0000", "EMP0000"])
        self.assertFalse(self.store.get(f"{MASTER_SHEET}/EMP0000").exists)

    def test_toggle_overtime(self) -> None:
        first = toggle_overtime(self.store, "EMP0007")
        self.assertEqual(first, {"id": "EMP0007", "employee_name": "Ayesha Khan", "has_overtime": True, "overtime": "Yes"})
        second = toggle_overtime(self.store, "EMP0007")
        self.assertFalse(second["has_overtime"])
        self.assertEqual(self.store.get(f"{MASTER_SHEET}/EMP0007").get("overtime"), "No")


if __name__ == "__main__":
    unittest.main()
