from __future__ import annotations

import unittest

from attendance_admin.errors import ApiError
from attendance_admin.services.line_managers import (
    create_line_manager,
    delete_line_manager,
    list_line_managers,
    list_team_members,
    to_line_manager_read,
)
from attendance_admin.services.master_sheet import import_master_sheet_rows
from attendance_admin.services.reconciliation import RowOutcome
from attendance_admin.store import InMemoryDocumentStore

MASTER_SHEET = "MasterSheet/Employee-Data/employees"


class LineManagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryDocumentStore()
        import_master_sheet_rows(
            self.store,
            [
                {"EmployeeNumber": "1", "Employee Name": "Fatima Manager", "Designation": "Supervisor"},
                {"EmployeeNumber": "2", "Employee Name": "Omar Ali", "Designation": "Driver"},
                {"EmployeeNumber": "3", "Employee Name": "Sara Noor"},
            ],
        )

    def _member(self, document_id: str) -> dict:
        return self.store.get(f"{MASTER_SHEET}/{document_id}").to_dict()

    def test_create_fans_out_back_references(self) -> None:
        with self.assertLogs("attendance_admin.reconciliation", level="ERROR"):
            created = create_line_manager(
                self.store,
                manager_id="EMP0001",
                department=" Operations ",
                team_members="2, EMP0003 ,,42",
            )

        manager = created.line_manager.to_dict()
        self.assertEqual(manager["managerId"], "EMP0001")
        self.assertEqual(manager["managerEmployeeNumber"], "0001")
        self.assertEqual(manager["managerName"], "Fatima Manager")
        self.assertEqual(manager["department"], "Operations")
        self.assertEqual(manager["teamMembers"], ["2", "EMP0003", "42"])

        summary = created.team_assignment
        self.assertEqual(summary.updated, 2)
        self.assertEqual(summary.errors, 1)
        self.assertEqual(summary.results[2].key, "42")

        omar = self._member("EMP0002")
        self.assertEqual(omar["lineManagerId"], "EMP0001")
        self.assertEqual(omar["lineManagerName"], "Fatima Manager")
        self.assertEqual(omar["lineManagerDepartment"], "Operations")
        self.assertEqual(self._member("EMP0003")["lineManagerId"], "EMP0001")
        self.assertFalse(self.store.get(f"{MASTER_SHEET}/EMP0042").exists)

    def test_manager_must_exist(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            create_line_manager(self.store, manager_id="EMP0099", department="Ops", team_members="2")
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(list_line_managers(self.store), [])
        self.assertNotIn("lineManagerId", self._member("EMP0002"))

    def test_team_listing_marks_missing_members(self) -> None:
        with self.assertLogs("attendance_admin.reconciliation", level="ERROR"):
            created = create_line_manager(self.store, manager_id="EMP0001", department="Ops", team_members=["2", "42"])

        team = list_team_members(self.store, created.line_manager.id)
        self.assertEqual([(item.document_id, item.found) for item in team], [("EMP0002", True), ("EMP0042", False)])
        self.assertEqual(team[0].employee_name, "Omar Ali")
        self.assertEqual(team[0].designation, "Driver")

        read = to_line_manager_read(created.line_manager)
        self.assertEqual(read.team_count, 2)

    def test_team_member_without_designation(self) -> None:
        created = create_line_manager(self.store, manager_id="EMP0001", department="Ops", team_members="3")
        team = list_team_members(self.store, created.line_manager.id)
        self.assertEqual(team[0].designation, "N/A")

    def test_delete_reverses_only_current_back_references(self) -> None:
        with self.assertLogs("attendance_admin.reconciliation", level="ERROR"):
            created = create_line_manager(self.store, manager_id="EMP0001", department="Ops", team_members="2,3,42")
        self.store.update(f"{MASTER_SHEET}/EMP0003", {"lineManagerId": "EMP0009"})

        summary = delete_line_manager(self.store, created.line_manager.id)

        self.assertEqual([item.outcome for item in summary.results], [
            RowOutcome.UPDATED,
            RowOutcome.SKIPPED,
            RowOutcome.NOT_FOUND,
        ])
        omar = self._member("EMP0002")
        for field in ("lineManagerId", "lineManagerName", "lineManagerDepartment"):
            self.assertNotIn(field, omar)
        self.assertEqual(self._member("EMP0003")["lineManagerId"], "EMP0009")
        self.assertFalse(self.store.get(created.line_manager.path).exists)

    def test_delete_unknown_line_manager(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            delete_line_manager(self.store, "ghost")
        self.assertEqual(ctx.exception.code, "LINE_MANAGER_NOT_FOUND")


if __name__ == "__main__":
    unittest.main()
