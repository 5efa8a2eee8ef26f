from __future__ import annotations

import unittest
from datetime import datetime
from io import BytesIO
from unittest.mock import patch

from fastapi.testclient import TestClient
from openpyxl import Workbook, load_workbook

from attendance_admin.errors import BatchCommitError, DocumentNotFoundError
from attendance_admin.main import app
from attendance_admin.services.push_notifications import PushMessage, get_dispatcher
from attendance_admin.services.spreadsheets import XLSX_MEDIA_TYPE
from attendance_admin.settings import get_attendance_timezone
from attendance_admin.store import InMemoryDocumentStore, get_store

MASTER_SHEET = "MasterSheet/Employee-Data/employees"


class _FakeDispatcher:
    def __init__(self) -> None:
        self.sent: list[PushMessage] = []
        self.subscriptions: list[tuple[object, str]] = []

    def send(self, message: PushMessage) -> bool:
        self.sent.append(message)
        return True

    def subscribe_to_topic(self, token: object, topic: str) -> bool:
        self.subscriptions.append((token, topic))
        return True


def _xlsx(rows: list[list[object]]) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue()


def _upload(content: bytes, filename: str = "upload.xlsx") -> dict:
    return {"file": (filename, content, XLSX_MEDIA_TYPE)}


class AdminEndpointTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryDocumentStore()
        self.dispatcher = _FakeDispatcher()
        app.dependency_overrides[get_store] = lambda: self.store
        app.dependency_overrides[get_dispatcher] = lambda: self.dispatcher
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def _audit_actions(self) -> list[str]:
        return [item.get("action") for item in self.store.query("audit_logs")]

    def _seed_master_sheet(self) -> None:
        response = self.client.post(
            "/api/admin/master-sheet/import",
            files=_upload(
                _xlsx(
                    [
                        ["EmployeeNumber", "Employee Name", "Designation", "Salary"],
                        [1, "Fatima Manager", "Supervisor", 15000],
                        [2, "Omar Ali", "Driver", "4,500"],
                        [3, "Sara Noor", "Technician", 5200],
                    ]
                )
            ),
        )
        self.assertEqual(response.status_code, 200)


class EmployeeEndpointTests(AdminEndpointTestCase):
    def test_create_list_delete(self) -> None:
        payload = {"pin": "1234", "name": "Ayesha", "designation": "Technician", "department": "Ops"}
        created = self.client.post("/api/admin/employees", json=payload, headers={"X-Actor": "hr-admin"})
        self.assertEqual(created.status_code, 201)
        body = created.json()
        self.assertEqual(body["status"], "Pending")
        self.assertTrue(created.headers["X-Request-Id"])

        duplicate = self.client.post("/api/admin/employees", json=payload)
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.json()["error"]["code"], "PIN_IN_USE")

        listing = self.client.get("/api/admin/employees")
        self.assertEqual([item["id"] for item in listing.json()], [body["id"]])

        deleted = self.client.delete(f"/api/admin/employees/{body['id']}")
        self.assertEqual(deleted.json(), {"ok": True, "id": body["id"]})
        self.assertEqual(self.client.delete(f"/api/admin/employees/{body['id']}").status_code, 404)

        audit = self.store.query("audit_logs")
        self.assertEqual(self._audit_actions(), ["EMPLOYEE_CREATED", "EMPLOYEE_DELETED"])
        self.assertEqual(audit[0].get("actorId"), "hr-admin")

    def test_missing_required_field(self) -> None:
        response = self.client.post("/api/admin/employees", json={"pin": "1234", "name": "Ayesha"})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_import_workbook(self) -> None:
        content = _xlsx(
            [
                ["PIN", "Name", "Designation", "Department", "Birthdate"],
                [1111, "Ayesha", "Technician", "Ops", datetime(1990, 5, 17)],
                [1111, "Duplicate", "Technician", "Ops", None],
                [2222, "Omar", "Driver", "Logistics", None],
            ]
        )
        response = self.client.post("/api/admin/employees/import", files=_upload(content))
        self.assertEqual(response.status_code, 200)
        summary = response.json()
        self.assertEqual(summary["kind"], "employee")
        self.assertEqual(summary["inserted"], 2)
        self.assertEqual(summary["duplicates"], 1)
        self.assertEqual([item["outcome"] for item in summary["results"]], ["inserted", "rejected_duplicate", "inserted"])
        self.assertEqual(self._audit_actions(), ["EMPLOYEES_IMPORTED"])

        birthdates = {item["name"]: item["birthdate"] for item in self.client.get("/api/admin/employees").json()}
        self.assertEqual(birthdates["Ayesha"], "1990-05-17")

    def test_empty_and_invalid_uploads(self) -> None:
        empty = self.client.post("/api/admin/employees/import", files=_upload(b""))
        self.assertEqual(empty.status_code, 422)
        self.assertEqual(empty.json()["error"]["code"], "EMPTY_UPLOAD")

        invalid = self.client.post("/api/admin/employees/import", files=_upload(b"PIN,Name\n1,A\n", "employees.csv"))
        self.assertEqual(invalid.status_code, 422)
        self.assertEqual(invalid.json()["error"]["code"], "INVALID_WORKBOOK")

    def test_template_download(self) -> None:
        response = self.client.get("/api/admin/employees/template.xlsx")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["content-type"], XLSX_MEDIA_TYPE)
        self.assertIn("employee_template.xlsx", response.headers["content-disposition"])
        ws = load_workbook(BytesIO(response.content)).active
        self.assertEqual(ws["A1"].value, "PIN")


class MasterSheetEndpointTests(AdminEndpointTestCase):
    def test_import_is_idempotent_and_listing_is_ordered(self) -> None:
        self._seed_master_sheet()
        again = self.client.post(
            "/api/admin/master-sheet/import",
            files=_upload(_xlsx([["EmployeeNumber", "Employee Name"], ["0002", "Omar Ali"]])),
        )
        self.assertEqual(again.json()["duplicates"], 1)

        listing = self.client.get("/api/admin/master-sheet").json()
        self.assertEqual([item["id"] for item in listing], ["EMP0001", "EMP0002", "EMP0003"])
        self.assertEqual(listing[1]["salary"], 4500.0)

    def test_overtime_toggle_bulk_and_import(self) -> None:
        self._seed_master_sheet()

        toggled = self.client.post("/api/admin/master-sheet/EMP0001/overtime/toggle")
        self.assertEqual(toggled.json()["overtime"], "Yes")
        self.assertEqual(self.client.post("/api/admin/master-sheet/EMP0404/overtime/toggle").status_code, 404)

        bulk = self.client.post("/api/admin/master-sheet/overtime/bulk", json={"employee_ids": ["EMP0002", "EMP0003"]})
        self.assertEqual(bulk.json(), {"ok": True, "updated": 2})

        failed = self.client.post("/api/admin/master-sheet/overtime/bulk", json={"employee_ids": ["EMP0001", "EMP0404"]})
        self.assertEqual(failed.status_code, 409)
        self.assertEqual(failed.json()["error"]["code"], "OVERTIME_BATCH_FAILED")

        empty = self.client.post("/api/admin/master-sheet/overtime/bulk", json={"employee_ids": []})
        self.assertEqual(empty.status_code, 422)

        imported = self.client.post(
            "/api/admin/master-sheet/overtime/import",
            files=_upload(_xlsx([["Employee Number", "Employee Name", "Overtime"], ["emp1", "Fatima", "Weekend"], [77, "Ghost", "Yes"]])),
        )
        summary = imported.json()
        self.assertEqual(summary["updated"], 1)
        self.assertEqual(summary["not_found"], 1)
        self.assertEqual(self.store.get(f"{MASTER_SHEET}/EMP0001").get("overtime"), "Weekend")

    def test_store_errors_map_to_error_payloads(self) -> None:
        with patch("attendance_admin.routers.admin.toggle_overtime", side_effect=DocumentNotFoundError(f"{MASTER_SHEET}/EMP0001")):
            missing = self.client.post("/api/admin/master-sheet/EMP0001/overtime/toggle")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["error"]["code"], "DOCUMENT_NOT_FOUND")

        with patch("attendance_admin.routers.admin.mark_selected_for_overtime", side_effect=BatchCommitError("rolled back")):
            failed = self.client.post("/api/admin/master-sheet/overtime/bulk", json={"employee_ids": ["EMP0001"]})
        self.assertEqual(failed.status_code, 409)
        self.assertEqual(failed.json()["error"]["code"], "BATCH_COMMIT_FAILED")

    def test_templates_and_delete(self) -> None:
        self._seed_master_sheet()
        for path, filename in (
            ("/api/admin/master-sheet/template.xlsx", "mastersheet_employee_template.xlsx"),
            ("/api/admin/master-sheet/overtime/template.xlsx", "overtime_template.xlsx"),
        ):
            with self.subTest(path=path):
                response = self.client.get(path)
                self.assertEqual(response.status_code, 200)
                self.assertIn(filename, response.headers["content-disposition"])

        self.assertEqual(self.client.delete("/api/admin/master-sheet/EMP0003").json()["id"], "EMP0003")
        self.assertFalse(self.store.get(f"{MASTER_SHEET}/EMP0003").exists)


class LineManagerEndpointTests(AdminEndpointTestCase):
    def test_create_view_notify_delete(self) -> None:
        self._seed_master_sheet()
        self.store.set("fcm_tokens/EMP0001", {"token": "manager-token"})

        created = self.client.post(
            "/api/admin/line-managers",
            json={"manager_id": "EMP0001", "department": "Operations", "team_members": "2, 3, 42"},
        )
        self.assertEqual(created.status_code, 201)
        body = created.json()
        self.assertEqual(body["line_manager"]["manager_name"], "Fatima Manager")
        self.assertEqual(body["line_manager"]["team_count"], 3)
        self.assertEqual(body["team_assignment"]["updated"], 2)
        self.assertEqual(body["team_assignment"]["errors"], 1)
        self.assertTrue(body["topic_subscribed"])
        self.assertEqual(self.dispatcher.subscriptions, [("manager-token", "manager_EMP0001")])

        line_manager_id = body["line_manager"]["id"]
        team = self.client.get(f"/api/admin/line-managers/{line_manager_id}/team").json()
        self.assertEqual([item["found"] for item in team], [True, True, False])

        listing = self.client.get("/api/admin/line-managers").json()
        self.assertEqual([item["id"] for item in listing], [line_manager_id])

        notified = self.client.post(
            f"/api/admin/line-managers/{line_manager_id}/notify",
            json={"title": "Shift change", "body": "Tomorrow starts at 7"},
        )
        self.assertEqual(notified.json(), {"topic": "manager_EMP0001", "total_targets": 0, "sent": 0, "failed": 0})

        deleted = self.client.delete(f"/api/admin/line-managers/{line_manager_id}")
        self.assertEqual(deleted.json()["updated"], 2)
        self.assertEqual(deleted.json()["not_found"], 1)
        self.assertNotIn("lineManagerId", self.store.get(f"{MASTER_SHEET}/EMP0002").to_dict())
        self.assertIn("LINE_MANAGER_DELETED", self._audit_actions())

    def test_unknown_manager(self) -> None:
        response = self.client.post(
            "/api/admin/line-managers",
            json={"manager_id": "EMP0404", "department": "Ops", "team_members": ["2"]},
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "MANAGER_NOT_FOUND")


class AttendanceEndpointTests(AdminEndpointTestCase):
    def setUp(self) -> None:
        super().setUp()
        tz = get_attendance_timezone()
        self.store.set("employees/e1", {"name": "Ayesha"})
        self.store.set(
            "employees/e1/attendance/2024-03-01",
            {
                "date": "2024-03-01",
                "checkIn": datetime(2024, 3, 1, 9, 0, tzinfo=tz),
                "checkOut": datetime(2024, 3, 1, 17, 30, tzinfo=tz),
                "workStatus": "Completed",
                "location": "HQ",
            },
        )
        self.store.set("employees/e1/attendance/2024-03-02", {"date": "2024-03-02", "totalHours": 4.5})

    def test_listing(self) -> None:
        rows = self.client.get("/api/admin/attendance").json()
        self.assertEqual([row["date"] for row in rows], ["2024-03-02", "2024-03-01"])
        self.assertEqual(rows[0]["check_in"], "Not checked in")
        self.assertEqual(rows[0]["total_hours"], "4:30")
        self.assertEqual(rows[1]["check_in"], "09:00 AM")
        self.assertEqual(rows[1]["total_hours"], "8:30")

        filtered = self.client.get("/api/admin/attendance", params={"employee_id": "e1", "date": "2024-03-01"}).json()
        self.assertEqual(len(filtered), 1)
        self.assertEqual(self.client.get("/api/admin/attendance", params={"employee_id": "ghost"}).status_code, 404)

    def test_export(self) -> None:
        response = self.client.get("/api/admin/attendance/export.xlsx", params={"date": "2024-03-01"})
        self.assertEqual(response.status_code, 200)
        self.assertIn("attendance-2024-03-01.xlsx", response.headers["content-disposition"])
        ws = load_workbook(BytesIO(response.content)).active
        self.assertEqual(ws.max_row, 2)
        self.assertEqual(ws["A2"].value, "Ayesha")


class HealthTests(unittest.TestCase):
    def test_health(self) -> None:
        response = TestClient(app).get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")


if __name__ == "__main__":
    unittest.main()
