from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from attendance_admin.errors import ApiError
from attendance_admin.models import LINE_MANAGERS_COLLECTION
from attendance_admin.schemas import LineManagerRead, TeamMemberRead
from attendance_admin.services.identifiers import as_text, split_team_members, to_master_sheet_id
from attendance_admin.services.master_sheet import master_sheet_path
from attendance_admin.services.reconciliation import (
    ImportSummary,
    RowOutcome,
    RowResult,
    reconcile_rows,
)
from attendance_admin.store import DELETE_FIELD, SERVER_TIMESTAMP, DocumentSnapshot, DocumentStore, join_path

logger = logging.getLogger("attendance_admin.line_managers")

BACK_REFERENCE_FIELDS = ("lineManagerId", "lineManagerName", "lineManagerDepartment")


@dataclass(frozen=True)
class LineManagerCreation:
    line_manager: DocumentSnapshot
    team_assignment: ImportSummary


def line_manager_path(line_manager_id: str) -> str:
    return join_path(LINE_MANAGERS_COLLECTION, line_manager_id)


def assign_team_members(
    store: DocumentStore,
    *,
    manager_id: str,
    manager_name: str,
    department: str,
    team_members: Iterable[str],
) -> ImportSummary:
    def handle(row_number: int, member_number: str) -> RowResult:
        document_id = to_master_sheet_id(member_number)
        # update() fails for unknown members; that failure stays with this token
        store.update(
            master_sheet_path(document_id),
            {
                "lineManagerId": manager_id,
                "lineManagerName": manager_name,
                "lineManagerDepartment": department,
            },
        )
        return RowResult(
            row_number=row_number,
            outcome=RowOutcome.UPDATED,
            key=member_number,
            document_id=document_id,
        )

    return reconcile_rows("team_assignment", team_members, handle)


def create_line_manager(
    store: DocumentStore,
    *,
    manager_id: str,
    department: str,
    team_members: str | Sequence[str],
) -> LineManagerCreation:
    manager_id = manager_id.strip()
    if not manager_id:
        raise ApiError(status_code=422, code="VALIDATION_ERROR", message="Manager is required.")

    manager = store.get(master_sheet_path(manager_id))
    if not manager.exists:
        raise ApiError(
            status_code=404,
            code="MANAGER_NOT_FOUND",
            message="Selected manager not found in MasterSheet.",
        )

    members = split_team_members(team_members)
    manager_name = as_text(manager.get("employeeName"))
    department = department.strip()
    line_manager_id = store.add(
        LINE_MANAGERS_COLLECTION,
        {
            "managerId": manager_id,
            "managerEmployeeNumber": as_text(manager.get("employeeNumber")),
            "managerName": manager_name,
            "department": department,
            "teamMembers": members,
            "createdAt": SERVER_TIMESTAMP,
        },
    )
    summary = assign_team_members(
        store,
        manager_id=manager_id,
        manager_name=manager_name,
        department=department,
        team_members=members,
    )
    logger.info(
        "line_manager_created",
        extra={
            "line_manager_id": line_manager_id,
            "manager_id": manager_id,
            "team_size": len(members),
            "team_errors": summary.errors,
        },
    )
    return LineManagerCreation(
        line_manager=store.get(line_manager_path(line_manager_id)),
        team_assignment=summary,
    )


def get_line_manager(store: DocumentStore, line_manager_id: str) -> DocumentSnapshot:
    snapshot = store.get(line_manager_path(line_manager_id))
    if not snapshot.exists:
        raise ApiError(status_code=404, code="LINE_MANAGER_NOT_FOUND", message="Line manager not found.")
    return snapshot


def _team_of(snapshot: DocumentSnapshot) -> list[str]:
    return split_team_members(snapshot.get("teamMembers") or [])


def remove_team_back_references(
    store: DocumentStore,
    *,
    manager_id: str,
    team_members: Iterable[str],
) -> ImportSummary:
    def handle(row_number: int, member_number: str) -> RowResult:
        document_id = to_master_sheet_id(member_number)
        member = store.get(master_sheet_path(document_id))
        if not member.exists:
            return RowResult(
                row_number=row_number,
                outcome=RowOutcome.NOT_FOUND,
                key=member_number,
                document_id=document_id,
            )
        if member.get("lineManagerId") != manager_id:
            # member was reassigned to another manager since
            return RowResult(
                row_number=row_number,
                outcome=RowOutcome.SKIPPED,
                key=member_number,
                document_id=document_id,
            )

        store.update(member.path, {field: DELETE_FIELD for field in BACK_REFERENCE_FIELDS})
        return RowResult(
            row_number=row_number,
            outcome=RowOutcome.UPDATED,
            key=member_number,
            document_id=document_id,
        )

    return reconcile_rows("team_release", team_members, handle)


def delete_line_manager(store: DocumentStore, line_manager_id: str) -> ImportSummary:
    snapshot = get_line_manager(store, line_manager_id)
    summary = remove_team_back_references(
        store,
        manager_id=as_text(snapshot.get("managerId")),
        team_members=_team_of(snapshot),
    )
    store.delete(snapshot.path)
    logger.info(
        "line_manager_deleted",
        extra={"line_manager_id": line_manager_id, "released": summary.updated, "team_errors": summary.errors},
    )
    return summary


def list_line_managers(store: DocumentStore) -> list[DocumentSnapshot]:
    return store.query(LINE_MANAGERS_COLLECTION)


def list_team_members(store: DocumentStore, line_manager_id: str) -> list[TeamMemberRead]:
    snapshot = get_line_manager(store, line_manager_id)
    members: list[TeamMemberRead] = []
    for member_number in _team_of(snapshot):
        document_id = to_master_sheet_id(member_number)
        member = store.get(master_sheet_path(document_id))
        if not member.exists:
            members.append(TeamMemberRead(member_number=member_number, document_id=document_id, found=False))
            continue
        members.append(
            TeamMemberRead(
                member_number=member_number,
                document_id=document_id,
                found=True,
                employee_number=as_text(member.get("employeeNumber")) or None,
                employee_name=member.get("employeeName"),
                designation=member.get("designation") or "N/A",
            )
        )
    return members


def to_line_manager_read(snapshot: DocumentSnapshot) -> LineManagerRead:
    data: dict[str, Any] = snapshot.to_dict()
    team = _team_of(snapshot)
    return LineManagerRead(
        id=snapshot.id,
        manager_id=data.get("managerId"),
        manager_employee_number=as_text(data.get("managerEmployeeNumber")) or None,
        manager_name=data.get("managerName"),
        department=data.get("department"),
        team_members=team,
        team_count=len(team),
    )
