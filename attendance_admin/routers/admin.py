from fastapi import APIRouter, Depends, File, Query, Request, Response, UploadFile, status

from attendance_admin.audit import log_audit
from attendance_admin.errors import ApiError, get_request_id
from attendance_admin.schemas import (
    AttendanceRowRead,
    DeleteResponse,
    EmployeeCreate,
    EmployeeRead,
    ImportSummaryRead,
    LineManagerCreate,
    LineManagerCreateResponse,
    LineManagerRead,
    MasterSheetEmployeeRead,
    OvertimeBulkRequest,
    OvertimeBulkResponse,
    OvertimeToggleResponse,
    TeamMemberRead,
    TopicNotifyRequest,
    TopicNotifyResponse,
)
from attendance_admin.services.attendance import list_attendance
from attendance_admin.services.employees import (
    create_employee,
    delete_employee,
    import_employee_rows,
    list_employees,
    to_employee_read,
)
from attendance_admin.services.line_managers import (
    create_line_manager,
    delete_line_manager,
    get_line_manager,
    list_line_managers,
    list_team_members,
    to_line_manager_read,
)
from attendance_admin.services.master_sheet import (
    delete_master_sheet_employee,
    import_master_sheet_rows,
    import_overtime_rows,
    list_master_sheet_employees,
    mark_selected_for_overtime,
    to_master_sheet_read,
    toggle_overtime,
)
from attendance_admin.services.notification_triggers import handle_line_manager_created, manager_topic
from attendance_admin.services.push_notifications import NotificationDispatcher, WebPushDispatcher, get_dispatcher
from attendance_admin.services.reconciliation import ImportSummary
from attendance_admin.services.spreadsheets import (
    XLSX_MEDIA_TYPE,
    build_attendance_xlsx,
    build_employee_template_xlsx,
    build_master_sheet_template_xlsx,
    build_overtime_template_xlsx,
    read_sheet_rows,
)
from attendance_admin.store import DocumentStore, get_store

router = APIRouter(tags=["admin"])


def _actor(request: Request) -> str:
    return str(getattr(request.state, "actor", "system"))


def _xlsx_response(payload: bytes, filename: str) -> Response:
    return Response(
        content=payload,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _read_upload(file: UploadFile) -> list[dict]:
    content = file.file.read()
    if not content:
        raise ApiError(status_code=422, code="EMPTY_UPLOAD", message="Uploaded file is empty.")
    return read_sheet_rows(content)


def _audit_import(store: DocumentStore, request: Request, *, action: str, summary: ImportSummary, filename: str | None) -> None:
    log_audit(
        store,
        actor_id=_actor(request),
        action=action,
        success=summary.errors == 0,
        entity_type="import",
        details={"filename": filename, **summary.counts()},
        request_id=get_request_id(request),
    )


@router.get("/api/admin/attendance", response_model=list[AttendanceRowRead])
def get_attendance(
    employee_id: str | None = Query(default=None),
    day: str | None = Query(default=None, alias="date"),
    store: DocumentStore = Depends(get_store),
) -> list[AttendanceRowRead]:
    rows = list_attendance(store, employee_id=employee_id, day=day)
    return [AttendanceRowRead(**row.to_dict()) for row in rows]


@router.get("/api/admin/attendance/export.xlsx")
def export_attendance_xlsx(
    employee_id: str | None = Query(default=None),
    day: str | None = Query(default=None, alias="date"),
    store: DocumentStore = Depends(get_store),
) -> Response:
    rows = list_attendance(store, employee_id=employee_id, day=day)
    filename_suffix = day or "recent"
    return _xlsx_response(build_attendance_xlsx(rows), f"attendance-{filename_suffix}.xlsx")


@router.get("/api/admin/employees", response_model=list[EmployeeRead])
def get_employees(store: DocumentStore = Depends(get_store)) -> list[EmployeeRead]:
    return [to_employee_read(item) for item in list_employees(store)]


@router.post("/api/admin/employees", response_model=EmployeeRead, status_code=status.HTTP_201_CREATED)
def add_employee(
    payload: EmployeeCreate,
    request: Request,
    store: DocumentStore = Depends(get_store),
) -> EmployeeRead:
    snapshot = create_employee(store, payload)
    log_audit(
        store,
        actor_id=_actor(request),
        action="EMPLOYEE_CREATED",
        success=True,
        entity_type="employee",
        entity_id=snapshot.id,
        request_id=get_request_id(request),
    )
    return to_employee_read(snapshot)


@router.delete("/api/admin/employees/{employee_id}", response_model=DeleteResponse)
def remove_employee(
    employee_id: str,
    request: Request,
    store: DocumentStore = Depends(get_store),
) -> DeleteResponse:
    delete_employee(store, employee_id)
    log_audit(
        store,
        actor_id=_actor(request),
        action="EMPLOYEE_DELETED",
        success=True,
        entity_type="employee",
        entity_id=employee_id,
        request_id=get_request_id(request),
    )
    return DeleteResponse(ok=True, id=employee_id)


@router.post("/api/admin/employees/import", response_model=ImportSummaryRead)
def import_employees(
    request: Request,
    file: UploadFile = File(...),
    store: DocumentStore = Depends(get_store),
) -> ImportSummaryRead:
    summary = import_employee_rows(store, _read_upload(file))
    _audit_import(store, request, action="EMPLOYEES_IMPORTED", summary=summary, filename=file.filename)
    return ImportSummaryRead(**summary.to_dict())


@router.get("/api/admin/employees/template.xlsx")
def download_employee_template() -> Response:
    return _xlsx_response(build_employee_template_xlsx(), "employee_template.xlsx")


@router.get("/api/admin/master-sheet", response_model=list[MasterSheetEmployeeRead])
def get_master_sheet(store: DocumentStore = Depends(get_store)) -> list[MasterSheetEmployeeRead]:
    return [to_master_sheet_read(item) for item in list_master_sheet_employees(store)]


@router.post("/api/admin/master-sheet/import", response_model=ImportSummaryRead)
def import_master_sheet(
    request: Request,
    file: UploadFile = File(...),
    store: DocumentStore = Depends(get_store),
) -> ImportSummaryRead:
    summary = import_master_sheet_rows(store, _read_upload(file))
    _audit_import(store, request, action="MASTER_SHEET_IMPORTED", summary=summary, filename=file.filename)
    return ImportSummaryRead(**summary.to_dict())


@router.get("/api/admin/master-sheet/template.xlsx")
def download_master_sheet_template() -> Response:
    return _xlsx_response(build_master_sheet_template_xlsx(), "mastersheet_employee_template.xlsx")


@router.post("/api/admin/master-sheet/overtime/import", response_model=ImportSummaryRead)
def import_overtime(
    request: Request,
    file: UploadFile = File(...),
    store: DocumentStore = Depends(get_store),
) -> ImportSummaryRead:
    summary = import_overtime_rows(store, _read_upload(file))
    _audit_import(store, request, action="OVERTIME_IMPORTED", summary=summary, filename=file.filename)
    return ImportSummaryRead(**summary.to_dict())


@router.get("/api/admin/master-sheet/overtime/template.xlsx")
def download_overtime_template() -> Response:
    return _xlsx_response(build_overtime_template_xlsx(), "overtime_template.xlsx")


@router.post("/api/admin/master-sheet/overtime/bulk", response_model=OvertimeBulkResponse)
def bulk_mark_overtime(
    payload: OvertimeBulkRequest,
    request: Request,
    store: DocumentStore = Depends(get_store),
) -> OvertimeBulkResponse:
    updated = mark_selected_for_overtime(store, payload.employee_ids)
    log_audit(
        store,
        actor_id=_actor(request),
        action="OVERTIME_BULK_MARKED",
        success=True,
        entity_type="master_sheet_employee",
        details={"employee_ids": payload.employee_ids},
        request_id=get_request_id(request),
    )
    return OvertimeBulkResponse(ok=True, updated=updated)


@router.post("/api/admin/master-sheet/{document_id}/overtime/toggle", response_model=OvertimeToggleResponse)
def toggle_employee_overtime(
    document_id: str,
    store: DocumentStore = Depends(get_store),
) -> OvertimeToggleResponse:
    return OvertimeToggleResponse(**toggle_overtime(store, document_id))


@router.delete("/api/admin/master-sheet/{document_id}", response_model=DeleteResponse)
def remove_master_sheet_employee(
    document_id: str,
    request: Request,
    store: DocumentStore = Depends(get_store),
) -> DeleteResponse:
    delete_master_sheet_employee(store, document_id)
    log_audit(
        store,
        actor_id=_actor(request),
        action="MASTER_SHEET_EMPLOYEE_DELETED",
        success=True,
        entity_type="master_sheet_employee",
        entity_id=document_id,
        request_id=get_request_id(request),
    )
    return DeleteResponse(ok=True, id=document_id)


@router.get("/api/admin/line-managers", response_model=list[LineManagerRead])
def get_line_managers(store: DocumentStore = Depends(get_store)) -> list[LineManagerRead]:
    return [to_line_manager_read(item) for item in list_line_managers(store)]


@router.post(
    "/api/admin/line-managers",
    response_model=LineManagerCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_line_manager(
    payload: LineManagerCreate,
    request: Request,
    store: DocumentStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> LineManagerCreateResponse:
    created = create_line_manager(
        store,
        manager_id=payload.manager_id,
        department=payload.department,
        team_members=payload.team_members,
    )
    topic_subscribed = handle_line_manager_created(store, dispatcher, data=created.line_manager.to_dict())
    log_audit(
        store,
        actor_id=_actor(request),
        action="LINE_MANAGER_CREATED",
        success=created.team_assignment.errors == 0,
        entity_type="line_manager",
        entity_id=created.line_manager.id,
        details=created.team_assignment.counts(),
        request_id=get_request_id(request),
    )
    return LineManagerCreateResponse(
        line_manager=to_line_manager_read(created.line_manager),
        team_assignment=ImportSummaryRead(**created.team_assignment.to_dict()),
        topic_subscribed=topic_subscribed,
    )


@router.get("/api/admin/line-managers/{line_manager_id}/team", response_model=list[TeamMemberRead])
def get_team_members(
    line_manager_id: str,
    store: DocumentStore = Depends(get_store),
) -> list[TeamMemberRead]:
    return list_team_members(store, line_manager_id)


@router.post("/api/admin/line-managers/{line_manager_id}/notify", response_model=TopicNotifyResponse)
def notify_line_manager_topic(
    line_manager_id: str,
    payload: TopicNotifyRequest,
    store: DocumentStore = Depends(get_store),
) -> TopicNotifyResponse:
    manager = get_line_manager(store, line_manager_id)
    result = WebPushDispatcher(store).send_to_topic(
        manager_topic(str(manager.get("managerId") or "")),
        title=payload.title,
        body=payload.body,
        data=payload.data,
    )
    return TopicNotifyResponse(**result)


@router.delete("/api/admin/line-managers/{line_manager_id}", response_model=ImportSummaryRead)
def remove_line_manager(
    line_manager_id: str,
    request: Request,
    store: DocumentStore = Depends(get_store),
) -> ImportSummaryRead:
    summary = delete_line_manager(store, line_manager_id)
    log_audit(
        store,
        actor_id=_actor(request),
        action="LINE_MANAGER_DELETED",
        success=summary.errors == 0,
        entity_type="line_manager",
        entity_id=line_manager_id,
        details=summary.counts(),
        request_id=get_request_id(request),
    )
    return ImportSummaryRead(**summary.to_dict())
