from typing import Any

from pydantic import BaseModel, Field

from attendance_admin.models import WorkStatus


class EmployeeCreate(BaseModel):
    pin: str
    name: str
    designation: str
    department: str
    email: str = ""
    phone: str = ""
    country: str = ""
    birthdate: str = ""


class EmployeeRead(BaseModel):
    id: str
    pin: str | None = None
    name: str | None = None
    designation: str | None = None
    department: str | None = None
    email: str | None = None
    phone: str | None = None
    country: str | None = None
    birthdate: str | None = None
    registration_completed: bool = False
    status: str


class MasterSheetEmployeeRead(BaseModel):
    id: str
    employee_number: str | None = None
    employee_name: str | None = None
    designation: str | None = None
    salary: float = 0.0
    has_overtime: bool = False
    overtime: str | None = None
    created_by: str | None = None
    created_on: Any = None
    line_manager_id: str | None = None
    line_manager_name: str | None = None
    line_manager_department: str | None = None


class AttendanceRowRead(BaseModel):
    employee_id: str
    employee_name: str
    date: str | None = None
    check_in: Any
    check_out: Any
    total_hours: str
    work_status: str = WorkStatus.PENDING.value
    location: str


class RowResultRead(BaseModel):
    row_number: int
    outcome: str
    key: str | None = None
    document_id: str | None = None
    error: str | None = None


class ImportSummaryRead(BaseModel):
    kind: str
    total: int
    success: int
    inserted: int
    updated: int
    duplicates: int
    not_found: int
    skipped: int
    errors: int
    results: list[RowResultRead]


class OvertimeToggleResponse(BaseModel):
    id: str
    employee_name: str | None = None
    has_overtime: bool
    overtime: str


class OvertimeBulkRequest(BaseModel):
    employee_ids: list[str] = Field(min_length=1)


class OvertimeBulkResponse(BaseModel):
    ok: bool
    updated: int


class LineManagerCreate(BaseModel):
    manager_id: str = Field(min_length=1)
    department: str = ""
    team_members: str | list[str] = ""


class LineManagerRead(BaseModel):
    id: str
    manager_id: str | None = None
    manager_employee_number: str | None = None
    manager_name: str | None = None
    department: str | None = None
    team_members: list[str] = Field(default_factory=list)
    team_count: int = 0


class LineManagerCreateResponse(BaseModel):
    line_manager: LineManagerRead
    team_assignment: ImportSummaryRead
    topic_subscribed: bool | None = None


class TeamMemberRead(BaseModel):
    member_number: str
    document_id: str
    found: bool
    employee_number: str | None = None
    employee_name: str | None = None
    designation: str | None = None


class DeleteResponse(BaseModel):
    ok: bool
    id: str


class CheckRequestUpdatedEvent(BaseModel):
    before: dict[str, Any]
    after: dict[str, Any]


class DocumentCreatedEvent(BaseModel):
    data: dict[str, Any]


class TriggerResponse(BaseModel):
    handled: bool
    delivered: bool | None = None


class PushTokenRequest(BaseModel):
    user_id: str = ""
    token: Any = None


class PushTokenResponse(BaseModel):
    success: bool


class TopicNotifyRequest(BaseModel):
    title: str = Field(min_length=1)
    body: str = ""
    data: dict[str, str] = Field(default_factory=dict)


class TopicNotifyResponse(BaseModel):
    topic: str
    total_targets: int
    sent: int
    failed: int
