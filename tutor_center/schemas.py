from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .models import (
    AssignmentStatus,
    AttendanceStatus,
    FeeStatus,
    StudentStatus,
    SubmissionStatus,
    UserRole,
)


class OrmModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ---- auth & users ----


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=6)
    password_confirmation: str
    role: Literal["super_admin", "center_admin", "parent"]
    phone: str | None = Field(default=None, max_length=20)
    address: str | None = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def _passwords_match(self):
        if self.password != self.password_confirmation:
            raise ValueError("The password confirmation does not match.")
        return self


class LoginRequest(BaseModel):
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=1)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)
    new_password_confirmation: str

    @model_validator(mode="after")
    def _passwords_match(self):
        if self.new_password != self.new_password_confirmation:
            raise ValueError("The new password confirmation does not match.")
        return self


class UserOut(OrmModel):
    id: int
    name: str
    email: str
    role: UserRole
    phone: str | None = None
    address: str | None = None
    profile_photo_path: str | None = None
    is_active: bool


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class UserStatusOut(BaseModel):
    id: int
    is_active: bool


# ---- centers ----


class CenterCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=150)
    admin_id: int | None = None
    address: str | None = None
    city: str | None = Field(default=None, max_length=100)
    phone: str | None = Field(default=None, max_length=20)
    is_active: bool = True


class CenterUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=150)
    admin_id: int | None = None
    address: str | None = None
    city: str | None = Field(default=None, max_length=100)
    phone: str | None = Field(default=None, max_length=20)
    is_active: bool | None = None


class CenterOut(OrmModel):
    id: int
    name: str
    address: str | None = None
    city: str | None = None
    phone: str | None = None
    admin_id: int | None = None
    is_active: bool


class CenterStatsOut(BaseModel):
    total_centers: int
    total_students: int
    total_teachers: int
    total_revenue: float


# ---- teachers ----


class TeacherCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=6)
    center_id: int
    employee_id: str | None = Field(default=None, max_length=50)
    qualification: str | None = Field(default=None, max_length=150)
    join_date: date | None = None
    phone: str | None = Field(default=None, max_length=20)
    address: str | None = Field(default=None, max_length=255)


class TeacherUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    center_id: int | None = None
    employee_id: str | None = Field(default=None, max_length=50)
    qualification: str | None = Field(default=None, max_length=150)
    join_date: date | None = None
    phone: str | None = Field(default=None, max_length=20)
    address: str | None = Field(default=None, max_length=255)


class TeacherOut(BaseModel):
    user_id: int
    name: str
    email: str
    center_id: int
    employee_id: str | None = None
    qualification: str | None = None
    join_date: date | None = None
    phone: str | None = None
    is_active: bool


class AssignStudentsRequest(BaseModel):
    teacher_user_id: int
    student_ids: list[int] = Field(min_length=1)


class UnassignStudentsRequest(BaseModel):
    student_ids: list[int] = Field(min_length=1)


# ---- students ----


class StudentCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=6)
    center_id: int
    parent_id: int | None = None
    teacher_id: int | None = None
    enrollment_no: str | None = Field(default=None, max_length=50)
    date_of_birth: date | None = None
    grade: str | None = Field(default=None, max_length=20)
    enrollment_date: date | None = None
    subjects: list[str] | None = None
    current_level: str | None = Field(default=None, max_length=20)
    monthly_fee: float = Field(default=0, ge=0)
    address: str | None = Field(default=None, max_length=255)


class StudentUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    center_id: int | None = None
    parent_id: int | None = None
    teacher_id: int | None = None
    enrollment_no: str | None = Field(default=None, max_length=50)
    date_of_birth: date | None = None
    grade: str | None = Field(default=None, max_length=20)
    enrollment_date: date | None = None
    subjects: list[str] | None = None
    current_level: str | None = Field(default=None, max_length=20)
    monthly_fee: float | None = Field(default=None, ge=0)
    status: StudentStatus | None = None
    address: str | None = Field(default=None, max_length=255)


class StudentOut(OrmModel):
    id: int
    user_id: int
    center_id: int
    parent_id: int | None = None
    teacher_id: int | None = None
    enrollment_no: str | None = None
    date_of_birth: date | None = None
    grade: str | None = None
    enrollment_date: date | None = None
    subjects: list[str] | None = None
    current_level: str | None = None
    monthly_fee: float
    status: StudentStatus
    user: UserOut


# ---- curriculum ----


class SubjectCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    is_active: bool = True


class SubjectUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    is_active: bool | None = None


class LevelCreateRequest(BaseModel):
    subject_id: int
    name: str = Field(min_length=1, max_length=50)
    order_index: int
    description: str | None = None


class LevelUpdateRequest(BaseModel):
    subject_id: int | None = None
    name: str | None = Field(default=None, min_length=1, max_length=50)
    order_index: int | None = None
    description: str | None = None


class LevelOut(OrmModel):
    id: int
    subject_id: int
    name: str
    order_index: int
    description: str | None = None


class SubjectOut(OrmModel):
    id: int
    name: str
    description: str | None = None
    is_active: bool


class SubjectDetailOut(SubjectOut):
    levels: list[LevelOut] = []


class WorksheetOut(OrmModel):
    id: int
    subject_id: int
    level_id: int
    title: str
    worksheet_no: str | None = None
    description: str | None = None
    file_path: str | None = None
    total_marks: int
    time_limit_minutes: int | None = None
    created_by: int | None = None


# ---- assignments & submissions ----


class AssignmentCreateRequest(BaseModel):
    worksheet_id: int
    student_ids: list[int] = Field(min_length=1)
    due_date: date | None = None
    notes: str | None = None


class AssignmentUpdateRequest(BaseModel):
    due_date: date | None = None
    notes: str | None = None
    status: AssignmentStatus | None = None


class SubmissionOut(OrmModel):
    id: int
    assignment_id: int
    student_id: int
    submitted_file: str | None = None
    submitted_at: datetime | None = None
    score: float | None = None
    time_taken_min: int | None = None
    error_count: int
    teacher_feedback: str | None = None
    graded_by: int | None = None
    graded_at: datetime | None = None
    status: SubmissionStatus


class AssignmentOut(OrmModel):
    id: int
    student_id: int
    worksheet_id: int
    teacher_id: int | None = None
    assigned_date: date
    due_date: date | None = None
    status: AssignmentStatus
    notes: str | None = None
    worksheet: WorksheetOut | None = None
    submission: SubmissionOut | None = None


class GradeRequest(BaseModel):
    score: float = Field(ge=0, le=100)
    error_count: int = Field(default=0, ge=0)
    teacher_feedback: str | None = None


# ---- attendance ----


class AttendanceEntry(BaseModel):
    student_id: int
    status: AttendanceStatus
    notes: str | None = Field(default=None, max_length=255)


class BulkAttendanceRequest(BaseModel):
    date: date
    attendance: list[AttendanceEntry] = Field(min_length=1)


class AttendanceUpdateRequest(BaseModel):
    status: AttendanceStatus
    notes: str | None = Field(default=None, max_length=255)


class AttendanceOut(OrmModel):
    id: int
    student_id: int
    center_id: int
    date: date
    status: AttendanceStatus
    marked_by: int | None = None
    notes: str | None = None


class StatusCount(BaseModel):
    status: str
    count: int


class AttendanceSummaryOut(BaseModel):
    month: str
    center_id: int | None = None
    counts: list[StatusCount]
    attendance_rate: float


# ---- fees ----


class GenerateFeesRequest(BaseModel):
    month: str = Field(pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    center_id: int | None = None
    due_date: date | None = None


class MarkPaidRequest(BaseModel):
    payment_method: str = Field(min_length=1, max_length=50)
    transaction_id: str | None = Field(default=None, max_length=100)
    paid_date: date | None = None


class FeeOut(OrmModel):
    id: int
    student_id: int
    center_id: int
    month: str
    amount: float
    due_date: date | None = None
    paid_date: date | None = None
    status: FeeStatus
    payment_method: str | None = None
    transaction_id: str | None = None


class FeeStatusTotal(BaseModel):
    status: str
    count: int
    total_amount: float


class FeeSummaryOut(BaseModel):
    center_id: int | None = None
    by_status: list[FeeStatusTotal]
    fee_collection_rate: float


class MonthlyFeeCollection(BaseModel):
    month: str
    total_expected: float
    total_collected: float
    total_records: int
    collection_rate: float


# ---- progress & reports ----


class ProgressOut(OrmModel):
    id: int
    student_id: int
    subject_id: int
    level_id: int
    worksheets_completed: int
    average_score: float
    average_time: float
    level_started_at: date | None = None
    level_completed_at: date | None = None
    is_level_complete: bool


class SuperAdminKpis(BaseModel):
    total_centers: int
    total_active_students: int
    total_teachers: int
    revenue_this_month: float


class CenterAdminKpis(BaseModel):
    total_students: int
    total_teachers: int
    unpaid_fees: int
    today_attendance: int


class TeacherKpis(BaseModel):
    my_students: int
    pending_grades: int
    avg_student_score: float


class ParentKpis(BaseModel):
    children_count: int
    pending_fees: int
    avg_progress: float


class StudentKpis(BaseModel):
    assignments_pending: int
    current_level: str | None = None
    last_score: float


class DashboardOut(BaseModel):
    role: UserRole
    stats: SuperAdminKpis | CenterAdminKpis | TeacherKpis | ParentKpis | StudentKpis


class CenterPerformanceOut(BaseModel):
    center_id: int | None = None
    total_students: int
    fee_collection_rate: float
    submission_rate: float
    attendance_rate: float


class TeacherPerformanceOut(BaseModel):
    user_id: int
    name: str
    center_id: int
    graded_count: int
    student_count: int


class LevelProgressionOut(BaseModel):
    level_id: int
    level_name: str
    subject_name: str
    student_count: int
    avg_score: float


class NotificationOut(OrmModel):
    id: int
    title: str
    message: str
    type: str | None = None
    is_read: bool
    data: dict[str, Any] | None = None
    created_at: datetime
