from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..errors import success
from ..middleware import get_current_principal, require_roles
from ..models import STAFF_ROLES, StudentStatus, UserRole
from ..schemas import (
    AssignmentOut,
    AttendanceOut,
    FeeOut,
    ProgressOut,
    StudentCreateRequest,
    StudentOut,
    StudentUpdateRequest,
)
from ..scope import Principal
from ..services import students

router = APIRouter(tags=["Students"])

admins_only = require_roles(UserRole.SUPER_ADMIN, UserRole.CENTER_ADMIN)
student_only = require_roles(UserRole.STUDENT)
parent_only = require_roles(UserRole.PARENT)


@router.get("/students")
def list_students(
    center_id: int | None = Query(default=None),
    status_filter: StudentStatus | None = Query(default=None, alias="status"),
    teacher_id: int | None = Query(default=None),
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(require_roles(*STAFF_ROLES)),
):
    rows = students.list_students(db, principal, center_id=center_id, status=status_filter, teacher_id=teacher_id)
    return success([StudentOut.model_validate(student) for student in rows], "Students retrieved successfully.")


@router.post("/students", status_code=status.HTTP_201_CREATED)
def create_student(
    payload: StudentCreateRequest,
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(admins_only),
):
    student = students.create_student(db, principal, payload)
    return success(StudentOut.model_validate(student), "Student created successfully.", status.HTTP_201_CREATED)


@router.get("/students/me/assignments")
def my_assignments(db: Session = Depends(get_db_session), principal: Principal = Depends(student_only)):
    rows = students.my_assignments(db, principal)
    return success([AssignmentOut.model_validate(row) for row in rows], "Assignments retrieved successfully.")


@router.get("/students/me/dashboard")
def my_dashboard(db: Session = Depends(get_db_session), principal: Principal = Depends(student_only)):
    return success(students.my_dashboard(db, principal), "Dashboard retrieved successfully.")


@router.get("/students/{student_id}")
def show_student(
    student_id: int, db: Session = Depends(get_db_session), principal: Principal = Depends(get_current_principal)
):
    student = students.get_visible_student(db, principal, student_id)
    return success(StudentOut.model_validate(student), "Student retrieved successfully.")


@router.put("/students/{student_id}")
def update_student(
    student_id: int,
    payload: StudentUpdateRequest,
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(require_roles(*STAFF_ROLES)),
):
    student = students.update_student(db, principal, student_id, payload)
    return success(StudentOut.model_validate(student), "Student updated successfully.")


@router.delete("/students/{student_id}")
def delete_student(student_id: int, db: Session = Depends(get_db_session), principal: Principal = Depends(admins_only)):
    students.delete_student(db, principal, student_id)
    return success(message="Student deleted successfully.")


@router.get("/students/{student_id}/progress")
def student_progress(
    student_id: int, db: Session = Depends(get_db_session), principal: Principal = Depends(get_current_principal)
):
    rows = students.student_progress(db, principal, student_id)
    return success([ProgressOut.model_validate(row) for row in rows], "Progress retrieved successfully.")


@router.get("/students/{student_id}/assignments")
def student_assignments(
    student_id: int, db: Session = Depends(get_db_session), principal: Principal = Depends(get_current_principal)
):
    rows = students.student_assignments(db, principal, student_id)
    return success([AssignmentOut.model_validate(row) for row in rows], "Assignments retrieved successfully.")


@router.get("/students/{student_id}/attendance")
def student_attendance(
    student_id: int, db: Session = Depends(get_db_session), principal: Principal = Depends(get_current_principal)
):
    rows = students.student_attendance(db, principal, student_id)
    return success([AttendanceOut.model_validate(row) for row in rows], "Attendance retrieved successfully.")


@router.get("/students/{student_id}/fees")
def student_fees(
    student_id: int, db: Session = Depends(get_db_session), principal: Principal = Depends(get_current_principal)
):
    rows = students.student_fees(db, principal, student_id)
    return success([FeeOut.model_validate(row) for row in rows], "Fees retrieved successfully.")


@router.get("/students/{student_id}/report")
def student_report(
    student_id: int, db: Session = Depends(get_db_session), principal: Principal = Depends(get_current_principal)
):
    return success(students.student_report(db, principal, student_id), "Student report retrieved successfully.")


@router.get("/parent/children-reports")
def children_reports(db: Session = Depends(get_db_session), principal: Principal = Depends(parent_only)):
    return success(students.children_reports(db, principal), "Children reports retrieved successfully.")


@router.get("/parent/children-fees")
def children_fees(db: Session = Depends(get_db_session), principal: Principal = Depends(parent_only)):
    rows = students.children_fees(db, principal)
    return success([FeeOut.model_validate(row) for row in rows], "Children fees retrieved successfully.")


@router.get("/parent/children-attendance")
def children_attendance(db: Session = Depends(get_db_session), principal: Principal = Depends(parent_only)):
    rows = students.children_attendance(db, principal)
    return success([AttendanceOut.model_validate(row) for row in rows], "Children attendance retrieved successfully.")


@router.get("/parent/children-assignments")
def children_assignments(db: Session = Depends(get_db_session), principal: Principal = Depends(parent_only)):
    rows = students.children_assignments(db, principal)
    return success([AssignmentOut.model_validate(row) for row in rows], "Children assignments retrieved successfully.")
