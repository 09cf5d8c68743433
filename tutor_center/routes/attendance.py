from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..errors import success
from ..middleware import require_roles
from ..models import STAFF_ROLES, UserRole
from ..schemas import AttendanceOut, AttendanceUpdateRequest, BulkAttendanceRequest
from ..scope import Principal
from ..services import attendance

router = APIRouter(prefix="/attendance", tags=["Attendance"])

staff_only = require_roles(*STAFF_ROLES)


@router.post("/bulk")
def mark_bulk(
    payload: BulkAttendanceRequest,
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(staff_only),
):
    rows = attendance.mark_bulk(db, principal, payload)
    return success([AttendanceOut.model_validate(row) for row in rows], "Attendance marked successfully.")


@router.get("/today")
def today(
    center_id: int | None = Query(default=None),
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(staff_only),
):
    rows = attendance.today_attendance(db, principal, center_id)
    return success([AttendanceOut.model_validate(row) for row in rows], "Today's attendance retrieved successfully.")


@router.get("/summary")
def summary(
    month: str | None = Query(default=None),
    center_id: int | None = Query(default=None),
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(require_roles(UserRole.SUPER_ADMIN, UserRole.CENTER_ADMIN)),
):
    return success(
        attendance.attendance_summary(db, principal, month=month, center_id=center_id),
        "Attendance summary retrieved successfully.",
    )


@router.get("")
def history(
    student_id: int | None = Query(default=None),
    month: str | None = Query(default=None),
    center_id: int | None = Query(default=None),
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(require_roles(*STAFF_ROLES, UserRole.PARENT)),
):
    rows = attendance.list_attendance(db, principal, student_id=student_id, month=month, center_id=center_id)
    return success([AttendanceOut.model_validate(row) for row in rows], "Attendance retrieved successfully.")


@router.put("/{attendance_id}")
def update(
    attendance_id: int,
    payload: AttendanceUpdateRequest,
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(staff_only),
):
    row = attendance.update_attendance(db, principal, attendance_id, payload)
    return success(AttendanceOut.model_validate(row), "Attendance updated successfully.")
