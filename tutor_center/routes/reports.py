from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import reports
from ..database import get_db_session
from ..errors import success
from ..middleware import get_current_principal, require_roles
from ..models import UserRole
from ..scope import Principal
from ..services import attendance, students

router = APIRouter(tags=["Reports"])

admins_only = require_roles(UserRole.SUPER_ADMIN, UserRole.CENTER_ADMIN)


@router.get("/dashboard/kpis")
def dashboard_kpis(db: Session = Depends(get_db_session), principal: Principal = Depends(get_current_principal)):
    return success(reports.dashboard_kpis(db, principal), "Dashboard KPIs retrieved successfully.")


@router.get("/reports/center-performance")
def center_performance(
    center_id: int | None = Query(default=None),
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(admins_only),
):
    pinned = reports.report_center_id(principal, center_id)
    return success(reports.center_performance(db, pinned), "Center performance report.")


@router.get("/reports/teacher-performance")
def teacher_performance(
    center_id: int | None = Query(default=None),
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(admins_only),
):
    pinned = reports.report_center_id(principal, center_id)
    return success(reports.teacher_performance(db, pinned), "Teacher performance metrics.")


@router.get("/reports/student-detailed/{student_id}")
def student_detailed(
    student_id: int, db: Session = Depends(get_db_session), principal: Principal = Depends(get_current_principal)
):
    return success(students.student_report(db, principal, student_id), "Student detailed report.")


@router.get("/reports/fee-collection")
def fee_collection(
    center_id: int | None = Query(default=None),
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(admins_only),
):
    pinned = reports.report_center_id(principal, center_id)
    return success(reports.fee_collection_report(db, pinned), "Fee collection report.")


@router.get("/reports/attendance")
def attendance_report(
    month: str | None = Query(default=None),
    center_id: int | None = Query(default=None),
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(admins_only),
):
    return success(
        attendance.attendance_summary(db, principal, month=month, center_id=center_id), "Attendance report."
    )


@router.get("/reports/level-progression")
def level_progression(
    center_id: int | None = Query(default=None),
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(admins_only),
):
    pinned = reports.report_center_id(principal, center_id)
    return success(reports.level_progression(db, pinned), "Level progression metrics.")
