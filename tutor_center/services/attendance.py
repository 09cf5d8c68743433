import logging
from datetime import date

from sqlalchemy.orm import Session

from .. import dates, reports
from ..database import atomic
from ..errors import NotFound, field_error
from ..models import Attendance
from ..schemas import AttendanceSummaryOut, AttendanceUpdateRequest, BulkAttendanceRequest
from ..scope import Principal, ResourceKind, authorize, scoped_query
from .students import get_visible_student, get_visible_students

logger = logging.getLogger(__name__)


def _month_filter(query, month: str):
    try:
        first, last = dates.month_bounds(month)
    except ValueError as exc:
        raise field_error("month", "The month must be in YYYY-MM format.") from exc
    return query.filter(Attendance.date >= first, Attendance.date <= last)


def mark_bulk(
    db: Session, principal: Principal, payload: BulkAttendanceRequest, today: date | None = None
) -> list[Attendance]:
    """Upsert one row per (student, date). A second mark for the same day updates the first."""
    today = today or date.today()
    if payload.date > today:
        raise field_error("date", "Attendance cannot be marked for a future date.")
    students = {
        student.id: student
        for student in get_visible_students(db, principal, [entry.student_id for entry in payload.attendance])
    }
    existing = {
        row.student_id: row
        for row in db.query(Attendance).filter(
            Attendance.date == payload.date, Attendance.student_id.in_(list(students))
        )
    }

    created = 0
    with atomic(db):
        for entry in payload.attendance:
            row = existing.get(entry.student_id)
            if row is None:
                row = Attendance(
                    student_id=entry.student_id,
                    center_id=students[entry.student_id].center_id,
                    date=payload.date,
                )
                db.add(row)
                existing[entry.student_id] = row
                created += 1
            row.status = entry.status
            row.notes = entry.notes
            row.marked_by = principal.id

    logger.info(
        f"Attendance for {payload.date}: {created} created, {len(existing) - created} updated by user {principal.id}"
    )
    return [existing[student_id] for student_id in dict.fromkeys(entry.student_id for entry in payload.attendance)]


def get_visible_attendance(db: Session, principal: Principal, attendance_id: int) -> Attendance:
    row = db.get(Attendance, attendance_id)
    if not row:
        raise NotFound("Attendance record not found.")
    authorize(principal, ResourceKind.ATTENDANCE, row)
    return row


def update_attendance(
    db: Session, principal: Principal, attendance_id: int, payload: AttendanceUpdateRequest
) -> Attendance:
    row = get_visible_attendance(db, principal, attendance_id)
    row.status = payload.status
    row.notes = payload.notes
    row.marked_by = principal.id
    db.commit()
    db.refresh(row)
    return row


def list_attendance(
    db: Session,
    principal: Principal,
    *,
    student_id: int | None = None,
    month: str | None = None,
    center_id: int | None = None,
) -> list[Attendance]:
    query = scoped_query(db, principal, ResourceKind.ATTENDANCE, requested_center_id=center_id)
    if student_id is not None:
        get_visible_student(db, principal, student_id, ResourceKind.ATTENDANCE)
        query = query.filter(Attendance.student_id == student_id)
    if month:
        query = _month_filter(query, month)
    return query.order_by(Attendance.date.desc(), Attendance.student_id).all()


def today_attendance(
    db: Session, principal: Principal, center_id: int | None = None, today: date | None = None
) -> list[Attendance]:
    today = today or date.today()
    query = scoped_query(db, principal, ResourceKind.ATTENDANCE, requested_center_id=center_id)
    return query.filter(Attendance.date == today).order_by(Attendance.student_id).all()


def attendance_summary(
    db: Session,
    principal: Principal,
    *,
    month: str | None = None,
    center_id: int | None = None,
    today: date | None = None,
) -> AttendanceSummaryOut:
    month = month or dates.month_of(today or date.today())
    if not dates.is_month(month):
        raise field_error("month", "The month must be in YYYY-MM format.")
    query = scoped_query(db, principal, ResourceKind.ATTENDANCE, requested_center_id=center_id)
    return reports.attendance_summary(query, month, center_id if center_id is not None else principal.center_id)
