"""Read-only aggregates: dashboards, rates and center/teacher/fee/attendance summaries.

Nothing here writes. Every figure is recomputed from table state on each call,
and a rate whose denominator is zero reads as 100.
"""

import logging
from datetime import date

from sqlalchemy import case, distinct, func
from sqlalchemy.orm import Session

from . import dates
from .errors import NotFound
from .models import (
    Assignment,
    AssignmentStatus,
    Attendance,
    AttendanceStatus,
    Center,
    Fee,
    FeeStatus,
    Level,
    OUTSTANDING_FEE_STATUSES,
    Student,
    StudentProgress,
    StudentStatus,
    Subject,
    Submission,
    SubmissionStatus,
    Teacher,
    User,
    UserRole,
)
from .schemas import (
    AttendanceSummaryOut,
    CenterAdminKpis,
    CenterPerformanceOut,
    CenterStatsOut,
    DashboardOut,
    FeeStatusTotal,
    FeeSummaryOut,
    LevelProgressionOut,
    MonthlyFeeCollection,
    ParentKpis,
    ProgressOut,
    StatusCount,
    StudentKpis,
    SubmissionOut,
    SuperAdminKpis,
    TeacherKpis,
    TeacherPerformanceOut,
)
from .scope import NO_STUDENT_PROFILE, Principal, ResourceKind, enforce, resolve

logger = logging.getLogger(__name__)

RECENT_SUBMISSIONS = 10


def rate(numerator: float, denominator: float) -> float:
    if not denominator:
        return 100.0
    return float(numerator) / float(denominator) * 100


def report_center_id(principal: Principal, requested_center_id: int | None = None) -> int | None:
    """Center a report is pinned to. ``None`` means system-wide (super_admin only)."""
    return enforce(resolve(principal, ResourceKind.CENTER, requested_center_id=requested_center_id)).center_id


# ---- rates ----


def fee_collection_rate(db: Session, center_id: int | None = None) -> float:
    query = db.query(
        func.coalesce(func.sum(Fee.amount), 0),
        func.coalesce(func.sum(case((Fee.status == FeeStatus.PAID, Fee.amount), else_=0)), 0),
    )
    if center_id is not None:
        query = query.filter(Fee.center_id == center_id)
    total, paid = query.one()
    return rate(paid, total)


def submission_rate(db: Session, center_id: int | None = None) -> float:
    assignments = db.query(func.count(Assignment.id)).join(Student, Assignment.student_id == Student.id)
    submissions = db.query(func.count(Submission.id)).join(Student, Submission.student_id == Student.id)
    if center_id is not None:
        assignments = assignments.filter(Student.center_id == center_id)
        submissions = submissions.filter(Student.center_id == center_id)
    return rate(submissions.scalar(), assignments.scalar())


def _attendance_counts(query) -> dict[AttendanceStatus, int]:
    rows = query.with_entities(Attendance.status, func.count(Attendance.id)).group_by(Attendance.status).all()
    return {row_status: count for row_status, count in rows}


def attendance_rate(db: Session, center_id: int | None = None) -> float:
    query = db.query(Attendance)
    if center_id is not None:
        query = query.filter(Attendance.center_id == center_id)
    counts = _attendance_counts(query)
    return rate(counts.get(AttendanceStatus.PRESENT, 0), sum(counts.values()))


# ---- dashboard ----


def _super_admin_kpis(db: Session, today: date) -> SuperAdminKpis:
    revenue = (
        db.query(func.coalesce(func.sum(Fee.amount), 0))
        .filter(Fee.status == FeeStatus.PAID, Fee.month == dates.month_of(today))
        .scalar()
    )
    return SuperAdminKpis(
        total_centers=db.query(func.count(Center.id)).scalar(),
        total_active_students=db.query(func.count(Student.id)).filter(Student.status == StudentStatus.ACTIVE).scalar(),
        total_teachers=db.query(func.count(Teacher.id)).scalar(),
        revenue_this_month=float(revenue),
    )


def _center_admin_kpis(db: Session, principal: Principal, today: date) -> CenterAdminKpis:
    center_id = report_center_id(principal)
    return CenterAdminKpis(
        total_students=db.query(func.count(Student.id))
        .filter(Student.center_id == center_id, Student.status == StudentStatus.ACTIVE)
        .scalar(),
        total_teachers=db.query(func.count(Teacher.id)).filter(Teacher.center_id == center_id).scalar(),
        unpaid_fees=db.query(func.count(Fee.id))
        .filter(Fee.center_id == center_id, Fee.status.in_(OUTSTANDING_FEE_STATUSES))
        .scalar(),
        today_attendance=db.query(func.count(Attendance.id))
        .filter(
            Attendance.center_id == center_id,
            Attendance.date == today,
            Attendance.status == AttendanceStatus.PRESENT,
        )
        .scalar(),
    )


def _teacher_kpis(db: Session, principal: Principal) -> TeacherKpis:
    teacher_user_id = principal.linked_teacher_user_id
    mine = db.query(Submission).join(Assignment, Submission.assignment_id == Assignment.id).filter(
        Assignment.teacher_id == teacher_user_id
    )
    pending = mine.filter(Submission.status == SubmissionStatus.PENDING).count()
    avg_score = (
        mine.filter(Submission.score.isnot(None)).with_entities(func.avg(Submission.score)).scalar()
    )
    return TeacherKpis(
        my_students=db.query(func.count(Student.id)).filter(Student.teacher_id == teacher_user_id).scalar(),
        pending_grades=pending,
        avg_student_score=float(avg_score or 0),
    )


def _parent_kpis(db: Session, principal: Principal) -> ParentKpis:
    children = db.query(Student.id).filter(Student.parent_id == principal.id)
    child_ids = [row.id for row in children]
    if not child_ids:
        return ParentKpis(children_count=0, pending_fees=0, avg_progress=0)
    pending_fees = (
        db.query(func.count(Fee.id))
        .filter(Fee.student_id.in_(child_ids), Fee.status.in_(OUTSTANDING_FEE_STATUSES))
        .scalar()
    )
    avg_progress = (
        db.query(func.avg(StudentProgress.average_score)).filter(StudentProgress.student_id.in_(child_ids)).scalar()
    )
    return ParentKpis(children_count=len(child_ids), pending_fees=pending_fees, avg_progress=float(avg_progress or 0))


def _student_kpis(db: Session, principal: Principal) -> StudentKpis:
    student = db.get(Student, principal.linked_student_id) if principal.linked_student_id else None
    if student is None:
        raise NotFound(NO_STUDENT_PROFILE)
    pending = (
        db.query(func.count(Assignment.id))
        .filter(Assignment.student_id == student.id, Assignment.status == AssignmentStatus.ASSIGNED)
        .scalar()
    )
    last = (
        db.query(Submission.score)
        .filter(Submission.student_id == student.id, Submission.status == SubmissionStatus.GRADED)
        .order_by(Submission.graded_at.desc(), Submission.id.desc())
        .first()
    )
    return StudentKpis(
        assignments_pending=pending,
        current_level=student.current_level,
        last_score=float(last.score) if last and last.score is not None else 0,
    )


def dashboard_kpis(db: Session, principal: Principal, today: date | None = None) -> DashboardOut:
    """KPI set for the principal's role. Each role gets its own closed field set."""
    today = today or date.today()
    role = principal.role
    if role == UserRole.SUPER_ADMIN:
        stats = _super_admin_kpis(db, today)
    elif role == UserRole.CENTER_ADMIN:
        stats = _center_admin_kpis(db, principal, today)
    elif role == UserRole.TEACHER:
        stats = _teacher_kpis(db, principal)
    elif role == UserRole.PARENT:
        stats = _parent_kpis(db, principal)
    else:
        stats = _student_kpis(db, principal)
    return DashboardOut(role=role, stats=stats)


def super_admin_dashboard(db: Session, today: date | None = None) -> dict:
    today = today or date.today()
    role_counts = dict(db.query(User.role, func.count(User.id)).group_by(User.role).all())
    active_users = db.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar()
    total_users = sum(role_counts.values())

    students_per_center = [
        {"center_id": center_id, "center_name": name, "student_count": count}
        for center_id, name, count in db.query(Center.id, Center.name, func.count(Student.id))
        .outerjoin(Student, Student.center_id == Center.id)
        .group_by(Center.id, Center.name)
        .order_by(Center.name)
        .all()
    ]

    months = [dates.month_of(dates.shift_months(today, offset)) for offset in range(-5, 1)]
    paid = dict(
        db.query(Fee.month, func.sum(Fee.amount))
        .filter(Fee.status == FeeStatus.PAID, Fee.month.in_(months))
        .group_by(Fee.month)
        .all()
    )

    return {
        "counts": {
            "centers": db.query(func.count(Center.id)).scalar(),
            "teachers": db.query(func.count(Teacher.id)).scalar(),
            "students": db.query(func.count(Student.id)).scalar(),
            "parents": role_counts.get(UserRole.PARENT, 0),
            "center_admins": role_counts.get(UserRole.CENTER_ADMIN, 0),
            "subjects": db.query(func.count(Subject.id)).scalar(),
            "levels": db.query(func.count(Level.id)).scalar(),
            "active_users": active_users,
            "inactive_users": total_users - active_users,
        },
        "students_per_center": students_per_center,
        "monthly_revenue": [{"month": month, "revenue": float(paid.get(month, 0))} for month in months],
    }


# ---- center / teacher ----


def center_stats(db: Session, center_id: int) -> CenterStatsOut:
    revenue = (
        db.query(func.coalesce(func.sum(Fee.amount), 0))
        .filter(Fee.center_id == center_id, Fee.status == FeeStatus.PAID)
        .scalar()
    )
    return CenterStatsOut(
        total_centers=db.query(func.count(Center.id)).filter(Center.id == center_id).scalar(),
        total_students=db.query(func.count(Student.id)).filter(Student.center_id == center_id).scalar(),
        total_teachers=db.query(func.count(Teacher.id)).filter(Teacher.center_id == center_id).scalar(),
        total_revenue=float(revenue),
    )


def center_performance(db: Session, center_id: int | None) -> CenterPerformanceOut:
    students = db.query(func.count(Student.id)).filter(Student.status == StudentStatus.ACTIVE)
    if center_id is not None:
        students = students.filter(Student.center_id == center_id)
    return CenterPerformanceOut(
        center_id=center_id,
        total_students=students.scalar(),
        fee_collection_rate=fee_collection_rate(db, center_id),
        submission_rate=submission_rate(db, center_id),
        attendance_rate=attendance_rate(db, center_id),
    )


def teacher_performance(db: Session, center_id: int | None) -> list[TeacherPerformanceOut]:
    graded = (
        db.query(Submission.graded_by, func.count(Submission.id))
        .filter(Submission.status == SubmissionStatus.GRADED, Submission.graded_by.isnot(None))
        .group_by(Submission.graded_by)
    )
    assigned = (
        db.query(Student.teacher_id, func.count(Student.id))
        .filter(Student.teacher_id.isnot(None))
        .group_by(Student.teacher_id)
    )
    graded_by_user = dict(graded.all())
    students_by_user = dict(assigned.all())

    teachers = db.query(Teacher, User).join(User, Teacher.user_id == User.id)
    if center_id is not None:
        teachers = teachers.filter(Teacher.center_id == center_id)
    return [
        TeacherPerformanceOut(
            user_id=user.id,
            name=user.name,
            center_id=teacher.center_id,
            graded_count=graded_by_user.get(user.id, 0),
            student_count=students_by_user.get(user.id, 0),
        )
        for teacher, user in teachers.order_by(User.name).all()
    ]


# ---- fees ----


def fee_collection_report(db: Session, center_id: int | None) -> list[MonthlyFeeCollection]:
    collected = func.coalesce(func.sum(case((Fee.status == FeeStatus.PAID, Fee.amount), else_=0)), 0)
    query = db.query(Fee.month, func.sum(Fee.amount), collected, func.count(Fee.id))
    if center_id is not None:
        query = query.filter(Fee.center_id == center_id)
    rows = query.group_by(Fee.month).order_by(Fee.month.desc()).all()
    return [
        MonthlyFeeCollection(
            month=month,
            total_expected=float(expected or 0),
            total_collected=float(paid or 0),
            total_records=records,
            collection_rate=rate(paid or 0, expected or 0),
        )
        for month, expected, paid, records in rows
    ]


def fee_status_summary(fee_query, center_id: int | None = None) -> FeeSummaryOut:
    """Count and amount per status over an already scoped ``Fee`` query."""
    rows = (
        fee_query.with_entities(Fee.status, func.count(Fee.id), func.coalesce(func.sum(Fee.amount), 0))
        .group_by(Fee.status)
        .all()
    )
    totals = {row_status: (count, float(amount)) for row_status, count, amount in rows}
    by_status = []
    for fee_status in FeeStatus:
        count, amount = totals.get(fee_status, (0, 0.0))
        by_status.append(FeeStatusTotal(status=fee_status.value, count=count, total_amount=amount))
    billed = sum(amount for _, amount in totals.values())
    paid = totals.get(FeeStatus.PAID, (0, 0.0))[1]
    return FeeSummaryOut(center_id=center_id, by_status=by_status, fee_collection_rate=rate(paid, billed))


# ---- attendance ----


def attendance_summary(attendance_query, month: str, center_id: int | None = None) -> AttendanceSummaryOut:
    """Per-status counts for ``month`` over an already scoped ``Attendance`` query."""
    first, last = dates.month_bounds(month)
    counts = _attendance_counts(attendance_query.filter(Attendance.date >= first, Attendance.date <= last))
    return AttendanceSummaryOut(
        month=month,
        center_id=center_id,
        counts=[StatusCount(status=item.value, count=counts.get(item, 0)) for item in AttendanceStatus],
        attendance_rate=rate(counts.get(AttendanceStatus.PRESENT, 0), sum(counts.values())),
    )


# ---- curriculum ----


def level_progression(db: Session, center_id: int | None) -> list[LevelProgressionOut]:
    query = (
        db.query(
            Level.id,
            Level.name,
            Subject.name,
            func.count(distinct(StudentProgress.student_id)),
            func.avg(StudentProgress.average_score),
        )
        .select_from(StudentProgress)
        .join(Level, StudentProgress.level_id == Level.id)
        .join(Subject, StudentProgress.subject_id == Subject.id)
    )
    if center_id is not None:
        query = query.join(Student, StudentProgress.student_id == Student.id).filter(Student.center_id == center_id)
    rows = query.group_by(Level.id, Level.name, Subject.name).order_by(Subject.name, Level.order_index).all()
    return [
        LevelProgressionOut(
            level_id=level_id,
            level_name=level_name,
            subject_name=subject_name,
            student_count=count,
            avg_score=float(avg or 0),
        )
        for level_id, level_name, subject_name, count, avg in rows
    ]


# ---- students ----


def student_report(db: Session, student: Student) -> dict:
    attendance = _attendance_counts(db.query(Attendance).filter(Attendance.student_id == student.id))
    total_attendance = sum(attendance.values())

    assignment_counts = dict(
        db.query(Assignment.status, func.count(Assignment.id))
        .filter(Assignment.student_id == student.id)
        .group_by(Assignment.status)
        .all()
    )
    progress = (
        db.query(StudentProgress)
        .filter(StudentProgress.student_id == student.id)
        .order_by(StudentProgress.subject_id, StudentProgress.level_id)
        .all()
    )
    recent = (
        db.query(Submission)
        .filter(Submission.student_id == student.id, Submission.status == SubmissionStatus.GRADED)
        .order_by(Submission.graded_at.desc(), Submission.id.desc())
        .limit(RECENT_SUBMISSIONS)
        .all()
    )

    return {
        "student_id": student.id,
        "name": student.user.name,
        "center_id": student.center_id,
        "current_level": student.current_level,
        "attendance": {
            "total": total_attendance,
            "present": attendance.get(AttendanceStatus.PRESENT, 0),
            "absent": attendance.get(AttendanceStatus.ABSENT, 0),
            "late": attendance.get(AttendanceStatus.LATE, 0),
            "attendance_rate": rate(attendance.get(AttendanceStatus.PRESENT, 0), total_attendance),
        },
        "assignments": {item.value: assignment_counts.get(item, 0) for item in AssignmentStatus},
        "progress": [ProgressOut.model_validate(row) for row in progress],
        "recent_submissions": [SubmissionOut.model_validate(row) for row in recent],
    }
