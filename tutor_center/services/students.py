import logging
from datetime import date

from sqlalchemy.orm import Session

from .. import reports
from ..database import atomic
from ..errors import Conflict, NotFound, field_error
from ..models import (
    Assignment,
    Attendance,
    Fee,
    Student,
    StudentProgress,
    StudentStatus,
    Teacher,
    User,
    UserRole,
)
from ..schemas import StudentCreateRequest, StudentUpdateRequest
from ..scope import NO_STUDENT_PROFILE, Principal, ResourceKind, authorize, scoped_query
from .base import apply_changes, changes_of
from .centers import get_visible_center
from .users import build_user

logger = logging.getLogger(__name__)

USER_FIELDS = ("name", "address")


def get_student(db: Session, student_id: int) -> Student:
    student = db.get(Student, student_id)
    if not student:
        raise NotFound("Student not found.")
    return student


def get_visible_student(
    db: Session, principal: Principal, student_id: int, kind: ResourceKind = ResourceKind.STUDENT
) -> Student:
    student = get_student(db, student_id)
    authorize(principal, kind, student)
    return student


def get_visible_students(db: Session, principal: Principal, student_ids: list[int]) -> list[Student]:
    wanted = list(dict.fromkeys(student_ids))
    found = {student.id: student for student in db.query(Student).filter(Student.id.in_(wanted))}
    missing = [student_id for student_id in wanted if student_id not in found]
    if missing:
        raise NotFound(f"Student not found: {', '.join(str(student_id) for student_id in missing)}.")
    students = [found[student_id] for student_id in wanted]
    for student in students:
        authorize(principal, ResourceKind.STUDENT, student)
    return students


def get_own_student(db: Session, principal: Principal) -> Student:
    student = db.get(Student, principal.linked_student_id) if principal.linked_student_id else None
    if student is None:
        raise NotFound(NO_STUDENT_PROFILE)
    return student


def list_students(
    db: Session,
    principal: Principal,
    *,
    center_id: int | None = None,
    status: StudentStatus | None = None,
    teacher_id: int | None = None,
) -> list[Student]:
    query = scoped_query(db, principal, ResourceKind.STUDENT, requested_center_id=center_id)
    if status is not None:
        query = query.filter(Student.status == status)
    if teacher_id is not None:
        query = query.filter(Student.teacher_id == teacher_id)
    return query.order_by(Student.id).all()


def _check_links(db: Session, *, center_id: int, parent_id: int | None, teacher_id: int | None) -> None:
    if parent_id is not None:
        parent = db.get(User, parent_id)
        if not parent or parent.role != UserRole.PARENT:
            raise field_error("parent_id", "The selected parent is invalid.")
    if teacher_id is not None:
        teacher = db.query(Teacher).filter(Teacher.user_id == teacher_id).first()
        if not teacher:
            raise field_error("teacher_id", "The selected teacher is invalid.")
        if teacher.center_id != center_id:
            raise field_error("teacher_id", "The selected teacher belongs to another center.")


def _ensure_enrollment_free(db: Session, enrollment_no: str | None, student_id: int | None = None) -> None:
    if not enrollment_no:
        return
    query = db.query(Student.id).filter(Student.enrollment_no == enrollment_no)
    if student_id is not None:
        query = query.filter(Student.id != student_id)
    if query.first():
        raise Conflict("The enrollment number has already been taken.")


def create_student(db: Session, principal: Principal, payload: StudentCreateRequest) -> Student:
    get_visible_center(db, principal, payload.center_id)
    _check_links(db, center_id=payload.center_id, parent_id=payload.parent_id, teacher_id=payload.teacher_id)
    _ensure_enrollment_free(db, payload.enrollment_no)
    user = build_user(
        db,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        role=UserRole.STUDENT,
        address=payload.address,
    )

    with atomic(db):
        db.add(user)
        db.flush()
        student = Student(
            user_id=user.id,
            center_id=payload.center_id,
            parent_id=payload.parent_id,
            teacher_id=payload.teacher_id,
            enrollment_no=payload.enrollment_no,
            date_of_birth=payload.date_of_birth,
            grade=payload.grade,
            enrollment_date=payload.enrollment_date or date.today(),
            subjects=payload.subjects,
            current_level=payload.current_level,
            monthly_fee=payload.monthly_fee,
            status=StudentStatus.ACTIVE,
        )
        db.add(student)

    db.refresh(student)
    logger.info(f"Created student {student.id} (user {user.id}) in center {student.center_id}")
    return student


def update_student(db: Session, principal: Principal, student_id: int, payload: StudentUpdateRequest) -> Student:
    student = get_visible_student(db, principal, student_id)
    changes = changes_of(payload, required=("name", "center_id", "monthly_fee", "status"))

    if "center_id" in changes and changes["center_id"] != student.center_id:
        get_visible_center(db, principal, changes["center_id"])
    if {"center_id", "parent_id", "teacher_id"} & changes.keys():
        _check_links(
            db,
            center_id=changes.get("center_id", student.center_id),
            parent_id=changes.get("parent_id", student.parent_id),
            teacher_id=changes.get("teacher_id", student.teacher_id),
        )
    if "enrollment_no" in changes:
        _ensure_enrollment_free(db, changes["enrollment_no"], student.id)

    user_changes = {key: changes.pop(key) for key in USER_FIELDS if key in changes}
    apply_changes(student.user, user_changes)
    apply_changes(student, changes)
    db.commit()
    db.refresh(student)
    return student


def delete_student(db: Session, principal: Principal, student_id: int) -> None:
    student = get_visible_student(db, principal, student_id)
    user = student.user
    with atomic(db):
        db.delete(student)
        db.delete(user)
    logger.info(f"Deleted student {student_id} and user {user.id}")


# ---- per-student views ----


def student_progress(db: Session, principal: Principal, student_id: int) -> list[StudentProgress]:
    student = get_visible_student(db, principal, student_id, ResourceKind.PROGRESS)
    return (
        db.query(StudentProgress)
        .filter(StudentProgress.student_id == student.id)
        .order_by(StudentProgress.subject_id, StudentProgress.level_id)
        .all()
    )


def student_assignments(db: Session, principal: Principal, student_id: int) -> list[Assignment]:
    student = get_visible_student(db, principal, student_id, ResourceKind.ASSIGNMENT)
    return (
        db.query(Assignment)
        .filter(Assignment.student_id == student.id)
        .order_by(Assignment.assigned_date.desc(), Assignment.id.desc())
        .all()
    )


def student_attendance(db: Session, principal: Principal, student_id: int) -> list[Attendance]:
    student = get_visible_student(db, principal, student_id, ResourceKind.ATTENDANCE)
    return db.query(Attendance).filter(Attendance.student_id == student.id).order_by(Attendance.date.desc()).all()


def student_fees(db: Session, principal: Principal, student_id: int) -> list[Fee]:
    student = get_visible_student(db, principal, student_id, ResourceKind.FEE)
    return db.query(Fee).filter(Fee.student_id == student.id).order_by(Fee.month.desc()).all()


def student_report(db: Session, principal: Principal, student_id: int) -> dict:
    return reports.student_report(db, get_visible_student(db, principal, student_id))


def my_assignments(db: Session, principal: Principal) -> list[Assignment]:
    return student_assignments(db, principal, get_own_student(db, principal).id)


def my_dashboard(db: Session, principal: Principal) -> dict:
    student = get_own_student(db, principal)
    return {
        "kpis": reports.dashboard_kpis(db, principal).stats,
        "report": reports.student_report(db, student),
    }


# ---- parent views ----


def children_reports(db: Session, principal: Principal) -> list[dict]:
    children = scoped_query(db, principal, ResourceKind.STUDENT).order_by(Student.id).all()
    return [reports.student_report(db, child) for child in children]


def children_fees(db: Session, principal: Principal) -> list[Fee]:
    return scoped_query(db, principal, ResourceKind.FEE).order_by(Fee.month.desc(), Fee.student_id).all()


def children_attendance(db: Session, principal: Principal) -> list[Attendance]:
    return (
        scoped_query(db, principal, ResourceKind.ATTENDANCE)
        .order_by(Attendance.date.desc(), Attendance.student_id)
        .all()
    )


def children_assignments(db: Session, principal: Principal) -> list[Assignment]:
    return (
        scoped_query(db, principal, ResourceKind.ASSIGNMENT)
        .order_by(Assignment.assigned_date.desc(), Assignment.id.desc())
        .all()
    )
