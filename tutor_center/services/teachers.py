"""Teacher profiles. The API addresses a teacher by its ``users.id``."""

import logging

from sqlalchemy.orm import Session

from ..database import atomic
from ..errors import Conflict, Forbidden, NotFound, field_error
from ..models import Student, Teacher, UserRole
from ..schemas import TeacherCreateRequest, TeacherOut, TeacherUpdateRequest
from ..scope import Principal, ResourceKind, authorize, scoped_query
from .base import apply_changes, changes_of
from .centers import get_visible_center
from .students import get_visible_students
from .users import build_user

logger = logging.getLogger(__name__)

USER_FIELDS = ("name", "phone", "address")


def teacher_out(teacher: Teacher) -> TeacherOut:
    return TeacherOut(
        user_id=teacher.user_id,
        name=teacher.user.name,
        email=teacher.user.email,
        center_id=teacher.center_id,
        employee_id=teacher.employee_id,
        qualification=teacher.qualification,
        join_date=teacher.join_date,
        phone=teacher.user.phone,
        is_active=teacher.user.is_active,
    )


def get_teacher(db: Session, user_id: int) -> Teacher:
    teacher = db.query(Teacher).filter(Teacher.user_id == user_id).first()
    if not teacher:
        raise NotFound("Teacher not found.")
    return teacher


def get_visible_teacher(db: Session, principal: Principal, user_id: int) -> Teacher:
    teacher = get_teacher(db, user_id)
    authorize(principal, ResourceKind.TEACHER, teacher)
    return teacher


def list_teachers(db: Session, principal: Principal, center_id: int | None = None) -> list[Teacher]:
    return scoped_query(db, principal, ResourceKind.TEACHER, requested_center_id=center_id).order_by(Teacher.id).all()


def _ensure_employee_id_free(db: Session, employee_id: str | None, teacher_id: int | None = None) -> None:
    if not employee_id:
        return
    query = db.query(Teacher.id).filter(Teacher.employee_id == employee_id)
    if teacher_id is not None:
        query = query.filter(Teacher.id != teacher_id)
    if query.first():
        raise Conflict("The employee id has already been taken.")


def create_teacher(db: Session, principal: Principal, payload: TeacherCreateRequest) -> Teacher:
    get_visible_center(db, principal, payload.center_id)
    _ensure_employee_id_free(db, payload.employee_id)
    user = build_user(
        db,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        role=UserRole.TEACHER,
        phone=payload.phone,
        address=payload.address,
    )

    with atomic(db):
        db.add(user)
        db.flush()
        teacher = Teacher(
            user_id=user.id,
            center_id=payload.center_id,
            employee_id=payload.employee_id,
            qualification=payload.qualification,
            join_date=payload.join_date,
        )
        db.add(teacher)

    db.refresh(teacher)
    logger.info(f"Created teacher user {user.id} in center {teacher.center_id}")
    return teacher


def update_teacher(db: Session, principal: Principal, user_id: int, payload: TeacherUpdateRequest) -> Teacher:
    teacher = get_visible_teacher(db, principal, user_id)
    changes = changes_of(payload, required=("name", "center_id"))
    if "center_id" in changes and changes["center_id"] != teacher.center_id:
        get_visible_center(db, principal, changes["center_id"])
    if "employee_id" in changes:
        _ensure_employee_id_free(db, changes["employee_id"], teacher.id)

    user_changes = {key: changes.pop(key) for key in USER_FIELDS if key in changes}
    apply_changes(teacher.user, user_changes)
    apply_changes(teacher, changes)
    db.commit()
    db.refresh(teacher)
    return teacher


def delete_teacher(db: Session, principal: Principal, user_id: int) -> None:
    teacher = get_visible_teacher(db, principal, user_id)
    user = teacher.user
    with atomic(db):
        db.delete(teacher)
        db.delete(user)
    # students.teacher_id and assignments.teacher_id are nulled by the foreign keys
    logger.info(f"Deleted teacher user {user_id}")


def teacher_students(db: Session, principal: Principal, user_id: int) -> list[Student]:
    if principal.role == UserRole.TEACHER:
        if user_id != principal.id:
            raise Forbidden("You can only view your own students.")
    else:
        get_visible_teacher(db, principal, user_id)
    return (
        scoped_query(db, principal, ResourceKind.STUDENT)
        .filter(Student.teacher_id == user_id)
        .order_by(Student.id)
        .all()
    )


def assign_students(db: Session, principal: Principal, teacher_user_id: int, student_ids: list[int]) -> list[Student]:
    teacher = get_visible_teacher(db, principal, teacher_user_id)
    students = get_visible_students(db, principal, student_ids)
    for student in students:
        if student.center_id != teacher.center_id:
            raise field_error("student_ids", f"Student {student.id} does not belong to the teacher's center.")

    with atomic(db):
        for student in students:
            student.teacher_id = teacher.user_id
    logger.info(f"Assigned {len(students)} students to teacher user {teacher.user_id}")
    return students


def unassign_students(db: Session, principal: Principal, student_ids: list[int]) -> list[Student]:
    students = get_visible_students(db, principal, student_ids)
    with atomic(db):
        for student in students:
            student.teacher_id = None
    logger.info(f"Unassigned teacher from {len(students)} students")
    return students
