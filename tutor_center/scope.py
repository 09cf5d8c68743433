"""Role-scoped visibility rules.

Every list query and every single-resource access goes through
:func:`resolve`, which returns either ``Allow(filter)`` or ``Deny(reason)``.
List queries are narrowed with :func:`scope_criteria` before they run;
single resources are checked against the student/center that owns them.

A teacher is always identified by its ``users.id``, carried on the principal
as ``linked_teacher_user_id``. ``Student.teacher_id`` and
``Assignment.teacher_id`` both hold that value, so "my students" is
``Student.teacher_id == principal.linked_teacher_user_id`` and never a join
on ``teachers.id``.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Any, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import Forbidden
from .models import (
    Assignment,
    Attendance,
    Center,
    Fee,
    Student,
    StudentProgress,
    Submission,
    Teacher,
    UserRole,
)

logger = logging.getLogger(__name__)

NO_CENTER = "You are not assigned to any center."
NO_STUDENT_PROFILE = "Student profile not found."
NO_TEACHER_PROFILE = "Teacher profile not found."


@dataclass(frozen=True)
class Principal:
    id: int
    role: UserRole
    center_id: int | None = None
    linked_student_id: int | None = None
    linked_teacher_user_id: int | None = None


class ResourceKind(str, enum.Enum):
    CENTER = "center"
    TEACHER = "teacher"
    STUDENT = "student"
    ASSIGNMENT = "assignment"
    SUBMISSION = "submission"
    ATTENDANCE = "attendance"
    FEE = "fee"
    PROGRESS = "progress"


# Which roles may touch a kind of resource at all, before any scope narrowing.
KIND_ROLES: dict[ResourceKind, frozenset[UserRole]] = {
    ResourceKind.CENTER: frozenset({UserRole.SUPER_ADMIN, UserRole.CENTER_ADMIN}),
    ResourceKind.TEACHER: frozenset({UserRole.SUPER_ADMIN, UserRole.CENTER_ADMIN}),
    ResourceKind.STUDENT: frozenset(UserRole),
    ResourceKind.ASSIGNMENT: frozenset(UserRole),
    ResourceKind.SUBMISSION: frozenset(
        {UserRole.SUPER_ADMIN, UserRole.CENTER_ADMIN, UserRole.TEACHER, UserRole.STUDENT}
    ),
    ResourceKind.ATTENDANCE: frozenset(UserRole),
    ResourceKind.FEE: frozenset({UserRole.SUPER_ADMIN, UserRole.CENTER_ADMIN, UserRole.PARENT}),
    ResourceKind.PROGRESS: frozenset(UserRole),
}

_STUDENT_OWNED = {
    ResourceKind.ASSIGNMENT: Assignment,
    ResourceKind.SUBMISSION: Submission,
    ResourceKind.ATTENDANCE: Attendance,
    ResourceKind.FEE: Fee,
    ResourceKind.PROGRESS: StudentProgress,
}


@dataclass(frozen=True)
class ScopeFilter:
    """Implicit restriction for a list query. All ``None`` means unrestricted."""

    center_id: int | None = None
    teacher_user_id: int | None = None
    parent_user_id: int | None = None
    student_id: int | None = None

    @property
    def is_unrestricted(self) -> bool:
        return self == ScopeFilter()


@dataclass(frozen=True)
class Allow:
    filter: ScopeFilter = ScopeFilter()

    allowed = True


@dataclass(frozen=True)
class Deny:
    reason: str

    allowed = False


Decision = Union[Allow, Deny]


@dataclass(frozen=True)
class Ownership:
    center_id: int | None
    student: Student | None = None


def owner_of(resource: Any) -> Ownership:
    if isinstance(resource, Center):
        return Ownership(center_id=resource.id)
    if isinstance(resource, Teacher):
        return Ownership(center_id=resource.center_id)
    if isinstance(resource, Student):
        return Ownership(center_id=resource.center_id, student=resource)
    if isinstance(resource, (Attendance, Fee)):
        # denormalized center_id is authoritative for these rows
        return Ownership(center_id=resource.center_id, student=resource.student)
    if isinstance(resource, (Assignment, Submission, StudentProgress)):
        return Ownership(center_id=resource.student.center_id, student=resource.student)
    raise TypeError(f"No ownership rule for {type(resource).__name__}")


def _list_decision(principal: Principal, kind: ResourceKind, requested_center_id: int | None) -> Decision:
    role = principal.role
    if role == UserRole.SUPER_ADMIN:
        return Allow(ScopeFilter(center_id=requested_center_id))
    if role == UserRole.CENTER_ADMIN:
        if principal.center_id is None:
            return Deny(NO_CENTER)
        if requested_center_id is not None and requested_center_id != principal.center_id:
            return Deny("You can only access data of your own center.")
        return Allow(ScopeFilter(center_id=principal.center_id))
    if role == UserRole.TEACHER:
        if principal.linked_teacher_user_id is None:
            return Deny(NO_TEACHER_PROFILE)
        return Allow(ScopeFilter(teacher_user_id=principal.linked_teacher_user_id))
    if role == UserRole.PARENT:
        return Allow(ScopeFilter(parent_user_id=principal.id))
    if principal.linked_student_id is None:
        return Deny(NO_STUDENT_PROFILE)
    return Allow(ScopeFilter(student_id=principal.linked_student_id))


def _instance_decision(principal: Principal, kind: ResourceKind, target: Any) -> Decision:
    role = principal.role
    if role == UserRole.SUPER_ADMIN:
        return Allow()

    ownership = owner_of(target)
    if role == UserRole.CENTER_ADMIN:
        if principal.center_id is None:
            return Deny(NO_CENTER)
        if ownership.center_id != principal.center_id:
            return Deny("This record belongs to another center.")
        return Allow()

    student = ownership.student
    if student is None:
        return Deny("Unauthorized.")
    if role == UserRole.TEACHER:
        if principal.linked_teacher_user_id is None:
            return Deny(NO_TEACHER_PROFILE)
        if student.teacher_id != principal.linked_teacher_user_id:
            return Deny("You can only access your own students.")
    elif role == UserRole.PARENT:
        if student.parent_id != principal.id:
            return Deny("You can only access your own children.")
    elif role == UserRole.STUDENT:
        if principal.linked_student_id is None:
            return Deny(NO_STUDENT_PROFILE)
        if student.id != principal.linked_student_id:
            return Deny("You can only access your own records.")
    return Allow()


def resolve(
    principal: Principal,
    kind: ResourceKind,
    target: Any = None,
    requested_center_id: int | None = None,
) -> Decision:
    """Decide whether ``principal`` may reach ``kind``.

    With a ``target`` the decision is about that one record; without one it
    yields the filter to put on a list query.
    """
    if principal.role not in KIND_ROLES[kind]:
        decision: Decision = Deny(f"Forbidden. Your role ({principal.role.value}) does not have access to this resource.")
    elif target is not None:
        decision = _instance_decision(principal, kind, target)
    else:
        decision = _list_decision(principal, kind, requested_center_id)

    if isinstance(decision, Deny):
        logger.debug(f"Denied {principal.role.value}#{principal.id} on {kind.value}: {decision.reason}")
    return decision


def enforce(decision: Decision) -> ScopeFilter:
    if isinstance(decision, Deny):
        raise Forbidden(decision.reason)
    return decision.filter


def authorize(principal: Principal, kind: ResourceKind, target: Any) -> None:
    enforce(resolve(principal, kind, target=target))


def _student_criteria(scope: ScopeFilter) -> list:
    criteria = []
    if scope.center_id is not None:
        criteria.append(Student.center_id == scope.center_id)
    if scope.teacher_user_id is not None:
        criteria.append(Student.teacher_id == scope.teacher_user_id)
    if scope.parent_user_id is not None:
        criteria.append(Student.parent_id == scope.parent_user_id)
    if scope.student_id is not None:
        criteria.append(Student.id == scope.student_id)
    return criteria


def scope_criteria(kind: ResourceKind, scope: ScopeFilter) -> list:
    """SQL criteria that narrow a query over ``kind`` to ``scope``."""
    if scope.is_unrestricted:
        return []
    if kind == ResourceKind.CENTER:
        return [Center.id == scope.center_id] if scope.center_id is not None else []
    if kind == ResourceKind.TEACHER:
        return [Teacher.center_id == scope.center_id] if scope.center_id is not None else []
    if kind == ResourceKind.STUDENT:
        return _student_criteria(scope)

    model = _STUDENT_OWNED[kind]
    criteria = []
    if scope.center_id is not None and kind in (ResourceKind.ATTENDANCE, ResourceKind.FEE):
        criteria.append(model.center_id == scope.center_id)
        scope = ScopeFilter(
            teacher_user_id=scope.teacher_user_id,
            parent_user_id=scope.parent_user_id,
            student_id=scope.student_id,
        )
    student_criteria = _student_criteria(scope)
    if student_criteria:
        student_ids = select(Student.id).where(*student_criteria)
        criteria.append(model.student_id.in_(student_ids))
    return criteria


def scoped_query(
    db: Session,
    principal: Principal,
    kind: ResourceKind,
    model: Any = None,
    requested_center_id: int | None = None,
):
    """``db.query(model)`` narrowed to what ``principal`` may see; raises Forbidden on Deny."""
    scope = enforce(resolve(principal, kind, requested_center_id=requested_center_id))
    if model is None:
        model = {ResourceKind.CENTER: Center, ResourceKind.TEACHER: Teacher, ResourceKind.STUDENT: Student}.get(
            kind, _STUDENT_OWNED.get(kind)
        )
    return db.query(model).filter(*scope_criteria(kind, scope))


def visible_student_ids(db: Session, principal: Principal, requested_center_id: int | None = None) -> list[int]:
    return [row.id for row in scoped_query(db, principal, ResourceKind.STUDENT, Student.id, requested_center_id)]
