from datetime import date

import pytest

from tutor_center.errors import Forbidden
from tutor_center.models import Attendance, AttendanceStatus, Teacher, User, UserRole
from tutor_center.scope import (
    NO_CENTER,
    NO_STUDENT_PROFILE,
    NO_TEACHER_PROFILE,
    Allow,
    Deny,
    Principal,
    ResourceKind,
    ScopeFilter,
    authorize,
    resolve,
    scoped_query,
    visible_student_ids,
)
from tutor_center.security import hash_password


def test_teacher_is_scoped_by_user_id_not_profile_id(db, world, principal_of):
    profile = db.query(Teacher).filter(Teacher.user_id == world.teacher_a.id).one()
    assert profile.id != world.teacher_a.id

    principal = principal_of(world.teacher_a)
    decision = resolve(principal, ResourceKind.STUDENT)

    assert decision == Allow(ScopeFilter(teacher_user_id=world.teacher_a.id))
    assert visible_student_ids(db, principal) == [world.student_a1.id]


def test_center_admin_sees_only_own_center(db, world, principal_of):
    principal = principal_of(world.admin_a)

    assert principal.center_id == world.center_a.id
    assert visible_student_ids(db, principal) == [world.student_a1.id, world.student_a2.id]
    assert isinstance(resolve(principal, ResourceKind.STUDENT, requested_center_id=world.center_b.id), Deny)
    with pytest.raises(Forbidden):
        authorize(principal, ResourceKind.STUDENT, world.student_b1)


def test_center_admin_without_center_is_denied(db, world, principal_of):
    orphan = User(
        name="Loose Admin",
        email="loose.admin@example.com",
        password_hash=hash_password("secret123"),
        role=UserRole.CENTER_ADMIN,
    )
    db.add(orphan)
    db.commit()

    decision = resolve(principal_of(orphan), ResourceKind.STUDENT)

    assert decision == Deny(NO_CENTER)


def test_super_admin_can_narrow_to_a_center(db, world, principal_of):
    principal = principal_of(world.super_admin)

    assert resolve(principal, ResourceKind.STUDENT) == Allow(ScopeFilter())
    assert visible_student_ids(db, principal, world.center_b.id) == [world.student_b1.id]


def test_parent_cannot_reach_another_family(world, principal_of):
    principal = principal_of(world.parent_a)

    authorize(principal, ResourceKind.STUDENT, world.student_a1)
    with pytest.raises(Forbidden):
        authorize(principal, ResourceKind.STUDENT, world.student_b1)


def test_student_without_profile_is_denied():
    principal = Principal(id=999, role=UserRole.STUDENT)

    assert resolve(principal, ResourceKind.ASSIGNMENT) == Deny(NO_STUDENT_PROFILE)


def test_teacher_without_linked_user_is_denied(world):
    principal = Principal(id=world.teacher_a.id, role=UserRole.TEACHER)

    assert resolve(principal, ResourceKind.ASSIGNMENT) == Deny(NO_TEACHER_PROFILE)
    assert resolve(principal, ResourceKind.STUDENT, target=world.student_a1) == Deny(NO_TEACHER_PROFILE)


def test_fees_are_closed_to_teachers_and_students(world, principal_of):
    assert isinstance(resolve(principal_of(world.teacher_a), ResourceKind.FEE), Deny)
    student = principal_of(world.student_a1.user)
    assert isinstance(resolve(student, ResourceKind.FEE, target=world.student_a1), Deny)


def test_attendance_is_scoped_by_its_own_center_id(db, world, principal_of):
    db.add_all(
        [
            Attendance(
                student_id=world.student_a1.id,
                center_id=world.center_a.id,
                date=date(2024, 3, 1),
                status=AttendanceStatus.PRESENT,
            ),
            Attendance(
                student_id=world.student_b1.id,
                center_id=world.center_b.id,
                date=date(2024, 3, 1),
                status=AttendanceStatus.ABSENT,
            ),
        ]
    )
    db.commit()

    rows = scoped_query(db, principal_of(world.admin_b), ResourceKind.ATTENDANCE).all()

    assert [row.student_id for row in rows] == [world.student_b1.id]
