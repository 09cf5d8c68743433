from datetime import date

import pytest

from tutor_center import reports
from tutor_center.errors import NotFound
from tutor_center.models import (
    Attendance,
    AttendanceStatus,
    Fee,
    FeeStatus,
    User,
    UserRole,
)
from tutor_center.schemas import CenterAdminKpis, ParentKpis, SuperAdminKpis, TeacherKpis
from tutor_center.scope import Principal
from tutor_center.security import hash_password

TODAY = date(2024, 3, 15)


def _fee(db, student, month, amount, status=FeeStatus.UNPAID):
    fee = Fee(
        student_id=student.id,
        center_id=student.center_id,
        month=month,
        amount=amount,
        due_date=date(2024, 3, 31),
        status=status,
    )
    db.add(fee)
    db.commit()
    return fee


def test_rate_of_nothing_is_full():
    assert reports.rate(0, 0) == 100.0
    assert reports.rate(1, 4) == 25.0


def test_empty_center_reports_full_rates(world, db):
    result = reports.center_performance(db, world.center_b.id)

    assert result.total_students == 1
    assert result.fee_collection_rate == 100.0
    assert result.submission_rate == 100.0
    assert result.attendance_rate == 100.0


def test_center_performance_counts_only_its_center(db, world, make_submission):
    _fee(db, world.student_a1, "2024-03", 100, FeeStatus.PAID)
    _fee(db, world.student_a2, "2024-03", 50)
    _fee(db, world.student_b1, "2024-03", 80)
    make_submission(world.student_a1, world.sheet_1, score=75)
    db.add_all(
        [
            Attendance(student_id=world.student_a1.id, center_id=world.center_a.id, date=TODAY,
                       status=AttendanceStatus.PRESENT),
            Attendance(student_id=world.student_a2.id, center_id=world.center_a.id, date=TODAY,
                       status=AttendanceStatus.ABSENT),
        ]
    )
    db.commit()

    result = reports.center_performance(db, world.center_a.id)

    assert result.total_students == 2
    assert result.fee_collection_rate == pytest.approx(100 / 150 * 100)
    assert result.submission_rate == 100.0
    assert result.attendance_rate == 50.0


def test_fee_collection_report_is_newest_month_first(db, world):
    _fee(db, world.student_a1, "2024-01", 100, FeeStatus.PAID)
    _fee(db, world.student_a1, "2024-02", 100)

    rows = reports.fee_collection_report(db, world.center_a.id)

    assert [row.month for row in rows] == ["2024-02", "2024-01"]
    assert rows[0].collection_rate == 0
    assert rows[1].collection_rate == 100.0


def test_super_admin_kpis(db, world, principal_of):
    _fee(db, world.student_a1, "2024-03", 100, FeeStatus.PAID)
    _fee(db, world.student_b1, "2024-02", 80, FeeStatus.PAID)

    result = reports.dashboard_kpis(db, principal_of(world.super_admin), today=TODAY)

    assert result.role == UserRole.SUPER_ADMIN
    assert result.stats == SuperAdminKpis(
        total_centers=2, total_active_students=3, total_teachers=2, revenue_this_month=100.0
    )


def test_center_admin_kpis(db, world, principal_of):
    _fee(db, world.student_a2, "2024-03", 50, FeeStatus.OVERDUE)
    db.add(Attendance(student_id=world.student_a1.id, center_id=world.center_a.id, date=TODAY,
                      status=AttendanceStatus.PRESENT))
    db.commit()

    result = reports.dashboard_kpis(db, principal_of(world.admin_a), today=TODAY)

    assert result.stats == CenterAdminKpis(total_students=2, total_teachers=1, unpaid_fees=1, today_attendance=1)


def test_teacher_kpis_follow_the_user_id(db, world, principal_of, make_submission):
    make_submission(world.student_a1, world.sheet_1, score=60)
    make_submission(world.student_a1, world.sheet_2, score=80)
    make_submission(world.student_a1, world.sheet_3)

    result = reports.dashboard_kpis(db, principal_of(world.teacher_a))

    assert result.stats == TeacherKpis(my_students=1, pending_grades=1, avg_student_score=70.0)


def test_parent_without_children_gets_zeros(db, world, principal_of):
    lonely = User(name="Lonely", email="lonely@example.com", password_hash=hash_password("secret123"),
                  role=UserRole.PARENT)
    db.add(lonely)
    db.commit()

    result = reports.dashboard_kpis(db, principal_of(lonely))

    assert result.stats == ParentKpis(children_count=0, pending_fees=0, avg_progress=0)


def test_student_kpis_need_a_profile(db):
    with pytest.raises(NotFound):
        reports.dashboard_kpis(db, Principal(id=42, role=UserRole.STUDENT))


def test_student_kpis_report_latest_score(db, world, principal_of, make_submission):
    make_submission(world.student_a1, world.sheet_1, score=55)

    result = reports.dashboard_kpis(db, principal_of(world.student_a1.user))

    assert result.stats.last_score == 55.0
    assert result.stats.current_level == "A1"
    assert result.stats.assignments_pending == 0


def test_report_center_is_pinned_for_center_admin(world, principal_of):
    assert reports.report_center_id(principal_of(world.admin_a)) == world.center_a.id
    assert reports.report_center_id(principal_of(world.super_admin)) is None
    assert reports.report_center_id(principal_of(world.super_admin), world.center_b.id) == world.center_b.id
