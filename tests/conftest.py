import os
from types import SimpleNamespace

os.environ.setdefault("TUTOR_DATABASE_URL", "sqlite://")
os.environ.setdefault("TUTOR_BCRYPT_ROUNDS", "4")
os.environ.setdefault("TUTOR_JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tutor_center.app import create_app
from tutor_center.database import Base, get_db_session
from tutor_center.middleware import build_principal
from tutor_center.models import (
    Assignment,
    AssignmentStatus,
    Center,
    Level,
    Student,
    Subject,
    Submission,
    SubmissionStatus,
    Teacher,
    User,
    UserRole,
    Worksheet,
    utcnow,
)
from tutor_center.security import create_access_token, hash_password
from tutor_center.storage import LocalFileStorage, get_storage

PASSWORD = "secret123"


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage(tmp_path):
    return LocalFileStorage(str(tmp_path / "uploads"))


@pytest.fixture
def client(db, storage):
    app = create_app(init_on_startup=False)

    def _db_override():
        yield db

    app.dependency_overrides[get_db_session] = _db_override
    app.dependency_overrides[get_storage] = lambda: storage
    return TestClient(app)


def _user(db, name, role, email=None):
    user = User(
        name=name,
        email=email or f"{name.lower().replace(' ', '.')}@example.com",
        password_hash=hash_password(PASSWORD),
        role=role,
        is_active=True,
    )
    db.add(user)
    db.flush()
    return user


def _student(db, name, center, *, teacher=None, parent=None, monthly_fee=0, level=None):
    user = _user(db, name, UserRole.STUDENT)
    student = Student(
        user_id=user.id,
        center_id=center.id,
        teacher_id=teacher.id if teacher else None,
        parent_id=parent.id if parent else None,
        monthly_fee=monthly_fee,
        current_level=level,
    )
    db.add(student)
    db.flush()
    return student


@pytest.fixture
def world(db):
    """Two centers with one admin, one teacher, one parent each.

    Center A holds two students (only the first has a teacher and a parent),
    center B holds one. Padding users are created between the teacher profiles
    so ``teachers.id`` never equals the teacher's ``users.id``.
    """
    super_admin = _user(db, "Root", UserRole.SUPER_ADMIN)
    admin_a = _user(db, "Admin A", UserRole.CENTER_ADMIN)
    admin_b = _user(db, "Admin B", UserRole.CENTER_ADMIN)
    center_a = Center(name="North Center", city="Pune", admin_id=admin_a.id)
    center_b = Center(name="South Center", city="Goa", admin_id=admin_b.id)
    db.add_all([center_a, center_b])
    db.flush()

    _user(db, "Padding One", UserRole.PARENT)
    teacher_a = _user(db, "Teacher A", UserRole.TEACHER)
    _user(db, "Padding Two", UserRole.PARENT)
    teacher_b = _user(db, "Teacher B", UserRole.TEACHER)
    db.add_all(
        [
            Teacher(user_id=teacher_a.id, center_id=center_a.id, employee_id="EMP-A"),
            Teacher(user_id=teacher_b.id, center_id=center_b.id, employee_id="EMP-B"),
        ]
    )
    parent_a = _user(db, "Parent A", UserRole.PARENT)
    parent_b = _user(db, "Parent B", UserRole.PARENT)

    student_a1 = _student(db, "Student A1", center_a, teacher=teacher_a, parent=parent_a, monthly_fee=100, level="A1")
    student_a2 = _student(db, "Student A2", center_a, monthly_fee=50)
    student_b1 = _student(db, "Student B1", center_b, teacher=teacher_b, parent=parent_b, monthly_fee=80)

    math = Subject(name="Math")
    db.add(math)
    db.flush()
    level_1 = Level(subject_id=math.id, name="A1", order_index=1)
    level_2 = Level(subject_id=math.id, name="A2", order_index=2)
    db.add_all([level_1, level_2])
    db.flush()
    sheet_1 = Worksheet(subject_id=math.id, level_id=level_1.id, title="Addition 1", total_marks=100)
    sheet_2 = Worksheet(subject_id=math.id, level_id=level_1.id, title="Addition 2", total_marks=100)
    sheet_3 = Worksheet(subject_id=math.id, level_id=level_2.id, title="Subtraction 1", total_marks=100)
    db.add_all([sheet_1, sheet_2, sheet_3])
    db.commit()

    return SimpleNamespace(
        super_admin=super_admin,
        admin_a=admin_a,
        admin_b=admin_b,
        center_a=center_a,
        center_b=center_b,
        teacher_a=teacher_a,
        teacher_b=teacher_b,
        parent_a=parent_a,
        parent_b=parent_b,
        student_a1=student_a1,
        student_a2=student_a2,
        student_b1=student_b1,
        math=math,
        level_1=level_1,
        level_2=level_2,
        sheet_1=sheet_1,
        sheet_2=sheet_2,
        sheet_3=sheet_3,
    )


@pytest.fixture
def principal_of(db):
    return lambda user: build_principal(db, user)


@pytest.fixture
def auth():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id, user.role.value)}"}

    return _headers


@pytest.fixture
def make_submission(db):
    """Assignment plus submission for ``student``; graded when a score is given."""

    def _make(student, worksheet, *, score=None, time_taken=None, teacher_id=None):
        assignment = Assignment(
            student_id=student.id,
            worksheet_id=worksheet.id,
            teacher_id=teacher_id if teacher_id is not None else student.teacher_id,
            assigned_date=utcnow().date(),
            status=AssignmentStatus.SUBMITTED if score is None else AssignmentStatus.GRADED,
        )
        db.add(assignment)
        db.flush()
        submission = Submission(
            assignment_id=assignment.id,
            student_id=student.id,
            submitted_at=utcnow(),
            time_taken_min=time_taken,
            score=score,
            graded_at=utcnow() if score is not None else None,
            status=SubmissionStatus.PENDING if score is None else SubmissionStatus.GRADED,
        )
        db.add(submission)
        db.commit()
        return submission

    return _make
