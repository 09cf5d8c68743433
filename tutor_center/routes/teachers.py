from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..errors import success
from ..middleware import require_roles
from ..models import UserRole
from ..schemas import (
    AssignStudentsRequest,
    StudentOut,
    TeacherCreateRequest,
    TeacherUpdateRequest,
    UnassignStudentsRequest,
)
from ..scope import Principal
from ..services import teachers

router = APIRouter(prefix="/teachers", tags=["Teachers"])

admins_only = require_roles(UserRole.SUPER_ADMIN, UserRole.CENTER_ADMIN)


@router.get("")
def list_teachers(
    center_id: int | None = Query(default=None),
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(admins_only),
):
    rows = teachers.list_teachers(db, principal, center_id)
    return success([teachers.teacher_out(teacher) for teacher in rows], "Teachers retrieved successfully.")


@router.post("", status_code=status.HTTP_201_CREATED)
def create_teacher(
    payload: TeacherCreateRequest,
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(admins_only),
):
    teacher = teachers.create_teacher(db, principal, payload)
    return success(teachers.teacher_out(teacher), "Teacher created successfully.", status.HTTP_201_CREATED)


@router.post("/assign-students")
def assign_students(
    payload: AssignStudentsRequest,
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(admins_only),
):
    students = teachers.assign_students(db, principal, payload.teacher_user_id, payload.student_ids)
    return success([StudentOut.model_validate(student) for student in students], "Students assigned successfully.")


@router.post("/unassign-students")
def unassign_students(
    payload: UnassignStudentsRequest,
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(admins_only),
):
    students = teachers.unassign_students(db, principal, payload.student_ids)
    return success([StudentOut.model_validate(student) for student in students], "Students unassigned successfully.")


@router.get("/{user_id}")
def show_teacher(user_id: int, db: Session = Depends(get_db_session), principal: Principal = Depends(admins_only)):
    teacher = teachers.get_visible_teacher(db, principal, user_id)
    return success(teachers.teacher_out(teacher), "Teacher retrieved successfully.")


@router.put("/{user_id}")
def update_teacher(
    user_id: int,
    payload: TeacherUpdateRequest,
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(admins_only),
):
    teacher = teachers.update_teacher(db, principal, user_id, payload)
    return success(teachers.teacher_out(teacher), "Teacher updated successfully.")


@router.delete("/{user_id}")
def delete_teacher(user_id: int, db: Session = Depends(get_db_session), principal: Principal = Depends(admins_only)):
    teachers.delete_teacher(db, principal, user_id)
    return success(message="Teacher deleted successfully.")


@router.get("/{user_id}/students")
def teacher_students(
    user_id: int,
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(require_roles(UserRole.SUPER_ADMIN, UserRole.CENTER_ADMIN, UserRole.TEACHER)),
):
    rows = teachers.teacher_students(db, principal, user_id)
    return success([StudentOut.model_validate(student) for student in rows], "Assigned students retrieved.")
