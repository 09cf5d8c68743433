from collections.abc import Callable

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from .database import get_db_session
from .errors import Forbidden, NotAuthenticated
from .models import Center, Student, Teacher, User, UserRole
from .scope import Principal
from .security import AuthError, decode_access_token


def _parse_token(auth_header: str | None) -> str:
    if not auth_header:
        raise NotAuthenticated("Missing Authorization header")
    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise NotAuthenticated("Invalid auth scheme")
    return parts[1].strip()


def build_principal(db: Session, user: User) -> Principal:
    center_id = None
    linked_student_id = None
    linked_teacher_user_id = None

    if user.role == UserRole.CENTER_ADMIN:
        center_id = db.query(Center.id).filter(Center.admin_id == user.id).scalar()
    elif user.role == UserRole.TEACHER:
        center_id = db.query(Teacher.center_id).filter(Teacher.user_id == user.id).scalar()
        linked_teacher_user_id = user.id
    elif user.role == UserRole.STUDENT:
        student = db.query(Student).filter(Student.user_id == user.id).first()
        if student:
            center_id = student.center_id
            linked_student_id = student.id

    return Principal(
        id=user.id,
        role=user.role,
        center_id=center_id,
        linked_student_id=linked_student_id,
        linked_teacher_user_id=linked_teacher_user_id,
    )


def get_current_user(
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db_session),
) -> User:
    token = _parse_token(authorization)
    try:
        claims = decode_access_token(token)
    except AuthError as exc:
        raise NotAuthenticated(str(exc)) from exc

    user = db.get(User, claims.user_id)
    if not user or not user.is_active:
        raise NotAuthenticated("Invalid user")
    return user


def get_optional_user(
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db_session),
) -> User | None:
    if authorization is None:
        return None
    return get_current_user(authorization, db)


def get_current_principal(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
) -> Principal:
    return build_principal(db, user)


def require_roles(*allowed_roles: UserRole) -> Callable:
    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed_roles:
            raise Forbidden(
                f"Forbidden. Your role ({principal.role.value}) does not have access to this resource."
            )
        return principal

    return dependency
