import logging
import re

from fastapi import UploadFile
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..errors import BadRequest, Conflict, Forbidden, NotAuthenticated, NotFound, field_error
from ..models import Center, Student, User, UserRole
from ..schemas import RegisterRequest
from ..scope import Principal, ResourceKind, enforce, resolve
from ..security import create_access_token, hash_password, verify_password
from ..storage import PROFILE_PHOTOS, LocalFileStorage

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


def normalize_email(value: str) -> str:
    normalized = value.lower().strip()
    if not EMAIL_PATTERN.match(normalized):
        raise field_error("email", "The email must be a valid email address.")
    return normalized


def ensure_email_free(db: Session, email: str, exclude_user_id: int | None = None) -> None:
    query = db.query(User.id).filter(User.email == email)
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    if query.first():
        raise Conflict("The email has already been taken.")


def build_user(
    db: Session,
    *,
    name: str,
    email: str,
    password: str,
    role: UserRole,
    phone: str | None = None,
    address: str | None = None,
) -> User:
    """Validated, unsaved ``User``. Callers add it inside their own transaction."""
    email = normalize_email(email)
    ensure_email_free(db, email)
    return User(
        name=name.strip(),
        email=email,
        password_hash=hash_password(password),
        role=role,
        phone=phone,
        address=address,
        is_active=True,
    )


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFound("User not found.")
    return user


def register_user(db: Session, payload: RegisterRequest, actor: User | None = None) -> tuple[User, str]:
    """Self-service sign-up is for parents. Administrator accounts are created by a super admin."""
    role = UserRole(payload.role)
    if role != UserRole.PARENT and (actor is None or actor.role != UserRole.SUPER_ADMIN):
        raise Forbidden("Only a super admin can create administrator accounts.")
    user = build_user(
        db,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        role=role,
        phone=payload.phone,
        address=payload.address,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Registered {user.role.value} user {user.id}")
    return user, create_access_token(user.id, user.role.value)


def login_user(db: Session, *, email: str, password: str) -> tuple[User, str]:
    user = db.query(User).filter(User.email == email.lower().strip()).first()
    if not user or not verify_password(password, user.password_hash):
        raise NotAuthenticated("Invalid credentials")
    if not user.is_active:
        raise NotAuthenticated("Your account is inactive. Please contact the administrator.")
    return user, create_access_token(user.id, user.role.value)


def update_profile(
    db: Session,
    storage: LocalFileStorage,
    user: User,
    *,
    name: str | None = None,
    phone: str | None = None,
    address: str | None = None,
    photo: UploadFile | None = None,
) -> User:
    if name is not None:
        if not name.strip():
            raise field_error("name", "The name field is required.")
        user.name = name.strip()
    if phone is not None:
        user.phone = phone
    if address is not None:
        user.address = address

    old_photo = None
    if photo is not None and photo.filename:
        if not (photo.content_type or "").startswith("image/"):
            raise field_error("profile_photo", "The profile photo must be an image.")
        old_photo = user.profile_photo_path
        user.profile_photo_path = storage.save(photo, PROFILE_PHOTOS)

    db.commit()
    db.refresh(user)
    if old_photo:
        storage.delete(old_photo)
    return user


def change_password(db: Session, user: User, *, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise field_error("current_password", "The current password is incorrect.")
    user.password_hash = hash_password(new_password)
    db.commit()
    logger.info(f"User {user.id} changed password")


def list_center_admins(db: Session) -> list[User]:
    return db.query(User).filter(User.role == UserRole.CENTER_ADMIN).order_by(User.name).all()


def list_parents(db: Session, principal: Principal) -> list[User]:
    center_id = enforce(resolve(principal, ResourceKind.CENTER)).center_id
    query = db.query(User).filter(User.role == UserRole.PARENT)
    if center_id is not None:
        # parents of this center's students, plus parents not linked to any student yet
        in_center = select(Student.parent_id).where(Student.center_id == center_id)
        linked = select(Student.parent_id).where(Student.parent_id.isnot(None))
        query = query.filter(User.id.in_(in_center) | User.id.not_in(linked))
    return query.order_by(User.name).all()


def toggle_user_status(db: Session, actor: Principal, user_id: int) -> User:
    if user_id == actor.id:
        raise BadRequest("You cannot change your own account status.")
    user = get_user(db, user_id)
    user.is_active = not user.is_active
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} is_active set to {user.is_active} by {actor.id}")
    return user


def delete_center_admin(db: Session, user_id: int) -> None:
    user = db.get(User, user_id)
    if not user or user.role != UserRole.CENTER_ADMIN:
        raise NotFound("Center admin not found.")
    if db.query(Center.id).filter(Center.admin_id == user.id).first():
        raise BadRequest("This center admin is assigned to a center. Reassign the center first.")
    db.delete(user)
    db.commit()
    logger.info(f"Deleted center admin {user_id}")


def seed_super_admin(db: Session, *, email: str, password: str) -> None:
    if not email or not password:
        return
    email = normalize_email(email)
    if db.query(User.id).filter(User.email == email).first():
        return
    db.add(
        User(
            name="Super Admin",
            email=email,
            role=UserRole.SUPER_ADMIN,
            password_hash=hash_password(password),
            is_active=True,
        )
    )
    db.commit()
    logger.info(f"Seeded super admin {email}")
