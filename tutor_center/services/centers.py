import logging

from sqlalchemy.orm import Session

from ..database import atomic
from ..errors import Conflict, NotFound, field_error
from ..models import Center, User, UserRole
from ..schemas import CenterCreateRequest, CenterUpdateRequest
from ..scope import Principal, ResourceKind, authorize, scoped_query
from .base import apply_changes, changes_of

logger = logging.getLogger(__name__)


def get_center(db: Session, center_id: int) -> Center:
    center = db.get(Center, center_id)
    if not center:
        raise NotFound("Center not found.")
    return center


def get_visible_center(db: Session, principal: Principal, center_id: int) -> Center:
    center = get_center(db, center_id)
    authorize(principal, ResourceKind.CENTER, center)
    return center


def list_centers(db: Session, principal: Principal) -> list[Center]:
    return scoped_query(db, principal, ResourceKind.CENTER).order_by(Center.name).all()


def _check_admin(db: Session, admin_id: int | None, center_id: int | None = None) -> None:
    if admin_id is None:
        return
    admin = db.get(User, admin_id)
    if not admin or admin.role != UserRole.CENTER_ADMIN:
        raise field_error("admin_id", "The selected admin must be a center admin.")
    owner = db.query(Center.id).filter(Center.admin_id == admin_id).scalar()
    if owner is not None and owner != center_id:
        raise Conflict("This admin is already assigned to another center.")


def create_center(db: Session, payload: CenterCreateRequest) -> Center:
    _check_admin(db, payload.admin_id)
    center = Center(**payload.model_dump())
    db.add(center)
    db.commit()
    db.refresh(center)
    logger.info(f"Created center {center.id} ({center.name})")
    return center


def update_center(db: Session, center_id: int, payload: CenterUpdateRequest) -> Center:
    center = get_center(db, center_id)
    changes = changes_of(payload, required=("name", "is_active"))
    if "admin_id" in changes:
        _check_admin(db, changes["admin_id"], center.id)
    apply_changes(center, changes)
    db.commit()
    db.refresh(center)
    return center


def delete_center(db: Session, center_id: int) -> None:
    """Delete the center with its students and teachers, login accounts included."""
    center = get_center(db, center_id)
    members = [student.user for student in center.students] + [teacher.user for teacher in center.teachers]
    with atomic(db):
        for user in members:
            db.delete(user)
        db.delete(center)
    logger.info(f"Deleted center {center_id} with {len(members)} student and teacher accounts")
