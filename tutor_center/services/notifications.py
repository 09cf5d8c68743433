from typing import Any

from sqlalchemy.orm import Session

from ..errors import NotFound
from ..models import Notification
from ..scope import Principal


def notify(
    db: Session,
    user_id: int,
    *,
    title: str,
    message: str,
    type: str | None = None,
    data: dict[str, Any] | None = None,
) -> Notification:
    """Queue a notification row in the caller's transaction. Nothing is delivered."""
    notification = Notification(user_id=user_id, title=title, message=message, type=type, data=data)
    db.add(notification)
    return notification


def list_notifications(db: Session, principal: Principal, unread_only: bool = False) -> list[Notification]:
    query = db.query(Notification).filter(Notification.user_id == principal.id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()


def mark_read(db: Session, principal: Principal, notification_id: int) -> Notification:
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == principal.id)
        .first()
    )
    if not notification:
        raise NotFound("Notification not found.")
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification
