from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..errors import success
from ..middleware import get_current_principal
from ..schemas import NotificationOut
from ..scope import Principal
from ..services import notifications

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("")
def list_notifications(
    unread_only: bool = Query(default=False),
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(get_current_principal),
):
    rows = notifications.list_notifications(db, principal, unread_only)
    return success([NotificationOut.model_validate(row) for row in rows], "Notifications retrieved successfully.")


@router.patch("/{notification_id}/read")
def mark_read(
    notification_id: int, db: Session = Depends(get_db_session), principal: Principal = Depends(get_current_principal)
):
    notification = notifications.mark_read(db, principal, notification_id)
    return success(NotificationOut.model_validate(notification), "Notification marked as read.")
