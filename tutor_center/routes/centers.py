from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import reports
from ..database import get_db_session
from ..errors import success
from ..middleware import require_roles
from ..models import UserRole
from ..schemas import CenterCreateRequest, CenterOut, CenterUpdateRequest
from ..scope import Principal
from ..services import centers

router = APIRouter(prefix="/centers", tags=["Centers"])

admins_only = require_roles(UserRole.SUPER_ADMIN, UserRole.CENTER_ADMIN)
super_admin_only = require_roles(UserRole.SUPER_ADMIN)


@router.get("")
def list_centers(db: Session = Depends(get_db_session), principal: Principal = Depends(admins_only)):
    rows = centers.list_centers(db, principal)
    return success([CenterOut.model_validate(center) for center in rows], "Centers retrieved successfully.")


@router.post("", status_code=status.HTTP_201_CREATED)
def create_center(
    payload: CenterCreateRequest,
    db: Session = Depends(get_db_session),
    _: Principal = Depends(super_admin_only),
):
    center = centers.create_center(db, payload)
    return success(CenterOut.model_validate(center), "Center created successfully.", status.HTTP_201_CREATED)


@router.get("/{center_id}")
def show_center(center_id: int, db: Session = Depends(get_db_session), principal: Principal = Depends(admins_only)):
    center = centers.get_visible_center(db, principal, center_id)
    return success(CenterOut.model_validate(center), "Center retrieved successfully.")


@router.get("/{center_id}/stats")
def center_stats(center_id: int, db: Session = Depends(get_db_session), principal: Principal = Depends(admins_only)):
    center = centers.get_visible_center(db, principal, center_id)
    return success(reports.center_stats(db, center.id), "Statistics retrieved successfully.")


@router.put("/{center_id}")
def update_center(
    center_id: int,
    payload: CenterUpdateRequest,
    db: Session = Depends(get_db_session),
    _: Principal = Depends(super_admin_only),
):
    center = centers.update_center(db, center_id, payload)
    return success(CenterOut.model_validate(center), "Center updated successfully.")


@router.delete("/{center_id}")
def delete_center(center_id: int, db: Session = Depends(get_db_session), _: Principal = Depends(super_admin_only)):
    centers.delete_center(db, center_id)
    return success(message="Center deleted successfully.")
