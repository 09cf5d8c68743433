from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..errors import success
from ..middleware import require_roles
from ..models import FeeStatus, UserRole
from ..schemas import FeeOut, GenerateFeesRequest, MarkPaidRequest
from ..scope import Principal
from ..services import fees

router = APIRouter(prefix="/fees", tags=["Fees"])

admins_only = require_roles(UserRole.SUPER_ADMIN, UserRole.CENTER_ADMIN)
fee_viewers = require_roles(UserRole.SUPER_ADMIN, UserRole.CENTER_ADMIN, UserRole.PARENT)


@router.get("")
def list_fees(
    student_id: int | None = Query(default=None),
    month: str | None = Query(default=None),
    status_filter: FeeStatus | None = Query(default=None, alias="status"),
    center_id: int | None = Query(default=None),
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(fee_viewers),
):
    rows = fees.list_fees(db, principal, student_id=student_id, month=month, status=status_filter, center_id=center_id)
    return success([FeeOut.model_validate(row) for row in rows], "Fees retrieved successfully.")


@router.post("/generate", status_code=status.HTTP_201_CREATED)
def generate(
    payload: GenerateFeesRequest,
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(admins_only),
):
    rows = fees.generate_monthly_fees(db, principal, payload)
    return success(
        [FeeOut.model_validate(row) for row in rows],
        f"Generated {len(rows)} fee records for {payload.month}.",
        status.HTTP_201_CREATED,
    )


@router.get("/report")
def report(
    center_id: int | None = Query(default=None),
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(admins_only),
):
    return success(fees.fee_summary(db, principal, center_id), "Fee report retrieved successfully.")


@router.get("/unpaid-overdue")
def unpaid_overdue(
    center_id: int | None = Query(default=None),
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(admins_only),
):
    rows = fees.unpaid_and_overdue(db, principal, center_id)
    return success([FeeOut.model_validate(row) for row in rows], "Unpaid and overdue fees retrieved.")


@router.post("/mark-overdue")
def mark_overdue(
    center_id: int | None = Query(default=None),
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(admins_only),
):
    count = fees.mark_overdue(db, principal, center_id)
    return success({"updated_count": count}, f"Marked {count} fees as overdue.")


@router.get("/{fee_id}")
def show_fee(fee_id: int, db: Session = Depends(get_db_session), principal: Principal = Depends(fee_viewers)):
    fee = fees.get_visible_fee(db, principal, fee_id)
    return success(FeeOut.model_validate(fee), "Fee retrieved successfully.")


@router.put("/{fee_id}/pay")
def pay(
    fee_id: int,
    payload: MarkPaidRequest,
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(admins_only),
):
    fee = fees.mark_paid(db, principal, fee_id, payload)
    return success(FeeOut.model_validate(fee), "Fee marked as paid successfully.")
