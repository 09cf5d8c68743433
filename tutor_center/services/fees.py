import logging
from datetime import date

from sqlalchemy.orm import Session

from .. import dates, reports
from ..database import atomic
from ..errors import NotFound, field_error
from ..models import OUTSTANDING_FEE_STATUSES, Fee, FeeStatus, Student, StudentStatus
from ..schemas import FeeSummaryOut, GenerateFeesRequest, MarkPaidRequest
from ..scope import Principal, ResourceKind, authorize, scoped_query
from .students import get_visible_student

logger = logging.getLogger(__name__)


def get_visible_fee(db: Session, principal: Principal, fee_id: int) -> Fee:
    fee = db.get(Fee, fee_id)
    if not fee:
        raise NotFound("Fee record not found.")
    authorize(principal, ResourceKind.FEE, fee)
    return fee


def list_fees(
    db: Session,
    principal: Principal,
    *,
    student_id: int | None = None,
    month: str | None = None,
    status: FeeStatus | None = None,
    center_id: int | None = None,
) -> list[Fee]:
    query = scoped_query(db, principal, ResourceKind.FEE, requested_center_id=center_id)
    if student_id is not None:
        get_visible_student(db, principal, student_id, ResourceKind.FEE)
        query = query.filter(Fee.student_id == student_id)
    if month:
        if not dates.is_month(month):
            raise field_error("month", "The month must be in YYYY-MM format.")
        query = query.filter(Fee.month == month)
    if status is not None:
        query = query.filter(Fee.status == status)
    return query.order_by(Fee.month.desc(), Fee.student_id).all()


def generate_monthly_fees(db: Session, principal: Principal, payload: GenerateFeesRequest) -> list[Fee]:
    """Create one unpaid fee per active student for the month. Months already billed are skipped."""
    students = (
        scoped_query(db, principal, ResourceKind.STUDENT, requested_center_id=payload.center_id)
        .filter(Student.status == StudentStatus.ACTIVE)
        .order_by(Student.id)
        .all()
    )
    due_date = payload.due_date or dates.month_bounds(payload.month)[1]
    billed = {
        row.student_id
        for row in db.query(Fee.student_id).filter(
            Fee.month == payload.month, Fee.student_id.in_([student.id for student in students])
        )
    }

    created = []
    with atomic(db):
        for student in students:
            if student.id in billed:
                continue
            fee = Fee(
                student_id=student.id,
                center_id=student.center_id,
                month=payload.month,
                amount=student.monthly_fee,
                due_date=due_date,
                status=FeeStatus.UNPAID,
            )
            db.add(fee)
            created.append(fee)

    logger.info(f"Generated {len(created)} fees for {payload.month} (skipped {len(billed)} already billed)")
    return created


def mark_paid(
    db: Session, principal: Principal, fee_id: int, payload: MarkPaidRequest, today: date | None = None
) -> Fee:
    today = today or date.today()
    fee = get_visible_fee(db, principal, fee_id)
    paid_date = payload.paid_date or today
    if paid_date > today:
        raise field_error("paid_date", "The paid date cannot be in the future.")
    fee.status = FeeStatus.PAID
    fee.payment_method = payload.payment_method
    fee.transaction_id = payload.transaction_id
    fee.paid_date = paid_date
    db.commit()
    db.refresh(fee)
    logger.info(f"Fee {fee.id} marked paid via {fee.payment_method}")
    return fee


def mark_overdue(db: Session, principal: Principal, center_id: int | None = None, today: date | None = None) -> int:
    today = today or date.today()
    overdue = (
        scoped_query(db, principal, ResourceKind.FEE, requested_center_id=center_id)
        .filter(Fee.status == FeeStatus.UNPAID, Fee.due_date < today)
        .all()
    )
    with atomic(db):
        for fee in overdue:
            fee.status = FeeStatus.OVERDUE
    logger.info(f"Marked {len(overdue)} fees as overdue")
    return len(overdue)


def fee_summary(db: Session, principal: Principal, center_id: int | None = None) -> FeeSummaryOut:
    query = scoped_query(db, principal, ResourceKind.FEE, requested_center_id=center_id)
    return reports.fee_status_summary(query, center_id if center_id is not None else principal.center_id)


def unpaid_and_overdue(db: Session, principal: Principal, center_id: int | None = None) -> list[Fee]:
    return (
        scoped_query(db, principal, ResourceKind.FEE, requested_center_id=center_id)
        .filter(Fee.status.in_(OUTSTANDING_FEE_STATUSES))
        .order_by(Fee.due_date, Fee.id)
        .all()
    )
