"""Assignment lifecycle: assigned -> submitted -> graded -> returned, never backwards."""

import logging
from datetime import date

from fastapi import UploadFile
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import progress
from ..database import atomic
from ..errors import Conflict, NotFound, field_error
from ..models import Assignment, AssignmentStatus, Submission, SubmissionStatus, UserRole, utcnow
from ..schemas import AssignmentCreateRequest, AssignmentUpdateRequest, GradeRequest
from ..scope import Principal, ResourceKind, authorize, scoped_query
from ..storage import SUBMISSIONS, LocalFileStorage
from .base import apply_changes, changes_of
from .curriculum import get_worksheet
from .notifications import notify
from .students import get_visible_student, get_visible_students

logger = logging.getLogger(__name__)

UNFINISHED = (AssignmentStatus.ASSIGNED, AssignmentStatus.SUBMITTED)


def get_assignment(db: Session, assignment_id: int) -> Assignment:
    assignment = db.get(Assignment, assignment_id)
    if not assignment:
        raise NotFound("Assignment not found.")
    return assignment


def get_visible_assignment(db: Session, principal: Principal, assignment_id: int) -> Assignment:
    assignment = get_assignment(db, assignment_id)
    authorize(principal, ResourceKind.ASSIGNMENT, assignment)
    return assignment


def list_assignments(
    db: Session,
    principal: Principal,
    *,
    status: AssignmentStatus | None = None,
    student_id: int | None = None,
) -> list[Assignment]:
    query = scoped_query(db, principal, ResourceKind.ASSIGNMENT)
    if status is not None:
        query = query.filter(Assignment.status == status)
    if student_id is not None:
        get_visible_student(db, principal, student_id, ResourceKind.ASSIGNMENT)
        query = query.filter(Assignment.student_id == student_id)
    return query.order_by(Assignment.assigned_date.desc(), Assignment.id.desc()).all()


def create_assignments(
    db: Session, principal: Principal, payload: AssignmentCreateRequest, today: date | None = None
) -> list[Assignment]:
    """Assign one worksheet to several students. Either every row is written or none."""
    today = today or date.today()
    worksheet = get_worksheet(db, payload.worksheet_id)
    students = get_visible_students(db, principal, payload.student_ids)
    if payload.due_date is not None and payload.due_date < today:
        raise field_error("due_date", "The due date must be today or later.")

    open_for = [
        row.student_id
        for row in db.query(Assignment.student_id).filter(
            Assignment.worksheet_id == worksheet.id,
            Assignment.student_id.in_([student.id for student in students]),
            Assignment.status.in_(UNFINISHED),
        )
    ]
    if open_for:
        raise Conflict(
            f"Worksheet is already assigned and unfinished for student(s): {', '.join(str(i) for i in sorted(open_for))}."
        )

    assignments = []
    with atomic(db):
        for student in students:
            if principal.role == UserRole.TEACHER:
                teacher_id = principal.id
            else:
                teacher_id = student.teacher_id or principal.id
            assignment = Assignment(
                student_id=student.id,
                worksheet_id=worksheet.id,
                teacher_id=teacher_id,
                assigned_date=today,
                due_date=payload.due_date,
                notes=payload.notes,
                status=AssignmentStatus.ASSIGNED,
            )
            db.add(assignment)
            assignments.append(assignment)
            notify(
                db,
                student.user_id,
                title="New worksheet assigned",
                message=f"{worksheet.title} has been assigned to you.",
                type="assignment",
                data={"worksheet_id": worksheet.id},
            )

    logger.info(f"Assigned worksheet {worksheet.id} to {len(assignments)} students by user {principal.id}")
    return assignments


def update_assignment(
    db: Session, principal: Principal, assignment_id: int, payload: AssignmentUpdateRequest
) -> Assignment:
    assignment = get_visible_assignment(db, principal, assignment_id)
    changes = changes_of(payload, required=("status",))
    wanted = changes.get("status")
    if wanted is not None and wanted != assignment.status:
        # submitting and grading move the status; by hand only a graded sheet can be returned
        if (assignment.status, wanted) != (AssignmentStatus.GRADED, AssignmentStatus.RETURNED):
            raise Conflict(
                f"Assignment status cannot be changed from {assignment.status.value} to {wanted.value} directly."
            )
    apply_changes(assignment, changes)
    db.commit()
    db.refresh(assignment)
    return assignment


def cancel_assignment(db: Session, principal: Principal, assignment_id: int) -> None:
    assignment = get_visible_assignment(db, principal, assignment_id)
    if assignment.status != AssignmentStatus.ASSIGNED:
        raise Conflict("Only assignments that have not been submitted can be cancelled.")
    db.delete(assignment)
    db.commit()
    logger.info(f"Cancelled assignment {assignment_id}")


# ---- submissions ----


def get_submission(db: Session, submission_id: int) -> Submission:
    submission = db.get(Submission, submission_id)
    if not submission:
        raise NotFound("Submission not found.")
    return submission


def get_visible_submission(db: Session, principal: Principal, submission_id: int) -> Submission:
    submission = get_submission(db, submission_id)
    authorize(principal, ResourceKind.SUBMISSION, submission)
    return submission


def list_submissions(db: Session, principal: Principal, status: SubmissionStatus | None = None) -> list[Submission]:
    query = scoped_query(db, principal, ResourceKind.SUBMISSION)
    if status is not None:
        query = query.filter(Submission.status == status)
    return query.order_by(Submission.submitted_at.desc(), Submission.id.desc()).all()


def submission_for_assignment(db: Session, principal: Principal, assignment_id: int) -> Submission:
    assignment = get_assignment(db, assignment_id)
    authorize(principal, ResourceKind.SUBMISSION, assignment)
    if assignment.submission is None:
        raise NotFound("No submission found for this assignment.")
    return assignment.submission


def submit_assignment(
    db: Session,
    storage: LocalFileStorage,
    principal: Principal,
    assignment_id: int,
    *,
    file: UploadFile,
    time_taken_min: int | None = None,
) -> Submission:
    assignment = get_assignment(db, assignment_id)
    authorize(principal, ResourceKind.SUBMISSION, assignment)
    if assignment.submission is not None or assignment.status != AssignmentStatus.ASSIGNED:
        raise Conflict("This assignment has already been submitted.")
    if time_taken_min is not None and time_taken_min < 0:
        raise field_error("time_taken_min", "The time taken must be at least 0.")
    if not file.filename:
        raise field_error("file", "The file field is required.")

    path = storage.save(file, SUBMISSIONS)
    try:
        with atomic(db):
            submission = Submission(
                assignment_id=assignment.id,
                student_id=assignment.student_id,
                submitted_file=path,
                submitted_at=utcnow(),
                time_taken_min=time_taken_min,
                error_count=0,
                status=SubmissionStatus.PENDING,
            )
            db.add(submission)
            assignment.status = AssignmentStatus.SUBMITTED
            if assignment.teacher_id:
                notify(
                    db,
                    assignment.teacher_id,
                    title="Worksheet submitted",
                    message=f"A submission is waiting for grading on assignment {assignment.id}.",
                    type="submission",
                    data={"assignment_id": assignment.id},
                )
    except IntegrityError as exc:
        storage.delete(path)
        raise Conflict("This assignment has already been submitted.") from exc
    except Exception:
        storage.delete(path)
        raise

    db.refresh(submission)
    logger.info(f"Assignment {assignment.id} submitted as submission {submission.id}")
    return submission


def grade_submission(
    db: Session, principal: Principal, submission_id: int, payload: GradeRequest, regrade: bool = False
) -> Submission:
    """Record a grade and refresh the student's progress in the same transaction."""
    submission = get_visible_submission(db, principal, submission_id)
    if not regrade and submission.status == SubmissionStatus.GRADED:
        raise Conflict("This submission has already been graded. Use update-grade to change it.")
    if regrade and submission.status != SubmissionStatus.GRADED:
        raise Conflict("This submission has not been graded yet.")

    with atomic(db):
        submission.score = payload.score
        submission.error_count = payload.error_count
        submission.teacher_feedback = payload.teacher_feedback
        submission.graded_by = principal.id
        submission.graded_at = utcnow()
        submission.status = SubmissionStatus.GRADED

        assignment = submission.assignment
        if assignment.status.rank < AssignmentStatus.GRADED.rank:
            assignment.status = AssignmentStatus.GRADED

        progress.on_submission_graded(db, submission)
        notify(
            db,
            submission.student.user_id,
            title="Worksheet graded",
            message=f"{assignment.worksheet.title} was graded: {payload.score:g}.",
            type="grade",
            data={"submission_id": submission.id, "score": payload.score},
        )

    db.refresh(submission)
    logger.info(f"Submission {submission.id} graded {payload.score} by user {principal.id}")
    return submission


def submission_file(db: Session, storage: LocalFileStorage, principal: Principal, submission_id: int) -> str:
    submission = get_visible_submission(db, principal, submission_id)
    if not storage.exists(submission.submitted_file):
        raise NotFound("Submission file not found.")
    return storage.resolve(submission.submitted_file)
