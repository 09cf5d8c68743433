import os

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..errors import success
from ..middleware import get_current_principal, require_roles
from ..models import STAFF_ROLES, AssignmentStatus, SubmissionStatus, UserRole
from ..schemas import AssignmentCreateRequest, AssignmentOut, AssignmentUpdateRequest, GradeRequest, SubmissionOut
from ..scope import Principal
from ..services import assignments
from ..storage import LocalFileStorage, get_storage

router = APIRouter(tags=["Assignments"])

assigners = require_roles(UserRole.SUPER_ADMIN, UserRole.TEACHER)
graders = require_roles(UserRole.SUPER_ADMIN, UserRole.TEACHER)
staff_only = require_roles(*STAFF_ROLES)
submission_roles = require_roles(*STAFF_ROLES, UserRole.STUDENT)


@router.get("/assignments")
def list_assignments(
    status_filter: AssignmentStatus | None = Query(default=None, alias="status"),
    student_id: int | None = Query(default=None),
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(get_current_principal),
):
    rows = assignments.list_assignments(db, principal, status=status_filter, student_id=student_id)
    return success([AssignmentOut.model_validate(row) for row in rows], "Assignments retrieved successfully.")


@router.post("/assignments", status_code=status.HTTP_201_CREATED)
def create_assignments(
    payload: AssignmentCreateRequest,
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(assigners),
):
    rows = assignments.create_assignments(db, principal, payload)
    return success(
        [AssignmentOut.model_validate(row) for row in rows],
        f"Worksheet assigned to {len(rows)} students.",
        status.HTTP_201_CREATED,
    )


@router.get("/assignments/{assignment_id}")
def show_assignment(
    assignment_id: int, db: Session = Depends(get_db_session), principal: Principal = Depends(get_current_principal)
):
    assignment = assignments.get_visible_assignment(db, principal, assignment_id)
    return success(AssignmentOut.model_validate(assignment), "Assignment retrieved successfully.")


@router.put("/assignments/{assignment_id}")
def update_assignment(
    assignment_id: int,
    payload: AssignmentUpdateRequest,
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(assigners),
):
    assignment = assignments.update_assignment(db, principal, assignment_id, payload)
    return success(AssignmentOut.model_validate(assignment), "Assignment updated successfully.")


@router.delete("/assignments/{assignment_id}")
def cancel_assignment(
    assignment_id: int, db: Session = Depends(get_db_session), principal: Principal = Depends(staff_only)
):
    assignments.cancel_assignment(db, principal, assignment_id)
    return success(message="Assignment cancelled successfully.")


# ---- submissions ----


@router.post("/submissions", status_code=status.HTTP_201_CREATED)
def submit(
    assignment_id: int = Form(...),
    time_taken_min: int | None = Form(default=None),
    file: UploadFile = File(...),
    db: Session = Depends(get_db_session),
    storage: LocalFileStorage = Depends(get_storage),
    principal: Principal = Depends(submission_roles),
):
    submission = assignments.submit_assignment(
        db, storage, principal, assignment_id, file=file, time_taken_min=time_taken_min
    )
    return success(SubmissionOut.model_validate(submission), "Worksheet submitted successfully.", status.HTTP_201_CREATED)


@router.get("/submissions")
def list_submissions(
    status_filter: SubmissionStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(staff_only),
):
    rows = assignments.list_submissions(db, principal, status_filter)
    return success([SubmissionOut.model_validate(row) for row in rows], "Submissions retrieved successfully.")


@router.get("/submissions/pending")
def pending_submissions(db: Session = Depends(get_db_session), principal: Principal = Depends(staff_only)):
    rows = assignments.list_submissions(db, principal, SubmissionStatus.PENDING)
    return success([SubmissionOut.model_validate(row) for row in rows], "Pending submissions retrieved successfully.")


@router.get("/submissions/assignment/{assignment_id}")
def submission_by_assignment(
    assignment_id: int, db: Session = Depends(get_db_session), principal: Principal = Depends(submission_roles)
):
    submission = assignments.submission_for_assignment(db, principal, assignment_id)
    return success(SubmissionOut.model_validate(submission), "Submission retrieved successfully.")


@router.get("/submissions/{submission_id}")
def show_submission(
    submission_id: int, db: Session = Depends(get_db_session), principal: Principal = Depends(submission_roles)
):
    submission = assignments.get_visible_submission(db, principal, submission_id)
    return success(SubmissionOut.model_validate(submission), "Submission retrieved successfully.")


@router.patch("/submissions/{submission_id}/grade")
def grade_submission(
    submission_id: int,
    payload: GradeRequest,
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(graders),
):
    submission = assignments.grade_submission(db, principal, submission_id, payload)
    return success(SubmissionOut.model_validate(submission), "Submission graded successfully.")


@router.put("/submissions/{submission_id}/update-grade")
def update_grade(
    submission_id: int,
    payload: GradeRequest,
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(graders),
):
    submission = assignments.grade_submission(db, principal, submission_id, payload, regrade=True)
    return success(SubmissionOut.model_validate(submission), "Grade updated successfully.")


@router.get("/submissions/{submission_id}/download")
def download_submission(
    submission_id: int,
    db: Session = Depends(get_db_session),
    storage: LocalFileStorage = Depends(get_storage),
    principal: Principal = Depends(submission_roles),
):
    path = assignments.submission_file(db, storage, principal, submission_id)
    return FileResponse(path, filename=os.path.basename(path))
