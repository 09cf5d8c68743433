"""Per-student rollups at a (subject, level).

``StudentProgress`` is a cache. Each recomputation re-reads every graded
submission for the key and overwrites the counters, so running it twice, or
racing it against a sibling grading, always settles on the current truth.
"""

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy import func
from sqlalchemy.orm import Session

from .models import Assignment, StudentProgress, Submission, SubmissionStatus, Worksheet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressKey:
    student_id: int
    subject_id: int
    level_id: int


@dataclass(frozen=True)
class Rollup:
    worksheets_completed: int
    average_score: float
    average_time: float


def key_for(submission: Submission) -> ProgressKey:
    worksheet = submission.assignment.worksheet
    return ProgressKey(
        student_id=submission.student_id,
        subject_id=worksheet.subject_id,
        level_id=worksheet.level_id,
    )


def compute_rollup(db: Session, key: ProgressKey) -> Rollup:
    count, total_score, total_time = (
        db.query(
            func.count(Submission.id),
            func.coalesce(func.sum(Submission.score), 0),
            func.coalesce(func.sum(Submission.time_taken_min), 0),
        )
        .join(Assignment, Submission.assignment_id == Assignment.id)
        .join(Worksheet, Assignment.worksheet_id == Worksheet.id)
        .filter(
            Submission.student_id == key.student_id,
            Submission.status == SubmissionStatus.GRADED,
            Worksheet.subject_id == key.subject_id,
            Worksheet.level_id == key.level_id,
        )
        .one()
    )
    if not count:
        return Rollup(worksheets_completed=0, average_score=0.0, average_time=0.0)
    return Rollup(
        worksheets_completed=count,
        average_score=float(total_score) / count,
        average_time=float(total_time) / count,
    )


def get_or_create_progress(db: Session, key: ProgressKey, today: date | None = None) -> StudentProgress:
    progress = (
        db.query(StudentProgress)
        .filter(
            StudentProgress.student_id == key.student_id,
            StudentProgress.subject_id == key.subject_id,
            StudentProgress.level_id == key.level_id,
        )
        .first()
    )
    if progress is None:
        progress = StudentProgress(
            student_id=key.student_id,
            subject_id=key.subject_id,
            level_id=key.level_id,
            worksheets_completed=0,
            average_score=0,
            average_time=0,
            level_started_at=today or date.today(),
        )
        db.add(progress)
        db.flush()
        logger.info(f"Started progress for student {key.student_id} at level {key.level_id}")
    return progress


def recompute(db: Session, key: ProgressKey) -> StudentProgress:
    """Refresh the rollup for ``key``. Never touches the level-completion fields."""
    db.flush()
    progress = get_or_create_progress(db, key)
    rollup = compute_rollup(db, key)
    progress.worksheets_completed = rollup.worksheets_completed
    progress.average_score = rollup.average_score
    progress.average_time = rollup.average_time
    db.flush()
    logger.info(
        f"Recomputed progress student={key.student_id} subject={key.subject_id} level={key.level_id}: "
        f"{rollup.worksheets_completed} done, avg score {rollup.average_score:.2f}"
    )
    return progress


def on_submission_graded(db: Session, submission: Submission) -> StudentProgress:
    return recompute(db, key_for(submission))
