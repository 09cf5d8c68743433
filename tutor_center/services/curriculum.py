import logging

from fastapi import UploadFile
from sqlalchemy.orm import Session

from ..errors import Conflict, NotFound, field_error
from ..models import Assignment, Level, StudentProgress, Subject, Worksheet
from ..schemas import LevelCreateRequest, LevelUpdateRequest, SubjectCreateRequest, SubjectUpdateRequest
from ..scope import Principal
from ..storage import WORKSHEETS, LocalFileStorage
from .base import apply_changes, changes_of

logger = logging.getLogger(__name__)


# ---- subjects ----


def get_subject(db: Session, subject_id: int) -> Subject:
    subject = db.get(Subject, subject_id)
    if not subject:
        raise NotFound("Subject not found.")
    return subject


def list_subjects(db: Session, active_only: bool = True) -> list[Subject]:
    query = db.query(Subject)
    if active_only:
        query = query.filter(Subject.is_active.is_(True))
    return query.order_by(Subject.name).all()


def _ensure_subject_name_free(db: Session, name: str, subject_id: int | None = None) -> None:
    query = db.query(Subject.id).filter(Subject.name == name)
    if subject_id is not None:
        query = query.filter(Subject.id != subject_id)
    if query.first():
        raise Conflict("The subject name has already been taken.")


def create_subject(db: Session, payload: SubjectCreateRequest) -> Subject:
    name = payload.name.strip()
    _ensure_subject_name_free(db, name)
    subject = Subject(name=name, description=payload.description, is_active=payload.is_active)
    db.add(subject)
    db.commit()
    db.refresh(subject)
    return subject


def update_subject(db: Session, subject_id: int, payload: SubjectUpdateRequest) -> Subject:
    subject = get_subject(db, subject_id)
    changes = changes_of(payload, required=("name", "is_active"))
    if "name" in changes:
        changes["name"] = changes["name"].strip()
        _ensure_subject_name_free(db, changes["name"], subject.id)
    apply_changes(subject, changes)
    db.commit()
    db.refresh(subject)
    return subject


def toggle_subject(db: Session, subject_id: int) -> Subject:
    subject = get_subject(db, subject_id)
    subject.is_active = not subject.is_active
    db.commit()
    db.refresh(subject)
    return subject


# ---- levels ----


def get_level(db: Session, level_id: int) -> Level:
    level = db.get(Level, level_id)
    if not level:
        raise NotFound("Level not found.")
    return level


def list_levels(db: Session, subject_id: int | None = None) -> list[Level]:
    query = db.query(Level)
    if subject_id is not None:
        query = query.filter(Level.subject_id == subject_id)
    return query.order_by(Level.subject_id, Level.order_index).all()


def create_level(db: Session, payload: LevelCreateRequest) -> Level:
    get_subject(db, payload.subject_id)
    level = Level(**payload.model_dump())
    db.add(level)
    db.commit()
    db.refresh(level)
    return level


def update_level(db: Session, level_id: int, payload: LevelUpdateRequest) -> Level:
    level = get_level(db, level_id)
    changes = changes_of(payload, required=("subject_id", "name", "order_index"))
    if "subject_id" in changes:
        get_subject(db, changes["subject_id"])
    apply_changes(level, changes)
    db.commit()
    db.refresh(level)
    return level


def delete_level(db: Session, level_id: int) -> None:
    level = get_level(db, level_id)
    in_use = (
        db.query(Worksheet.id).filter(Worksheet.level_id == level.id).first()
        or db.query(StudentProgress.id).filter(StudentProgress.level_id == level.id).first()
    )
    if in_use:
        raise Conflict("This level is referenced by worksheets or progress records and cannot be deleted.")
    db.delete(level)
    db.commit()
    logger.info(f"Deleted level {level_id}")


# ---- worksheets ----


def _check_pdf(upload: UploadFile) -> None:
    filename = (upload.filename or "").lower()
    if not filename.endswith(".pdf") and upload.content_type != "application/pdf":
        raise field_error("file", "The file must be a PDF.")


def _check_subject_level(db: Session, subject_id: int, level_id: int) -> None:
    get_subject(db, subject_id)
    level = get_level(db, level_id)
    if level.subject_id != subject_id:
        raise field_error("level_id", "The selected level does not belong to the subject.")


def get_worksheet(db: Session, worksheet_id: int) -> Worksheet:
    worksheet = db.get(Worksheet, worksheet_id)
    if not worksheet:
        raise NotFound("Worksheet not found.")
    return worksheet


def list_worksheets(db: Session, subject_id: int | None = None, level_id: int | None = None) -> list[Worksheet]:
    query = db.query(Worksheet)
    if subject_id is not None:
        query = query.filter(Worksheet.subject_id == subject_id)
    if level_id is not None:
        query = query.filter(Worksheet.level_id == level_id)
    return query.order_by(Worksheet.subject_id, Worksheet.level_id, Worksheet.id).all()


def create_worksheet(
    db: Session,
    storage: LocalFileStorage,
    principal: Principal,
    *,
    subject_id: int,
    level_id: int,
    title: str,
    file: UploadFile,
    worksheet_no: str | None = None,
    description: str | None = None,
    total_marks: int = 100,
    time_limit_minutes: int | None = None,
) -> Worksheet:
    _check_subject_level(db, subject_id, level_id)
    _check_pdf(file)
    if total_marks < 1:
        raise field_error("total_marks", "The total marks must be at least 1.")

    path = storage.save(file, WORKSHEETS)
    worksheet = Worksheet(
        subject_id=subject_id,
        level_id=level_id,
        title=title.strip(),
        worksheet_no=worksheet_no,
        description=description,
        file_path=path,
        total_marks=total_marks,
        time_limit_minutes=time_limit_minutes,
        created_by=principal.id,
    )
    db.add(worksheet)
    try:
        db.commit()
    except Exception:
        db.rollback()
        storage.delete(path)
        raise
    db.refresh(worksheet)
    logger.info(f"Uploaded worksheet {worksheet.id} ({worksheet.title})")
    return worksheet


def update_worksheet(
    db: Session,
    storage: LocalFileStorage,
    worksheet_id: int,
    *,
    changes: dict,
    file: UploadFile | None = None,
) -> Worksheet:
    worksheet = get_worksheet(db, worksheet_id)
    if "subject_id" in changes or "level_id" in changes:
        _check_subject_level(
            db, changes.get("subject_id", worksheet.subject_id), changes.get("level_id", worksheet.level_id)
        )
    if "total_marks" in changes and changes["total_marks"] < 1:
        raise field_error("total_marks", "The total marks must be at least 1.")

    old_path = None
    if file is not None and file.filename:
        _check_pdf(file)
        old_path = worksheet.file_path
        changes["file_path"] = storage.save(file, WORKSHEETS)

    apply_changes(worksheet, changes)
    db.commit()
    db.refresh(worksheet)
    if old_path:
        storage.delete(old_path)
    return worksheet


def delete_worksheet(db: Session, storage: LocalFileStorage, worksheet_id: int) -> None:
    worksheet = get_worksheet(db, worksheet_id)
    if db.query(Assignment.id).filter(Assignment.worksheet_id == worksheet.id).first():
        raise Conflict("This worksheet has assignments and cannot be deleted.")
    path = worksheet.file_path
    db.delete(worksheet)
    db.commit()
    storage.delete(path)
    logger.info(f"Deleted worksheet {worksheet_id}")


def worksheet_file(db: Session, storage: LocalFileStorage, worksheet_id: int) -> tuple[str, str]:
    worksheet = get_worksheet(db, worksheet_id)
    if not storage.exists(worksheet.file_path):
        raise NotFound("Worksheet file not found.")
    return storage.resolve(worksheet.file_path), f"{worksheet.title}.pdf"
