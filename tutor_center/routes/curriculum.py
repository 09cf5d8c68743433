from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..errors import success
from ..middleware import get_current_principal, require_roles
from ..models import STAFF_ROLES, UserRole
from ..schemas import (
    LevelCreateRequest,
    LevelOut,
    LevelUpdateRequest,
    SubjectCreateRequest,
    SubjectDetailOut,
    SubjectOut,
    SubjectUpdateRequest,
    WorksheetOut,
)
from ..scope import Principal
from ..services import curriculum
from ..storage import LocalFileStorage, get_storage

router = APIRouter(tags=["Curriculum"])

super_admin_only = require_roles(UserRole.SUPER_ADMIN)
staff_only = require_roles(*STAFF_ROLES)


# ---- subjects ----


@router.get("/subjects")
def list_active_subjects(db: Session = Depends(get_db_session), _: Principal = Depends(get_current_principal)):
    rows = curriculum.list_subjects(db, active_only=True)
    return success([SubjectOut.model_validate(row) for row in rows], "Subjects retrieved successfully.")


@router.get("/subjects/all")
def list_all_subjects(db: Session = Depends(get_db_session), _: Principal = Depends(super_admin_only)):
    rows = curriculum.list_subjects(db, active_only=False)
    return success([SubjectOut.model_validate(row) for row in rows], "All subjects retrieved successfully.")


@router.post("/subjects", status_code=status.HTTP_201_CREATED)
def create_subject(
    payload: SubjectCreateRequest, db: Session = Depends(get_db_session), _: Principal = Depends(super_admin_only)
):
    subject = curriculum.create_subject(db, payload)
    return success(SubjectOut.model_validate(subject), "Subject created successfully.", status.HTTP_201_CREATED)


@router.get("/subjects/{subject_id}")
def show_subject(subject_id: int, db: Session = Depends(get_db_session), _: Principal = Depends(super_admin_only)):
    subject = curriculum.get_subject(db, subject_id)
    return success(SubjectDetailOut.model_validate(subject), "Subject retrieved successfully.")


@router.put("/subjects/{subject_id}")
def update_subject(
    subject_id: int,
    payload: SubjectUpdateRequest,
    db: Session = Depends(get_db_session),
    _: Principal = Depends(super_admin_only),
):
    subject = curriculum.update_subject(db, subject_id, payload)
    return success(SubjectOut.model_validate(subject), "Subject updated successfully.")


@router.patch("/subjects/{subject_id}/toggle-status")
def toggle_subject(subject_id: int, db: Session = Depends(get_db_session), _: Principal = Depends(super_admin_only)):
    subject = curriculum.toggle_subject(db, subject_id)
    return success(SubjectOut.model_validate(subject), "Subject status updated successfully.")


# ---- levels ----


@router.get("/levels")
def list_levels(
    subject_id: int | None = Query(default=None),
    db: Session = Depends(get_db_session),
    _: Principal = Depends(get_current_principal),
):
    rows = curriculum.list_levels(db, subject_id)
    return success([LevelOut.model_validate(row) for row in rows], "Levels retrieved successfully.")


@router.post("/levels", status_code=status.HTTP_201_CREATED)
def create_level(
    payload: LevelCreateRequest, db: Session = Depends(get_db_session), _: Principal = Depends(super_admin_only)
):
    level = curriculum.create_level(db, payload)
    return success(LevelOut.model_validate(level), "Level created successfully.", status.HTTP_201_CREATED)


@router.put("/levels/{level_id}")
def update_level(
    level_id: int,
    payload: LevelUpdateRequest,
    db: Session = Depends(get_db_session),
    _: Principal = Depends(super_admin_only),
):
    level = curriculum.update_level(db, level_id, payload)
    return success(LevelOut.model_validate(level), "Level updated successfully.")


@router.delete("/levels/{level_id}")
def delete_level(level_id: int, db: Session = Depends(get_db_session), _: Principal = Depends(super_admin_only)):
    curriculum.delete_level(db, level_id)
    return success(message="Level deleted successfully.")


# ---- worksheets ----


@router.get("/worksheets")
def list_worksheets(
    subject_id: int | None = Query(default=None),
    level_id: int | None = Query(default=None),
    db: Session = Depends(get_db_session),
    _: Principal = Depends(get_current_principal),
):
    rows = curriculum.list_worksheets(db, subject_id, level_id)
    return success([WorksheetOut.model_validate(row) for row in rows], "Worksheets retrieved successfully.")


@router.post("/worksheets", status_code=status.HTTP_201_CREATED)
def upload_worksheet(
    subject_id: int = Form(...),
    level_id: int = Form(...),
    title: str = Form(..., min_length=1, max_length=200),
    worksheet_no: str | None = Form(default=None),
    description: str | None = Form(default=None),
    total_marks: int = Form(default=100),
    time_limit_minutes: int | None = Form(default=None),
    file: UploadFile = File(...),
    db: Session = Depends(get_db_session),
    storage: LocalFileStorage = Depends(get_storage),
    principal: Principal = Depends(staff_only),
):
    worksheet = curriculum.create_worksheet(
        db,
        storage,
        principal,
        subject_id=subject_id,
        level_id=level_id,
        title=title,
        file=file,
        worksheet_no=worksheet_no,
        description=description,
        total_marks=total_marks,
        time_limit_minutes=time_limit_minutes,
    )
    return success(WorksheetOut.model_validate(worksheet), "Worksheet uploaded successfully.", status.HTTP_201_CREATED)


@router.get("/worksheets/{worksheet_id}")
def show_worksheet(
    worksheet_id: int, db: Session = Depends(get_db_session), _: Principal = Depends(get_current_principal)
):
    worksheet = curriculum.get_worksheet(db, worksheet_id)
    return success(WorksheetOut.model_validate(worksheet), "Worksheet retrieved successfully.")


@router.put("/worksheets/{worksheet_id}")
def update_worksheet(
    worksheet_id: int,
    subject_id: int | None = Form(default=None),
    level_id: int | None = Form(default=None),
    title: str | None = Form(default=None, min_length=1, max_length=200),
    worksheet_no: str | None = Form(default=None),
    description: str | None = Form(default=None),
    total_marks: int | None = Form(default=None),
    time_limit_minutes: int | None = Form(default=None),
    file: UploadFile | None = File(default=None),
    db: Session = Depends(get_db_session),
    storage: LocalFileStorage = Depends(get_storage),
    _: Principal = Depends(staff_only),
):
    sent = {
        "subject_id": subject_id,
        "level_id": level_id,
        "title": title,
        "worksheet_no": worksheet_no,
        "description": description,
        "total_marks": total_marks,
        "time_limit_minutes": time_limit_minutes,
    }
    changes = {key: value for key, value in sent.items() if value is not None}
    worksheet = curriculum.update_worksheet(db, storage, worksheet_id, changes=changes, file=file)
    return success(WorksheetOut.model_validate(worksheet), "Worksheet updated successfully.")


@router.delete("/worksheets/{worksheet_id}")
def delete_worksheet(
    worksheet_id: int,
    db: Session = Depends(get_db_session),
    storage: LocalFileStorage = Depends(get_storage),
    _: Principal = Depends(require_roles(UserRole.SUPER_ADMIN, UserRole.CENTER_ADMIN)),
):
    curriculum.delete_worksheet(db, storage, worksheet_id)
    return success(message="Worksheet deleted successfully.")


@router.get("/worksheets/{worksheet_id}/download")
def download_worksheet(
    worksheet_id: int,
    db: Session = Depends(get_db_session),
    storage: LocalFileStorage = Depends(get_storage),
    _: Principal = Depends(get_current_principal),
):
    path, filename = curriculum.worksheet_file(db, storage, worksheet_id)
    return FileResponse(path, media_type="application/pdf", filename=filename)
