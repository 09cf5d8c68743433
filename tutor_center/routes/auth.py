from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.orm import Session

from .. import reports
from ..database import get_db_session
from ..errors import success
from ..middleware import get_current_user, get_optional_user, require_roles
from ..models import User, UserRole
from ..schemas import ChangePasswordRequest, LoginRequest, LoginResponse, RegisterRequest, UserOut, UserStatusOut
from ..scope import Principal
from ..services import users
from ..storage import LocalFileStorage, get_storage

router = APIRouter(tags=["Auth"])


@router.post("/auth/register", status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    db: Session = Depends(get_db_session),
    current_user: User | None = Depends(get_optional_user),
):
    user, token = users.register_user(db, payload, actor=current_user)
    return success(
        LoginResponse(access_token=token, user=UserOut.model_validate(user)),
        "User registered successfully.",
        status.HTTP_201_CREATED,
    )


@router.post("/auth/login")
def login(payload: LoginRequest, db: Session = Depends(get_db_session)):
    user, token = users.login_user(db, email=payload.email, password=payload.password)
    return success(LoginResponse(access_token=token, user=UserOut.model_validate(user)), "Login successful.")


@router.get("/auth/profile")
def profile(current_user: User = Depends(get_current_user)):
    return success(UserOut.model_validate(current_user), "Profile retrieved successfully.")


@router.post("/auth/update-profile")
def update_profile(
    name: str | None = Form(default=None),
    phone: str | None = Form(default=None),
    address: str | None = Form(default=None),
    profile_photo: UploadFile | None = File(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
    storage: LocalFileStorage = Depends(get_storage),
):
    user = users.update_profile(
        db, storage, current_user, name=name, phone=phone, address=address, photo=profile_photo
    )
    return success(UserOut.model_validate(user), "Profile updated successfully.")


@router.post("/auth/change-password")
def change_password(
    payload: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
):
    users.change_password(
        db, current_user, current_password=payload.current_password, new_password=payload.new_password
    )
    return success(message="Password changed successfully.")


@router.post("/auth/logout")
def logout(_: User = Depends(get_current_user)):
    # tokens are stateless; the client discards its copy
    return success(message="Successfully logged out.")


@router.get("/auth/center-admins")
def center_admins(
    db: Session = Depends(get_db_session),
    _: Principal = Depends(require_roles(UserRole.SUPER_ADMIN)),
):
    return success([UserOut.model_validate(user) for user in users.list_center_admins(db)], "Center admins retrieved.")


@router.get("/auth/parents")
def parents(
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(require_roles(UserRole.SUPER_ADMIN, UserRole.CENTER_ADMIN)),
):
    return success([UserOut.model_validate(user) for user in users.list_parents(db, principal)], "Parents retrieved.")


@router.patch("/super-admin/users/{user_id}/toggle-status")
def toggle_user_status(
    user_id: int,
    db: Session = Depends(get_db_session),
    principal: Principal = Depends(require_roles(UserRole.SUPER_ADMIN)),
):
    user = users.toggle_user_status(db, principal, user_id)
    state = "activated" if user.is_active else "deactivated"
    return success(UserStatusOut(id=user.id, is_active=user.is_active), f"User {state} successfully.")


@router.delete("/super-admin/center-admins/{user_id}")
def delete_center_admin(
    user_id: int,
    db: Session = Depends(get_db_session),
    _: Principal = Depends(require_roles(UserRole.SUPER_ADMIN)),
):
    users.delete_center_admin(db, user_id)
    return success(message="Center admin deleted successfully.")


@router.get("/super-admin/dashboard")
def super_admin_dashboard(
    db: Session = Depends(get_db_session),
    _: Principal = Depends(require_roles(UserRole.SUPER_ADMIN)),
):
    return success(reports.super_admin_dashboard(db), "Super admin dashboard data.")
