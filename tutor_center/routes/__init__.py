from fastapi import APIRouter

from . import assignments, attendance, auth, centers, curriculum, fees, notifications, reports, students, teachers

api_router = APIRouter(prefix="/api")
for module in (auth, centers, teachers, students, curriculum, assignments, attendance, fees, reports, notifications):
    api_router.include_router(module.router)

__all__ = ["api_router"]
