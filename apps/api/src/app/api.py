from fastapi import APIRouter

from app.modules.attendance.router import router as attendance_router
from app.modules.auth.router import router as auth_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(attendance_router, prefix="/attendance", tags=["Attendance"])
