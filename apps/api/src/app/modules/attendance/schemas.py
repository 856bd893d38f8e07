"""
Attendance Schemas

Pydantic schemas for check-in issuance and redemption.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.modules.attendance.models import AttendanceStatus
from app.modules.attendance.service import RedemptionState


class CheckinTokenResponse(BaseModel):
    """A check-in token ready to be rendered as a QR code."""

    token: str
    displayable_payload: str
    expires_at: datetime
    qr_size: int


class RedeemRequest(BaseModel):
    """Scanned check-in token presented by a student."""

    token: str = Field(..., min_length=1, max_length=1024)


class AttendanceRecordResponse(BaseModel):
    """An attendance record."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    session_id: int
    student_id: int
    status: AttendanceStatus
    check_in_time: datetime | None
    qr_check_in: bool


class RedeemResponse(BaseModel):
    """
    Successful redemption outcome.

    ``status`` is RECORDED or ALREADY_RECORDED. Rejections are returned as
    error responses whose ``error`` is TAMPERED, EXPIRED or NOT_ELIGIBLE.
    """

    status: RedemptionState
    record: AttendanceRecordResponse
