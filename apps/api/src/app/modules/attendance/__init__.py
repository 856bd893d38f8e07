"""
Attendance module - Check-in tokens, redemption and metadata sweeping.
"""

from app.modules.attendance.checkin_tokens import CheckinTokenService
from app.modules.attendance.jobs import ExpirySweeper
from app.modules.attendance.repository import AttendanceRepository
from app.modules.attendance.roster import RosterGateway
from app.modules.attendance.service import RedemptionCoordinator, RedemptionState

__all__ = [
    "AttendanceRepository",
    "CheckinTokenService",
    "ExpirySweeper",
    "RedemptionCoordinator",
    "RedemptionState",
    "RosterGateway",
]
