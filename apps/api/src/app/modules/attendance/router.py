"""
Attendance Router

Endpoints:
- POST /attendance/sessions/{session_id}/checkin-token - Issue a check-in
  token for a session (teachers, admins, owners)
- POST /attendance/checkin/redeem - Redeem a scanned check-in token for the
  authenticated student

Redemption status codes:
- 201: attendance recorded
- 200: attendance was already recorded (same record returned)
- 400: token tampered with or expired
- 403: caller is not on the session's roster
- 503: database unavailable (retryable)
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.core.auth import get_current_user, require_roles
from app.core.errors import ErrorCode, ServiceError, to_http_exception
from app.modules.attendance.checkin_tokens import CheckinTokenError
from app.modules.attendance.schemas import (
    AttendanceRecordResponse,
    CheckinTokenResponse,
    RedeemRequest,
    RedeemResponse,
)
from app.modules.attendance.service import (
    RedemptionCoordinator,
    RedemptionState,
    get_redemption_coordinator,
)
from app.modules.auth.tokens import SessionClaims
from app.modules.users.models import UserRole

logger = logging.getLogger(__name__)

router = APIRouter()

CHECKIN_ISSUER_ROLES = (UserRole.TEACHER.value, UserRole.ADMIN.value, UserRole.OWNER.value)

_REJECTION_MESSAGES = {
    CheckinTokenError.TAMPERED.value: "This check-in code is not valid.",
    CheckinTokenError.EXPIRED.value: "This check-in code has expired.",
    ErrorCode.NOT_ELIGIBLE.value: "You are not enrolled in this class session.",
}


@router.post(
    "/sessions/{session_id}/checkin-token",
    response_model=CheckinTokenResponse,
    status_code=status.HTTP_201_CREATED,
)
async def issue_checkin_token(
    session_id: int,
    user: SessionClaims = Depends(require_roles(*CHECKIN_ISSUER_ROLES)),
    coordinator: RedemptionCoordinator = Depends(get_redemption_coordinator),
) -> CheckinTokenResponse:
    """
    Issue a check-in token for a class session.

    Raises:
        HTTPException 404: Session not found
        HTTPException 503: Database unavailable
    """
    try:
        issue = await coordinator.issue_checkin(session_id, user.subject_id)
    except ServiceError as e:
        raise to_http_exception(e) from e

    return CheckinTokenResponse(
        token=issue.token,
        displayable_payload=issue.displayable_payload,
        expires_at=issue.expires_at,
        qr_size=issue.qr_size,
    )


@router.post("/checkin/redeem", response_model=RedeemResponse)
async def redeem_checkin_token(
    request: RedeemRequest,
    response: Response,
    user: SessionClaims = Depends(get_current_user),
    coordinator: RedemptionCoordinator = Depends(get_redemption_coordinator),
) -> RedeemResponse:
    """
    Record the caller's attendance from a scanned check-in token.

    Redeeming the same token again is safe and returns the existing record.
    """
    try:
        result = await coordinator.redeem(request.token, user.subject_id)
    except ServiceError as e:
        raise to_http_exception(e) from e

    if result.status == RedemptionState.REJECTED:
        raise HTTPException(
            status_code=(
                status.HTTP_403_FORBIDDEN
                if result.reason == ErrorCode.NOT_ELIGIBLE.value
                else status.HTTP_400_BAD_REQUEST
            ),
            detail={
                "error": result.reason,
                "message": _REJECTION_MESSAGES.get(result.reason, "Check-in rejected."),
            },
        )

    if result.status == RedemptionState.RECORDED:
        response.status_code = status.HTTP_201_CREATED

    return RedeemResponse(
        status=result.status,
        record=AttendanceRecordResponse.model_validate(result.record),
    )
