"""Authentication schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Login request schema. ``username`` may also be an email address."""

    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    """User summary returned at login."""

    id: int
    username: str
    email: str | None
    role: str

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    """Login response schema."""

    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserResponse


class LogoutResponse(BaseModel):
    """Logout response schema."""

    revoked: bool
    message: str


class ClaimsResponse(BaseModel):
    """Claims of the presented session token."""

    subject_id: int
    role: str
    issued_at: datetime
    expires_at: datetime
