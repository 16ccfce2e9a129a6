"""Pydantic models for the authguard API."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class OtpRequest(BaseModel):
    """Request a one-time code for an email address."""
    email: EmailStr = Field(..., description="Email address to send the code to")

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class OtpVerifyRequest(OtpRequest):
    """Verify a one-time code."""
    otp_code: str = Field(..., pattern=r"^\d{6}$", description="6-digit code")


class OtpRequestResponse(BaseModel):
    message: str
    expires_in_seconds: int = Field(..., description="Seconds until the code expires")
    cooldown_seconds: int = Field(..., description="Seconds before another code can be requested")


class UserInfo(BaseModel):
    email: EmailStr
    created_at: datetime


class AuthResponse(BaseModel):
    message: str
    user: UserInfo


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    """Body returned when a security gate blocks a request."""
    detail: str
    retry_after: Optional[int] = Field(None, description="Seconds until the block lifts")
    attempts_left: Optional[int] = Field(None, description="Remaining attempts, when known")
    limit: Optional[int] = Field(None, description="Rate-limit budget, when rate limited")


class SecurityStatusResponse(BaseModel):
    """Lock, counter and flag state for one identifier."""
    identifier: str
    login_locked: bool
    login_attempts: int
    otp_attempts: int
    otp_locked: bool
    reset_locked: bool
    suspicious: bool
    suspicious_count: int
    timestamp: datetime


class ActivityEntryResponse(BaseModel):
    type: str
    timestamp: datetime
    count: int


class ActivityLogResponse(BaseModel):
    identifier: str
    items: list[ActivityEntryResponse]


class ClearResponse(BaseModel):
    message: str
    cleared: int = Field(..., description="Number of keys deleted or already absent")
    failed: int = Field(..., description="Number of keys that could not be deleted")


class HealthResponse(BaseModel):
    status: str
    version: str
    store: str = Field(..., description="'ok' or 'unavailable'")
    timestamp: datetime
