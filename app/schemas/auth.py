"""
Pydantic schemas for authentication endpoints.

Pydantic validates incoming data automatically — if a required field is
missing or the wrong type, the request is rejected with a 400 before our
code even runs.
"""

from datetime import datetime
from typing import Literal

from pydantic import Field

from app.schemas.common import ApiModel


class RegisterRequest(ApiModel):
    """Request body for POST /auth/register."""
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=8, max_length=128)


class LoginRequest(ApiModel):
    """Request body for POST /auth/login."""
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RefreshTokenRequest(ApiModel):
    """Request body for /auth/refresh and /auth/logout."""
    refresh_token: str = Field(min_length=1)


class TokenResponse(ApiModel):
    """Access token plus the refresh token that backs the session."""
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"


class LogoutResponse(ApiModel):
    message: str
    status: Literal["success"] = "success"
    timestamp: datetime


class LogoutAllResponse(LogoutResponse):
    username: str


class SessionsResponse(ApiModel):
    active_sessions_count: int
    username: str
    timestamp: datetime
