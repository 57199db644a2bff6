"""
Pydantic schemas for request / response serialization.

Kept in a single file for now; split per-domain when it grows.
Schemas are deliberately decoupled from SQLAlchemy models so the
API surface can evolve independently of the DB layer.

Request bodies accept both snake_case and camelCase keys
(`device_id` / `deviceId`) since browser clients send the latter.
"""

import uuid
from datetime import date, datetime

from pydantic import AliasChoices, BaseModel, EmailStr, Field


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


# ── Auth ─────────────────────────────────────────────────────────────
class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=100)
    first_name: str | None = Field(
        default=None, min_length=2, max_length=30,
        validation_alias=_alias("first_name", "firstName"),
    )
    last_name: str | None = Field(
        default=None, min_length=2, max_length=30,
        validation_alias=_alias("last_name", "lastName"),
    )
    phone: str | None = Field(default=None, min_length=8, max_length=20)
    date_of_birth: date | None = Field(
        default=None, validation_alias=_alias("date_of_birth", "dateOfBirth"),
    )
    device_id: str | None = Field(default=None, validation_alias=_alias("device_id", "deviceId"))


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)
    device_id: str | None = Field(default=None, validation_alias=_alias("device_id", "deviceId"))


class RefreshTokenRequest(BaseModel):
    refresh_token: str | None = Field(
        default=None, validation_alias=_alias("refresh_token", "refreshToken"),
    )


class StatsOut(BaseModel):
    giving: int = 0
    exchanging: int = 0
    exchanged: int = 0
    given: int = 0


class AccountOut(BaseModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    phone: str | None = None
    role: str
    is_active: bool
    avatar_url: str
    stats: StatsOut
    date_of_birth: date | None = None
    created_at: datetime
    updated_at: datetime


class AuthResponse(BaseModel):
    success: bool = True
    authenticated: bool = True
    message: str
    access_token: str
    token_type: str = "bearer"
    user: AccountOut | None = None


class RefreshResponse(BaseModel):
    success: bool = True
    access_token: str
    token_type: str = "bearer"


# ── Sessions ─────────────────────────────────────────────────────────
class SessionOut(BaseModel):
    id: str
    device_id: str
    ip: str
    user_agent: str
    created_at: datetime
    last_used_at: datetime
    expires_at: datetime

    model_config = {"from_attributes": True}


class SessionListResponse(BaseModel):
    success: bool = True
    sessions: list[SessionOut]


# ── Users ────────────────────────────────────────────────────────────
class UpdateMeRequest(BaseModel):
    first_name: str | None = Field(
        default=None, min_length=2, max_length=30,
        validation_alias=_alias("first_name", "firstName"),
    )
    last_name: str | None = Field(
        default=None, min_length=2, max_length=30,
        validation_alias=_alias("last_name", "lastName"),
    )
    phone: str | None = Field(default=None, min_length=6, max_length=30)
    date_of_birth: date | None = Field(
        default=None, validation_alias=_alias("date_of_birth", "dateOfBirth"),
    )
    avatar_url: str | None = Field(default=None, validation_alias=_alias("avatar_url", "avatarUrl"))
    current_password: str = Field(
        min_length=6, validation_alias=_alias("current_password", "currentPassword"),
    )
    new_password: str | None = Field(
        default=None, min_length=6, max_length=100,
        validation_alias=_alias("new_password", "newPassword"),
    )


class DeleteMeRequest(BaseModel):
    current_password: str = Field(
        min_length=6, validation_alias=_alias("current_password", "currentPassword"),
    )


class AccountResponse(BaseModel):
    success: bool = True
    message: str | None = None
    user: AccountOut


# ── Generic ──────────────────────────────────────────────────────────
class MessageResponse(BaseModel):
    success: bool = True
    message: str
