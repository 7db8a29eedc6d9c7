from datetime import datetime
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserProfile(BaseModel):
    """Public view of a user returned alongside issued tokens."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    username: str
    email: EmailStr
    first_name: str = ""
    last_name: str = ""
    phone_number: str | None = None
    is_active: bool
    is_email_confirmed: bool
    last_login_at: datetime | None = None


class LoginResult(BaseModel):
    """An issued access/refresh token pair and the access it encodes."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "access_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                "refresh_token": "q5mV0b3J5b2ZyZWZyZXNoLXRva2Vu...",
                "token_type": "bearer",
                "expires_at": "2026-01-01T12:00:00Z",
                "expires_in": 3600,
                "user": {
                    "id": "6f1c2a52-5c38-4c43-9d1c-0f7b7b3c9d11",
                    "username": "jdoe",
                    "email": "jane@example.com",
                    "first_name": "Jane",
                    "last_name": "Doe",
                    "is_active": True,
                    "is_email_confirmed": True,
                },
                "roles": ["customer"],
                "groups": [],
                "permissions": ["bookings.create"],
            }
        }
    )

    access_token: str
    refresh_token: str
    token_type: Literal["bearer"] = "bearer"
    expires_at: datetime
    expires_in: Annotated[int, Field(ge=0, description="Seconds until expiry")]
    user: UserProfile
    roles: list[str] = Field(default_factory=list)
    groups: list[str] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)


class AccessGrants(BaseModel):
    """Effective roles, groups and permissions of a user."""

    roles: list[str] = Field(default_factory=list)
    groups: list[str] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)


__all__ = ["AccessGrants", "LoginResult", "UserProfile"]
