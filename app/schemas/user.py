"""
schemas/user.py
---------------
Pydantic models for registration, login, token refresh and the caller's
own profile.

Security note:
  - hashed_password is NEVER included in any response schema.
  - Passwords require min 8 chars; enforce stronger rules in production.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from app.schemas.school import UserSchoolRead


class UserRegister(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    full_name: Optional[str] = Field(default=None, max_length=255)


class UserRead(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    is_super_admin: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


class LoginResponse(TokenResponse):
    user: UserRead


class RefreshRequest(BaseModel):
    refresh_token: str


class MeResponse(BaseModel):
    """The caller, their schools, and the school selected for this request."""
    user: UserRead
    schools: list[UserSchoolRead]
    current_school: Optional[UserSchoolRead] = None
