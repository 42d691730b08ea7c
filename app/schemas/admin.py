"""
schemas/admin.py
----------------
Super-admin facade models: statistics, user management, audit log.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field

from app.models.membership import MemberRole


class AdminStatistics(BaseModel):
    schools: int
    users: int
    profiles: int
    drafts: int


class SuperAdminUpdate(BaseModel):
    email: EmailStr
    is_super_admin: bool


class AdminUserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    full_name: Optional[str] = Field(default=None, max_length=255)
    is_super_admin: bool = False
    school_id: Optional[str] = None
    school_role: MemberRole = MemberRole.member


class UserMembershipRow(BaseModel):
    """One row per (user, school); users without schools appear once with nulls."""
    user_id: str
    email: str
    full_name: Optional[str] = None
    is_super_admin: bool
    school_id: Optional[str] = None
    school_name: Optional[str] = None
    role: Optional[MemberRole] = None


class AuditActionRead(BaseModel):
    id: str
    admin_id: str
    action_type: str
    affected_user_id: Optional[str] = None
    affected_school_id: Optional[str] = None
    details: dict[str, Any]
    created_at: datetime

    model_config = {"from_attributes": True}
