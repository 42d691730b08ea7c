"""
schemas/membership.py
---------------------
Membership requests and the joined member listing returned by the facade.
Role values are parsed into MemberRole here; anything else is a 422.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from app.models.membership import MemberRole


class MembershipCreate(BaseModel):
    user_id: str
    role: MemberRole = MemberRole.member


class MembershipUpdate(BaseModel):
    role: MemberRole


class MembershipRead(BaseModel):
    id: str
    school_id: str
    user_id: str
    role: MemberRole
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MemberDetail(BaseModel):
    membership_id: str
    user_id: str
    email: str
    full_name: Optional[str] = None
    role: MemberRole
    joined_at: datetime
