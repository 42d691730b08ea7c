"""
schemas/invitation.py
---------------------
Invitation models. InvitationRead (admins) carries the token so the
delivery collaborator can build the link; InvitationPublic (invitee view)
does not.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr

from app.models.membership import MemberRole


class InvitationCreate(BaseModel):
    email: EmailStr
    role: MemberRole = MemberRole.member


class InvitationRead(BaseModel):
    id: str
    school_id: str
    email: str
    token: str
    role: MemberRole
    created_by: Optional[str] = None
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class InvitationPublic(BaseModel):
    id: str
    school_id: str
    school_name: str
    email: str
    role: MemberRole
    expires_at: datetime
    accepted_at: Optional[datetime] = None
