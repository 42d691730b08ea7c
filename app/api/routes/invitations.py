"""
api/routes/invitations.py
-------------------------
Invitation issuance and acceptance.

GET    /schools/{id}/invitations     — Pending invitations (admins).
POST   /schools/{id}/invitations     — Invite an email address (admins).
DELETE /invitations/{id}             — Revoke a pending invitation (admins).
GET    /invitations/{token}          — Invitee view of an invitation.
POST   /invitations/{token}/accept   — Accept; creates the membership.

Sending the invitation link is done by the delivery collaborator; the
admin response carries the token it needs.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.dependencies import get_caller
from app.policies.context import CallerIdentity
from app.schemas.invitation import InvitationCreate, InvitationPublic, InvitationRead
from app.schemas.membership import MembershipRead
from app.services.facade_service import QueryFacade
from app.services.invitation_service import InvitationService

router = APIRouter(tags=["Invitations"])


@router.get(
    "/schools/{school_id}/invitations",
    response_model=list[InvitationRead],
    summary="List pending invitations",
)
async def list_invitations(
    school_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> list[InvitationRead]:
    invitations = await QueryFacade.list_invitations(db, caller, school_id)
    return [InvitationRead.model_validate(i) for i in invitations]


@router.post(
    "/schools/{school_id}/invitations",
    response_model=InvitationRead,
    status_code=status.HTTP_201_CREATED,
    summary="Invite someone to a school",
)
async def create_invitation(
    school_id: str,
    body: InvitationCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> InvitationRead:
    invitation = await InvitationService.create_invitation(
        db, caller, school_id, body.email, body.role
    )
    return InvitationRead.model_validate(invitation)


@router.delete(
    "/invitations/{invitation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke an invitation",
)
async def revoke_invitation(
    invitation_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> None:
    await InvitationService.revoke_invitation(db, caller, invitation_id)


@router.get(
    "/invitations/{token}",
    response_model=InvitationPublic,
    summary="View an invitation",
)
async def get_invitation(
    token: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> InvitationPublic:
    invitation, school = await InvitationService.get_by_token(db, caller, token)
    return InvitationPublic(
        id=invitation.id,
        school_id=invitation.school_id,
        school_name=school.name,
        email=invitation.email,
        role=invitation.role,
        expires_at=invitation.expires_at,
        accepted_at=invitation.accepted_at,
    )


@router.post(
    "/invitations/{token}/accept",
    response_model=MembershipRead,
    summary="Accept an invitation",
)
async def accept_invitation(
    token: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> MembershipRead:
    membership = await InvitationService.accept_invitation(db, caller, token)
    return MembershipRead.model_validate(membership)
