"""
api/routes/members.py
---------------------
Member management inside one school.

GET    /schools/{id}/members                  — Members joined with name/email (admins).
POST   /schools/{id}/members                  — Add an existing user (admins).
PATCH  /schools/{id}/members/{membership_id}  — Change a role (admins, never self).
DELETE /schools/{id}/members/{membership_id}  — Remove a member (admins, never self).
POST   /schools/{id}/leave                    — The caller leaves the school.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.dependencies import get_caller
from app.policies.context import CallerIdentity
from app.schemas.membership import (
    MemberDetail,
    MembershipCreate,
    MembershipRead,
    MembershipUpdate,
)
from app.services.facade_service import QueryFacade
from app.services.membership_service import MembershipService

router = APIRouter(prefix="/schools/{school_id}", tags=["Members"])


@router.get(
    "/members",
    response_model=list[MemberDetail],
    summary="List the members of a school",
)
async def list_members(
    school_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> list[MemberDetail]:
    return await QueryFacade.list_members(db, caller, school_id)


@router.post(
    "/members",
    response_model=MembershipRead,
    status_code=status.HTTP_201_CREATED,
    summary="Add a user to a school",
)
async def add_member(
    school_id: str,
    body: MembershipCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> MembershipRead:
    membership = await MembershipService.add_member(
        db, caller, school_id, body.user_id, body.role
    )
    return MembershipRead.model_validate(membership)


@router.patch(
    "/members/{membership_id}",
    response_model=MembershipRead,
    summary="Change a member's role",
)
async def change_role(
    school_id: str,
    membership_id: str,
    body: MembershipUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> MembershipRead:
    membership = await MembershipService.change_role(
        db, caller, school_id, membership_id, body.role
    )
    return MembershipRead.model_validate(membership)


@router.delete(
    "/members/{membership_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a member",
)
async def remove_member(
    school_id: str,
    membership_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> None:
    await MembershipService.remove_member(db, caller, school_id, membership_id)


@router.post(
    "/leave",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Leave a school",
)
async def leave_school(
    school_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> None:
    await MembershipService.leave_school(db, caller, school_id)
