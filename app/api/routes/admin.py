"""
api/routes/admin.py
-------------------
Platform super-admin endpoints. Every handler delegates to the query
facade, which performs the single super-admin check and answers 403
(never an empty list) for anyone else.

GET  /admin/schools       — Every school.
GET  /admin/stats         — Platform counters.
GET  /admin/users         — Every user with their memberships.
POST /admin/users         — Create a user, optionally inside a school.
POST /admin/super-admins  — Grant / revoke the super-admin flag.
GET  /admin/actions       — Audit log of super-admin writes.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.dependencies import get_caller
from app.policies.context import CallerIdentity
from app.schemas.admin import (
    AdminStatistics,
    AdminUserCreate,
    AuditActionRead,
    SuperAdminUpdate,
    UserMembershipRow,
)
from app.schemas.school import SchoolRead
from app.schemas.user import UserRead
from app.services.facade_service import QueryFacade

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get(
    "/schools",
    response_model=list[SchoolRead],
    summary="Super admin: list every school",
)
async def list_all_schools(
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> list[SchoolRead]:
    schools = await QueryFacade.list_all_schools(db, caller)
    return [SchoolRead.model_validate(s) for s in schools]


@router.get(
    "/stats",
    response_model=AdminStatistics,
    summary="Super admin: platform statistics",
)
async def get_statistics(
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> AdminStatistics:
    return await QueryFacade.get_admin_statistics(db, caller)


@router.get(
    "/users",
    response_model=list[UserMembershipRow],
    summary="Super admin: list users and their memberships",
)
async def list_users(
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> list[UserMembershipRow]:
    return await QueryFacade.list_all_users_with_memberships(db, caller)


@router.post(
    "/users",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Super admin: create a user",
)
async def create_user(
    body: AdminUserCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> UserRead:
    user = await QueryFacade.create_user(db, caller, body)
    return UserRead.model_validate(user)


@router.post(
    "/super-admins",
    response_model=UserRead,
    summary="Super admin: grant or revoke super admin",
)
async def set_super_admin(
    body: SuperAdminUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> UserRead:
    user = await QueryFacade.set_platform_super_admin(db, caller, body.email, body.is_super_admin)
    return UserRead.model_validate(user)


@router.get(
    "/actions",
    response_model=list[AuditActionRead],
    summary="Super admin: audit log",
)
async def list_actions(
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> list[AuditActionRead]:
    actions = await QueryFacade.list_audit_actions(db, caller, limit)
    return [AuditActionRead.model_validate(a) for a in actions]
