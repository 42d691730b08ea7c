"""
api/routes/schools.py
---------------------
School registration and settings.

POST  /schools       — Register a school; the caller becomes its first admin.
GET   /schools       — Schools the caller belongs to, with their role.
GET   /schools/{id}  — School detail (members and super-admins).
PATCH /schools/{id}  — Update name / website (admins and super-admins).
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.dependencies import get_caller
from app.policies.context import CallerIdentity
from app.schemas.school import SchoolCreate, SchoolRead, SchoolUpdate, UserSchoolRead
from app.services.facade_service import QueryFacade
from app.services.school_service import SchoolService

router = APIRouter(prefix="/schools", tags=["Schools"])


@router.post(
    "",
    response_model=SchoolRead,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new school",
)
async def create_school(
    body: SchoolCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> SchoolRead:
    """
    Public self-service registration. The school and the caller's admin
    membership are created in one transaction.
    """
    school = await SchoolService.create_school_with_admin(db, caller, body)
    return SchoolRead.model_validate(school)


@router.get(
    "",
    response_model=list[UserSchoolRead],
    summary="List the caller's schools",
)
async def list_my_schools(
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> list[UserSchoolRead]:
    return await QueryFacade.list_schools_for_caller(db, caller, caller.user_id)


@router.get(
    "/{school_id}",
    response_model=SchoolRead,
    summary="Get a school",
)
async def get_school(
    school_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> SchoolRead:
    school = await SchoolService.get_school(db, caller, school_id)
    return SchoolRead.model_validate(school)


@router.patch(
    "/{school_id}",
    response_model=SchoolRead,
    summary="Update school settings",
)
async def update_school(
    school_id: str,
    body: SchoolUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> SchoolRead:
    school = await SchoolService.update_school(db, caller, school_id, body)
    return SchoolRead.model_validate(school)
