"""
api/routes/tone_profiles.py
---------------------------
Tone profiles. Members read, admins manage.

GET    /schools/{id}/tone-profiles   — List (?active_only=true).
POST   /schools/{id}/tone-profiles   — Create from analysed dimensions.
GET    /tone-profiles/{id}
PATCH  /tone-profiles/{id}
DELETE /tone-profiles/{id}           — 409 while drafts still use it.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.dependencies import get_caller
from app.policies.context import CallerIdentity
from app.schemas.tone_profile import ToneProfileCreate, ToneProfileRead, ToneProfileUpdate
from app.services.tone_profile_service import ToneProfileService

router = APIRouter(tags=["Tone Profiles"])


@router.get(
    "/schools/{school_id}/tone-profiles",
    response_model=list[ToneProfileRead],
    summary="List a school's tone profiles",
)
async def list_profiles(
    school_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
    active_only: bool = False,
) -> list[ToneProfileRead]:
    profiles = await ToneProfileService.list_profiles(db, caller, school_id, active_only)
    return [ToneProfileRead.model_validate(p) for p in profiles]


@router.post(
    "/schools/{school_id}/tone-profiles",
    response_model=ToneProfileRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a tone profile",
)
async def create_profile(
    school_id: str,
    body: ToneProfileCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> ToneProfileRead:
    profile = await ToneProfileService.create_profile(db, caller, school_id, body)
    return ToneProfileRead.model_validate(profile)


@router.get(
    "/tone-profiles/{profile_id}",
    response_model=ToneProfileRead,
    summary="Get a tone profile",
)
async def get_profile(
    profile_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> ToneProfileRead:
    profile = await ToneProfileService.get_profile(db, caller, profile_id)
    return ToneProfileRead.model_validate(profile)


@router.patch(
    "/tone-profiles/{profile_id}",
    response_model=ToneProfileRead,
    summary="Update a tone profile",
)
async def update_profile(
    profile_id: str,
    body: ToneProfileUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> ToneProfileRead:
    profile = await ToneProfileService.update_profile(db, caller, profile_id, body)
    return ToneProfileRead.model_validate(profile)


@router.delete(
    "/tone-profiles/{profile_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a tone profile",
)
async def delete_profile(
    profile_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> None:
    await ToneProfileService.delete_profile(db, caller, profile_id)
