"""
api/routes/drafts.py
--------------------
Content drafts written against a school's tone profile.

GET    /schools/{id}/drafts   — List (?mine_only=true for the caller's own).
POST   /schools/{id}/drafts   — Create; the caller is recorded as author.
GET    /drafts/{id}
PATCH  /drafts/{id}           — Author only.
DELETE /drafts/{id}           — Author only.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.dependencies import get_caller
from app.policies.context import CallerIdentity
from app.schemas.draft import DraftCreate, DraftRead, DraftUpdate
from app.services.draft_service import DraftService

router = APIRouter(tags=["Drafts"])


@router.get(
    "/schools/{school_id}/drafts",
    response_model=list[DraftRead],
    summary="List a school's drafts",
)
async def list_drafts(
    school_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
    mine_only: bool = False,
) -> list[DraftRead]:
    drafts = await DraftService.list_drafts(db, caller, school_id, mine_only)
    return [DraftRead.model_validate(d) for d in drafts]


@router.post(
    "/schools/{school_id}/drafts",
    response_model=DraftRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a draft",
)
async def create_draft(
    school_id: str,
    body: DraftCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> DraftRead:
    draft = await DraftService.create_draft(db, caller, school_id, body)
    return DraftRead.model_validate(draft)


@router.get(
    "/drafts/{draft_id}",
    response_model=DraftRead,
    summary="Get a draft",
)
async def get_draft(
    draft_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> DraftRead:
    draft = await DraftService.get_draft(db, caller, draft_id)
    return DraftRead.model_validate(draft)


@router.patch(
    "/drafts/{draft_id}",
    response_model=DraftRead,
    summary="Update a draft",
)
async def update_draft(
    draft_id: str,
    body: DraftUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> DraftRead:
    draft = await DraftService.update_draft(db, caller, draft_id, body)
    return DraftRead.model_validate(draft)


@router.delete(
    "/drafts/{draft_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a draft",
)
async def delete_draft(
    draft_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[CallerIdentity, Depends(get_caller)],
) -> None:
    await DraftService.delete_draft(db, caller, draft_id)
