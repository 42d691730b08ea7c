"""
services/draft_service.py
-------------------------
Content drafts. Any member of a school may write drafts there; only the
author may edit or delete one, school admins included.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidState
from app.core.logging import get_logger
from app.models.content_draft import ContentDraft
from app.models.tone_profile import ToneProfile
from app.policies.context import Action, CallerIdentity
from app.policies.engine import AuthorizationEngine
from app.schemas.draft import DraftCreate, DraftUpdate

logger = get_logger(__name__)


async def _profile_in_school(engine: AuthorizationEngine, profile_id: str, school_id: str) -> ToneProfile:
    profile = await engine.load(ToneProfile, profile_id)
    if profile.school_id != school_id:
        raise InvalidState("Tone profile belongs to a different school")
    return profile


class DraftService:

    @staticmethod
    async def create_draft(
        db: AsyncSession, caller: CallerIdentity, school_id: str, data: DraftCreate
    ) -> ContentDraft:
        engine = AuthorizationEngine(db, caller)
        await engine.require_school_visible(school_id)
        await _profile_in_school(engine, data.tone_profile_id, school_id)

        draft = ContentDraft(
            school_id=school_id,
            tone_profile_id=data.tone_profile_id,
            user_id=caller.user_id,
            title=data.title,
            content=data.content,
        )
        await engine.authorize(Action.INSERT, draft)
        db.add(draft)
        await db.flush()
        logger.info("Draft created", draft_id=draft.id, school_id=school_id, user_id=caller.user_id)
        return draft

    @staticmethod
    async def list_drafts(
        db: AsyncSession, caller: CallerIdentity, school_id: str, mine_only: bool = False
    ) -> list[ContentDraft]:
        await AuthorizationEngine(db, caller).require_school_visible(school_id)
        stmt = select(ContentDraft).where(ContentDraft.school_id == school_id)
        if mine_only:
            stmt = stmt.where(ContentDraft.user_id == caller.user_id)
        result = await db.execute(stmt.order_by(ContentDraft.updated_at.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def get_draft(db: AsyncSession, caller: CallerIdentity, draft_id: str) -> ContentDraft:
        return await AuthorizationEngine(db, caller).load(ContentDraft, draft_id)

    @staticmethod
    async def update_draft(
        db: AsyncSession, caller: CallerIdentity, draft_id: str, data: DraftUpdate
    ) -> ContentDraft:
        engine = AuthorizationEngine(db, caller)
        draft = await engine.load(ContentDraft, draft_id, for_update=True)
        await engine.authorize(Action.UPDATE, draft)

        if data.tone_profile_id is not None and data.tone_profile_id != draft.tone_profile_id:
            await _profile_in_school(engine, data.tone_profile_id, draft.school_id)
            draft.tone_profile_id = data.tone_profile_id
        if data.title is not None:
            draft.title = data.title
        if data.content is not None:
            draft.content = data.content
        await db.flush()
        logger.info("Draft updated", draft_id=draft.id)
        return draft

    @staticmethod
    async def delete_draft(db: AsyncSession, caller: CallerIdentity, draft_id: str) -> None:
        engine = AuthorizationEngine(db, caller)
        draft = await engine.load(ContentDraft, draft_id, for_update=True)
        await engine.authorize(Action.DELETE, draft)
        await db.delete(draft)
        await db.flush()
        logger.info("Draft deleted", draft_id=draft_id, by=caller.user_id)
