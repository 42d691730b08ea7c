"""
services/tone_profile_service.py
--------------------------------
Tone profiles: readable by every member of the owning school, managed by
its admins (and super-admins).
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import Conflict
from app.core.logging import get_logger
from app.models.content_draft import ContentDraft
from app.models.tone_profile import ToneProfile
from app.policies.context import Action, CallerIdentity
from app.policies.engine import AuthorizationEngine
from app.schemas.tone_profile import ToneProfileCreate, ToneProfileUpdate

logger = get_logger(__name__)


class ToneProfileService:

    @staticmethod
    async def create_profile(
        db: AsyncSession, caller: CallerIdentity, school_id: str, data: ToneProfileCreate
    ) -> ToneProfile:
        engine = AuthorizationEngine(db, caller)
        await engine.require_school_visible(school_id)

        profile = ToneProfile(
            school_id=school_id,
            name=data.name,
            dimensions=[d.model_dump() for d in data.dimensions],
            created_by=caller.user_id,
            is_active=data.is_active,
        )
        await engine.authorize(Action.INSERT, profile)
        db.add(profile)
        await db.flush()
        logger.info("Tone profile created", profile_id=profile.id, school_id=school_id)
        return profile

    @staticmethod
    async def list_profiles(
        db: AsyncSession, caller: CallerIdentity, school_id: str, active_only: bool = False
    ) -> list[ToneProfile]:
        await AuthorizationEngine(db, caller).require_school_visible(school_id)
        stmt = select(ToneProfile).where(ToneProfile.school_id == school_id)
        if active_only:
            stmt = stmt.where(ToneProfile.is_active.is_(True))
        result = await db.execute(stmt.order_by(ToneProfile.created_at.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def get_profile(db: AsyncSession, caller: CallerIdentity, profile_id: str) -> ToneProfile:
        return await AuthorizationEngine(db, caller).load(ToneProfile, profile_id)

    @staticmethod
    async def update_profile(
        db: AsyncSession, caller: CallerIdentity, profile_id: str, data: ToneProfileUpdate
    ) -> ToneProfile:
        engine = AuthorizationEngine(db, caller)
        profile = await engine.load(ToneProfile, profile_id, for_update=True)
        await engine.authorize(Action.UPDATE, profile)

        if data.name is not None:
            profile.name = data.name
        if data.dimensions is not None:
            profile.dimensions = [d.model_dump() for d in data.dimensions]
        if data.is_active is not None:
            profile.is_active = data.is_active
        await db.flush()
        logger.info("Tone profile updated", profile_id=profile.id)
        return profile

    @staticmethod
    async def delete_profile(db: AsyncSession, caller: CallerIdentity, profile_id: str) -> None:
        engine = AuthorizationEngine(db, caller)
        profile = await engine.load(ToneProfile, profile_id, for_update=True)
        await engine.authorize(Action.DELETE, profile)

        in_use = (
            await db.execute(
                select(func.count())
                .select_from(ContentDraft)
                .where(ContentDraft.tone_profile_id == profile.id)
            )
        ).scalar_one()
        if in_use:
            raise Conflict(
                f"This tone profile is used in {in_use} content drafts and cannot be deleted"
            )

        await db.delete(profile)
        await db.flush()
        logger.info("Tone profile deleted", profile_id=profile_id, by=caller.user_id)
