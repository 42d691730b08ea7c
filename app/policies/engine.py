"""
policies/engine.py
------------------
AuthorizationEngine: ALLOW / DENY for one caller against one row.

Usage inside a service:

    engine = AuthorizationEngine(db, caller)
    profile = await engine.load(ToneProfile, profile_id)        # SELECT-gated
    await engine.authorize(Action.UPDATE, profile)               # raises

Error policy (uniform):
  - SELECT denied, or row missing             → NotFound
  - mutation denied on a row the caller sees  → PermissionDenied
  - mutation denied on a row the caller can't see → NotFound
  - INSERT denied                             → PermissionDenied
"""

from typing import Any, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFound, PermissionDenied
from app.core.logging import get_logger
from app.models.content_draft import ContentDraft
from app.models.invitation import Invitation
from app.models.membership import Membership
from app.models.school import School
from app.models.tone_profile import ToneProfile
from app.policies import rules
from app.policies.context import Action, CallerIdentity, SecurityContext, school_id_of

logger = get_logger(__name__)

ModelT = TypeVar("ModelT")

_LABELS = {
    School: "School",
    Membership: "Membership",
    Invitation: "Invitation",
    ToneProfile: "Tone profile",
    ContentDraft: "Draft",
}


def label_for(model: Type) -> str:
    return _LABELS.get(model, model.__name__)


class AuthorizationEngine:

    def __init__(self, db: AsyncSession, caller: CallerIdentity) -> None:
        self.db = db
        self.caller = caller
        self.security = SecurityContext(db, caller)

    async def decide(self, action: Action, row: Any) -> bool:
        school_id = school_id_of(row)
        needs_member_count = isinstance(row, Membership) and action is Action.INSERT
        facts = await self.security.facts_for(school_id, with_member_count=needs_member_count)
        allowed = rules.evaluate(self.caller, action, row, facts)
        logger.debug(
            "Authorization decision",
            entity=type(row).__name__,
            action=action.value,
            school_id=school_id,
            caller_id=self.caller.user_id,
            role=facts.role.value if facts.role else None,
            allowed=allowed,
        )
        return allowed

    async def authorize(self, action: Action, row: Any) -> None:
        if await self.decide(action, row):
            return

        label = label_for(type(row))
        if action is Action.SELECT:
            raise NotFound(f"{label} not found")
        if action is not Action.INSERT and not await self.decide(Action.SELECT, row):
            raise NotFound(f"{label} not found")

        logger.info(
            "Authorization denied",
            entity=type(row).__name__,
            action=action.value,
            caller_id=self.caller.user_id,
            school_id=school_id_of(row),
        )
        raise PermissionDenied(f"Not allowed to {action.value} this {label.lower()}")

    async def load(self, model: Type[ModelT], row_id: str, for_update: bool = False) -> ModelT:
        """
        Fetch a row by id and apply the SELECT rule.
        for_update locks the row for the rest of the transaction so the
        checks that follow and the write they guard see the same state.
        """
        stmt = select(model).where(model.id == row_id)
        if for_update:
            stmt = stmt.with_for_update()
        row = (await self.db.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFound(f"{label_for(model)} not found")
        await self.authorize(Action.SELECT, row)
        return row

    async def require_school_visible(self, school_id: str, for_update: bool = False) -> School:
        return await self.load(School, school_id, for_update=for_update)

    async def is_school_admin(self, school_id: str) -> bool:
        facts = await self.security.facts_for(school_id)
        return facts.is_admin
