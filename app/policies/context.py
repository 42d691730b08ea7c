"""
policies/context.py
-------------------
Inputs to every authorization decision.

CallerIdentity  who is asking (from the identity provider, trusted as-is).
Facts           what is known about the caller's relationship to ONE school.
SecurityContext the privileged lookup that produces Facts.

Recursion rule: SecurityContext reads school_members directly with a plain
SELECT. It never goes through AuthorizationEngine, so deciding "may the
caller read this membership row" can never require reading membership rows
through the same rule that is being decided.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.content_draft import ContentDraft
from app.models.invitation import Invitation
from app.models.membership import Membership, MemberRole
from app.models.school import School
from app.models.tone_profile import ToneProfile


class Action(str, Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class CallerIdentity:
    user_id: str
    email: str
    is_platform_super_admin: bool = False

    def is_user(self, user_id: Optional[str]) -> bool:
        return user_id is not None and user_id == self.user_id

    def has_email(self, email: Optional[str]) -> bool:
        return email is not None and email.strip().lower() == self.email.strip().lower()


@dataclass(frozen=True)
class Facts:
    """Already-resolved facts a rule may consult. Nothing else is queried."""

    role: Optional[MemberRole]
    school_has_members: bool = True

    @property
    def is_member(self) -> bool:
        return self.role is not None

    @property
    def is_admin(self) -> bool:
        return self.role is MemberRole.admin


def school_id_of(row: Any) -> str:
    if isinstance(row, School):
        return row.id
    if isinstance(row, (Membership, Invitation, ToneProfile, ContentDraft)):
        return row.school_id
    raise TypeError(f"{type(row).__name__} is not a school-scoped entity")


class SecurityContext:
    """
    Privileged membership lookups for one caller inside one transaction.

    Results are not cached: each call reads the current transaction's view,
    so a check and the write it guards see the same snapshot.
    """

    def __init__(self, db: AsyncSession, caller: CallerIdentity) -> None:
        self.db = db
        self.caller = caller

    async def role_in(self, school_id: str) -> Optional[MemberRole]:
        result = await self.db.execute(
            select(Membership.role).where(
                Membership.school_id == school_id,
                Membership.user_id == self.caller.user_id,
            )
        )
        role = result.scalar_one_or_none()
        return MemberRole(role) if role is not None else None

    async def school_has_members(self, school_id: str) -> bool:
        result = await self.db.execute(
            select(exists().where(Membership.school_id == school_id))
        )
        return bool(result.scalar())

    async def facts_for(self, school_id: str, with_member_count: bool = False) -> Facts:
        role = await self.role_in(school_id)
        if not with_member_count:
            return Facts(role=role)
        # A caller who already holds a role implies the school has members
        has_members = role is not None or await self.school_has_members(school_id)
        return Facts(role=role, school_has_members=has_members)
