"""
services/membership_service.py
------------------------------
Membership lifecycle: first-admin bootstrap, admin-added members, role
changes, removals and leaving a school.

Concurrency:
  - add_member locks the school row FOR UPDATE before it reads the member
    count, so concurrent first-admin claims are serialised. The unique
    founding_school_id column is the backstop: if two claims ever both see
    an empty school, only one insert can commit.
  - change_role, remove_member and leave_school lock the school row first,
    then the target membership, so mutations of one school's memberships
    are serialised. The last-admin check runs before the write and again
    after the flush, inside the same transaction.
"""

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import Conflict, InvalidState, NotFound
from app.core.logging import get_logger
from app.models.membership import Membership, MemberRole
from app.models.school import School
from app.models.user import User
from app.policies.context import Action, CallerIdentity
from app.policies.engine import AuthorizationEngine

logger = get_logger(__name__)


async def _count_admins(db: AsyncSession, school_id: str, excluding: str | None = None) -> int:
    stmt = select(func.count()).select_from(Membership).where(
        Membership.school_id == school_id,
        Membership.role == MemberRole.admin.value,
    )
    if excluding is not None:
        stmt = stmt.where(Membership.id != excluding)
    return (await db.execute(stmt)).scalar_one()


async def _count_members(db: AsyncSession, school_id: str, excluding: str | None = None) -> int:
    stmt = select(func.count()).select_from(Membership).where(Membership.school_id == school_id)
    if excluding is not None:
        stmt = stmt.where(Membership.id != excluding)
    return (await db.execute(stmt)).scalar_one()


async def _lock_school(db: AsyncSession, school_id: str) -> None:
    await db.execute(select(School.id).where(School.id == school_id).with_for_update())


async def _ensure_admin_remains(db: AsyncSession, school_id: str) -> None:
    if await _count_members(db, school_id) > 0 and await _count_admins(db, school_id) == 0:
        raise InvalidState("A school must keep at least one admin")


class MembershipService:

    @staticmethod
    async def add_member(
        db: AsyncSession,
        caller: CallerIdentity,
        school_id: str,
        user_id: str,
        role: MemberRole,
    ) -> Membership:
        """
        Insert a membership through the bootstrap rule:
          - the caller claims the admin seat of a school with no members, or
          - the caller is already an admin of the school, or
          - the caller is a platform super-admin.

        Raises NotFound (school or user missing), PermissionDenied,
        Conflict (already a member / school already claimed) and
        InvalidState (first member of a school must be an admin).
        """
        school = (
            await db.execute(select(School).where(School.id == school_id).with_for_update())
        ).scalar_one_or_none()
        if school is None:
            raise NotFound("School not found")

        engine = AuthorizationEngine(db, caller)
        facts = await engine.security.facts_for(school_id, with_member_count=True)
        membership = Membership(school_id=school_id, user_id=user_id, role=role.value)

        if not await engine.decide(Action.INSERT, membership):
            if caller.is_user(user_id) and role is MemberRole.admin and facts.school_has_members:
                # Lost the first-admin race, or the school was claimed long ago
                raise Conflict("This school already has an administrator")
            await engine.authorize(Action.INSERT, membership)

        if not facts.school_has_members:
            if role is not MemberRole.admin:
                raise InvalidState("The first member of a school must be an admin")
            membership.founding_school_id = school_id

        user = (await db.execute(select(User.id).where(User.id == user_id))).scalar_one_or_none()
        if user is None:
            raise NotFound("User not found")

        is_bootstrap = membership.founding_school_id is not None
        db.add(membership)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            if is_bootstrap:
                logger.info("Concurrent first-admin claim rejected", school_id=school_id, user_id=user_id)
                raise Conflict("This school already has an administrator")
            raise Conflict("User is already a member of this school")

        logger.info(
            "Membership created",
            school_id=school_id,
            user_id=user_id,
            role=role.value,
            bootstrap=is_bootstrap,
            by=caller.user_id,
        )
        return membership

    @staticmethod
    async def _load_for_change(
        db: AsyncSession,
        caller: CallerIdentity,
        school_id: str,
        membership_id: str,
        action: Action,
    ) -> Membership:
        await _lock_school(db, school_id)
        engine = AuthorizationEngine(db, caller)
        membership = await engine.load(Membership, membership_id, for_update=True)
        if membership.school_id != school_id:
            raise NotFound("Membership not found")
        await engine.authorize(action, membership)
        return membership

    @staticmethod
    async def change_role(
        db: AsyncSession,
        caller: CallerIdentity,
        school_id: str,
        membership_id: str,
        role: MemberRole,
    ) -> Membership:
        membership = await MembershipService._load_for_change(
            db, caller, school_id, membership_id, Action.UPDATE
        )
        if membership.member_role is role:
            return membership

        demoting = membership.member_role is MemberRole.admin
        if demoting and await _count_admins(db, school_id, excluding=membership.id) == 0:
            raise InvalidState("A school must keep at least one admin")

        membership.role = role.value
        await db.flush()
        if demoting:
            await _ensure_admin_remains(db, school_id)
        logger.info(
            "Membership role changed",
            school_id=school_id,
            user_id=membership.user_id,
            role=role.value,
            by=caller.user_id,
        )
        return membership

    @staticmethod
    async def remove_member(
        db: AsyncSession,
        caller: CallerIdentity,
        school_id: str,
        membership_id: str,
    ) -> None:
        membership = await MembershipService._load_for_change(
            db, caller, school_id, membership_id, Action.DELETE
        )
        was_admin = membership.member_role is MemberRole.admin
        if was_admin:
            others = await _count_members(db, school_id, excluding=membership.id)
            admins = await _count_admins(db, school_id, excluding=membership.id)
            if others > 0 and admins == 0:
                raise InvalidState("A school must keep at least one admin")

        await db.delete(membership)
        await db.flush()
        if was_admin:
            await _ensure_admin_remains(db, school_id)
        logger.info(
            "Membership removed",
            school_id=school_id,
            user_id=membership.user_id,
            by=caller.user_id,
        )

    @staticmethod
    async def leave_school(db: AsyncSession, caller: CallerIdentity, school_id: str) -> None:
        """
        The caller removes their own membership. An admin may leave only
        while another admin remains.
        """
        await _lock_school(db, school_id)
        membership = (
            await db.execute(
                select(Membership)
                .where(Membership.school_id == school_id, Membership.user_id == caller.user_id)
                .with_for_update()
            )
        ).scalar_one_or_none()
        if membership is None:
            raise NotFound("School not found")

        was_admin = membership.member_role is MemberRole.admin
        if was_admin and await _count_admins(db, school_id, excluding=membership.id) == 0:
            raise InvalidState("Promote another admin before leaving this school")

        await db.delete(membership)
        await db.flush()
        if was_admin:
            await _ensure_admin_remains(db, school_id)
        logger.info("Member left school", school_id=school_id, user_id=caller.user_id)

