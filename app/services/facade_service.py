"""
services/facade_service.py
--------------------------
Query facade: purpose-built reads (and two super-admin writes) that cannot
be expressed safely as row-by-row rule checks, either because they cross
tenants or because they join memberships with identity records.

Every operation follows the same shape:
  1. take the resolved caller,
  2. perform exactly ONE authorization check,
  3. raise PermissionDenied on failure (never an empty result),
  4. run its query unfiltered.
"""

from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import Conflict, InvalidState, NotFound, PermissionDenied
from app.core.logging import get_logger
from app.db.base import utcnow
from app.models.audit import AuditAction
from app.models.content_draft import ContentDraft
from app.models.invitation import Invitation
from app.models.membership import Membership, MemberRole
from app.models.school import School
from app.models.tone_profile import ToneProfile
from app.models.user import User
from app.policies.context import CallerIdentity, SecurityContext
from app.schemas.admin import (
    AdminStatistics,
    AdminUserCreate,
    UserMembershipRow,
)
from app.schemas.membership import MemberDetail
from app.schemas.school import UserSchoolRead
from app.services.identity_service import LocalIdentityProvider

logger = get_logger(__name__)


def _require(allowed: bool, message: str) -> None:
    if not allowed:
        raise PermissionDenied(message)


def _require_super_admin(caller: CallerIdentity) -> None:
    _require(caller.is_platform_super_admin, "Super admin privileges required")


async def _require_school_exists(db: AsyncSession, school_id: str, for_update: bool = False) -> None:
    stmt = select(School.id).where(School.id == school_id)
    if for_update:
        stmt = stmt.with_for_update()
    found = (await db.execute(stmt)).scalar_one_or_none()
    if found is None:
        raise NotFound("School not found")


async def record_action(
    db: AsyncSession,
    caller: CallerIdentity,
    action_type: str,
    affected_user_id: Optional[str] = None,
    affected_school_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> AuditAction:
    action = AuditAction(
        admin_id=caller.user_id,
        action_type=action_type,
        affected_user_id=affected_user_id,
        affected_school_id=affected_school_id,
        details=details or {},
    )
    db.add(action)
    await db.flush()
    logger.info(
        "Super admin action recorded",
        action_type=action_type,
        admin_id=caller.user_id,
        affected_user_id=affected_user_id,
        affected_school_id=affected_school_id,
    )
    return action


class QueryFacade:

    # ── Tenant-facing ────────────────────────────────────────────────────────

    @staticmethod
    async def list_schools_for_caller(
        db: AsyncSession, caller: CallerIdentity, user_id: str
    ) -> list[UserSchoolRead]:
        _require(
            caller.is_user(user_id) or caller.is_platform_super_admin,
            "You can only list your own schools",
        )
        result = await db.execute(
            select(School.id, School.name, Membership.role)
            .join(Membership, Membership.school_id == School.id)
            .where(Membership.user_id == user_id)
            .order_by(School.name)
        )
        return [
            UserSchoolRead(school_id=sid, school_name=name, role=MemberRole(role))
            for sid, name, role in result.all()
        ]

    @staticmethod
    async def list_members(
        db: AsyncSession, caller: CallerIdentity, school_id: str
    ) -> list[MemberDetail]:
        """Memberships of one school joined with identity records (email, name)."""
        is_admin = (await SecurityContext(db, caller).role_in(school_id)) is MemberRole.admin
        _require(
            is_admin or caller.is_platform_super_admin,
            "Only school admins can list members",
        )
        await _require_school_exists(db, school_id)

        result = await db.execute(
            select(Membership, User.email, User.full_name)
            .join(User, User.id == Membership.user_id)
            .where(Membership.school_id == school_id)
            .order_by(Membership.created_at, User.email)
        )
        return [
            MemberDetail(
                membership_id=m.id,
                user_id=m.user_id,
                email=email,
                full_name=full_name,
                role=MemberRole(m.role),
                joined_at=m.created_at,
            )
            for m, email, full_name in result.all()
        ]

    @staticmethod
    async def list_invitations(
        db: AsyncSession, caller: CallerIdentity, school_id: str
    ) -> list[Invitation]:
        """Pending invitations only: not accepted and not yet expired."""
        is_admin = (await SecurityContext(db, caller).role_in(school_id)) is MemberRole.admin
        _require(
            is_admin or caller.is_platform_super_admin,
            "Only school admins can list invitations",
        )
        await _require_school_exists(db, school_id)

        result = await db.execute(
            select(Invitation)
            .where(
                Invitation.school_id == school_id,
                Invitation.accepted_at.is_(None),
                Invitation.expires_at > utcnow(),
            )
            .order_by(Invitation.created_at.desc())
        )
        return list(result.scalars().all())

    # ── Super admin ──────────────────────────────────────────────────────────

    @staticmethod
    async def list_all_schools(db: AsyncSession, caller: CallerIdentity) -> list[School]:
        _require_super_admin(caller)
        result = await db.execute(select(School).order_by(School.name))
        return list(result.scalars().all())

    @staticmethod
    async def get_admin_statistics(db: AsyncSession, caller: CallerIdentity) -> AdminStatistics:
        _require_super_admin(caller)

        async def count(model) -> int:
            return (await db.execute(select(func.count()).select_from(model))).scalar_one()

        return AdminStatistics(
            schools=await count(School),
            users=await count(User),
            profiles=await count(ToneProfile),
            drafts=await count(ContentDraft),
        )

    @staticmethod
    async def set_platform_super_admin(
        db: AsyncSession, caller: CallerIdentity, target_email: str, value: bool
    ) -> User:
        _require_super_admin(caller)

        user = await LocalIdentityProvider(db).get_user_by_email(target_email)
        if user is None:
            raise NotFound("User not found")
        if caller.is_user(user.id) and not value:
            raise InvalidState("You cannot revoke your own super admin privileges")

        previous = user.is_super_admin
        user.is_super_admin = value
        await db.flush()
        await record_action(
            db,
            caller,
            "grant_super_admin" if value else "revoke_super_admin",
            affected_user_id=user.id,
            details={"email": user.email, "previous": previous},
        )
        return user

    @staticmethod
    async def list_all_users_with_memberships(
        db: AsyncSession, caller: CallerIdentity
    ) -> list[UserMembershipRow]:
        _require_super_admin(caller)
        result = await db.execute(
            select(
                User.id,
                User.email,
                User.full_name,
                User.is_super_admin,
                School.id,
                School.name,
                Membership.role,
            )
            .outerjoin(Membership, Membership.user_id == User.id)
            .outerjoin(School, School.id == Membership.school_id)
            .order_by(User.email, School.name)
        )
        return [
            UserMembershipRow(
                user_id=user_id,
                email=email,
                full_name=full_name,
                is_super_admin=is_super,
                school_id=school_id,
                school_name=school_name,
                role=MemberRole(role) if role is not None else None,
            )
            for user_id, email, full_name, is_super, school_id, school_name, role in result.all()
        ]

    @staticmethod
    async def create_user(
        db: AsyncSession, caller: CallerIdentity, data: AdminUserCreate
    ) -> User:
        """Create an identity and, optionally, place it in a school."""
        _require_super_admin(caller)

        if data.school_id is not None:
            await _require_school_exists(db, data.school_id, for_update=True)

        user = await LocalIdentityProvider(db).register(
            email=data.email,
            password=data.password,
            full_name=data.full_name,
            is_super_admin=data.is_super_admin,
        )

        if data.school_id is not None:
            has_members = (
                await db.execute(select(Membership.id).where(Membership.school_id == data.school_id).limit(1))
            ).scalar_one_or_none() is not None
            if not has_members and data.school_role is not MemberRole.admin:
                raise InvalidState("The first member of a school must be an admin")
            membership = Membership(
                school_id=data.school_id,
                user_id=user.id,
                role=data.school_role.value,
                founding_school_id=None if has_members else data.school_id,
            )
            db.add(membership)
            try:
                await db.flush()
            except IntegrityError:
                await db.rollback()
                raise Conflict("This school already has an administrator")

        await record_action(
            db,
            caller,
            "create_user",
            affected_user_id=user.id,
            affected_school_id=data.school_id,
            details={
                "email": user.email,
                "is_super_admin": data.is_super_admin,
                "school_role": data.school_role.value if data.school_id else None,
            },
        )
        return user

    @staticmethod
    async def list_audit_actions(
        db: AsyncSession, caller: CallerIdentity, limit: int = 100
    ) -> list[AuditAction]:
        _require_super_admin(caller)
        result = await db.execute(
            select(AuditAction).order_by(AuditAction.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())
