"""
services/invitation_service.py
------------------------------
Invitation issuance, revocation and acceptance.

State machine per invitation:
  Pending  → Accepted  accepted_at set + membership created, one transaction
  Pending  → Expired   implicit, expires_at <= now; re-checked at every use
  Pending  → Revoked   admin deletes the row

Acceptance marks the row with a compare-and-set UPDATE
(WHERE accepted_at IS NULL AND expires_at > now). Of two concurrent
acceptances exactly one updates a row; the other sees rowcount 0 and gets
InvalidState. If the membership insert fails afterwards the whole
transaction, including the acceptance mark, is rolled back.
"""

from datetime import timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import Conflict, InvalidState, NotFound, PermissionDenied
from app.core.logging import get_logger
from app.core.security import generate_invitation_token
from app.db.base import utcnow
from app.models.invitation import Invitation
from app.models.membership import Membership, MemberRole
from app.models.school import School
from app.models.user import User
from app.policies.context import Action, CallerIdentity
from app.policies.engine import AuthorizationEngine

logger = get_logger(__name__)


class InvitationService:

    @staticmethod
    async def create_invitation(
        db: AsyncSession,
        caller: CallerIdentity,
        school_id: str,
        email: str,
        role: MemberRole,
    ) -> Invitation:
        engine = AuthorizationEngine(db, caller)
        await engine.require_school_visible(school_id)

        email = email.strip().lower()
        invitation = Invitation(
            school_id=school_id,
            email=email,
            token=generate_invitation_token(),
            role=role.value,
            created_by=caller.user_id,
            expires_at=utcnow() + timedelta(days=settings.INVITATION_EXPIRE_DAYS),
        )
        await engine.authorize(Action.INSERT, invitation)

        already_member = await db.execute(
            select(Membership.id)
            .join(User, User.id == Membership.user_id)
            .where(Membership.school_id == school_id, User.email == email)
        )
        if already_member.scalar_one_or_none() is not None:
            raise Conflict(f"{email} is already a member of this school")

        previous = (
            await db.execute(
                select(Invitation).where(Invitation.school_id == school_id, Invitation.email == email)
            )
        ).scalar_one_or_none()
        if previous is not None:
            if previous.is_accepted:
                raise Conflict(f"{email} has already accepted an invitation to this school")
            if not previous.is_expired(utcnow()):
                raise Conflict(f"An invitation has already been sent to {email}")
            # An expired, never accepted invitation is inert; make room for the new one
            await db.delete(previous)
            await db.flush()

        db.add(invitation)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise Conflict(f"An invitation has already been sent to {email}")

        logger.info(
            "Invitation created",
            invitation_id=invitation.id,
            school_id=school_id,
            role=role.value,
            by=caller.user_id,
        )
        return invitation

    @staticmethod
    async def revoke_invitation(db: AsyncSession, caller: CallerIdentity, invitation_id: str) -> None:
        engine = AuthorizationEngine(db, caller)
        invitation = await engine.load(Invitation, invitation_id, for_update=True)
        await engine.authorize(Action.DELETE, invitation)
        if invitation.is_accepted:
            raise InvalidState("An accepted invitation cannot be revoked")

        await db.delete(invitation)
        await db.flush()
        logger.info("Invitation revoked", invitation_id=invitation_id, by=caller.user_id)

    @staticmethod
    async def _by_token(db: AsyncSession, token: str) -> Invitation:
        invitation = (
            await db.execute(select(Invitation).where(Invitation.token == token))
        ).scalar_one_or_none()
        if invitation is None:
            raise NotFound("Invitation not found")
        return invitation

    @staticmethod
    async def get_by_token(
        db: AsyncSession, caller: CallerIdentity, token: str
    ) -> tuple[Invitation, School]:
        invitation = await InvitationService._by_token(db, token)
        await AuthorizationEngine(db, caller).authorize(Action.SELECT, invitation)
        school = await db.get(School, invitation.school_id)
        return invitation, school

    @staticmethod
    async def accept_invitation(db: AsyncSession, caller: CallerIdentity, token: str) -> Membership:
        invitation = await InvitationService._by_token(db, token)
        await AuthorizationEngine(db, caller).authorize(Action.SELECT, invitation)

        if not caller.has_email(invitation.email):
            raise PermissionDenied("This invitation was sent to a different email address")
        if invitation.is_accepted:
            raise InvalidState("Invitation has already been accepted")
        now = utcnow()
        if invitation.is_expired(now):
            raise InvalidState("Invitation has expired")

        marked = await db.execute(
            update(Invitation)
            .where(
                Invitation.id == invitation.id,
                Invitation.accepted_at.is_(None),
                Invitation.expires_at > now,
            )
            .values(accepted_at=now)
            .execution_options(synchronize_session=False)
        )
        if marked.rowcount != 1:
            logger.info("Invitation acceptance lost a race", invitation_id=invitation.id)
            raise InvalidState("Invitation has already been accepted")

        membership = Membership(
            school_id=invitation.school_id,
            user_id=caller.user_id,
            role=MemberRole(invitation.role).value,
        )
        db.add(membership)
        try:
            await db.flush()
        except IntegrityError:
            # Undo the acceptance mark together with the failed insert
            await db.rollback()
            raise Conflict("You are already a member of this school")

        await db.refresh(invitation)
        logger.info(
            "Invitation accepted",
            invitation_id=invitation.id,
            school_id=invitation.school_id,
            user_id=caller.user_id,
        )
        return membership
