"""Tests for invitation issuance, acceptance, expiry and revocation."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from app.core.exceptions import Conflict, InvalidState, NotFound, PermissionDenied
from app.db.base import utcnow
from app.models import Invitation, Membership, MemberRole
from app.services.facade_service import QueryFacade
from app.services.invitation_service import InvitationService
from app.services.membership_service import MembershipService


@pytest.fixture
def school_with_admin(make_user, make_school):
    async def _setup():
        alice, alice_c = await make_user("alice@north.org")
        school_id = await make_school("North", [(alice.id, "admin")])
        return alice_c, school_id

    return _setup


async def memberships_of(db, user_id: str) -> int:
    return (
        await db.execute(
            select(func.count()).select_from(Membership).where(Membership.user_id == user_id)
        )
    ).scalar_one()


class TestCreateInvitation:

    @pytest.mark.asyncio
    async def test_admin_invites(self, db, school_with_admin):
        alice_c, school_id = await school_with_admin()
        invitation = await InvitationService.create_invitation(
            db, alice_c, school_id, "New@X.com", MemberRole.member
        )

        assert invitation.email == "new@x.com"
        assert invitation.created_by == alice_c.user_id
        assert len(invitation.token) >= 32
        assert invitation.expires_at - utcnow() > timedelta(days=6)

    @pytest.mark.asyncio
    async def test_member_cannot_invite(self, db, make_user, make_school):
        alice, _ = await make_user("alice@north.org")
        bob, bob_c = await make_user("bob@north.org")
        school_id = await make_school("North", [(alice.id, "admin"), (bob.id, "member")])

        with pytest.raises(PermissionDenied):
            await InvitationService.create_invitation(db, bob_c, school_id, "x@y.org", MemberRole.member)

    @pytest.mark.asyncio
    async def test_outsider_sees_not_found(self, db, make_user, school_with_admin):
        _, school_id = await school_with_admin()
        _, eve_c = await make_user("eve@evil.org")

        with pytest.raises(NotFound):
            await InvitationService.create_invitation(db, eve_c, school_id, "eve@evil.org", MemberRole.admin)

    @pytest.mark.asyncio
    async def test_pending_duplicate_conflicts(self, db, school_with_admin):
        alice_c, school_id = await school_with_admin()
        await InvitationService.create_invitation(db, alice_c, school_id, "new@x.com", MemberRole.member)

        with pytest.raises(Conflict):
            await InvitationService.create_invitation(db, alice_c, school_id, "NEW@x.com", MemberRole.member)

    @pytest.mark.asyncio
    async def test_expired_invitation_is_replaced(self, db, school_with_admin):
        alice_c, school_id = await school_with_admin()
        old = await InvitationService.create_invitation(db, alice_c, school_id, "new@x.com", MemberRole.member)
        old.expires_at = utcnow() - timedelta(seconds=1)
        await db.flush()

        fresh = await InvitationService.create_invitation(db, alice_c, school_id, "new@x.com", MemberRole.admin)
        assert fresh.role == "admin"
        pending = await QueryFacade.list_invitations(db, alice_c, school_id)
        assert [i.id for i in pending] == [fresh.id]

    @pytest.mark.asyncio
    async def test_accepted_invitation_is_kept_on_reinvite(self, db, make_user, school_with_admin):
        """The invitee joined and later left; their accepted invitation stays as it was."""
        alice_c, school_id = await school_with_admin()
        invitation = await InvitationService.create_invitation(
            db, alice_c, school_id, "new@x.com", MemberRole.member
        )
        token, invitation_id = invitation.token, invitation.id
        await db.commit()
        _, newbie_c = await make_user("new@x.com")
        await InvitationService.accept_invitation(db, newbie_c, token)
        await MembershipService.leave_school(db, newbie_c, school_id)
        await db.commit()

        with pytest.raises(Conflict, match="already accepted"):
            await InvitationService.create_invitation(db, alice_c, school_id, "new@x.com", MemberRole.admin)

        kept = (
            await db.execute(select(Invitation).where(Invitation.id == invitation_id))
        ).scalar_one()
        assert kept.accepted_at is not None
        assert kept.role == "member"

    @pytest.mark.asyncio
    async def test_existing_member_conflicts(self, db, make_user, make_school):
        alice, alice_c = await make_user("alice@north.org")
        bob, _ = await make_user("bob@north.org")
        school_id = await make_school("North", [(alice.id, "admin"), (bob.id, "member")])

        with pytest.raises(Conflict):
            await InvitationService.create_invitation(db, alice_c, school_id, "Bob@North.org", MemberRole.member)


class TestAcceptInvitation:

    @pytest.mark.asyncio
    async def test_accept_creates_membership_once(self, db, make_user, school_with_admin):
        """The invitee joins with the invited role; a second accept is rejected."""
        alice_c, school_id = await school_with_admin()
        invitation = await InvitationService.create_invitation(
            db, alice_c, school_id, "new@x.com", MemberRole.member
        )
        token = invitation.token
        await db.commit()
        newbie, newbie_c = await make_user("NEW@x.com")

        membership = await InvitationService.accept_invitation(db, newbie_c, token)
        await db.commit()
        assert membership.school_id == school_id
        assert membership.member_role is MemberRole.member
        assert invitation.accepted_at is not None

        with pytest.raises(InvalidState):
            await InvitationService.accept_invitation(db, newbie_c, token)
        assert await memberships_of(db, newbie.id) == 1

    @pytest.mark.asyncio
    async def test_lost_race_is_rejected(self, db, make_user, school_with_admin):
        """
        A concurrent acceptance commits between our read and our write; the
        compare-and-set update matches nothing and no second membership appears.
        """
        alice_c, school_id = await school_with_admin()
        invitation = await InvitationService.create_invitation(
            db, alice_c, school_id, "new@x.com", MemberRole.member
        )
        token, invitation_id = invitation.token, invitation.id
        await db.commit()
        newbie, newbie_c = await make_user("new@x.com")

        # Mark accepted behind the ORM's back so the loaded row stays stale
        await db.execute(
            update(Invitation)
            .where(Invitation.id == invitation_id)
            .values(accepted_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        assert invitation.accepted_at is None

        with pytest.raises(InvalidState):
            await InvitationService.accept_invitation(db, newbie_c, token)
        assert await memberships_of(db, newbie.id) == 0

    @pytest.mark.asyncio
    async def test_expired_invitation_cannot_be_accepted(self, db, make_user, school_with_admin):
        alice_c, school_id = await school_with_admin()
        invitation = await InvitationService.create_invitation(
            db, alice_c, school_id, "new@x.com", MemberRole.member
        )
        invitation.expires_at = utcnow() - timedelta(seconds=1)
        token = invitation.token
        await db.commit()
        newbie, newbie_c = await make_user("new@x.com")

        with pytest.raises(InvalidState, match="expired"):
            await InvitationService.accept_invitation(db, newbie_c, token)
        assert await memberships_of(db, newbie.id) == 0

    @pytest.mark.asyncio
    async def test_old_invitation_expired_long_ago(self, db, make_user, school_with_admin):
        alice_c, school_id = await school_with_admin()
        invitation = await InvitationService.create_invitation(
            db, alice_c, school_id, "new@x.com", MemberRole.member
        )
        invitation.created_at = utcnow() - timedelta(days=400)
        invitation.expires_at = utcnow() - timedelta(days=393)
        token = invitation.token
        await db.commit()
        _, newbie_c = await make_user("new@x.com")

        with pytest.raises(InvalidState):
            await InvitationService.accept_invitation(db, newbie_c, token)

    @pytest.mark.asyncio
    async def test_wrong_email_cannot_accept(self, db, make_user, school_with_admin):
        alice_c, school_id = await school_with_admin()
        invitation = await InvitationService.create_invitation(
            db, alice_c, school_id, "new@x.com", MemberRole.admin
        )
        token = invitation.token
        await db.commit()
        _, eve_c = await make_user("eve@evil.org")

        # eve cannot even see the invitation
        with pytest.raises(NotFound):
            await InvitationService.accept_invitation(db, eve_c, token)

    @pytest.mark.asyncio
    async def test_admin_cannot_accept_for_invitee(self, db, school_with_admin):
        alice_c, school_id = await school_with_admin()
        invitation = await InvitationService.create_invitation(
            db, alice_c, school_id, "new@x.com", MemberRole.member
        )

        with pytest.raises(PermissionDenied):
            await InvitationService.accept_invitation(db, alice_c, invitation.token)

    @pytest.mark.asyncio
    async def test_unknown_token(self, db, make_user):
        _, bob_c = await make_user("bob@x.com")
        with pytest.raises(NotFound):
            await InvitationService.accept_invitation(db, bob_c, "no-such-token")

    @pytest.mark.asyncio
    async def test_invitee_views_invitation(self, db, make_user, school_with_admin):
        alice_c, school_id = await school_with_admin()
        invitation = await InvitationService.create_invitation(
            db, alice_c, school_id, "new@x.com", MemberRole.member
        )
        token = invitation.token
        await db.commit()
        _, newbie_c = await make_user("new@x.com")

        found, school = await InvitationService.get_by_token(db, newbie_c, token)
        assert found.id == invitation.id
        assert school.name == "North"


class TestRevokeInvitation:

    @pytest.mark.asyncio
    async def test_admin_revokes_pending(self, db, school_with_admin):
        alice_c, school_id = await school_with_admin()
        invitation = await InvitationService.create_invitation(
            db, alice_c, school_id, "new@x.com", MemberRole.member
        )

        await InvitationService.revoke_invitation(db, alice_c, invitation.id)
        assert await QueryFacade.list_invitations(db, alice_c, school_id) == []

    @pytest.mark.asyncio
    async def test_accepted_invitation_cannot_be_revoked(self, db, make_user, school_with_admin):
        alice_c, school_id = await school_with_admin()
        invitation = await InvitationService.create_invitation(
            db, alice_c, school_id, "new@x.com", MemberRole.member
        )
        token, invitation_id = invitation.token, invitation.id
        await db.commit()
        _, newbie_c = await make_user("new@x.com")
        await InvitationService.accept_invitation(db, newbie_c, token)
        await db.commit()

        with pytest.raises(InvalidState):
            await InvitationService.revoke_invitation(db, alice_c, invitation_id)

    @pytest.mark.asyncio
    async def test_invitee_cannot_revoke(self, db, make_user, school_with_admin):
        alice_c, school_id = await school_with_admin()
        invitation = await InvitationService.create_invitation(
            db, alice_c, school_id, "new@x.com", MemberRole.member
        )
        invitation_id = invitation.id
        await db.commit()
        _, newbie_c = await make_user("new@x.com")

        with pytest.raises(PermissionDenied):
            await InvitationService.revoke_invitation(db, newbie_c, invitation_id)
