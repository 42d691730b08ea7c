"""Tests for school registration, first-admin bootstrap and member management."""

import pytest
from sqlalchemy import delete, func, select, update
from structlog.testing import capture_logs

from app.core.exceptions import Conflict, InvalidState, NotFound, PermissionDenied
from app.models import Membership, MemberRole, School
from app.policies.context import SecurityContext
from app.schemas.school import SchoolCreate, SchoolUpdate
from app.services import membership_service
from app.services.facade_service import QueryFacade
from app.services.membership_service import MembershipService
from app.services.school_service import SchoolService


async def member_count(db, school_id: str) -> int:
    return (
        await db.execute(
            select(func.count()).select_from(Membership).where(Membership.school_id == school_id)
        )
    ).scalar_one()


async def membership_of(db, school_id: str, user_id: str) -> Membership:
    return (
        await db.execute(
            select(Membership).where(Membership.school_id == school_id, Membership.user_id == user_id)
        )
    ).scalar_one()


async def admin_count(db, school_id: str) -> int:
    return (
        await db.execute(
            select(func.count())
            .select_from(Membership)
            .where(Membership.school_id == school_id, Membership.role == MemberRole.admin.value)
        )
    ).scalar_one()


def commit_after_first_admin_count(monkeypatch, db, statement):
    """A competing request commits `statement` right after the guard's first admin count."""
    original = membership_service._count_admins
    calls = {"count": 0}

    async def counting(*args, **kwargs):
        result = await original(*args, **kwargs)
        calls["count"] += 1
        if calls["count"] == 1:
            await db.execute(statement.execution_options(synchronize_session=False))
            await db.commit()
        return result

    monkeypatch.setattr(membership_service, "_count_admins", counting)


class TestSchoolRegistration:

    @pytest.mark.asyncio
    async def test_creator_becomes_first_admin(self, db, make_user):
        """Riverside Elementary is registered; its creator is the only admin."""
        alice, alice_c = await make_user("alice@riverside.org")
        school = await SchoolService.create_school_with_admin(
            db, alice_c, SchoolCreate(name="  Riverside Elementary ")
        )
        await db.commit()

        assert school.name == "Riverside Elementary"
        row = await membership_of(db, school.id, alice.id)
        assert row.member_role is MemberRole.admin
        assert row.founding_school_id == school.id
        assert await member_count(db, school.id) == 1

    @pytest.mark.asyncio
    async def test_outsider_cannot_see_new_school_members(self, db, make_user):
        _, alice_c = await make_user("alice@riverside.org")
        _, bob_c = await make_user("bob@elsewhere.org")
        school = await SchoolService.create_school_with_admin(
            db, alice_c, SchoolCreate(name="Riverside Elementary")
        )
        await db.commit()

        with pytest.raises(PermissionDenied):
            await QueryFacade.list_members(db, bob_c, school.id)
        with pytest.raises(NotFound):
            await SchoolService.get_school(db, bob_c, school.id)

    @pytest.mark.asyncio
    async def test_failed_bootstrap_discards_school(self, db, make_user, monkeypatch):
        _, alice_c = await make_user("alice@riverside.org")

        async def refuse(*args, **kwargs):
            raise Conflict("This school already has an administrator")

        monkeypatch.setattr(MembershipService, "add_member", refuse)
        with pytest.raises(Conflict):
            await SchoolService.create_school_with_admin(db, alice_c, SchoolCreate(name="Orphan"))

        assert (await db.execute(select(func.count()).select_from(School))).scalar_one() == 0

    @pytest.mark.asyncio
    async def test_failed_compensation_is_logged(self, db, make_user, monkeypatch):
        _, alice_c = await make_user("alice@riverside.org")

        async def refuse(*args, **kwargs):
            raise Conflict()

        async def broken_rollback():
            raise RuntimeError("connection lost")

        monkeypatch.setattr(MembershipService, "add_member", refuse)
        monkeypatch.setattr(db, "rollback", broken_rollback)
        with capture_logs() as logs:
            with pytest.raises(Conflict):
                await SchoolService.create_school_with_admin(db, alice_c, SchoolCreate(name="Orphan"))

        failures = [entry for entry in logs if entry["log_level"] == "error"]
        assert failures and failures[0]["event"].startswith("Compensation failed")

    @pytest.mark.asyncio
    async def test_update_school_admin_only(self, db, make_user, make_school):
        alice, alice_c = await make_user("alice@riverside.org")
        bob, bob_c = await make_user("bob@riverside.org")
        school_id = await make_school("Riverside", [(alice.id, "admin"), (bob.id, "member")])

        updated = await SchoolService.update_school(
            db, alice_c, school_id, SchoolUpdate(website="https://riverside.example")
        )
        assert updated.website == "https://riverside.example"
        with pytest.raises(PermissionDenied):
            await SchoolService.update_school(db, bob_c, school_id, SchoolUpdate(name="Hijacked"))


class TestBootstrap:

    @pytest.mark.asyncio
    async def test_late_claim_conflicts(self, db, make_user, make_school):
        """Once a school has an admin, a self-claim is a Conflict, not a silent no-op."""
        alice, _ = await make_user("alice@north.org")
        bob, bob_c = await make_user("bob@north.org")
        school_id = await make_school("North", [(alice.id, "admin")])

        with pytest.raises(Conflict):
            await MembershipService.add_member(db, bob_c, school_id, bob.id, MemberRole.admin)
        assert await member_count(db, school_id) == 1

    @pytest.mark.asyncio
    async def test_concurrent_claims_yield_one_admin(self, db, make_user, make_school, monkeypatch):
        """
        Both claimants observe an empty school (as two racing transactions
        would); the unique founding marker lets only one insert through.
        """
        _, alice_c = await make_user("alice@north.org")
        _, bob_c = await make_user("bob@north.org")
        school_id = await make_school("North")

        async def always_empty(self, school_id):
            return False

        monkeypatch.setattr(SecurityContext, "school_has_members", always_empty)

        # the losing claim rolls back and expires every loaded instance
        alice_id, bob_id = alice_c.user_id, bob_c.user_id
        await MembershipService.add_member(db, alice_c, school_id, alice_id, MemberRole.admin)
        await db.commit()
        with pytest.raises(Conflict):
            await MembershipService.add_member(db, bob_c, school_id, bob_id, MemberRole.admin)

        assert await member_count(db, school_id) == 1
        winner = await membership_of(db, school_id, alice_id)
        assert winner.member_role is MemberRole.admin

    @pytest.mark.asyncio
    async def test_first_member_must_be_admin(self, db, make_user, make_school):
        _, root_c = await make_user("root@platform.org", super_admin=True)
        bob, _ = await make_user("bob@north.org")
        school_id = await make_school("North")

        with pytest.raises(InvalidState):
            await MembershipService.add_member(db, root_c, school_id, bob.id, MemberRole.member)

    @pytest.mark.asyncio
    async def test_cannot_claim_for_someone_else(self, db, make_user, make_school):
        _, alice_c = await make_user("alice@north.org")
        bob, _ = await make_user("bob@north.org")
        school_id = await make_school("North")

        with pytest.raises(PermissionDenied):
            await MembershipService.add_member(db, alice_c, school_id, bob.id, MemberRole.admin)

    @pytest.mark.asyncio
    async def test_missing_school(self, db, make_user):
        alice, alice_c = await make_user("alice@north.org")
        with pytest.raises(NotFound):
            await MembershipService.add_member(db, alice_c, "nope", alice.id, MemberRole.admin)


class TestAddMember:

    @pytest.mark.asyncio
    async def test_admin_adds_member(self, db, make_user, make_school):
        alice, alice_c = await make_user("alice@north.org")
        bob, _ = await make_user("bob@north.org")
        school_id = await make_school("North", [(alice.id, "admin")])

        row = await MembershipService.add_member(db, alice_c, school_id, bob.id, MemberRole.member)
        assert row.founding_school_id is None
        assert await member_count(db, school_id) == 2

    @pytest.mark.asyncio
    async def test_duplicate_membership_conflicts(self, db, make_user, make_school):
        alice, alice_c = await make_user("alice@north.org")
        bob, _ = await make_user("bob@north.org")
        school_id = await make_school("North", [(alice.id, "admin"), (bob.id, "member")])

        with pytest.raises(Conflict):
            await MembershipService.add_member(db, alice_c, school_id, bob.id, MemberRole.admin)

    @pytest.mark.asyncio
    async def test_member_cannot_add(self, db, make_user, make_school):
        alice, _ = await make_user("alice@north.org")
        bob, bob_c = await make_user("bob@north.org")
        carol, _ = await make_user("carol@north.org")
        school_id = await make_school("North", [(alice.id, "admin"), (bob.id, "member")])

        with pytest.raises(PermissionDenied):
            await MembershipService.add_member(db, bob_c, school_id, carol.id, MemberRole.member)

    @pytest.mark.asyncio
    async def test_unknown_user(self, db, make_user, make_school):
        alice, alice_c = await make_user("alice@north.org")
        school_id = await make_school("North", [(alice.id, "admin")])
        with pytest.raises(NotFound):
            await MembershipService.add_member(db, alice_c, school_id, "ghost", MemberRole.member)


class TestSelfProtection:

    @pytest.mark.asyncio
    async def test_admin_cannot_demote_self(self, db, make_user, make_school):
        alice, alice_c = await make_user("alice@north.org")
        bob, _ = await make_user("bob@north.org")
        school_id = await make_school("North", [(alice.id, "admin"), (bob.id, "admin")])
        own = await membership_of(db, school_id, alice.id)

        with pytest.raises(PermissionDenied):
            await MembershipService.change_role(db, alice_c, school_id, own.id, MemberRole.member)

    @pytest.mark.asyncio
    async def test_admin_cannot_remove_self(self, db, make_user, make_school):
        alice, alice_c = await make_user("alice@north.org")
        bob, _ = await make_user("bob@north.org")
        school_id = await make_school("North", [(alice.id, "admin"), (bob.id, "admin")])
        own = await membership_of(db, school_id, alice.id)

        with pytest.raises(PermissionDenied):
            await MembershipService.remove_member(db, alice_c, school_id, own.id)
        assert await member_count(db, school_id) == 2

    @pytest.mark.asyncio
    async def test_member_cannot_change_anyone(self, db, make_user, make_school):
        alice, _ = await make_user("alice@north.org")
        bob, bob_c = await make_user("bob@north.org")
        school_id = await make_school("North", [(alice.id, "admin"), (bob.id, "member")])
        target = await membership_of(db, school_id, alice.id)

        # bob cannot even see alice's row
        with pytest.raises(NotFound):
            await MembershipService.change_role(db, bob_c, school_id, target.id, MemberRole.member)

    @pytest.mark.asyncio
    async def test_membership_id_from_another_school(self, db, make_user, make_school):
        alice, alice_c = await make_user("alice@north.org")
        bob, _ = await make_user("bob@south.org")
        north = await make_school("North", [(alice.id, "admin")])
        south = await make_school("South", [(bob.id, "admin"), (alice.id, "admin")])
        foreign = await membership_of(db, south, bob.id)

        with pytest.raises(NotFound):
            await MembershipService.remove_member(db, alice_c, north, foreign.id)


class TestLastAdminGuard:

    @pytest.mark.asyncio
    async def test_admin_demotes_co_admin(self, db, make_user, make_school):
        alice, alice_c = await make_user("alice@north.org")
        bob, bob_c = await make_user("bob@north.org")
        school_id = await make_school("North", [(alice.id, "admin"), (bob.id, "admin")])
        bob_row = await membership_of(db, school_id, bob.id)

        updated = await MembershipService.change_role(db, alice_c, school_id, bob_row.id, MemberRole.member)
        assert updated.member_role is MemberRole.member

        alice_row = await membership_of(db, school_id, alice.id)
        with pytest.raises(NotFound):
            await MembershipService.change_role(db, bob_c, school_id, alice_row.id, MemberRole.member)

    @pytest.mark.asyncio
    async def test_super_admin_cannot_demote_last_admin(self, db, make_user, make_school):
        alice, _ = await make_user("alice@north.org")
        bob, _ = await make_user("bob@north.org")
        _, root_c = await make_user("root@platform.org", super_admin=True)
        school_id = await make_school("North", [(alice.id, "admin"), (bob.id, "member")])
        alice_row = await membership_of(db, school_id, alice.id)

        with pytest.raises(InvalidState):
            await MembershipService.change_role(db, root_c, school_id, alice_row.id, MemberRole.member)
        with pytest.raises(InvalidState):
            await MembershipService.remove_member(db, root_c, school_id, alice_row.id)

    @pytest.mark.asyncio
    async def test_removing_sole_member_is_allowed(self, db, make_user, make_school):
        alice, _ = await make_user("alice@north.org")
        _, root_c = await make_user("root@platform.org", super_admin=True)
        school_id = await make_school("North", [(alice.id, "admin")])
        alice_row = await membership_of(db, school_id, alice.id)

        await MembershipService.remove_member(db, root_c, school_id, alice_row.id)
        assert await member_count(db, school_id) == 0

    @pytest.mark.asyncio
    async def test_same_role_is_a_no_op(self, db, make_user, make_school):
        alice, alice_c = await make_user("alice@north.org")
        bob, _ = await make_user("bob@north.org")
        school_id = await make_school("North", [(alice.id, "admin"), (bob.id, "member")])
        bob_row = await membership_of(db, school_id, bob.id)

        row = await MembershipService.change_role(db, alice_c, school_id, bob_row.id, MemberRole.member)
        assert row.member_role is MemberRole.member

    @pytest.mark.asyncio
    async def test_crossed_demotions_keep_an_admin(self, db, make_user, make_school, monkeypatch):
        """
        Alice demotes Bob while Bob's demotion of Alice commits between
        Alice's admin count and her write; Alice's request is rejected.
        """
        alice, alice_c = await make_user("alice@north.org")
        bob, _ = await make_user("bob@north.org")
        carol, _ = await make_user("carol@north.org")
        school_id = await make_school(
            "North", [(alice.id, "admin"), (bob.id, "admin"), (carol.id, "member")]
        )
        alice_row_id = (await membership_of(db, school_id, alice.id)).id
        bob_row_id = (await membership_of(db, school_id, bob.id)).id

        commit_after_first_admin_count(
            monkeypatch,
            db,
            update(Membership).where(Membership.id == alice_row_id).values(role="member"),
        )
        with pytest.raises(InvalidState):
            await MembershipService.change_role(db, alice_c, school_id, bob_row_id, MemberRole.member)
        await db.rollback()

        assert await member_count(db, school_id) == 3
        assert await admin_count(db, school_id) == 1


class TestLeaveSchool:

    @pytest.mark.asyncio
    async def test_member_leaves(self, db, make_user, make_school):
        alice, _ = await make_user("alice@north.org")
        bob, bob_c = await make_user("bob@north.org")
        school_id = await make_school("North", [(alice.id, "admin"), (bob.id, "member")])

        await MembershipService.leave_school(db, bob_c, school_id)
        assert await member_count(db, school_id) == 1

    @pytest.mark.asyncio
    async def test_only_admin_cannot_leave(self, db, make_user, make_school):
        alice, alice_c = await make_user("alice@north.org")
        bob, _ = await make_user("bob@north.org")
        school_id = await make_school("North", [(alice.id, "admin"), (bob.id, "member")])

        with pytest.raises(InvalidState):
            await MembershipService.leave_school(db, alice_c, school_id)

    @pytest.mark.asyncio
    async def test_admin_leaves_when_another_admin_remains(self, db, make_user, make_school):
        alice, alice_c = await make_user("alice@north.org")
        bob, _ = await make_user("bob@north.org")
        school_id = await make_school("North", [(alice.id, "admin"), (bob.id, "admin")])

        await MembershipService.leave_school(db, alice_c, school_id)
        assert await member_count(db, school_id) == 1

    @pytest.mark.asyncio
    async def test_two_admins_leaving_together_keep_an_admin(self, db, make_user, make_school, monkeypatch):
        alice, alice_c = await make_user("alice@north.org")
        bob, _ = await make_user("bob@north.org")
        carol, _ = await make_user("carol@north.org")
        school_id = await make_school(
            "North", [(alice.id, "admin"), (bob.id, "admin"), (carol.id, "member")]
        )
        bob_row_id = (await membership_of(db, school_id, bob.id)).id

        commit_after_first_admin_count(
            monkeypatch, db, delete(Membership).where(Membership.id == bob_row_id)
        )
        with pytest.raises(InvalidState):
            await MembershipService.leave_school(db, alice_c, school_id)
        await db.rollback()

        assert await member_count(db, school_id) == 2
        assert await admin_count(db, school_id) == 1

    @pytest.mark.asyncio
    async def test_non_member_cannot_leave(self, db, make_user, make_school):
        alice, _ = await make_user("alice@north.org")
        _, bob_c = await make_user("bob@north.org")
        school_id = await make_school("North", [(alice.id, "admin")])

        with pytest.raises(NotFound):
            await MembershipService.leave_school(db, bob_c, school_id)
