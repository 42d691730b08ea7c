"""
policies/rules.py
-----------------
The per-entity rule table.

Each rule is a pure predicate over (caller, row, facts). Rules never touch
the database: everything they need arrives pre-resolved in Facts. A
(entity, action) pair without a registered rule is denied.

| Entity       | SELECT                    | INSERT              | UPDATE                  | DELETE                  |
|--------------|---------------------------|---------------------|-------------------------|-------------------------|
| School       | member / super            | anyone / super      | admin / super           | -                       |
| Membership   | self / admin / super      | bootstrap rule      | not self: admin / super | not self: admin / super |
| Invitation   | admin / invitee / super   | admin / super       | -                       | admin / super           |
| ToneProfile  | member / super            | admin / super       | admin / super           | admin / super           |
| ContentDraft | member / super            | member, as author   | author, member          | author                  |
"""

from typing import Any, Callable, Dict, Optional, Tuple, Type

from app.models.content_draft import ContentDraft
from app.models.invitation import Invitation
from app.models.membership import Membership, MemberRole
from app.models.school import School
from app.models.tone_profile import ToneProfile
from app.policies.context import Action, CallerIdentity, Facts

Rule = Callable[[CallerIdentity, Any, Facts], bool]

_RULES: Dict[Tuple[Type, Action], Rule] = {}


def rule(entity: Type, *actions: Action) -> Callable[[Rule], Rule]:
    def register(fn: Rule) -> Rule:
        for action in actions:
            key = (entity, action)
            if key in _RULES:
                raise RuntimeError(f"Duplicate rule for {entity.__name__}.{action.value}")
            _RULES[key] = fn
        return fn
    return register


def lookup(entity: Type, action: Action) -> Optional[Rule]:
    return _RULES.get((entity, action))


def evaluate(caller: CallerIdentity, action: Action, row: Any, facts: Facts) -> bool:
    fn = lookup(type(row), action)
    if fn is None:
        return False
    return fn(caller, row, facts)


# ── School ────────────────────────────────────────────────────────────────────

@rule(School, Action.SELECT)
def school_select(caller: CallerIdentity, row: School, facts: Facts) -> bool:
    return facts.is_member or caller.is_platform_super_admin


@rule(School, Action.INSERT)
def school_insert(caller: CallerIdentity, row: School, facts: Facts) -> bool:
    # Public self-service registration: any authenticated caller may
    # create a school. Admin rights come only from the bootstrap rule.
    return True


@rule(School, Action.UPDATE)
def school_update(caller: CallerIdentity, row: School, facts: Facts) -> bool:
    return facts.is_admin or caller.is_platform_super_admin


# ── Membership ────────────────────────────────────────────────────────────────

@rule(Membership, Action.SELECT)
def membership_select(caller: CallerIdentity, row: Membership, facts: Facts) -> bool:
    return (
        caller.is_user(row.user_id)
        or facts.is_admin
        or caller.is_platform_super_admin
    )


@rule(Membership, Action.INSERT)
def membership_insert(caller: CallerIdentity, row: Membership, facts: Facts) -> bool:
    claims_first_admin = (
        caller.is_user(row.user_id)
        and MemberRole(row.role) is MemberRole.admin
        and not facts.school_has_members
    )
    return claims_first_admin or facts.is_admin or caller.is_platform_super_admin


@rule(Membership, Action.UPDATE, Action.DELETE)
def membership_manage(caller: CallerIdentity, row: Membership, facts: Facts) -> bool:
    # Nobody manages their own row here, super-admins included; leaving is
    # a separate operation
    if caller.is_user(row.user_id):
        return False
    return facts.is_admin or caller.is_platform_super_admin


# ── Invitation ────────────────────────────────────────────────────────────────

@rule(Invitation, Action.SELECT)
def invitation_select(caller: CallerIdentity, row: Invitation, facts: Facts) -> bool:
    return (
        facts.is_admin
        or caller.has_email(row.email)
        or caller.is_platform_super_admin
    )


@rule(Invitation, Action.INSERT, Action.DELETE)
def invitation_manage(caller: CallerIdentity, row: Invitation, facts: Facts) -> bool:
    return facts.is_admin or caller.is_platform_super_admin


# ── ToneProfile ───────────────────────────────────────────────────────────────

@rule(ToneProfile, Action.SELECT)
def tone_profile_select(caller: CallerIdentity, row: ToneProfile, facts: Facts) -> bool:
    return facts.is_member or caller.is_platform_super_admin


@rule(ToneProfile, Action.INSERT, Action.UPDATE, Action.DELETE)
def tone_profile_manage(caller: CallerIdentity, row: ToneProfile, facts: Facts) -> bool:
    return facts.is_admin or caller.is_platform_super_admin


# ── ContentDraft ──────────────────────────────────────────────────────────────

@rule(ContentDraft, Action.SELECT)
def draft_select(caller: CallerIdentity, row: ContentDraft, facts: Facts) -> bool:
    return facts.is_member or caller.is_platform_super_admin


@rule(ContentDraft, Action.INSERT, Action.UPDATE)
def draft_write(caller: CallerIdentity, row: ContentDraft, facts: Facts) -> bool:
    return facts.is_member and caller.is_user(row.user_id)


@rule(ContentDraft, Action.DELETE)
def draft_delete(caller: CallerIdentity, row: ContentDraft, facts: Facts) -> bool:
    return caller.is_user(row.user_id)
