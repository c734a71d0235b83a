import pytest

from errors import AuthzDenied
from models import Role
from permissions import (
    ADMIN_REQUIRED,
    NO_MEMBERSHIP,
    WRITE_REQUIRED,
    PermissionGate,
    RoleResolver,
    decide_admin,
    decide_read,
    decide_write,
)
from schemas import BookUpdate
from services import BookService, TeamService


def test_privileges_are_monotonic_across_roles() -> None:
    for role in [None, *Role]:
        if decide_admin(role):
            assert decide_write(role)
        if decide_write(role):
            assert decide_read(role)


def test_no_membership_denies_everything() -> None:
    assert decide_read(None).reason == NO_MEMBERSHIP
    assert decide_write(None).reason == NO_MEMBERSHIP
    assert decide_admin(None).reason == NO_MEMBERSHIP


def test_gate_decisions_per_role(session, household) -> None:
    gate = PermissionGate(session)
    team_id = household["team"].id
    viewer = household["viewer"].user_id
    collaborator = household["collaborator"].user_id
    admin = household["admin"].user_id

    assert gate.can_read(team_id, viewer)
    assert gate.can_write(team_id, viewer).reason == WRITE_REQUIRED

    assert gate.can_write(team_id, collaborator)
    assert gate.can_admin(team_id, collaborator).reason == ADMIN_REQUIRED

    assert gate.can_admin(team_id, admin)


def test_superadmin_without_membership_is_not_a_team_member(session, household) -> None:
    root = household["root"]
    gate = PermissionGate(session)

    decision = gate.can_read(household["team"].id, root.user_id)

    assert not decision
    assert decision.reason == NO_MEMBERSHIP
    with pytest.raises(AuthzDenied, match=NO_MEMBERSHIP):
        BookService(session, root).accounts(household["book"].id)


def test_role_resolves_to_none_once_team_is_soft_deleted(session, household) -> None:
    team = household["team"]
    admin = household["admin"]
    resolver = RoleResolver(session)
    assert resolver.role_of(team.id, admin.user_id) == Role.admin

    TeamService(session, admin).soft_delete(team.id)

    assert resolver.role_of(team.id, admin.user_id) is None
    assert resolver.stored_role(team.id, admin.user_id) == Role.admin
    assert not PermissionGate(session).can_read(team.id, admin.user_id)


def test_viewer_cannot_write_book_contents(session, household) -> None:
    viewer = household["viewer"]

    with pytest.raises(AuthzDenied, match=WRITE_REQUIRED):
        BookService(session, viewer).update(
            household["book"].id, BookUpdate(name="Renamed")
        )