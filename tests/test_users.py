import pytest

from errors import AuthzDenied, Conflict, InvalidInput, NotAuthenticated
from models import Role, TeamMember
from permissions import Actor
from schemas import MemberIn, TeamIn, UserIn, UserUpdate
from services import TeamService, UserService
from tokens import issue_access_token


@pytest.fixture
def root(make_user) -> Actor:
    return make_user("root", superadmin=True)


def test_login_and_authenticate_round_trip(session, root) -> None:
    UserService(session, root).create(UserIn(username="dana", password="s3cret"))

    user, token = UserService(session).login("dana", "s3cret")
    actor = UserService(session).authenticate(token)

    assert actor == Actor(user_id=user.id, superadmin=False)


def test_login_rejects_bad_password_and_disabled_accounts(session, root) -> None:
    service = UserService(session, root)
    dana = service.create(UserIn(username="dana", password="s3cret"))

    with pytest.raises(NotAuthenticated, match="Invalid credentials"):
        UserService(session).login("dana", "wrong")

    service.disable(dana.id)
    with pytest.raises(NotAuthenticated, match="Account is disabled"):
        UserService(session).login("dana", "s3cret")


def test_authenticate_rejects_missing_and_forged_tokens(session, root) -> None:
    with pytest.raises(NotAuthenticated, match="token required"):
        UserService(session).authenticate(None)
    with pytest.raises(AuthzDenied, match="Invalid token"):
        UserService(session).authenticate("not.a.token")


def test_token_of_renamed_user_is_rejected(session, root) -> None:
    token = issue_access_token(root.user_id, "someone-else")

    with pytest.raises(AuthzDenied, match="Invalid token"):
        UserService(session).authenticate(token)


def test_only_superadmins_manage_users(session, make_user) -> None:
    plain = make_user("paul")

    with pytest.raises(AuthzDenied, match="Superadmin privileges required"):
        UserService(session, plain).create(UserIn(username="x", password="y"))
    with pytest.raises(AuthzDenied):
        UserService(session, plain).list_all()


def test_duplicate_username_conflicts(session, root) -> None:
    with pytest.raises(Conflict, match="Username already exists"):
        UserService(session, root).create(UserIn(username="root", password="pw"))


def test_users_only_see_themselves(session, root, make_user) -> None:
    paul = make_user("paul")

    assert UserService(session, paul).get(paul.user_id).username == "paul"
    with pytest.raises(AuthzDenied, match="only view your own"):
        UserService(session, paul).get(root.user_id)


def test_self_service_password_change_needs_current_password(session, root) -> None:
    dana = UserService(session, root).create(UserIn(username="dana", password="old"))
    actor = Actor(user_id=dana.id)
    service = UserService(session, actor)

    with pytest.raises(InvalidInput, match="Current password is required"):
        service.update(dana.id, UserUpdate(password="new"))
    with pytest.raises(NotAuthenticated, match="Current password is incorrect"):
        service.update(dana.id, UserUpdate(password="new", current_password="nope"))

    service.update(dana.id, UserUpdate(password="new", current_password="old"))
    user, _ = UserService(session).login("dana", "new")
    assert user.id == dana.id


def test_regular_users_cannot_grant_themselves_privileges(session, make_user) -> None:
    paul = make_user("paul")

    with pytest.raises(AuthzDenied, match="Only superadmins"):
        UserService(session, paul).update(paul.user_id, UserUpdate(superadmin=True))
    with pytest.raises(InvalidInput, match="No fields to update"):
        UserService(session, paul).update(paul.user_id, UserUpdate())


def test_superadmin_cannot_delete_or_disable_itself(session, root) -> None:
    service = UserService(session, root)

    with pytest.raises(InvalidInput, match="own account"):
        service.delete(root.user_id)
    with pytest.raises(InvalidInput, match="own account"):
        service.disable(root.user_id)


def test_enable_and_disable_are_not_idempotent(session, root, make_user) -> None:
    paul = make_user("paul")
    service = UserService(session, root)

    with pytest.raises(InvalidInput, match="already enabled"):
        service.enable(paul.user_id)
    service.disable(paul.user_id)
    with pytest.raises(InvalidInput, match="already disabled"):
        service.disable(paul.user_id)
    assert service.enable(paul.user_id).active is True


def test_deleting_user_drops_memberships(session, root, make_user) -> None:
    owner = make_user("olga")
    paul = make_user("paul")
    teams = TeamService(session, owner)
    team = teams.create(TeamIn(name="Flat"))
    teams.add_member(team.id, MemberIn(user_id=paul.user_id, role=Role.viewer))

    UserService(session, root).delete(paul.user_id)

    assert session.get(TeamMember, (team.id, paul.user_id)) is None
    assert [m["username"] for m in teams.members(team.id)] == ["olga"]


def test_search_ranks_exact_match_first(session, root, make_user) -> None:
    for name in ["anna", "annabel", "hanna", "ann"]:
        make_user(name)

    found = UserService(session, root).search("ann", limit=3)

    assert [u.username for u in found] == ["ann", "anna", "hanna"]


def test_bootstrap_creates_first_superadmin_only_once(session) -> None:
    service = UserService(session)

    first = service.bootstrap_superadmin("admin", "changeme")
    again = service.bootstrap_superadmin("admin2", "changeme")

    assert first is not None and first.superadmin
    assert again is None
    assert service.bootstrap_superadmin("x", "") is None
