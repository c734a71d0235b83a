import pytest

from database import Base, build_engine, make_sessionmaker
from models import Role, User
from permissions import Actor
from schemas import AccountIn, BookIn, MemberIn, TeamIn
from services import AccountService, BookService, TeamService


def make_session():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    return make_sessionmaker(engine)()


@pytest.fixture
def session():
    session = make_session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(session):
    def _make_user(username: str, superadmin: bool = False, active: bool = True) -> Actor:
        user = User(
            username=username,
            password_hash="not-a-real-hash",
            superadmin=superadmin,
            active=active,
        )
        session.add(user)
        session.commit()
        return Actor(user_id=user.id, superadmin=superadmin)

    return _make_user


@pytest.fixture
def household(session, make_user):
    """A team with one member per role, one book and one account."""
    admin = make_user("alice")
    collaborator = make_user("carol")
    viewer = make_user("victor")
    root = make_user("root", superadmin=True)

    teams = TeamService(session, admin)
    team = teams.create(TeamIn(name="Household"))
    teams.add_member(team.id, MemberIn(user_id=collaborator.user_id, role=Role.collaborator))
    teams.add_member(team.id, MemberIn(user_id=viewer.user_id, role=Role.viewer))

    book = BookService(session, admin).create(BookIn(name="2025", team_id=team.id))
    account = AccountService(session, admin).create(
        AccountIn(name="Checking", book_id=book.id)
    )
    return {
        "admin": admin,
        "collaborator": collaborator,
        "viewer": viewer,
        "root": root,
        "team": team,
        "book": book,
        "account": account,
    }
