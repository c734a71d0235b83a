import pytest
from sqlalchemy import select

from database import Base, build_engine, make_sessionmaker
from errors import InvalidState, NotFound
from lifecycle import LifecycleManager
from models import Team, User
from permissions import Actor
from schemas import TeamIn
from services import TeamService


@pytest.fixture
def sessions(tmp_path):
    """Two independent sessions over one file-backed database."""
    engine = build_engine(f"sqlite+pysqlite:///{tmp_path / 'races.db'}")
    Base.metadata.create_all(engine)
    Session = make_sessionmaker(engine)
    first, second = Session(), Session()
    try:
        yield first, second
    finally:
        first.close()
        second.close()
        engine.dispose()


@pytest.fixture
def team_id(sessions):
    seed, _ = sessions
    admin = User(username="alice", password_hash="not-a-real-hash")
    root = User(username="root", password_hash="not-a-real-hash", superadmin=True)
    seed.add_all([admin, root])
    seed.commit()
    team = TeamService(seed, Actor(user_id=admin.id)).create(TeamIn(name="Household"))
    seed.expunge_all()
    return team.id


def root_actor(session) -> Actor:
    root = session.scalar(select(User).where(User.username == "root"))
    return Actor(user_id=root.id, superadmin=True)


def test_soft_delete_lost_to_concurrent_delete_reports_not_found(
    sessions, team_id
) -> None:
    mine, theirs = sessions
    actor = root_actor(mine)
    assert mine.get(Team, team_id).deleted_at is None

    LifecycleManager(theirs, actor).soft_delete_team(team_id)
    deleted_at = theirs.get(Team, team_id).deleted_at

    with pytest.raises(NotFound, match="Team not found"):
        LifecycleManager(mine, actor).soft_delete_team(team_id)

    theirs.expire_all()
    assert theirs.get(Team, team_id).deleted_at == deleted_at


def test_restore_lost_to_concurrent_restore_reports_invalid_state(
    sessions, team_id
) -> None:
    mine, theirs = sessions
    actor = root_actor(mine)
    LifecycleManager(theirs, actor).soft_delete_team(team_id)
    assert mine.get(Team, team_id).deleted_at is not None

    LifecycleManager(theirs, actor).restore_team(team_id)

    with pytest.raises(InvalidState, match="Team is not deleted"):
        LifecycleManager(mine, actor).restore_team(team_id)

    theirs.expire_all()
    assert theirs.get(Team, team_id).deleted_at is None
