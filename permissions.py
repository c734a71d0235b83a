"""Team-scoped role resolution and the permission gate.

Every team role is derived from a membership row of a live team. The global
superadmin flag is *not* a team role: a superadmin with no membership row
resolves to no role and is refused team data like anyone else. Superadmin
only bypasses the gate for global administration (listings, lifecycle
overrides), and those call sites check ``Actor.superadmin`` explicitly.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from errors import AuthzDenied
from models import Role, Team, TeamMember

NO_MEMBERSHIP = "Access denied to this team"
WRITE_REQUIRED = "Write access required for this operation"
ADMIN_REQUIRED = "Admin privileges required for this operation"
SUPERADMIN_REQUIRED = "Superadmin privileges required"

_WRITE_ROLES = frozenset({Role.collaborator, Role.admin})


@dataclass(frozen=True)
class Actor:
    user_id: int
    superadmin: bool = False


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str

    def __bool__(self) -> bool:
        return self.allowed


GRANTED = Decision(True, "Access granted")


class RoleResolver:
    def __init__(self, session: Session) -> None:
        self.session = session

    def role_of(self, team_id: int, user_id: int) -> Optional[Role]:
        """Effective role; None for no membership, a missing or a soft-deleted team."""
        stmt = (
            select(TeamMember.role)
            .join(Team, Team.id == TeamMember.team_id)
            .where(
                TeamMember.team_id == team_id,
                TeamMember.user_id == user_id,
                Team.deleted_at.is_(None),
            )
        )
        return self.session.scalar(stmt)

    def stored_role(self, team_id: int, user_id: int) -> Optional[Role]:
        """Membership role regardless of the team's lifecycle state.

        Only lifecycle restoration may use this: it is the one place where a
        former admin of a soft-deleted team is still recognised.
        """
        stmt = select(TeamMember.role).where(
            TeamMember.team_id == team_id, TeamMember.user_id == user_id
        )
        return self.session.scalar(stmt)


def decide_read(role: Optional[Role]) -> Decision:
    if role is None:
        return Decision(False, NO_MEMBERSHIP)
    return GRANTED


def decide_write(role: Optional[Role]) -> Decision:
    if role is None:
        return Decision(False, NO_MEMBERSHIP)
    if role not in _WRITE_ROLES:
        return Decision(False, WRITE_REQUIRED)
    return GRANTED


def decide_admin(role: Optional[Role]) -> Decision:
    if role is None:
        return Decision(False, NO_MEMBERSHIP)
    if role != Role.admin:
        return Decision(False, ADMIN_REQUIRED)
    return GRANTED


class PermissionGate:
    def __init__(self, session: Session, resolver: Optional[RoleResolver] = None) -> None:
        self.session = session
        self.resolver = resolver or RoleResolver(session)

    def can_read(self, team_id: int, user_id: int) -> Decision:
        return decide_read(self.resolver.role_of(team_id, user_id))

    def can_write(self, team_id: int, user_id: int) -> Decision:
        return decide_write(self.resolver.role_of(team_id, user_id))

    def can_admin(self, team_id: int, user_id: int) -> Decision:
        return decide_admin(self.resolver.role_of(team_id, user_id))

    def require_read(self, team_id: int, actor: Actor) -> None:
        _enforce(self.can_read(team_id, actor.user_id))

    def require_write(self, team_id: int, actor: Actor) -> None:
        _enforce(self.can_write(team_id, actor.user_id))

    def require_admin(self, team_id: int, actor: Actor) -> None:
        _enforce(self.can_admin(team_id, actor.user_id))


def _enforce(decision: Decision) -> None:
    if not decision.allowed:
        raise AuthzDenied(decision.reason)


def require_superadmin(actor: Actor) -> None:
    if not actor.superadmin:
        raise AuthzDenied(SUPERADMIN_REQUIRED)
