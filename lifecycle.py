"""Soft-delete / restore / permanent-delete for teams and books.

A book is reachable only while both the book and its owning team are live.
Superadmins may look up soft-deleted teams and books by id; everybody else
gets "not found" for anything that is not live, whatever their stored role.

Transitions are conditional updates (``... WHERE deleted_at IS NULL`` and the
reverse), so two racing requests cannot both win a transition.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from errors import AuthzDenied, InvalidState, NotFound
from models import (
    Account,
    Active,
    Book,
    Category,
    Role,
    SoftDeleted,
    Team,
    TeamMember,
    Transaction,
)
from permissions import (
    ADMIN_REQUIRED,
    Actor,
    PermissionGate,
    RoleResolver,
    require_superadmin,
)

logger = logging.getLogger(__name__)

DELETED_TEAM_MEMBERS = (
    "Cannot manage members of deleted teams. Please restore the team first."
)


def is_live(entity) -> bool:
    return isinstance(entity.state, Active)


def live_book_stmt(book_id: int):
    """Select a book only if it and its team are both live."""
    return (
        select(Book)
        .join(Team, Team.id == Book.team_id)
        .where(
            Book.id == book_id,
            Book.deleted_at.is_(None),
            Team.deleted_at.is_(None),
        )
    )


class LifecycleManager:
    def __init__(self, session: Session, actor: Actor) -> None:
        self.session = session
        self.actor = actor
        self.resolver = RoleResolver(session)
        self.gate = PermissionGate(session, self.resolver)

    # -- visibility -------------------------------------------------------

    def live_team(self, team_id: int) -> Team:
        team = self.session.get(Team, team_id)
        if not team or not is_live(team):
            raise NotFound("Team not found")
        return team

    def live_book(self, book_id: int) -> Book:
        book = self.session.scalar(live_book_stmt(book_id))
        if not book:
            raise NotFound("Book not found")
        return book

    def find_team(self, team_id: int) -> Team:
        """Direct-by-id lookup: superadmins also see soft-deleted teams."""
        if self.actor.superadmin:
            team = self.session.get(Team, team_id)
            if not team:
                raise NotFound("Team not found")
            return team
        team = self.live_team(team_id)
        self.gate.require_read(team.id, self.actor)
        return team

    def find_book(self, book_id: int) -> Book:
        """Direct-by-id lookup: superadmins also see soft-deleted books."""
        if self.actor.superadmin:
            book = self.session.get(Book, book_id)
            if not book:
                raise NotFound("Book not found")
            return book
        book = self.live_book(book_id)
        self.gate.require_read(book.team_id, self.actor)
        return book

    def _require_lifecycle_admin(self, team_id: int, event: str) -> None:
        decision = self.gate.can_admin(team_id, self.actor.user_id)
        if not decision:
            logger.warning(
                f"{event}_denied: team_id={team_id} actor={self.actor.user_id}"
            )
            raise AuthzDenied(decision.reason)

    def ensure_members_manageable(self, team: Team) -> None:
        if isinstance(team.state, SoftDeleted) and not self.actor.superadmin:
            raise AuthzDenied(DELETED_TEAM_MEMBERS)

    # -- teams ------------------------------------------------------------

    def soft_delete_team(self, team_id: int) -> None:
        team = self.live_team(team_id)
        if not self.actor.superadmin:
            self._require_lifecycle_admin(team.id, "team_soft_delete")

        result = self.session.execute(
            update(Team)
            .where(Team.id == team.id, Team.deleted_at.is_(None))
            .values(deleted_at=datetime.utcnow())
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise NotFound("Team not found")
        self.session.commit()
        self.session.refresh(team)
        logger.info(f"team_soft_deleted: team_id={team.id} actor={self.actor.user_id}")

    def restore_team(self, team_id: int) -> Team:
        team = self.session.get(Team, team_id)
        if not team:
            raise NotFound("Team not found")
        if not self.actor.superadmin:
            # The effective role of a deleted team is always none, so the
            # stored membership decides who administered it.
            role = self.resolver.stored_role(team.id, self.actor.user_id)
            if role is None:
                raise NotFound("Team not found")
            if role != Role.admin:
                logger.warning(
                    f"team_restore_denied: team_id={team.id} actor={self.actor.user_id}"
                )
                raise AuthzDenied(ADMIN_REQUIRED)
        if is_live(team):
            raise InvalidState("Team is not deleted")

        result = self.session.execute(
            update(Team)
            .where(Team.id == team.id, Team.deleted_at.is_not(None))
            .values(deleted_at=None)
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise InvalidState("Team is not deleted")
        self.session.commit()
        self.session.refresh(team)
        logger.info(f"team_restored: team_id={team.id} actor={self.actor.user_id}")
        return team

    def permanently_delete_team(self, team_id: int) -> None:
        require_superadmin(self.actor)
        team = self.session.get(Team, team_id)
        if not team:
            raise NotFound("Team not found")
        if is_live(team):
            raise InvalidState("Team must be soft-deleted before permanent deletion")

        book_ids = select(Book.id).where(Book.team_id == team.id)
        try:
            self._delete_book_contents(book_ids)
            self.session.execute(delete(Book).where(Book.team_id == team.id))
            self.session.execute(delete(TeamMember).where(TeamMember.team_id == team.id))
            result = self.session.execute(
                delete(Team).where(Team.id == team.id, Team.deleted_at.is_not(None))
            )
            if result.rowcount == 0:
                raise InvalidState(
                    "Team must be soft-deleted before permanent deletion"
                )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.expunge_all()
        logger.info(
            f"team_permanently_deleted: team_id={team_id} actor={self.actor.user_id}"
        )

    # -- books ------------------------------------------------------------

    def soft_delete_book(self, book_id: int) -> None:
        book = self.live_book(book_id)
        if not self.actor.superadmin:
            self._require_lifecycle_admin(book.team_id, "book_soft_delete")

        result = self.session.execute(
            update(Book)
            .where(Book.id == book.id, Book.deleted_at.is_(None))
            .values(deleted_at=datetime.utcnow())
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise NotFound("Book not found or already deleted")
        self.session.commit()
        self.session.refresh(book)
        logger.info(f"book_soft_deleted: book_id={book.id} actor={self.actor.user_id}")

    def restore_book(self, book_id: int) -> Book:
        book = self.session.get(Book, book_id)
        if not book:
            raise NotFound("Book not found")
        if not self.actor.superadmin:
            team = self.session.get(Team, book.team_id)
            if not team or not is_live(team):
                raise NotFound("Book not found")
            self._require_lifecycle_admin(book.team_id, "book_restore")
        if is_live(book):
            raise InvalidState("Book is not deleted")

        result = self.session.execute(
            update(Book)
            .where(Book.id == book.id, Book.deleted_at.is_not(None))
            .values(deleted_at=None)
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise InvalidState("Book is not deleted")
        self.session.commit()
        self.session.refresh(book)
        logger.info(f"book_restored: book_id={book.id} actor={self.actor.user_id}")
        return book

    def permanently_delete_book(self, book_id: int) -> None:
        require_superadmin(self.actor)
        book = self.session.get(Book, book_id)
        if not book:
            raise NotFound("Book not found")
        if is_live(book):
            raise InvalidState("Book must be soft-deleted before permanent deletion")

        try:
            self._delete_book_contents(select(Book.id).where(Book.id == book.id))
            result = self.session.execute(
                delete(Book).where(Book.id == book.id, Book.deleted_at.is_not(None))
            )
            if result.rowcount == 0:
                raise InvalidState(
                    "Book must be soft-deleted before permanent deletion"
                )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.expunge_all()
        logger.info(
            f"book_permanently_deleted: book_id={book_id} actor={self.actor.user_id}"
        )

    def _delete_book_contents(self, book_ids) -> None:
        """Children before parents; the caller owns the transaction."""
        account_ids = select(Account.id).where(Account.book_id.in_(book_ids))
        self.session.execute(
            delete(Transaction).where(Transaction.account_id.in_(account_ids))
        )
        self.session.execute(
            delete(Category).where(
                Category.book_id.in_(book_ids),
                Category.parent_category_id.is_not(None),
            )
        )
        self.session.execute(delete(Category).where(Category.book_id.in_(book_ids)))
        self.session.execute(delete(Account).where(Account.book_id.in_(book_ids)))


def state_label(entity) -> str:
    state = entity.state
    if isinstance(state, SoftDeleted):
        return "soft_deleted"
    return "active"
