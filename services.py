from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Optional, Sequence, TypeVar

from rapidfuzz.distance import Levenshtein
from sqlalchemy import case, delete, func, select
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from balances import Balance, BalanceCalculator
from errors import (
    AuthzDenied,
    Conflict,
    InvalidInput,
    NotAuthenticated,
    NotFound,
    PreconditionRequired,
)
from hierarchy import CategoryHierarchyEngine
from lifecycle import LifecycleManager, state_label
from models import (
    Account,
    Book,
    Category,
    Role,
    Team,
    TeamMember,
    Transaction,
    User,
)
from periods import month_period, parse_iso_date
from permissions import Actor, require_superadmin
from schemas import (
    AccountIn,
    AccountUpdate,
    BookIn,
    BookUpdate,
    CategoryIn,
    CategoryUpdate,
    MemberIn,
    TeamIn,
    TransactionIn,
    UserIn,
    UserUpdate,
)
from tokens import issue_access_token, read_access_token

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_SEARCH_LIMIT = 20
MAX_SEARCH_LIMIT = 100


def clamp_limit(limit: Optional[int]) -> int:
    if not limit or limit < 1:
        return DEFAULT_SEARCH_LIMIT
    return min(limit, MAX_SEARCH_LIMIT)


def rank_by_name(items: Sequence[T], term: str, name: Callable[[T], str]) -> list[T]:
    """Exact (case-insensitive) match first, then closest by edit distance."""
    needle = term.strip().lower()

    def key(item: T) -> tuple[bool, int, str]:
        value = name(item).lower()
        return (value != needle, Levenshtein.distance(value, needle), value)

    return sorted(items, key=key)


def _clean_name(value: Optional[str], label: str) -> str:
    clean = (value or "").strip()
    if not clean:
        raise InvalidInput(f"{label} is required")
    return clean


class UserService:
    def __init__(self, session: Session, actor: Optional[Actor] = None) -> None:
        self.session = session
        self.actor = actor

    def _get(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user

    def login(self, username: str, password: str) -> tuple[User, str]:
        user = self.session.scalar(select(User).where(User.username == username))
        if not user or not check_password_hash(user.password_hash, password):
            logger.warning(f"login_failed: username={username!r}")
            raise NotAuthenticated("Invalid credentials")
        if not user.active:
            raise NotAuthenticated("Account is disabled")
        return user, issue_access_token(user.id, user.username)

    def authenticate(self, token: Optional[str]) -> Actor:
        if not token:
            raise NotAuthenticated("Authentication token required")
        payload = read_access_token(token)
        if payload is None:
            raise AuthzDenied("Invalid token")
        user = self.session.get(User, payload["u"])
        if not user or user.username != payload.get("n"):
            raise AuthzDenied("Invalid token")
        if not user.active:
            raise NotAuthenticated("Account is disabled")
        return Actor(user_id=user.id, superadmin=user.superadmin)

    def bootstrap_superadmin(self, username: str, password: str) -> Optional[User]:
        """Create the first superadmin when the user table is empty."""
        if not password:
            return None
        if self.session.execute(select(func.count(User.id))).scalar_one():
            return None
        user = User(
            username=username.strip(),
            password_hash=generate_password_hash(password),
            superadmin=True,
            active=True,
        )
        self.session.add(user)
        self.session.commit()
        logger.info(f"superadmin_bootstrapped: username={user.username!r}")
        return user

    def list_all(self) -> list[User]:
        require_superadmin(self.actor)
        return self.session.scalars(select(User).order_by(User.username)).all()

    def search(self, term: str = "", limit: Optional[int] = None) -> list[User]:
        require_superadmin(self.actor)
        limit = clamp_limit(limit)
        if not term.strip():
            stmt = select(User).order_by(User.username).limit(limit)
            return self.session.scalars(stmt).all()
        stmt = select(User).where(User.username.ilike(f"%{term.strip()}%"))
        users = self.session.scalars(stmt).all()
        return rank_by_name(users, term, lambda u: u.username)[:limit]

    def get(self, user_id: int) -> User:
        if self.actor.user_id != user_id and not self.actor.superadmin:
            raise AuthzDenied(
                "Access denied: You can only view your own user information"
            )
        return self._get(user_id)

    def create(self, data: UserIn) -> User:
        require_superadmin(self.actor)
        username = _clean_name(data.username, "Username")
        if self.session.scalar(select(User.id).where(User.username == username)):
            raise Conflict("Username already exists")
        user = User(
            username=username,
            password_hash=generate_password_hash(data.password),
            superadmin=data.superadmin,
            active=data.active,
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"user_created: user_id={user.id} actor={self.actor.user_id}")
        return user

    def update(self, user_id: int, data: UserUpdate) -> User:
        user = self._get(user_id)
        is_self = self.actor.user_id == user.id

        if (
            data.superadmin is not None or data.active is not None
        ) and not self.actor.superadmin:
            raise AuthzDenied("Only superadmins can change admin privileges")
        if not is_self and not self.actor.superadmin:
            raise AuthzDenied("You can only update your own user information")

        if (
            data.username is None
            and not data.password
            and data.superadmin is None
            and data.active is None
        ):
            raise InvalidInput("No fields to update")

        username = None
        if data.username is not None:
            username = _clean_name(data.username, "Username")
            duplicate = self.session.scalar(
                select(User.id).where(User.username == username, User.id != user.id)
            )
            if duplicate:
                raise Conflict("Username already exists")

        if data.password and is_self and not self.actor.superadmin:
            if not data.current_password:
                raise InvalidInput("Current password is required")
            if not check_password_hash(user.password_hash, data.current_password):
                raise NotAuthenticated("Current password is incorrect")

        if is_self and data.active is False:
            raise InvalidInput("You cannot disable your own account")

        if username is not None:
            user.username = username
        if data.password:
            user.password_hash = generate_password_hash(data.password)
        if data.superadmin is not None:
            user.superadmin = data.superadmin
        if data.active is not None:
            user.active = data.active
        self.session.commit()
        self.session.refresh(user)
        return user

    def delete(self, user_id: int) -> None:
        require_superadmin(self.actor)
        user = self._get(user_id)
        if user.id == self.actor.user_id:
            raise InvalidInput("You cannot delete your own account")
        self.session.execute(delete(TeamMember).where(TeamMember.user_id == user.id))
        self.session.execute(delete(User).where(User.id == user.id))
        self.session.commit()
        logger.info(f"user_deleted: user_id={user_id} actor={self.actor.user_id}")

    def enable(self, user_id: int) -> User:
        require_superadmin(self.actor)
        user = self._get(user_id)
        if user.active:
            raise InvalidInput("User is already enabled")
        user.active = True
        self.session.commit()
        logger.info(f"user_enabled: user_id={user.id} actor={self.actor.user_id}")
        return user

    def disable(self, user_id: int) -> User:
        require_superadmin(self.actor)
        user = self._get(user_id)
        if user.id == self.actor.user_id:
            raise InvalidInput("You cannot disable your own account")
        if not user.active:
            raise InvalidInput("User is already disabled")
        user.active = False
        self.session.commit()
        logger.info(f"user_disabled: user_id={user.id} actor={self.actor.user_id}")
        return user


def team_row(team: Team, **extra: object) -> dict[str, object]:
    row: dict[str, object] = {
        "id": team.id,
        "name": team.name,
        "created_at": team.created_at,
        "deleted_at": team.deleted_at,
        "state": state_label(team),
    }
    row.update(extra)
    return row


def book_row(book: Book, **extra: object) -> dict[str, object]:
    row: dict[str, object] = {
        "id": book.id,
        "name": book.name,
        "note": book.note,
        "currency_symbol": book.currency_symbol,
        "week_start": book.week_start,
        "team_id": book.team_id,
        "created_at": book.created_at,
        "deleted_at": book.deleted_at,
        "state": state_label(book),
    }
    row.update(extra)
    return row


class TeamService:
    def __init__(self, session: Session, actor: Actor) -> None:
        self.session = session
        self.actor = actor
        self.lifecycle = LifecycleManager(session, actor)
        self.gate = self.lifecycle.gate

    def _any_team(self, team_id: int) -> Team:
        team = self.session.get(Team, team_id)
        if not team:
            raise NotFound("Team not found")
        return team

    def _book_counts(self, team_id: int) -> tuple[int, int]:
        row = self.session.execute(
            select(
                func.coalesce(
                    func.sum(case((Book.deleted_at.is_(None), 1), else_=0)), 0
                ).label("live"),
                func.coalesce(
                    func.sum(case((Book.deleted_at.is_not(None), 1), else_=0)), 0
                ).label("deleted"),
            ).where(Book.team_id == team_id)
        ).one()
        return int(row.live), int(row.deleted)

    def _admin_count(self, team_id: int) -> int:
        stmt = select(func.count(TeamMember.user_id)).where(
            TeamMember.team_id == team_id, TeamMember.role == Role.admin
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def list_mine(self) -> list[dict[str, object]]:
        stmt = (
            select(Team, TeamMember.role)
            .join(TeamMember, TeamMember.team_id == Team.id)
            .where(TeamMember.user_id == self.actor.user_id, Team.deleted_at.is_(None))
            .order_by(Team.name)
        )
        return [team_row(team, role=role) for team, role in self.session.execute(stmt)]

    def list_all(self, deleted: bool = False) -> list[dict[str, object]]:
        require_superadmin(self.actor)
        stmt = select(Team).order_by(Team.name)
        if deleted:
            stmt = stmt.where(Team.deleted_at.is_not(None))
        else:
            stmt = stmt.where(Team.deleted_at.is_(None))
        teams = self.session.scalars(stmt).all()

        member_counts = {
            row.team_id: row
            for row in self.session.execute(
                select(
                    TeamMember.team_id,
                    func.count(TeamMember.user_id).label("user_count"),
                    func.sum(case((TeamMember.role == Role.admin, 1), else_=0)).label(
                        "admin_count"
                    ),
                    func.sum(
                        case((TeamMember.role == Role.collaborator, 1), else_=0)
                    ).label("collaborator_count"),
                    func.sum(case((TeamMember.role == Role.viewer, 1), else_=0)).label(
                        "viewer_count"
                    ),
                ).group_by(TeamMember.team_id)
            )
        }
        book_counts = dict(
            self.session.execute(
                select(Book.team_id, func.count(Book.id))
                .where(Book.deleted_at.is_(None))
                .group_by(Book.team_id)
            ).all()
        )

        rows = []
        for team in teams:
            counts = member_counts.get(team.id)
            rows.append(
                team_row(
                    team,
                    user_count=int(counts.user_count) if counts else 0,
                    admin_count=int(counts.admin_count) if counts else 0,
                    collaborator_count=int(counts.collaborator_count) if counts else 0,
                    viewer_count=int(counts.viewer_count) if counts else 0,
                    book_count=int(book_counts.get(team.id, 0)),
                )
            )
        return rows

    def search(
        self, term: str = "", limit: Optional[int] = None, include_deleted: bool = False
    ) -> list[Team]:
        require_superadmin(self.actor)
        limit = clamp_limit(limit)
        stmt = select(Team)
        if not include_deleted:
            stmt = stmt.where(Team.deleted_at.is_(None))
        if not term.strip():
            return self.session.scalars(stmt.order_by(Team.name).limit(limit)).all()
        stmt = stmt.where(Team.name.ilike(f"%{term.strip()}%"))
        teams = self.session.scalars(stmt).all()
        return rank_by_name(teams, term, lambda t: t.name)[:limit]

    def get(self, team_id: int) -> dict[str, object]:
        team = self.lifecycle.find_team(team_id)
        live, deleted = self._book_counts(team.id)
        return team_row(team, book_count=live, deleted_book_count=deleted)

    def create(self, data: TeamIn) -> Team:
        name = _clean_name(data.name, "Team name")
        team = Team(name=name)
        self.session.add(team)
        self.session.flush()
        self.session.add(
            TeamMember(team_id=team.id, user_id=self.actor.user_id, role=Role.admin)
        )
        self.session.commit()
        self.session.refresh(team)
        logger.info(f"team_created: team_id={team.id} actor={self.actor.user_id}")
        return team

    def rename(self, team_id: int, data: TeamIn) -> Team:
        team = self.lifecycle.live_team(team_id)
        self.gate.require_admin(team.id, self.actor)
        team.name = _clean_name(data.name, "Team name")
        self.session.commit()
        self.session.refresh(team)
        return team

    def members(self, team_id: int) -> list[dict[str, object]]:
        if self.actor.superadmin:
            team = self._any_team(team_id)
        else:
            team = self.lifecycle.live_team(team_id)
            self.gate.require_read(team.id, self.actor)
        stmt = (
            select(User, TeamMember.role)
            .join(TeamMember, TeamMember.user_id == User.id)
            .where(TeamMember.team_id == team.id)
            .order_by(User.username)
        )
        return [
            {
                "id": user.id,
                "username": user.username,
                "role": role,
                "active": user.active,
                "created_at": user.created_at,
            }
            for user, role in self.session.execute(stmt)
        ]

    def _manageable_team(self, team_id: int) -> Team:
        team = self._any_team(team_id)
        self.lifecycle.ensure_members_manageable(team)
        if not self.actor.superadmin:
            self.gate.require_admin(team.id, self.actor)
        return team

    def _membership(self, team_id: int, user_id: int) -> TeamMember:
        membership = self.session.get(TeamMember, (team_id, user_id))
        if not membership:
            raise NotFound("User not found in team")
        return membership

    def add_member(self, team_id: int, data: MemberIn) -> list[dict[str, object]]:
        team = self._manageable_team(team_id)
        if not self.session.get(User, data.user_id):
            raise NotFound("User not found")
        if self.session.get(TeamMember, (team.id, data.user_id)):
            raise Conflict("User already has access to this team")
        self.session.add(TeamMember(team_id=team.id, user_id=data.user_id, role=data.role))
        self.session.commit()
        logger.info(
            f"member_added: team_id={team.id} user_id={data.user_id} "
            f"role={data.role.value} actor={self.actor.user_id}"
        )
        return self.members(team.id)

    def change_role(
        self, team_id: int, user_id: int, role: Role
    ) -> list[dict[str, object]]:
        team = self._manageable_team(team_id)
        membership = self._membership(team.id, user_id)
        if (
            membership.role == Role.admin
            and role != Role.admin
            and not self.actor.superadmin
            and self._admin_count(team.id) == 1
        ):
            raise Conflict("Cannot remove the last admin from the team")
        membership.role = role
        self.session.commit()
        logger.info(
            f"member_role_changed: team_id={team.id} user_id={user_id} "
            f"role={role.value} actor={self.actor.user_id}"
        )
        return self.members(team.id)

    def remove_member(self, team_id: int, user_id: int) -> None:
        team = self._manageable_team(team_id)
        membership = self._membership(team.id, user_id)
        if (
            membership.role == Role.admin
            and not self.actor.superadmin
            and self._admin_count(team.id) == 1
        ):
            raise Conflict("Cannot remove the last admin from the team")
        self.session.delete(membership)
        self.session.commit()
        logger.info(
            f"member_removed: team_id={team.id} user_id={user_id} "
            f"actor={self.actor.user_id}"
        )

    def books(self, team_id: int) -> list[Book]:
        team = self.lifecycle.live_team(team_id)
        self.gate.require_read(team.id, self.actor)
        stmt = (
            select(Book)
            .where(Book.team_id == team.id, Book.deleted_at.is_(None))
            .order_by(Book.name)
        )
        return self.session.scalars(stmt).all()

    def soft_delete(self, team_id: int) -> None:
        self.lifecycle.soft_delete_team(team_id)

    def restore(self, team_id: int) -> Team:
        return self.lifecycle.restore_team(team_id)

    def permanently_delete(self, team_id: int) -> None:
        self.lifecycle.permanently_delete_team(team_id)


class BookScopedService:
    """Base for services over book contents: every lookup joins through the
    book and its team, and both must be live."""

    def __init__(self, session: Session, actor: Actor) -> None:
        self.session = session
        self.actor = actor
        self.lifecycle = LifecycleManager(session, actor)
        self.gate = self.lifecycle.gate

    def _readable_book(self, book_id: int) -> Book:
        book = self.lifecycle.live_book(book_id)
        self.gate.require_read(book.team_id, self.actor)
        return book

    def _writable_book(self, book_id: int) -> Book:
        book = self.lifecycle.live_book(book_id)
        self.gate.require_write(book.team_id, self.actor)
        return book

    def _live(self, model, entity_id: int, label: str):
        stmt = (
            select(model)
            .join(Book, Book.id == model.book_id)
            .join(Team, Team.id == Book.team_id)
            .where(
                model.id == entity_id,
                Book.deleted_at.is_(None),
                Team.deleted_at.is_(None),
            )
        )
        entity = self.session.scalar(stmt)
        if not entity:
            raise NotFound(f"{label} not found")
        return entity

    def _account(self, account_id: int) -> Account:
        return self._live(Account, account_id, "Account")

    def _category(self, category_id: int) -> Category:
        return self._live(Category, category_id, "Category")


class BookService(BookScopedService):
    def list_mine(self) -> list[dict[str, object]]:
        stmt = (
            select(Book, TeamMember.role)
            .join(Team, Team.id == Book.team_id)
            .join(TeamMember, TeamMember.team_id == Team.id)
            .where(
                TeamMember.user_id == self.actor.user_id,
                Book.deleted_at.is_(None),
                Team.deleted_at.is_(None),
            )
            .order_by(Book.name)
        )
        return [book_row(book, role=role) for book, role in self.session.execute(stmt)]

    def list_all(self, deleted: bool = False) -> list[dict[str, object]]:
        require_superadmin(self.actor)
        stmt = (
            select(Book, Team.name)
            .join(Team, Team.id == Book.team_id)
            .order_by(Book.name)
        )
        if deleted:
            stmt = stmt.where(Book.deleted_at.is_not(None))
        else:
            stmt = stmt.where(Book.deleted_at.is_(None))
        return [
            book_row(book, team_name=team_name)
            for book, team_name in self.session.execute(stmt)
        ]

    def search(
        self, term: str = "", limit: Optional[int] = None, include_deleted: bool = False
    ) -> list[Book]:
        require_superadmin(self.actor)
        limit = clamp_limit(limit)
        stmt = select(Book)
        if not include_deleted:
            stmt = stmt.where(Book.deleted_at.is_(None))
        if not term.strip():
            return self.session.scalars(stmt.order_by(Book.name).limit(limit)).all()
        stmt = stmt.where(Book.name.ilike(f"%{term.strip()}%"))
        books = self.session.scalars(stmt).all()
        return rank_by_name(books, term, lambda b: b.name)[:limit]

    def get(self, book_id: int) -> Book:
        return self.lifecycle.find_book(book_id)

    def create(self, data: BookIn) -> Book:
        name = _clean_name(data.name, "Name")
        team = self.lifecycle.live_team(data.team_id)
        self.gate.require_write(team.id, self.actor)
        book = Book(
            name=name,
            note=data.note,
            currency_symbol=data.currency_symbol,
            week_start=data.week_start,
            team_id=team.id,
        )
        self.session.add(book)
        self.session.commit()
        self.session.refresh(book)
        logger.info(f"book_created: book_id={book.id} team_id={team.id}")
        return book

    def update(self, book_id: int, data: BookUpdate) -> Book:
        book = self._writable_book(book_id)
        book.name = _clean_name(data.name, "Name")
        book.note = data.note
        if data.currency_symbol is not None:
            book.currency_symbol = data.currency_symbol
        if data.week_start is not None:
            book.week_start = data.week_start
        self.session.commit()
        self.session.refresh(book)
        return book

    def accounts(self, book_id: int) -> list[Account]:
        book = self._readable_book(book_id)
        stmt = select(Account).where(Account.book_id == book.id).order_by(Account.name)
        return self.session.scalars(stmt).all()

    def categories(self, book_id: int) -> list[Category]:
        book = self._readable_book(book_id)
        stmt = (
            select(Category).where(Category.book_id == book.id).order_by(Category.name)
        )
        return self.session.scalars(stmt).all()

    def transactions(
        self,
        book_id: int,
        account_id: Optional[int] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> list[Transaction]:
        book = self._readable_book(book_id)
        stmt = (
            select(Transaction)
            .join(Account, Account.id == Transaction.account_id)
            .where(Account.book_id == book.id)
        )
        if account_id is not None:
            in_book = self.session.scalar(
                select(Account.id).where(
                    Account.id == account_id, Account.book_id == book.id
                )
            )
            if not in_book:
                raise NotFound("Account not found in this book")
            stmt = stmt.where(Transaction.account_id == account_id)
        if start and end:
            try:
                start_date = parse_iso_date(start)
                end_date = parse_iso_date(end)
            except ValueError as exc:
                raise InvalidInput("Invalid date format") from exc
            stmt = stmt.where(Transaction.date.between(start_date, end_date))
        stmt = stmt.order_by(Transaction.date.asc(), Transaction.id.asc())
        return self.session.scalars(stmt).all()

    def soft_delete(self, book_id: int) -> None:
        self.lifecycle.soft_delete_book(book_id)

    def restore(self, book_id: int) -> Book:
        return self.lifecycle.restore_book(book_id)

    def permanently_delete(self, book_id: int) -> None:
        self.lifecycle.permanently_delete_book(book_id)


class AccountService(BookScopedService):
    def get(self, account_id: int) -> Account:
        account = self._account(account_id)
        self.gate.require_read(account.book.team_id, self.actor)
        return account

    def create(self, data: AccountIn) -> Account:
        name = _clean_name(data.name, "Name")
        book = self._writable_book(data.book_id)
        account = Account(name=name, note=data.note, type=data.type, book_id=book.id)
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def update(self, account_id: int, data: AccountUpdate) -> Account:
        account = self._account(account_id)
        self.gate.require_write(account.book.team_id, self.actor)
        if data.name is not None:
            account.name = _clean_name(data.name, "Name")
        if "note" in data.model_fields_set:
            account.note = data.note
        if data.type is not None:
            account.type = data.type
        self.session.commit()
        self.session.refresh(account)
        return account

    def delete(self, account_id: int) -> None:
        account = self._account(account_id)
        self.gate.require_write(account.book.team_id, self.actor)
        in_use = self.session.execute(
            select(func.count(Transaction.id)).where(
                Transaction.account_id == account.id
            )
        ).scalar_one()
        if in_use:
            raise PreconditionRequired("Cannot delete account with transactions")
        self.session.delete(account)
        self.session.commit()

    def balance(self, account_id: int, up_to: Optional[str] = None) -> Balance:
        account = self.get(account_id)
        return BalanceCalculator(self.session).balance(account.id, up_to)


class CategoryService(BookScopedService):
    def __init__(self, session: Session, actor: Actor) -> None:
        super().__init__(session, actor)
        self.hierarchy = CategoryHierarchyEngine(session)

    def get(self, category_id: int) -> Category:
        category = self._category(category_id)
        self.gate.require_read(category.book.team_id, self.actor)
        return category

    def create(self, data: CategoryIn) -> Category:
        name = _clean_name(data.name, "Name")
        book = self._writable_book(data.book_id)
        placement = self.hierarchy.place_new(data)
        category = Category(
            name=name,
            note=data.note,
            type=placement.type,
            parent_category_id=placement.parent_category_id,
            book_id=book.id,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryUpdate) -> Category:
        category = self._category(category_id)
        self.gate.require_write(category.book.team_id, self.actor)
        placement = self.hierarchy.place_existing(category, data)

        if data.name is not None:
            category.name = _clean_name(data.name, "Name")
        if data.note_given:
            category.note = data.note
        category.parent_category_id = placement.parent_category_id
        category.type = placement.type
        self.session.flush()
        cascaded = self.hierarchy.cascade_type(category)
        self.session.commit()
        self.session.refresh(category)
        if cascaded:
            logger.info(
                f"category_type_cascaded: category_id={category.id} "
                f"type={category.type.value} children={cascaded}"
            )
        return category

    def delete(self, category_id: int) -> None:
        category = self._category(category_id)
        self.gate.require_write(category.book.team_id, self.actor)
        self.hierarchy.check_deletable(category)
        self.hierarchy.detach_transactions(category)
        self.session.delete(category)
        self.session.commit()


def _transaction_date(value: Optional[str]) -> date:
    if value is None or not str(value).strip():
        raise InvalidInput("Date is required")
    try:
        return parse_iso_date(value)
    except ValueError as exc:
        raise InvalidInput("Invalid date") from exc


class TransactionService(BookScopedService):
    def _transaction(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .join(Account, Account.id == Transaction.account_id)
            .join(Book, Book.id == Account.book_id)
            .join(Team, Team.id == Book.team_id)
            .where(
                Transaction.id == transaction_id,
                Book.deleted_at.is_(None),
                Team.deleted_at.is_(None),
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise NotFound("Transaction not found")
        return txn

    def _check_category(self, category_id: Optional[int], account: Account) -> None:
        if category_id is None:
            return
        category = self.session.get(Category, category_id)
        if not category:
            raise NotFound("Category not found")
        if category.book_id != account.book_id:
            raise InvalidInput("Category must belong to the same book")

    def get(self, transaction_id: int) -> Transaction:
        txn = self._transaction(transaction_id)
        self.gate.require_read(txn.account.book.team_id, self.actor)
        return txn

    def create(self, data: TransactionIn) -> Transaction:
        txn_date = _transaction_date(data.date)
        description = _clean_name(data.description, "Description")
        account = self._account(data.account_id)
        self.gate.require_write(account.book.team_id, self.actor)
        self._check_category(data.category_id, account)
        txn = Transaction(
            description=description,
            note=data.note,
            amount_cents=data.amount_cents,
            date=txn_date,
            exercised=data.exercised,
            account_id=account.id,
            category_id=data.category_id,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn_date = _transaction_date(data.date)
        description = _clean_name(data.description, "Description")
        txn = self._transaction(transaction_id)
        self.gate.require_write(txn.account.book.team_id, self.actor)
        account = txn.account
        if data.account_id != txn.account_id:
            account = self._account(data.account_id)
            self.gate.require_write(account.book.team_id, self.actor)
        self._check_category(data.category_id, account)

        txn.description = description
        txn.note = data.note
        txn.amount_cents = data.amount_cents
        txn.date = txn_date
        txn.exercised = data.exercised
        txn.account = account
        txn.category_id = data.category_id
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self._transaction(transaction_id)
        self.gate.require_write(txn.account.book.team_id, self.actor)
        self.session.delete(txn)
        self.session.commit()


class ReportService(BookScopedService):
    def monthly(self, account_id: int, day: Optional[str]) -> dict[str, object]:
        if not day:
            raise InvalidInput("Date is required")
        try:
            anchor = parse_iso_date(day)
        except ValueError as exc:
            raise InvalidInput("Invalid date format") from exc
        account = self._account(account_id)
        self.gate.require_read(account.book.team_id, self.actor)

        period = month_period(anchor)
        transactions = self.session.scalars(
            select(Transaction)
            .where(
                Transaction.account_id == account.id,
                Transaction.date.between(period.start, period.end),
            )
            .order_by(Transaction.date.asc(), Transaction.id.asc())
        ).all()
        return {
            "id": account.id,
            "name": account.name,
            "type": account.type,
            "note": account.note,
            "start": period.start,
            "end": period.end,
            "total_cents": sum(t.amount_cents for t in transactions),
            "transactions": transactions,
        }
