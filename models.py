from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class Role(str, Enum):
    viewer = "viewer"
    collaborator = "collaborator"
    admin = "admin"


class AccountType(str, Enum):
    debit = "debit"
    credit = "credit"


class CategoryType(str, Enum):
    expense = "expense"
    income = "income"


@dataclass(frozen=True)
class Active:
    pass


@dataclass(frozen=True)
class SoftDeleted:
    at: datetime


LifecycleState = Union[Active, SoftDeleted]


class CreatedAtMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )


class SoftDeleteMixin:
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    @property
    def state(self) -> LifecycleState:
        if self.deleted_at is None:
            return Active()
        return SoftDeleted(at=self.deleted_at)


class User(Base, CreatedAtMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    superadmin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    memberships: Mapped[list["TeamMember"]] = relationship(
        "TeamMember", back_populates="user"
    )


class Team(Base, CreatedAtMixin, SoftDeleteMixin):
    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    members: Mapped[list["TeamMember"]] = relationship(
        "TeamMember", back_populates="team"
    )
    books: Mapped[list["Book"]] = relationship("Book", back_populates="team")

    __table_args__ = (Index("ix_teams_deleted_name", "deleted_at", "name"),)


class TeamMember(Base, CreatedAtMixin):
    __tablename__ = "team_members"

    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), primary_key=True)
    role: Mapped[Role] = mapped_column(SAEnum(Role), nullable=False)

    team: Mapped["Team"] = relationship("Team", back_populates="members")
    user: Mapped["User"] = relationship("User", back_populates="memberships")

    __table_args__ = (Index("ix_team_members_user", "user_id"),)


class Book(Base, CreatedAtMixin, SoftDeleteMixin):
    __tablename__ = "books"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)
    currency_symbol: Mapped[str] = mapped_column(
        String(8), default="$", nullable=False
    )
    week_start: Mapped[str] = mapped_column(
        String(16), default="monday", nullable=False
    )
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id"), nullable=False)

    team: Mapped["Team"] = relationship("Team", back_populates="books")
    accounts: Mapped[list["Account"]] = relationship("Account", back_populates="book")
    categories: Mapped[list["Category"]] = relationship(
        "Category", back_populates="book"
    )

    __table_args__ = (Index("ix_books_team_deleted", "team_id", "deleted_at"),)


class Account(Base, CreatedAtMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)
    type: Mapped[AccountType] = mapped_column(
        SAEnum(AccountType), default=AccountType.debit, nullable=False
    )
    book_id: Mapped[int] = mapped_column(ForeignKey("books.id"), nullable=False)

    book: Mapped["Book"] = relationship("Book", back_populates="accounts")
    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="account"
    )


class Category(Base, CreatedAtMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)
    type: Mapped[CategoryType] = mapped_column(
        SAEnum(CategoryType), default=CategoryType.expense, nullable=False
    )
    parent_category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("categories.id")
    )
    book_id: Mapped[int] = mapped_column(ForeignKey("books.id"), nullable=False)

    book: Mapped["Book"] = relationship("Book", back_populates="categories")
    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="category"
    )

    __table_args__ = (
        Index("ix_categories_book", "book_id"),
        Index("ix_categories_parent", "parent_category_id"),
    )


class Transaction(Base, CreatedAtMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    exercised: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))

    account: Mapped["Account"] = relationship("Account", back_populates="transactions")
    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="transactions"
    )

    __table_args__ = (
        Index("ix_transactions_account_date", "account_id", "date"),
        Index("ix_transactions_category", "category_id"),
    )
