"""teams, books and book contents

Revision ID: 202610010900
Revises:
Create Date: 2026-10-01 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610010900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("superadmin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("username"),
    )

    op.create_table(
        "teams",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime()),
    )
    op.create_index("ix_teams_deleted_name", "teams", ["deleted_at", "name"])

    op.create_table(
        "team_members",
        sa.Column(
            "team_id", sa.Integer(), sa.ForeignKey("teams.id"), primary_key=True
        ),
        sa.Column(
            "user_id", sa.Integer(), sa.ForeignKey("users.id"), primary_key=True
        ),
        sa.Column(
            "role",
            sa.Enum("viewer", "collaborator", "admin", name="role"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_team_members_user", "team_members", ["user_id"])

    op.create_table(
        "books",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column(
            "currency_symbol", sa.String(length=8), nullable=False, server_default="$"
        ),
        sa.Column(
            "week_start", sa.String(length=16), nullable=False, server_default="monday"
        ),
        sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime()),
    )
    op.create_index("ix_books_team_deleted", "books", ["team_id", "deleted_at"])

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column(
            "type",
            sa.Enum("debit", "credit", name="accounttype"),
            nullable=False,
            server_default="debit",
        ),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column(
            "type",
            sa.Enum("expense", "income", name="categorytype"),
            nullable=False,
            server_default="expense",
        ),
        sa.Column(
            "parent_category_id", sa.Integer(), sa.ForeignKey("categories.id")
        ),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_categories_book", "categories", ["book_id"])
    op.create_index("ix_categories_parent", "categories", ["parent_category_id"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column("amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("exercised", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_transactions_account_date", "transactions", ["account_id", "date"]
    )
    op.create_index("ix_transactions_category", "transactions", ["category_id"])


def downgrade():
    op.drop_index("ix_transactions_category", table_name="transactions")
    op.drop_index("ix_transactions_account_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_categories_parent", table_name="categories")
    op.drop_index("ix_categories_book", table_name="categories")
    op.drop_table("categories")
    op.drop_table("accounts")
    op.drop_index("ix_books_team_deleted", table_name="books")
    op.drop_table("books")
    op.drop_index("ix_team_members_user", table_name="team_members")
    op.drop_table("team_members")
    op.drop_index("ix_teams_deleted_name", table_name="teams")
    op.drop_table("teams")
    op.drop_table("users")
