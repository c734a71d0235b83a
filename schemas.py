import datetime as dt
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import AccountType, CategoryType, Role


class LoginIn(BaseModel):
    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)


class UserIn(BaseModel):
    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)
    superadmin: bool = False
    active: bool = True


class UserUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    username: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = None
    current_password: Optional[str] = None
    superadmin: Optional[bool] = None
    active: Optional[bool] = None


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    superadmin: bool
    active: bool
    created_at: datetime


class TeamIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class TeamOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    created_at: datetime
    deleted_at: Optional[datetime]


class MemberIn(BaseModel):
    user_id: int
    role: Role


class RoleUpdate(BaseModel):
    role: Role


class MemberOut(BaseModel):
    id: int
    username: str
    role: Role
    active: bool
    created_at: datetime


class BookIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    team_id: int
    note: Optional[str] = None
    currency_symbol: str = Field(default="$", max_length=8)
    week_start: str = Field(default="monday", max_length=16)


class BookUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    note: Optional[str] = None
    currency_symbol: Optional[str] = Field(default=None, max_length=8)
    week_start: Optional[str] = Field(default=None, max_length=16)


class BookOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    note: Optional[str]
    currency_symbol: str
    week_start: str
    team_id: int
    created_at: datetime
    deleted_at: Optional[datetime]


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    book_id: int
    note: Optional[str] = None
    type: AccountType = AccountType.debit


class AccountUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    note: Optional[str] = None
    type: Optional[AccountType] = None


class AccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    note: Optional[str]
    type: AccountType
    book_id: int
    created_at: datetime


class BalanceOut(BaseModel):
    exercised_balance_cents: int
    projected_balance_cents: int


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    book_id: int
    note: Optional[str] = None
    type: CategoryType = CategoryType.expense
    parent_category_id: Optional[int] = None


class CategoryUpdate(BaseModel):
    """Partial update.

    ``parent_category_id`` distinguishes "omitted" (keep the current parent)
    from an explicit ``null`` (move to the root); use ``model_fields_set``.
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    note: Optional[str] = None
    type: Optional[CategoryType] = None
    parent_category_id: Optional[int] = None

    @property
    def parent_given(self) -> bool:
        return "parent_category_id" in self.model_fields_set

    @property
    def note_given(self) -> bool:
        return "note" in self.model_fields_set


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    note: Optional[str]
    type: CategoryType
    parent_category_id: Optional[int]
    book_id: int
    created_at: datetime


class TransactionIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=255)
    amount_cents: int
    date: Optional[str] = None
    account_id: int
    note: Optional[str] = None
    exercised: bool = False
    category_id: Optional[int] = None


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    description: str
    note: Optional[str]
    amount_cents: int
    date: dt.date
    exercised: bool
    account_id: int
    category_id: Optional[int]
    created_at: datetime
