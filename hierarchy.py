"""Category hierarchy rules.

Categories nest at most two levels: a root and its direct children. A child
always carries its parent's type; only roots choose their own type, and a
root's type change is pushed down to its children in the same unit of work.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from errors import InvalidInput, NotFound, PreconditionRequired
from models import Category, CategoryType, Transaction
from schemas import CategoryIn, CategoryUpdate

SELF_PARENT = "A category cannot be its own parent"
PARENT_NOT_FOUND = "Parent category not found"
PARENT_OTHER_BOOK = "Parent category must belong to the same book"
TOO_DEEP = (
    "Categories can only be nested two levels deep. "
    "The selected parent already has a parent."
)
HAS_CHILDREN = (
    "Cannot assign a parent to this category because it already has child categories"
)
DELETE_WITH_CHILDREN = "Cannot delete category with subcategories"


@dataclass(frozen=True)
class Placement:
    parent_category_id: Optional[int]
    type: CategoryType


class CategoryHierarchyEngine:
    def __init__(self, session: Session) -> None:
        self.session = session

    def child_count(self, category_id: int) -> int:
        stmt = select(func.count(Category.id)).where(
            Category.parent_category_id == category_id
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def _parent_for(self, book_id: int, parent_id: int) -> Category:
        parent = self.session.get(Category, parent_id)
        if not parent:
            raise NotFound(PARENT_NOT_FOUND)
        if parent.book_id != book_id:
            raise InvalidInput(PARENT_OTHER_BOOK)
        if parent.parent_category_id is not None:
            raise InvalidInput(TOO_DEEP)
        return parent

    def place_new(self, data: CategoryIn) -> Placement:
        if data.parent_category_id is None:
            return Placement(None, data.type)
        parent = self._parent_for(data.book_id, data.parent_category_id)
        return Placement(parent.id, parent.type)

    def place_existing(self, category: Category, data: CategoryUpdate) -> Placement:
        if data.parent_given:
            parent_id = data.parent_category_id
        else:
            parent_id = category.parent_category_id

        if parent_id is None:
            return Placement(None, data.type or category.type)

        if data.parent_given:
            if parent_id == category.id:
                raise InvalidInput(SELF_PARENT)
            parent = self._parent_for(category.book_id, parent_id)
            if self.child_count(category.id):
                raise InvalidInput(HAS_CHILDREN)
        else:
            parent = self.session.get(Category, parent_id)
            if not parent:
                raise NotFound(PARENT_NOT_FOUND)
        # Children never choose their own type.
        return Placement(parent.id, parent.type)

    def cascade_type(self, category: Category) -> int:
        """Push a root's type to its direct children; returns rows changed."""
        if category.parent_category_id is not None:
            return 0
        result = self.session.execute(
            update(Category)
            .where(
                Category.parent_category_id == category.id,
                Category.type != category.type,
            )
            .values(type=category.type)
        )
        return result.rowcount

    def check_deletable(self, category: Category) -> None:
        if self.child_count(category.id):
            raise PreconditionRequired(DELETE_WITH_CHILDREN)

    def detach_transactions(self, category: Category) -> int:
        result = self.session.execute(
            update(Transaction)
            .where(Transaction.category_id == category.id)
            .values(category_id=None)
        )
        return result.rowcount
