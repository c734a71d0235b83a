import pytest

from errors import AuthzDenied, InvalidInput, NotFound, PreconditionRequired
from hierarchy import HAS_CHILDREN, PARENT_OTHER_BOOK, SELF_PARENT
from models import CategoryType
from schemas import BookIn, CategoryIn, CategoryUpdate, TransactionIn
from services import BookService, CategoryService, TransactionService


@pytest.fixture
def tree(session, household):
    service = CategoryService(session, household["admin"])
    book_id = household["book"].id
    parent = service.create(
        CategoryIn(name="Salary", book_id=book_id, type=CategoryType.income)
    )
    child = service.create(
        CategoryIn(
            name="Bonus",
            book_id=book_id,
            type=CategoryType.expense,
            parent_category_id=parent.id,
        )
    )
    return service, parent, child


def test_child_takes_parent_type(tree) -> None:
    _, parent, child = tree

    assert parent.type == CategoryType.income
    assert child.type == CategoryType.income


def test_parent_type_change_cascades_to_children(tree) -> None:
    service, parent, child = tree

    service.update(parent.id, CategoryUpdate(type=CategoryType.expense))

    assert service.get(child.id).type == CategoryType.expense


def test_child_cannot_choose_its_own_type(tree) -> None:
    service, _, child = tree

    updated = service.update(child.id, CategoryUpdate(type=CategoryType.expense))

    assert updated.type == CategoryType.income


def test_nesting_is_capped_at_two_levels(tree, household) -> None:
    service, _, child = tree

    with pytest.raises(InvalidInput, match="two levels deep"):
        service.create(
            CategoryIn(
                name="Q4", book_id=household["book"].id, parent_category_id=child.id
            )
        )


def test_category_cannot_be_its_own_parent(tree) -> None:
    service, parent, _ = tree

    with pytest.raises(InvalidInput, match=SELF_PARENT):
        service.update(parent.id, CategoryUpdate(parent_category_id=parent.id))


def test_category_with_children_cannot_become_a_child(tree, household) -> None:
    service, parent, _ = tree
    other_root = service.create(CategoryIn(name="Misc", book_id=household["book"].id))

    with pytest.raises(InvalidInput, match=HAS_CHILDREN):
        service.update(parent.id, CategoryUpdate(parent_category_id=other_root.id))


def test_parent_must_exist_and_share_the_book(session, tree, household) -> None:
    service, parent, _ = tree
    other_book = BookService(session, household["admin"]).create(
        BookIn(name="Other", team_id=household["team"].id)
    )

    with pytest.raises(InvalidInput, match=PARENT_OTHER_BOOK):
        service.create(
            CategoryIn(name="Stray", book_id=other_book.id, parent_category_id=parent.id)
        )
    with pytest.raises(NotFound, match="Parent category not found"):
        service.create(
            CategoryIn(name="Orphan", book_id=other_book.id, parent_category_id=9999)
        )


def test_explicit_null_parent_moves_child_to_root(tree) -> None:
    service, _, child = tree

    moved = service.update(child.id, CategoryUpdate(parent_category_id=None))

    assert moved.parent_category_id is None
    assert moved.type == CategoryType.income


def test_omitted_parent_keeps_current_parent(tree) -> None:
    service, parent, child = tree

    renamed = service.update(child.id, CategoryUpdate(name="Yearly bonus"))

    assert renamed.name == "Yearly bonus"
    assert renamed.parent_category_id == parent.id


def test_category_with_children_cannot_be_deleted(tree) -> None:
    service, parent, _ = tree

    with pytest.raises(PreconditionRequired, match="subcategories"):
        service.delete(parent.id)


def test_deleting_category_detaches_its_transactions(session, tree, household) -> None:
    service, _, child = tree
    transactions = TransactionService(session, household["admin"])
    txn = transactions.create(
        TransactionIn(
            description="December bonus",
            amount_cents=50000,
            date="2024-12-20",
            account_id=household["account"].id,
            category_id=child.id,
        )
    )

    service.delete(child.id)

    assert transactions.get(txn.id).category_id is None


def test_viewer_reads_but_cannot_create_categories(session, tree, household) -> None:
    _, parent, _ = tree
    viewer_service = CategoryService(session, household["viewer"])

    assert viewer_service.get(parent.id).name == "Salary"
    with pytest.raises(AuthzDenied, match="Write access required"):
        viewer_service.create(CategoryIn(name="Nope", book_id=household["book"].id))
