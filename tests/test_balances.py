from datetime import date

import pytest

from balances import Balance, BalanceCalculator
from errors import AuthzDenied, InvalidInput, NotFound, PreconditionRequired
from schemas import AccountIn, BookIn, CategoryIn, TransactionIn
from services import (
    AccountService,
    BookService,
    CategoryService,
    ReportService,
    TransactionService,
)


@pytest.fixture
def ledger(session, household):
    transactions = TransactionService(session, household["admin"])
    account_id = household["account"].id
    transactions.create(
        TransactionIn(
            description="Groceries",
            amount_cents=-5000,
            date="2024-12-01",
            exercised=True,
            account_id=account_id,
        )
    )
    transactions.create(
        TransactionIn(
            description="Refund",
            amount_cents=10000,
            date="2024-12-05",
            exercised=False,
            account_id=account_id,
        )
    )
    return account_id


def test_balance_splits_exercised_and_projected(session, ledger) -> None:
    calculator = BalanceCalculator(session)

    assert calculator.balance(ledger) == Balance(
        exercised_cents=-5000, projected_cents=5000
    )


def test_balance_up_to_date_is_inclusive(session, ledger) -> None:
    calculator = BalanceCalculator(session)

    assert calculator.balance(ledger, "2024-12-01") == Balance(-5000, -5000)
    assert calculator.balance(ledger, date(2024, 11, 30)) == Balance(0, 0)


def test_balance_of_empty_account_is_zero(session, household) -> None:
    assert BalanceCalculator(session).balance(household["account"].id) == Balance(0, 0)


def test_balance_rejects_malformed_cutoff(session, ledger) -> None:
    with pytest.raises(InvalidInput, match="Invalid date format"):
        BalanceCalculator(session).balance(ledger, "12/01/2024")
    with pytest.raises(InvalidInput, match="Invalid date format"):
        BalanceCalculator(session).balance(ledger, "2024-12-01Tgarbage")
    with pytest.raises(InvalidInput, match="Invalid date format"):
        BalanceCalculator(session).balance(ledger, "2024-12-01 not a time")


def test_balance_accepts_full_timestamp_cutoff(session, ledger) -> None:
    by_day = BalanceCalculator(session).balance(ledger, "2024-12-01")

    assert BalanceCalculator(session).balance(ledger, "2024-12-01T23:59:00") == by_day


def test_account_balance_requires_team_membership(
    session, ledger, household, make_user
) -> None:
    stranger = make_user("sam")

    balance = AccountService(session, household["viewer"]).balance(ledger)
    assert balance.projected_cents == 5000
    with pytest.raises(AuthzDenied):
        AccountService(session, stranger).balance(ledger)


def test_transaction_requires_a_valid_date(session, household) -> None:
    service = TransactionService(session, household["collaborator"])
    payload = dict(
        description="Coffee", amount_cents=-350, account_id=household["account"].id
    )

    with pytest.raises(InvalidInput, match="Date is required"):
        service.create(TransactionIn(**payload))
    with pytest.raises(InvalidInput, match="Invalid date"):
        service.create(TransactionIn(date="2024-02-30", **payload))


def test_transaction_category_must_share_the_book(session, household) -> None:
    admin = household["admin"]
    other_book = BookService(session, admin).create(
        BookIn(name="Other", team_id=household["team"].id)
    )
    foreign = CategoryService(session, admin).create(
        CategoryIn(name="Elsewhere", book_id=other_book.id)
    )

    with pytest.raises(InvalidInput, match="same book"):
        TransactionService(session, admin).create(
            TransactionIn(
                description="Lunch",
                amount_cents=-1200,
                date="2025-03-02",
                account_id=household["account"].id,
                category_id=foreign.id,
            )
        )


def test_moving_transaction_updates_both_balances(session, ledger, household) -> None:
    admin = household["admin"]
    savings = AccountService(session, admin).create(
        AccountIn(name="Savings", book_id=household["book"].id)
    )
    service = TransactionService(session, admin)
    [first, _] = BookService(session, admin).transactions(household["book"].id)

    service.update(
        first.id,
        TransactionIn(
            description=first.description,
            amount_cents=first.amount_cents,
            date=first.date.isoformat(),
            exercised=first.exercised,
            account_id=savings.id,
        ),
    )

    calculator = BalanceCalculator(session)
    assert calculator.balance(ledger) == Balance(0, 10000)
    assert calculator.balance(savings.id) == Balance(-5000, -5000)


def test_account_with_transactions_cannot_be_deleted(session, ledger, household) -> None:
    with pytest.raises(PreconditionRequired, match="with transactions"):
        AccountService(session, household["admin"]).delete(ledger)


def test_book_transactions_filter_by_date_range(session, ledger, household) -> None:
    listed = BookService(session, household["viewer"]).transactions(
        household["book"].id, start="2024-12-02", end="2024-12-31"
    )

    assert [t.description for t in listed] == ["Refund"]


def test_monthly_report_totals_the_month(session, ledger, household) -> None:
    report = ReportService(session, household["viewer"]).monthly(ledger, "2024-12-15")

    assert report["start"] == date(2024, 12, 1)
    assert report["end"] == date(2024, 12, 31)
    assert report["total_cents"] == 5000
    assert len(report["transactions"]) == 2

    with pytest.raises(InvalidInput, match="Date is required"):
        ReportService(session, household["viewer"]).monthly(ledger, None)
    with pytest.raises(NotFound):
        ReportService(session, household["viewer"]).monthly(9999, "2024-12-15")
