from dataclasses import dataclass
from datetime import date
from typing import Optional, Union

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from errors import InvalidInput
from models import Transaction
from periods import parse_iso_date


@dataclass(frozen=True)
class Balance:
    exercised_cents: int
    projected_cents: int


class BalanceCalculator:
    """Exercised (cleared) and projected (all) balances of one account.

    Recomputed on every call; there is no cache to invalidate.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def balance(
        self, account_id: int, up_to: Union[str, date, None] = None
    ) -> Balance:
        try:
            cutoff = parse_iso_date(up_to)
        except (TypeError, ValueError) as exc:
            raise InvalidInput("Invalid date format") from exc

        stmt = select(
            func.coalesce(
                func.sum(
                    case(
                        (Transaction.exercised.is_(True), Transaction.amount_cents),
                        else_=0,
                    )
                ),
                0,
            ).label("exercised"),
            func.coalesce(func.sum(Transaction.amount_cents), 0).label("projected"),
        ).where(Transaction.account_id == account_id)
        if cutoff is not None:
            stmt = stmt.where(Transaction.date <= cutoff)

        row = self.session.execute(stmt).one()
        return Balance(
            exercised_cents=int(row.exercised),
            projected_cents=int(row.projected),
        )
