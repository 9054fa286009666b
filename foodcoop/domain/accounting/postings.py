from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable

from foodcoop.core.config import get_settings
from foodcoop.persistence.models import FinancialTransactionModel

ORDER_INCOME_ACCOUNT = "Income:Orders"
CASH_ACCOUNT = "Assets:Cash"


@dataclass
class PostingRecord:
    date: datetime
    narration: str
    debit_account: str
    credit_account: str
    amount_cents: int
    meta: dict


def cents_to_amount(cents: int) -> Decimal:
    return Decimal(cents) / Decimal(100)


def ordergroup_account(ordergroup_id: int) -> str:
    return f"Liabilities:Ordergroups:G{ordergroup_id}"


def transactions_to_postings(transactions: Iterable[FinancialTransactionModel]) -> list[PostingRecord]:
    """Double-entry view of group account transactions.

    Group accounts hold prepaid credit, so they live on the liability side:
    settlements move money from the group into order income, top-ups come
    in as cash.
    """
    rows: list[PostingRecord] = []
    for tx in transactions:
        if tx.amount_cents == 0:
            continue
        counter = ORDER_INCOME_ACCOUNT if tx.order_id is not None else CASH_ACCOUNT
        group = ordergroup_account(tx.ordergroup_id)
        if tx.amount_cents < 0:
            debit, credit, amount = group, counter, -tx.amount_cents
        else:
            debit, credit, amount = counter, group, tx.amount_cents
        rows.append(
            PostingRecord(
                date=tx.created_at,
                narration=tx.note.replace('"', "'"),
                debit_account=debit,
                credit_account=credit,
                amount_cents=amount,
                meta={"transaction_id": tx.id, "order_id": tx.order_id, "ordergroup_id": tx.ordergroup_id},
            )
        )
    return rows


def postings_to_beancount_text(postings: list[PostingRecord]) -> str:
    currency = get_settings().currency
    lines = [
        'option "title" "Foodcoop Ordergroup Accounts"',
        f'option "operating_currency" "{currency}"',
    ]
    if postings:
        first_day = min(posting.date.date() for posting in postings)
    else:
        first_day = datetime.now(timezone.utc).date()

    opens = [CASH_ACCOUNT, ORDER_INCOME_ACCOUNT]
    for posting in postings:
        for account in (posting.debit_account, posting.credit_account):
            if account not in opens:
                opens.append(account)
    for account in opens:
        lines.append(f"{first_day.isoformat()} open {account} {currency}")

    for posting in postings:
        day = posting.date.date().isoformat()
        amount = cents_to_amount(posting.amount_cents)
        lines.append(f'{day} * "{posting.narration}"')
        lines.append(f"  {posting.debit_account}  {amount} {currency}")
        lines.append(f"  {posting.credit_account}  {-amount} {currency}")

    return "\n".join(lines) + "\n"
