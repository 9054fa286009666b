from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from beancount.loader import load_string

from foodcoop.domain.accounting.postings import (
    ORDER_INCOME_ACCOUNT,
    ordergroup_account,
    postings_to_beancount_text,
    transactions_to_postings,
)
from foodcoop.persistence.models import FinancialTransactionModel


def _sum_account(entries, account: str) -> Decimal:
    total = Decimal("0")
    for entry in entries:
        if getattr(entry, "postings", None) is None:
            continue
        for posting in entry.postings:
            if posting.account == account:
                total += posting.units.number
    return total


def generate_group_balances(transactions: Iterable[FinancialTransactionModel]) -> dict:
    """Per-group account balances in int cents, derived from the beancount ledger."""
    tx_list = list(transactions)
    postings = transactions_to_postings(tx_list)
    ledger_text = postings_to_beancount_text(postings)
    entries, errors, _ = load_string(ledger_text)
    if errors:
        raise ValueError(f"beancount parse errors: {errors}")

    group_ids = sorted({tx.ordergroup_id for tx in tx_list})
    # Liabilities carry a credit (negative) balance for money the coop owes.
    balances = {
        group_id: int(-_sum_account(entries, ordergroup_account(group_id)) * 100)
        for group_id in group_ids
    }
    order_income = -_sum_account(entries, ORDER_INCOME_ACCOUNT)

    return {
        "balances": balances,
        "order_income": int(order_income * 100),
        "posting_count": len(postings),
        "beancount_ledger": ledger_text,
    }
