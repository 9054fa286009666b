from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from sqlalchemy.orm import Session

from foodcoop.domain.orders.sums import SumBasis, group_order_sum, order_sum
from foodcoop.persistence.models import FinancialTransactionModel, OrdergroupModel, OrderModel


@dataclass
class ReconciliationResult:
    rule: str
    passed: bool
    detail: str


def check_group_sums_decompose(session: Session, order: OrderModel) -> ReconciliationResult:
    total = order_sum(session, order, SumBasis.groups)
    parts = sum(group_order_sum(session, go, SumBasis.groups) for go in order.group_orders)
    return ReconciliationResult(
        rule="group_sums_decompose",
        passed=total == parts,
        detail=f"order_groups_sum={total}, sum_of_group_orders={parts}",
    )


def check_settlement_matches_groups_sum(
    session: Session,
    order: OrderModel,
    transactions: Iterable[FinancialTransactionModel],
) -> ReconciliationResult:
    if not order.booked:
        return ReconciliationResult(rule="settlement_matches_groups_sum", passed=True, detail="not booked")
    debited = -sum(tx.amount_cents for tx in transactions if tx.order_id == order.id)
    expected = order_sum(session, order, SumBasis.groups)
    return ReconciliationResult(
        rule="settlement_matches_groups_sum",
        passed=debited == expected,
        detail=f"debited={debited}, groups_sum={expected}",
    )


def check_account_balances_match_ledger(
    ordergroups: Iterable[OrdergroupModel],
    ledger_report: dict,
) -> ReconciliationResult:
    ledger_balances = ledger_report.get("balances", {})
    for group in ordergroups:
        ledger_balance = int(ledger_balances.get(group.id, 0))
        if ledger_balance != group.account_balance_cents:
            return ReconciliationResult(
                rule="account_balances_match_ledger",
                passed=False,
                detail=f"ordergroup={group.id} account={group.account_balance_cents} ledger={ledger_balance}",
            )
    return ReconciliationResult(rule="account_balances_match_ledger", passed=True, detail="ok")


def run_order_reconciliation(
    session: Session,
    order: OrderModel,
    transactions: Iterable[FinancialTransactionModel],
) -> list[ReconciliationResult]:
    tx_list = list(transactions)
    return [
        check_group_sums_decompose(session, order),
        check_settlement_matches_groups_sum(session, order, tx_list),
    ]
